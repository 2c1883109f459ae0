"""Newsdesk - content publishing backend with newsletter campaign dispatch"""

__version__ = "1.0.0"
