"""Domain exceptions shared by services and API routes"""
from typing import Any, Optional


class NewsdeskError(Exception):
    """Base error carrying the HTTP status the API layer should answer with"""

    status_code = 400

    def __init__(self, message: str = "An error occurred", status_code: Optional[int] = None, errors: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors


class ValidationError(NewsdeskError):
    """Request is well-formed but violates a business rule"""
    status_code = 422


class CampaignStateError(ValidationError):
    """Requested campaign status transition is not allowed"""


class NotFoundError(NewsdeskError):
    status_code = 404


class MailDeliveryError(Exception):
    """Mail transport failed for a single recipient"""


class DispatchAbortedError(Exception):
    """Dispatch could not start (e.g. template missing); campaign stays in sending"""

    def __init__(self, campaign_id: int, reason: str):
        super().__init__(f"Dispatch of campaign {campaign_id} aborted: {reason}")
        self.campaign_id = campaign_id
        self.reason = reason
