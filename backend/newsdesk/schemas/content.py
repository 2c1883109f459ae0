"""Pydantic schemas for blog/news posts"""
from typing import Literal, Optional

from pydantic import BaseModel, Field

PostStatus = Literal["draft", "published", "archived"]


class CreatePostRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    sub_title: Optional[str] = Field(None, max_length=255)
    excerpt: Optional[str] = None
    body: Optional[str] = None
    status: PostStatus = "draft"


class UpdatePostStatusRequest(BaseModel):
    status: PostStatus
