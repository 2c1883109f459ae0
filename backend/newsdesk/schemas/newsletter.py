"""Pydantic schemas for newsletter operations"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class SubscribeRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=255)
    topic_ids: Optional[List[int]] = None
    locale: Literal["id", "en"] = "id"


class UnsubscribeRequest(BaseModel):
    email: EmailStr
    reason: Optional[str] = Field(None, max_length=255)


class UpdatePreferencesRequest(BaseModel):
    token: str
    topic_ids: List[int] = []


class CreateTopicRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=255, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = Field(None, max_length=255)
    is_default: bool = False


class CreateTemplateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    meta: Optional[Dict[str, Any]] = None


class CreateCampaignRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    template_id: int
    topic_id: Optional[int] = None
    post_id: Optional[int] = None
    post_type: Optional[Literal["blog", "news"]] = None


class UpdateCampaignRequest(BaseModel):
    subject: Optional[str] = Field(None, min_length=1, max_length=255)
    template_id: Optional[int] = None
    topic_id: Optional[int] = None
    post_id: Optional[int] = None
    post_type: Optional[Literal["blog", "news"]] = None


class ScheduleCampaignRequest(BaseModel):
    scheduled_at: datetime
