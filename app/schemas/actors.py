"""Caller identity schemas."""

from enum import Enum

from pydantic import BaseModel, Field


class ActorRole(str, Enum):
    """Practice staff roles."""

    ASSISTANT = "assistant"
    PRACTITIONER = "practitioner"
    ADMIN = "admin"


class Actor(BaseModel):
    """Already-resolved caller identity used for audit attribution."""

    id: str = Field(default="anonymous", min_length=1)
    role: ActorRole
