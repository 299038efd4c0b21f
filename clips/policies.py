from typing import Dict, Optional, Protocol

from pydantic import BaseModel, Field

from .config import settings


class UserPolicies(BaseModel):
    clip_limit: int = Field(..., ge=0)
    note_each_clips_limit: int = Field(..., ge=0)


class PolicyLookup(Protocol):
    def get_user_policies(self, user_id: str) -> UserPolicies: ...


class SettingsPolicyLookup:
    """Base policy from settings, optionally overridden per user."""

    def __init__(self, base: Optional[UserPolicies] = None, overrides: Optional[Dict[str, dict]] = None):
        self.base = base or UserPolicies(
            clip_limit=settings.default_clip_limit,
            note_each_clips_limit=settings.default_note_each_clips_limit,
        )
        self.overrides = overrides or {}

    def get_user_policies(self, user_id: str) -> UserPolicies:
        override = self.overrides.get(user_id)
        if not override:
            return self.base
        return self.base.model_copy(update=override)
