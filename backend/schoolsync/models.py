"""Profile and message models shared by the repositories and session loops."""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .constants import COURSES, SUBJECTS, TEACHER_INBOX

Role = Literal["student", "teacher"]


def normalize_name(value: str) -> str:
    normalized = value.strip().lower()
    if not normalized:
        raise ValueError("User name cannot be empty.")
    return normalized


def same_user(left: str, right: str) -> bool:
    return left.strip().lower() == right.strip().lower()


def check_subject(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in SUBJECTS:
        raise ValueError(f"Unknown subject: {value!r}")
    return value


class UserProfile(BaseModel):
    """Portal user as persisted in the users collection and the session pointer."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    password: Optional[str] = None
    avatar: str = ""
    course: str
    role: Role
    subject: Optional[str] = None
    total_stars: int = Field(default=0, ge=0, alias="totalStars")
    badges: List[str] = Field(default_factory=list)
    streak: int = Field(default=1, ge=1)
    daily_progress: int = Field(default=0, ge=0, le=100, alias="dailyProgress")

    @model_validator(mode="before")
    @classmethod
    def _hydrate_defaults(cls, data: Any) -> Any:
        # Older payloads carry nulls, zero streaks or no progress fields at all.
        if not isinstance(data, dict):
            return data
        hydrated = dict(data)
        for key, alias, default in (
            ("total_stars", "totalStars", 0),
            ("badges", "badges", None),
            ("streak", "streak", 1),
            ("daily_progress", "dailyProgress", 0),
        ):
            value = hydrated.get(alias, hydrated.get(key))
            if not value:
                hydrated.pop(key, None)
                hydrated[alias] = [] if default is None else default
        return hydrated

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        normalize_name(value)
        return value.strip()

    @field_validator("course")
    @classmethod
    def _validate_course(cls, value: str) -> str:
        if value not in COURSES:
            raise ValueError(f"Unknown course: {value!r}")
        return value

    @field_validator("subject")
    @classmethod
    def _validate_subject(cls, value: Optional[str]) -> Optional[str]:
        return check_subject(value)

    @field_validator("badges")
    @classmethod
    def _dedupe_badges(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @property
    def is_student(self) -> bool:
        return self.role == "student"

    @property
    def is_teacher(self) -> bool:
        return self.role == "teacher"

    def matches(self, name: str) -> bool:
        return same_user(self.name, name)


class Message(BaseModel):
    """Chat message between a student and a teacher (or the shared teacher inbox)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    sender: str = Field(alias="from")
    to: str
    text: str
    timestamp: int = Field(ge=0)
    read: bool = False
    # Free-form tag on stored data; only new messages are checked against SUBJECTS.
    subject: Optional[str] = None

    def addressed_to(self, user: UserProfile) -> bool:
        """Whether the message belongs in ``user``'s inbox."""
        if self.to == user.name:
            return True
        return user.is_teacher and self.to == TEACHER_INBOX


__all__ = [
    "Message",
    "Role",
    "UserProfile",
    "check_subject",
    "normalize_name",
    "same_user",
]
