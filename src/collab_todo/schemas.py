from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import GroupKind, Priority


def _clean_name(v: Optional[str], label: str = "name") -> Optional[str]:
    """
    Strip whitespace and enforce 1..200 length.
    """
    if v is None:
        return v
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError(f"{label} length must be between 1 and 200 characters")
    return s


def _parse_task_date(value: Any) -> Optional[str]:
    """
    Normalize a due date into an opaque 'YYYY-MM-DD' string. Empty means no date.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()).isoformat()
        except ValueError as e:
            raise ValueError("Invalid date format. Use 'YYYY-MM-DD' (e.g., '2025-01-31').") from e
    raise ValueError("Invalid type for date; expected ISO8601 date string.")


def _parse_task_time(value: Any) -> Optional[str]:
    """
    Normalize a due time into an opaque 'HH:MM' string. Empty means no time.
    """
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if isinstance(value, str):
        try:
            return time.fromisoformat(value.strip()).strftime("%H:%M")
        except ValueError as e:
            raise ValueError("Invalid time format. Use 'HH:MM' (e.g., '13:45').") from e
    raise ValueError("Invalid type for time; expected 'HH:MM' string.")


def _parse_group_id(value: Any) -> Any:
    # Forms send an empty select as ""; that means no group
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


def _parse_kind(value: Any) -> Any:
    # 'collab' is the short form older clients send
    if isinstance(value, str) and value.strip().lower() == "collab":
        return GroupKind.COLLABORATIVE.value
    return value


def _check_email(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip().lower()
    local, _, domain = s.partition("@")
    if not local or "." not in domain or " " in s:
        raise ValueError("email must be a valid email address")
    return s


# --- Accounts ---


# PUBLIC_INTERFACE
class RegisterRequest(BaseModel):
    """
    Schema for registering a new user.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Ada",
                "email": "ada@example.com",
                "password": "correct horse",
                "recovery_question": "First pet?",
                "recovery_answer": "Rex",
            }
        }
    )

    name: str = Field(..., description="Display name", min_length=1, max_length=200)
    email: str = Field(..., description="Login email, unique case-insensitively")
    password: str = Field(..., description="Plain-text password (hashed on storage)", min_length=6)
    recovery_question: str = Field(..., description="Question asked on password recovery", min_length=1)
    recovery_answer: str = Field(..., description="Answer to the recovery question", min_length=1)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v)  # type: ignore[return-value]

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)  # type: ignore[return-value]


class ForgotRequest(BaseModel):
    email: str = Field(..., description="Email of the account to recover")


class ForgotResponse(BaseModel):
    question: str = Field(..., description="The account's recovery question")


class ResetPasswordRequest(BaseModel):
    email: str = Field(..., description="Email of the account to recover")
    answer: str = Field(..., description="Answer to the recovery question")
    new_password: str = Field(..., description="Replacement password", min_length=6)


# PUBLIC_INTERFACE
class ProfileUpdate(BaseModel):
    """
    Schema for updating the current user's profile.
    All fields are optional; only provided fields will be updated.
    """

    name: Optional[str] = Field(default=None, description="Display name")
    email: Optional[str] = Field(default=None, description="Login email")
    password: Optional[str] = Field(default=None, description="New password", min_length=6)
    recovery_question: Optional[str] = Field(default=None, description="New recovery question")
    recovery_answer: Optional[str] = Field(default=None, description="New recovery answer")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _check_email(v)


class UserSummary(BaseModel):
    """Public view of a user: never carries credential or recovery material."""

    id: int = Field(..., description="Unique identifier of the user")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")


class ProfileOut(UserSummary):
    recovery_question: str = Field(..., description="The account's recovery question")


# --- Groups ---


# PUBLIC_INTERFACE
class GroupCreate(BaseModel):
    """
    Schema for creating a group. 'collab' is accepted for 'collaborative'.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"name": "Team", "kind": "collaborative"}})

    name: str = Field(..., description="Group name", min_length=1, max_length=200)
    kind: GroupKind = Field(default=GroupKind.PERSONAL, description="personal or collaborative")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v)  # type: ignore[return-value]

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v: Any) -> Any:
        return _parse_kind(v)


class GroupUpdate(BaseModel):
    """Rename and/or retype a group. Omitted fields are left unchanged."""

    name: Optional[str] = Field(default=None, description="New group name", max_length=200)
    kind: Optional[GroupKind] = Field(default=None, description="personal or collaborative")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(v)

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v: Any) -> Any:
        return _parse_kind(v)


class CollaboratorAdd(BaseModel):
    email: str = Field(..., description="Email of the user to add")


class GroupOut(BaseModel):
    """
    Schema returned by the API for a Group, with owner and collaborators expanded.
    """

    id: int = Field(..., description="Unique identifier of the group")
    name: str = Field(..., description="Group name")
    kind: GroupKind = Field(..., description="personal or collaborative")
    owner: UserSummary = Field(..., description="The group owner")
    collaborators: List[UserSummary] = Field(default_factory=list, description="Members, owner included")
    created_at: datetime = Field(..., description="Creation timestamp")


# --- Tasks ---


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new Task.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Ship v1",
                "date": "2025-02-01",
                "time": "17:00",
                "priority": "High",
                "group_id": 3,
            }
        }
    )

    name: str = Field(..., description="Short name for the task", min_length=1, max_length=200)
    date: Optional[str] = Field(default=None, description="Due date as 'YYYY-MM-DD'")
    time: Optional[str] = Field(default=None, description="Due time as 'HH:MM'")
    priority: Priority = Field(default=Priority.LOW, description="Low, Mid or High")
    done: bool = Field(default=False, description="Completion status flag")
    group_id: Optional[int] = Field(default=None, description="Group to file the task in; null for none")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v)  # type: ignore[return-value]

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Any) -> Optional[str]:
        return _parse_task_date(v)

    @field_validator("time", mode="before")
    @classmethod
    def parse_time(cls, v: Any) -> Optional[str]:
        return _parse_task_time(v)

    @field_validator("group_id", mode="before")
    @classmethod
    def parse_group_id(cls, v: Any) -> Any:
        return _parse_group_id(v)


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for updating an existing Task.
    All fields are optional; only provided fields will be updated. Sending
    "group_id": null ungroups the task, omitting group_id leaves it alone.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"priority": "High", "done": True}}
    )

    name: Optional[str] = Field(default=None, description="Short name for the task", max_length=200)
    date: Optional[str] = Field(default=None, description="Due date as 'YYYY-MM-DD'; null clears it")
    time: Optional[str] = Field(default=None, description="Due time as 'HH:MM'; null clears it")
    priority: Optional[Priority] = Field(default=None, description="Low, Mid or High")
    done: Optional[bool] = Field(default=None, description="Completion status flag")
    group_id: Optional[int] = Field(default=None, description="Group to move the task to; null ungroups")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(v)

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Any) -> Optional[str]:
        return _parse_task_date(v)

    @field_validator("time", mode="before")
    @classmethod
    def parse_time(cls, v: Any) -> Optional[str]:
        return _parse_task_time(v)

    @field_validator("group_id", mode="before")
    @classmethod
    def parse_group_id(cls, v: Any) -> Any:
        return _parse_group_id(v)

    @model_validator(mode="after")
    def reject_null_required(self) -> "TaskUpdate":
        for field in ("name", "priority", "done"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def to_fields(self) -> Dict[str, Any]:
        """Only the fields the client actually sent."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class TaskOut(BaseModel):
    """
    Schema returned by the API for a Task.
    """

    id: int = Field(..., description="Unique identifier of the task")
    name: str = Field(..., description="Short name for the task")
    date: Optional[str] = Field(default=None, description="Due date as 'YYYY-MM-DD'")
    time: Optional[str] = Field(default=None, description="Due time as 'HH:MM'")
    priority: Priority = Field(..., description="Low, Mid or High")
    done: bool = Field(..., description="Completion status flag")
    created_at: datetime = Field(..., description="Creation timestamp")
    owner_id: int = Field(..., description="Id of the user who created the task")
    group_id: Optional[int] = Field(default=None, description="Group the task is filed in")


class DeletedTaskOut(BaseModel):
    id: int = Field(..., description="Id of the deleted task")
    message: str = Field(..., description="Human readable status")
    expires_at: datetime = Field(..., description="Undo is possible until this instant")


class ClearedOut(BaseModel):
    cleared: int = Field(..., description="Number of completed tasks removed")
    message: str = Field(..., description="Human readable status")


class DataOut(BaseModel):
    """Everything the caller can see."""

    groups: List[GroupOut] = Field(..., description="Visible groups")
    tasks: List[TaskOut] = Field(..., description="Visible active tasks, in the requested order")


class MessageOut(BaseModel):
    message: str = Field(..., description="Human readable status")
