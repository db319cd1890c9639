import re
from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from models import TaskPriority, TaskStatus, UserRole
from time_utils import as_utc, is_overdue, utc_now

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")

UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python; accepts either on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def check_password_strength(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain at least one lowercase letter, one uppercase letter, and one number"
        )
    return value


def check_picture_url(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return value
    if not value.lower().startswith(("http://", "https://")):
        raise ValueError("Profile picture must be a valid http(s) URL")
    return value


def check_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    cleaned = [tag.strip() for tag in tags]
    for tag in cleaned:
        if len(tag) > 20:
            raise ValueError("Each tag cannot exceed 20 characters")
    return cleaned


def check_future_due_date(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value < utc_now():
        raise ValueError("Due date cannot be in the past")
    return value


def _blank_to_none(value):
    # Clients send "" for "no due date"
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ============== Users ==============

class UserPublic(CamelModel):
    """Public profile. The password hash is never part of a response."""

    id: str
    name: str
    email: str
    bio: str = ""
    profile_picture: str = ""
    role: UserRole
    last_login: Optional[UtcDatetime] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime


class UserResponse(BaseModel):
    message: str
    user: UserPublic


class UserListResponse(BaseModel):
    message: str
    users: List[UserPublic]


# ============== Auth ==============

class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: Annotated[str, Field(min_length=6, max_length=128), AfterValidator(check_password_strength)]

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserPublic


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    bio: Optional[str] = Field(None, max_length=500)
    profile_picture: Annotated[Optional[str], Field(max_length=512), AfterValidator(check_picture_url)] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: Annotated[str, Field(min_length=6, max_length=128), AfterValidator(check_password_strength)]


class MessageResponse(BaseModel):
    message: str


class ValidateResponse(BaseModel):
    message: str
    valid: bool
    user: Optional[UserPublic] = None


# ============== Tasks ==============

class TaskCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=500)
    status: TaskStatus = TaskStatus.pending
    priority: TaskPriority = TaskPriority.medium
    due_date: Annotated[Optional[UtcDatetime], AfterValidator(check_future_due_date)] = None
    tags: Annotated[List[str], AfterValidator(check_tags)] = Field(default_factory=list)

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("description", mode="before")
    @classmethod
    def null_description(cls, value):
        return "" if value is None else value

    @field_validator("due_date", mode="before")
    @classmethod
    def blank_due_date(cls, value):
        return _blank_to_none(value)


class TaskUpdate(CamelModel):
    """
    Partial patch. Only fields present in the request body are applied.

    ``dueDate: null`` (or "") clears the due date; omitting it leaves it alone.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Annotated[Optional[UtcDatetime], AfterValidator(check_future_due_date)] = None
    tags: Annotated[Optional[List[str]], AfterValidator(check_tags)] = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("due_date", mode="before")
    @classmethod
    def blank_due_date(cls, value):
        return _blank_to_none(value)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "TaskUpdate":
        nulled = [
            name for name in ("title", "status", "priority", "tags")
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(to_camel(name) for name in nulled)}")
        if "description" in self.model_fields_set and self.description is None:
            self.description = ""
        return self


class TaskOut(CamelModel):
    id: str
    title: str
    description: str = ""
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[UtcDatetime] = None
    tags: List[str] = Field(default_factory=list)
    user_id: str
    completed: bool = False
    completed_at: Optional[UtcDatetime] = None
    is_overdue: bool = False
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @model_validator(mode="after")
    def compute_overdue(self) -> "TaskOut":
        self.is_overdue = is_overdue(self.due_date, self.status.value)
        return self


class TaskResponse(BaseModel):
    message: str
    task: TaskOut


class TaskRef(CamelModel):
    id: str
    title: str


class TaskDeleteResponse(BaseModel):
    message: str
    task: TaskRef


class StatusCounts(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    pending: int = 0
    in_progress: int = Field(0, alias="in-progress")
    completed: int = 0


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_tasks: int
    limit: int
    has_next_page: bool
    has_prev_page: bool


class TaskListResponse(BaseModel):
    message: str
    tasks: List[TaskOut]
    pagination: Pagination
    stats: StatusCounts


class BulkData(CamelModel):
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None


class BulkRequest(CamelModel):
    task_ids: List[str] = Field(default_factory=list)
    # Checked by the query engine so unknown operations get INVALID_OPERATION
    operation: str
    data: BulkData = Field(default_factory=BulkData)

    @field_validator("data", mode="before")
    @classmethod
    def null_data(cls, value):
        return {} if value is None else value


class BulkResponse(CamelModel):
    message: str
    modified_count: int
    operation: str
    task_ids: List[str]


# ============== Stats ==============

class StatsOverview(CamelModel):
    total_tasks: int
    completed_tasks: int
    overdue_tasks: int
    completion_rate: int
    recent_tasks: int
    recent_completions: int


class StatsUser(CamelModel):
    name: str
    email: str
    join_date: UtcDatetime
    last_active: UtcDatetime


class UserStats(BaseModel):
    tasks: StatusCounts
    overview: StatsOverview
    user: StatsUser


class UserStatsResponse(BaseModel):
    message: str
    stats: UserStats


class HealthResponse(BaseModel):
    message: str
    timestamp: str
    environment: str
