# backend/schemas.py - shapes of data going in/out of the API (validation layer)
import re
from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

FollowUpStatus = Literal["To-Do", "In-Progress", "Done", "Archived"]

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def _blank_to_none(v):
    if isinstance(v, str) and v.strip() == "":
        return None
    return v

def _email(v):
    v = _blank_to_none(v)
    if not isinstance(v, str):
        return v
    v = v.strip().lower()
    if not EMAIL_RE.match(v):
        raise ValueError("Invalid email address")
    return v

# "" from a cleared form field means "no value"
OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
Email = Annotated[Optional[str], BeforeValidator(_email)]

class Payload(BaseModel):
    """Create schemas: unknown fields are dropped, strings trimmed."""
    model_config = ConfigDict(str_strip_whitespace=True)

class Patch(BaseModel):
    """Partial-update schemas: unknown fields are rejected."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

# --- organizations ---
class OrganizationIn(Payload):
    name: str = Field(min_length=1, max_length=255)
    code: Optional[str] = Field(default=None, max_length=50)
    email: Email = None
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = None

class OrganizationUpdate(Patch):
    name: str = Field(default=None, min_length=1, max_length=255)
    code: Optional[str] = Field(default=None, max_length=50)
    email: Email = None
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = None

# --- students ---
class StudentIn(Payload):
    organization_id: str
    name: str = Field(min_length=1, max_length=255)
    email: Email = None
    class_id: OptionalText = None
    gender: OptionalText = Field(default=None, max_length=50)

class StudentUpdate(Patch):
    name: str = Field(default=None, min_length=1, max_length=255)
    email: Email = None
    class_id: OptionalText = None
    gender: OptionalText = Field(default=None, max_length=50)

# --- classes ---
class ClassIn(Payload):
    organization_id: str
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    is_archived: bool = False

class ClassUpdate(Patch):
    name: str = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_archived: bool = None

# --- subjects ---
class SubjectIn(Payload):
    organization_id: str
    name: str = Field(min_length=1, max_length=255)
    code: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None
    is_default: bool = False
    is_archived: bool = False

class SubjectUpdate(Patch):
    name: str = Field(default=None, min_length=1, max_length=255)
    code: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None
    is_archived: bool = None

# --- behavior / academic log categories (same shape) ---
class CategoryIn(Payload):
    organization_id: str
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, max_length=50)   # e.g. "green", "amber"
    display_order: int = Field(default=0, ge=0)

class CategoryUpdate(Patch):
    name: str = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, max_length=50)
    display_order: Optional[int] = Field(default=None, ge=0)

# --- behavior logs ---
class BehaviorLogIn(Payload):
    organization_id: str
    student_id: str = Field(min_length=1)
    category_id: str = Field(min_length=1)
    incident_date: datetime = Field(default_factory=now_utc)
    notes: str = Field(min_length=1)
    strategies: OptionalText = None
    logged_by: str = "Unknown"

class BehaviorLogUpdate(Patch):
    category_id: str = Field(default=None, min_length=1)
    incident_date: datetime = None
    notes: str = Field(default=None, min_length=1)
    strategies: OptionalText = None

# --- academic logs ---
class AcademicLogIn(Payload):
    organization_id: str
    student_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    category_id: str = Field(min_length=1)
    assessment_date: datetime
    grade: OptionalText = Field(default=None, max_length=20)
    score: OptionalText = Field(default=None, max_length=50)
    notes: str = Field(min_length=1)
    logged_by: str = "Unknown"

class AcademicLogUpdate(Patch):
    subject_id: str = Field(default=None, min_length=1)
    category_id: str = Field(default=None, min_length=1)
    assessment_date: datetime = None
    grade: OptionalText = Field(default=None, max_length=20)
    score: OptionalText = Field(default=None, max_length=50)
    notes: str = Field(default=None, min_length=1)

# --- follow-ups ---
class FollowUpIn(Payload):
    organization_id: str
    student_id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: FollowUpStatus = "To-Do"
    assignee: Optional[str] = Field(default=None, max_length=255)

class FollowUpUpdate(Patch):
    title: str = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: FollowUpStatus = None
    assignee: Optional[str] = Field(default=None, max_length=255)

# --- meeting notes ---
# title and transcript are folded into summary / full_notes by storage
class MeetingNoteIn(Payload):
    organization_id: str
    student_id: str = Field(min_length=1)
    title: OptionalText = Field(default=None, max_length=255)
    date: datetime = Field(default_factory=now_utc)
    participants: List[str] = Field(default_factory=list)
    notes: OptionalText = None
    transcript: OptionalText = None

# --- responses ---
class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)

class OrganizationOut(Record):
    id: str
    name: str
    code: Optional[str] = None
    email: Email = None
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class StudentOut(Record):
    id: str
    organization_id: str
    name: str
    email: Email = None
    class_id: OptionalText = None
    gender: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    behavior_logs_count: int = 0
    academic_logs_count: int = 0

class ClassOut(Record):
    id: str
    organization_id: str
    name: str
    description: Optional[str] = None
    is_archived: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class SubjectOut(Record):
    id: str
    organization_id: str
    name: str
    code: Optional[str] = None
    description: Optional[str] = None
    is_default: bool
    is_archived: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class CategoryOut(Record):
    id: str
    organization_id: str
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    display_order: Optional[int] = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class BehaviorLogOut(Record):
    id: str
    organization_id: str
    student_id: str
    category_id: str
    incident_date: datetime
    notes: str
    strategies: OptionalText = None
    logged_by: str
    logged_at: Optional[datetime] = None

class AcademicLogOut(Record):
    id: str
    organization_id: str
    student_id: str
    subject_id: str
    category_id: str
    assessment_date: datetime
    grade: Optional[str] = None
    score: Optional[str] = None
    notes: str
    logged_by: str
    logged_at: Optional[datetime] = None

class FollowUpOut(Record):
    id: str
    organization_id: str
    student_id: str
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: str
    assignee: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class MeetingNoteOut(Record):
    id: str
    organization_id: str
    student_id: str
    date: datetime
    participants: List[str]
    summary: str
    full_notes: Optional[str] = None
    created_at: Optional[datetime] = None

class StatsOut(BaseModel):
    total_students: int
    total_behavior_logs: int
    pending_follow_ups: int
    positive_logs_pct: int
