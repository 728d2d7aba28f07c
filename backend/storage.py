# backend/storage.py - tenant-scoped persistence helpers (one Session per request)
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend import models

logger = logging.getLogger(__name__)


class NotFoundError(Exception):
    pass


class ConflictError(Exception):
    """A request that is well-formed but breaks a data rule (duplicate email, class in use)."""


DEFAULT_BEHAVIOR_CATEGORIES = [
    ("Positive", "Positive behavior and achievements", "green"),
    ("Neutral", "General observations and notes", "blue"),
    ("Concern", "Minor concerns requiring attention", "amber"),
    ("Serious", "Serious incidents requiring immediate action", "red"),
]

DEFAULT_ACADEMIC_CATEGORIES = [
    ("Excellent", "Outstanding academic performance", "green"),
    ("Good", "Strong academic performance", "blue"),
    ("Satisfactory", "Meets expectations", "amber"),
    ("Needs Improvement", "Requires additional support", "orange"),
    ("Concern", "Significant academic concerns", "red"),
]

DEFAULT_SUBJECTS = [
    ("Mathematics", "MATH", "Mathematics and numerical reasoning"),
    ("English", "ENG", "English language and literature"),
    ("Science", "SCI", "General science"),
    ("History", "HIST", "History and social studies"),
    ("Geography", "GEO", "Geography and earth sciences"),
    ("Physical Education", "PE", "Physical education and sports"),
    ("Art", "ART", "Visual arts and creativity"),
    ("Music", "MUS", "Music and performing arts"),
    ("Computer Science", "CS", "Computer science and technology"),
    ("Foreign Language", "LANG", "Foreign language studies"),
]

PENDING_EXCLUDED = ("Done", "Archived")


# --- generic scoped CRUD ---
def get_scoped(db: Session, model, id: str, org_id: str, label: str):
    row = db.query(model).filter(model.id == id, model.organization_id == org_id).first()
    if row is None:
        raise NotFoundError(f"{label} with id {id} not found in organization {org_id}")
    return row

def create_row(db: Session, model, data: Dict[str, Any]):
    row = model(**data)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row

def update_row(db: Session, model, id: str, org_id: str, data: Dict[str, Any], label: str):
    row = get_scoped(db, model, id, org_id, label)
    for k, v in data.items():
        setattr(row, k, v)
    db.commit()
    db.refresh(row)
    return row

def delete_row(db: Session, model, id: str, org_id: str, label: str) -> None:
    row = get_scoped(db, model, id, org_id, label)
    db.delete(row)
    db.commit()


# --- organizations ---
def get_organization(db: Session, org_id: str) -> models.Organization:
    org = db.get(models.Organization, org_id)
    if org is None:
        raise NotFoundError(f"Organization with id {org_id} not found")
    return org

def create_organization(db: Session, data: Dict[str, Any]) -> models.Organization:
    org = models.Organization(**data)
    db.add(org)
    db.flush()
    seed_defaults(db, org.id)
    db.commit()
    db.refresh(org)
    logger.info("created organization %s (%s)", org.id, org.name)
    return org

def update_organization(db: Session, org_id: str, data: Dict[str, Any]) -> models.Organization:
    org = get_organization(db, org_id)
    for k, v in data.items():
        setattr(org, k, v)
    db.commit()
    db.refresh(org)
    return org

def seed_defaults(db: Session, org_id: str) -> None:
    """Add default categories and subjects; each set only when the org has none."""
    if not db.query(models.BehaviorLogCategory).filter_by(organization_id=org_id).first():
        for i, (name, desc, color) in enumerate(DEFAULT_BEHAVIOR_CATEGORIES):
            db.add(models.BehaviorLogCategory(
                organization_id=org_id, name=name, description=desc, color=color, display_order=i,
            ))
    if not db.query(models.AcademicLogCategory).filter_by(organization_id=org_id).first():
        for i, (name, desc, color) in enumerate(DEFAULT_ACADEMIC_CATEGORIES):
            db.add(models.AcademicLogCategory(
                organization_id=org_id, name=name, description=desc, color=color, display_order=i,
            ))
    if not db.query(models.Subject).filter_by(organization_id=org_id).first():
        for name, code, desc in DEFAULT_SUBJECTS:
            db.add(models.Subject(
                organization_id=org_id, name=name, code=code, description=desc,
                is_default=True, is_archived=False,
            ))
    db.flush()

def dashboard_stats(db: Session, org_id: str) -> Dict[str, int]:
    total_students = db.query(func.count(models.Student.id)).filter(
        models.Student.organization_id == org_id).scalar() or 0
    total_logs = db.query(func.count(models.BehaviorLog.id)).filter(
        models.BehaviorLog.organization_id == org_id).scalar() or 0
    pending = db.query(func.count(models.FollowUp.id)).filter(
        models.FollowUp.organization_id == org_id,
        models.FollowUp.status.notin_(PENDING_EXCLUDED),
    ).scalar() or 0
    positive = (
        db.query(func.count(models.BehaviorLog.id))
          .join(models.BehaviorLogCategory, models.BehaviorLog.category_id == models.BehaviorLogCategory.id)
          .filter(models.BehaviorLog.organization_id == org_id,
                  func.lower(models.BehaviorLogCategory.name) == "positive")
          .scalar()
        or 0
    )
    pct = round(100.0 * positive / total_logs) if total_logs else 0
    return {
        "total_students": int(total_students),
        "total_behavior_logs": int(total_logs),
        "pending_follow_ups": int(pending),
        "positive_logs_pct": int(pct),
    }


# --- students ---
def list_students(db: Session, org_id: str) -> List[Tuple[models.Student, int, int]]:
    behavior_count = (
        select(func.count(models.BehaviorLog.id))
        .where(models.BehaviorLog.student_id == models.Student.id)
        .correlate(models.Student)
        .scalar_subquery()
    )
    academic_count = (
        select(func.count(models.AcademicLog.id))
        .where(models.AcademicLog.student_id == models.Student.id)
        .correlate(models.Student)
        .scalar_subquery()
    )
    rows = (
        db.query(models.Student, behavior_count, academic_count)
          .filter(models.Student.organization_id == org_id)
          .order_by(models.Student.name)
          .all()
    )
    return [(s, int(b or 0), int(a or 0)) for s, b, a in rows]

def _check_student_email(db: Session, org_id: str, email: Optional[str], exclude_id: Optional[str] = None):
    if not email:
        return
    q = db.query(models.Student).filter(
        models.Student.organization_id == org_id, models.Student.email == email)
    if exclude_id is not None:
        q = q.filter(models.Student.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"A student with email {email} already exists in this organization")

def _check_class(db: Session, org_id: str, class_id: Optional[str]):
    if class_id is None:
        return
    get_scoped(db, models.Class, class_id, org_id, "Class")

def create_student(db: Session, data: Dict[str, Any]) -> models.Student:
    org_id = data["organization_id"]
    get_organization(db, org_id)
    _check_student_email(db, org_id, data.get("email"))
    _check_class(db, org_id, data.get("class_id"))
    return create_row(db, models.Student, data)

def update_student(db: Session, id: str, org_id: str, data: Dict[str, Any]) -> models.Student:
    _check_student_email(db, org_id, data.get("email"), exclude_id=id)
    _check_class(db, org_id, data.get("class_id"))
    return update_row(db, models.Student, id, org_id, data, "Student")


# --- classes ---
def delete_class(db: Session, id: str, org_id: str) -> None:
    in_use = db.query(models.Student).filter(
        models.Student.class_id == id, models.Student.organization_id == org_id).first()
    if in_use is not None:
        raise ConflictError(
            "Cannot delete class with assigned students. "
            "Please unassign students first or archive the class instead."
        )
    delete_row(db, models.Class, id, org_id, "Class")


# --- ordered listings ---
def list_rows(db: Session, model, org_id: str, *order_by, **filters):
    q = db.query(model).filter(model.organization_id == org_id)
    if filters:
        q = q.filter_by(**filters)
    if order_by:
        q = q.order_by(*order_by)
    return q.all()

def list_categories(db: Session, model, org_id: str):
    return list_rows(db, model, org_id, model.display_order, model.name)

def list_subjects(db: Session, org_id: str):
    # defaults first, then by name
    return list_rows(db, models.Subject, org_id, models.Subject.is_default.desc(), models.Subject.name)


# --- logs / follow-ups need their student, category, subject in the same org ---
def _check_refs(db: Session, org_id: str, data: Dict[str, Any], category_model=None):
    if data.get("student_id") is not None:
        get_scoped(db, models.Student, data["student_id"], org_id, "Student")
    if category_model is not None and data.get("category_id") is not None:
        get_scoped(db, category_model, data["category_id"], org_id, "Category")
    if data.get("subject_id") is not None:
        get_scoped(db, models.Subject, data["subject_id"], org_id, "Subject")

def create_behavior_log(db: Session, data: Dict[str, Any]) -> models.BehaviorLog:
    _check_refs(db, data["organization_id"], data, models.BehaviorLogCategory)
    return create_row(db, models.BehaviorLog, data)

def update_behavior_log(db: Session, id: str, org_id: str, data: Dict[str, Any]) -> models.BehaviorLog:
    _check_refs(db, org_id, data, models.BehaviorLogCategory)
    return update_row(db, models.BehaviorLog, id, org_id, data, "Behavior log")

def create_academic_log(db: Session, data: Dict[str, Any]) -> models.AcademicLog:
    _check_refs(db, data["organization_id"], data, models.AcademicLogCategory)
    return create_row(db, models.AcademicLog, data)

def update_academic_log(db: Session, id: str, org_id: str, data: Dict[str, Any]) -> models.AcademicLog:
    _check_refs(db, org_id, data, models.AcademicLogCategory)
    return update_row(db, models.AcademicLog, id, org_id, data, "Academic log")

def create_follow_up(db: Session, data: Dict[str, Any]) -> models.FollowUp:
    _check_refs(db, data["organization_id"], data)
    return create_row(db, models.FollowUp, data)


# --- meeting notes ---
def list_meeting_notes(db: Session, org_id: str, student_id: str) -> List[models.MeetingNote]:
    m = models.MeetingNote
    return list_rows(db, m, org_id, m.date.desc(), student_id=student_id)

def create_meeting_note(db: Session, data: Dict[str, Any]) -> models.MeetingNote:
    _check_refs(db, data["organization_id"], data)
    notes = data.get("notes") or ""
    transcript = data.get("transcript")
    row = {
        "organization_id": data["organization_id"],
        "student_id": data["student_id"],
        "date": data["date"],
        "participants": data.get("participants", []),
        "summary": data.get("title") or "Meeting notes",
        "full_notes": f"{notes}\n\n--- Transcript ---\n{transcript}" if transcript else notes,
    }
    return create_row(db, models.MeetingNote, row)
