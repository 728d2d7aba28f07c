# backend/main.py - FastAPI app: startup config, CORS, error handlers, endpoints
import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.db import Base, engine, get_db
from backend.settings import FRONTEND_ORIGIN, LOG_LEVEL
from backend import models, storage
from backend.schemas import (
    OrganizationIn, OrganizationUpdate, OrganizationOut, StatsOut,
    StudentIn, StudentUpdate, StudentOut,
    ClassIn, ClassUpdate, ClassOut,
    SubjectIn, SubjectUpdate, SubjectOut,
    CategoryIn, CategoryUpdate, CategoryOut,
    BehaviorLogIn, BehaviorLogUpdate, BehaviorLogOut,
    AcademicLogIn, AcademicLogUpdate, AcademicLogOut,
    FollowUpIn, FollowUpUpdate, FollowUpOut,
    MeetingNoteIn, MeetingNoteOut,
)
from backend.storage import ConflictError, NotFoundError
from backend.validation import FieldError, ValidationGateError, error_path, org_scope, student_scope, validate

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Student Behavior Tracker API")

# --- Error handlers: field-level 400s, constraint 400s, 404s, terse 500s ---
def _validation_response(errors: List[FieldError]) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"message": "Validation error", "errors": [e.to_dict() for e in errors]},
    )

@app.exception_handler(ValidationGateError)
async def gate_exc_handler(request: Request, exc: ValidationGateError):
    return _validation_response(exc.errors)

@app.exception_handler(RequestValidationError)
async def validation_exc_handler(request: Request, exc: RequestValidationError):
    # query/path params; bodies go through the gate
    errors = [FieldError(error_path(e["loc"]), e["msg"]) for e in exc.errors()]
    return _validation_response(errors)

CONSTRAINT_MESSAGES = {
    "foreign key": "Invalid reference. The related record does not exist.",
    "unique": "Duplicate entry. This record already exists.",
    "not null": "Missing required field.",
}

@app.exception_handler(IntegrityError)
async def integrity_exc_handler(request: Request, exc: IntegrityError):
    logger.warning("integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    detail = str(exc.orig).lower().replace("-", " ")
    for needle, message in CONSTRAINT_MESSAGES.items():
        if needle in detail:
            return JSONResponse(status_code=400, content={"message": message})
    return JSONResponse(status_code=400, content={"message": "Database constraint violated."})

@app.exception_handler(ConflictError)
async def conflict_exc_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=400, content={"message": str(exc)})

@app.exception_handler(NotFoundError)
async def not_found_exc_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"message": str(exc) or "Resource not found"})

@app.exception_handler(Exception)
async def unhandled_exc_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})

# --- CORS (localhost + 127.0.0.1) ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_ORIGIN, "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)

def require_org(org_id: str, db: Session = Depends(get_db)) -> models.Organization:
    return storage.get_organization(db, org_id)

DELETED = {"success": True}

@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/health/db")
def health_db(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"db": "ok"}

# --- Organizations ---
@app.post("/api/organizations", response_model=OrganizationOut)
def create_organization(data: Dict[str, Any] = Depends(validate(OrganizationIn)), db: Session = Depends(get_db)):
    return storage.create_organization(db, data)

@app.get("/api/organizations/{org_id}", response_model=OrganizationOut)
def get_organization(org: models.Organization = Depends(require_org)):
    return org

@app.patch("/api/organizations/{org_id}", response_model=OrganizationOut)
def update_organization(org_id: str, data: Dict[str, Any] = Depends(validate(OrganizationUpdate)),
                        db: Session = Depends(get_db)):
    return storage.update_organization(db, org_id, data)

@app.get("/api/organizations/{org_id}/stats", response_model=StatsOut)
def get_stats(org_id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    return storage.dashboard_stats(db, org_id)

# --- Students ---
def _student_out(row, behavior_count=0, academic_count=0) -> StudentOut:
    return StudentOut.model_validate(row).model_copy(
        update={"behavior_logs_count": behavior_count, "academic_logs_count": academic_count}
    )

@app.get("/api/organizations/{org_id}/students", response_model=List[StudentOut])
def list_students(org_id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    return [_student_out(s, b, a) for s, b, a in storage.list_students(db, org_id)]

@app.get("/api/organizations/{org_id}/students/{id}", response_model=StudentOut)
def get_student(org_id: str, id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    return storage.get_scoped(db, models.Student, id, org_id, "Student")

@app.post("/api/organizations/{org_id}/students", response_model=StudentOut)
def create_student(org=Depends(require_org), data: Dict[str, Any] = Depends(validate(StudentIn, inject=org_scope)),
                   db: Session = Depends(get_db)):
    return storage.create_student(db, data)

@app.patch("/api/organizations/{org_id}/students/{id}", response_model=StudentOut)
def update_student(org_id: str, id: str, org=Depends(require_org),
                   data: Dict[str, Any] = Depends(validate(StudentUpdate)), db: Session = Depends(get_db)):
    return storage.update_student(db, id, org_id, data)

@app.delete("/api/organizations/{org_id}/students/{id}")
def delete_student(org_id: str, id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    storage.delete_row(db, models.Student, id, org_id, "Student")
    return DELETED

@app.get("/api/organizations/{org_id}/students/{student_id}/behavior-logs", response_model=List[BehaviorLogOut])
def list_student_behavior_logs(org_id: str, student_id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    m = models.BehaviorLog
    return storage.list_rows(db, m, org_id, m.incident_date.desc(), student_id=student_id)

@app.get("/api/organizations/{org_id}/students/{student_id}/academic-logs", response_model=List[AcademicLogOut])
def list_student_academic_logs(org_id: str, student_id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    m = models.AcademicLog
    return storage.list_rows(db, m, org_id, m.assessment_date, student_id=student_id)

@app.get("/api/organizations/{org_id}/students/{student_id}/follow-ups", response_model=List[FollowUpOut])
def list_student_follow_ups(org_id: str, student_id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    m = models.FollowUp
    return storage.list_rows(db, m, org_id, m.created_at.desc(), student_id=student_id)

@app.get("/api/organizations/{org_id}/students/{student_id}/meeting-notes", response_model=List[MeetingNoteOut])
def list_meeting_notes(org_id: str, student_id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    return storage.list_meeting_notes(db, org_id, student_id)

@app.post("/api/organizations/{org_id}/students/{student_id}/meeting-notes", response_model=MeetingNoteOut)
def create_meeting_note(org=Depends(require_org),
                        data: Dict[str, Any] = Depends(validate(MeetingNoteIn, inject=student_scope)),
                        db: Session = Depends(get_db)):
    return storage.create_meeting_note(db, data)

# --- Classes ---
@app.get("/api/organizations/{org_id}/classes", response_model=List[ClassOut])
def list_classes(org_id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    return storage.list_rows(db, models.Class, org_id, models.Class.name)

@app.post("/api/organizations/{org_id}/classes", response_model=ClassOut)
def create_class(org=Depends(require_org), data: Dict[str, Any] = Depends(validate(ClassIn, inject=org_scope)),
                 db: Session = Depends(get_db)):
    return storage.create_row(db, models.Class, data)

@app.patch("/api/organizations/{org_id}/classes/{id}", response_model=ClassOut)
def update_class(org_id: str, id: str, org=Depends(require_org),
                 data: Dict[str, Any] = Depends(validate(ClassUpdate)), db: Session = Depends(get_db)):
    return storage.update_row(db, models.Class, id, org_id, data, "Class")

@app.delete("/api/organizations/{org_id}/classes/{id}")
def delete_class(org_id: str, id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    storage.delete_class(db, id, org_id)
    return DELETED

# --- Subjects ---
@app.get("/api/organizations/{org_id}/subjects", response_model=List[SubjectOut])
def list_subjects(org_id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    return storage.list_subjects(db, org_id)

@app.post("/api/organizations/{org_id}/subjects", response_model=SubjectOut)
def create_subject(org=Depends(require_org), data: Dict[str, Any] = Depends(validate(SubjectIn, inject=org_scope)),
                   db: Session = Depends(get_db)):
    return storage.create_row(db, models.Subject, data)

@app.patch("/api/organizations/{org_id}/subjects/{id}", response_model=SubjectOut)
def update_subject(org_id: str, id: str, org=Depends(require_org),
                   data: Dict[str, Any] = Depends(validate(SubjectUpdate)), db: Session = Depends(get_db)):
    return storage.update_row(db, models.Subject, id, org_id, data, "Subject")

@app.delete("/api/organizations/{org_id}/subjects/{id}")
def delete_subject(org_id: str, id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    storage.delete_row(db, models.Subject, id, org_id, "Subject")
    return DELETED

# --- Behavior logs ---
@app.get("/api/organizations/{org_id}/behavior-logs", response_model=List[BehaviorLogOut])
def list_behavior_logs(org_id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    return storage.list_rows(db, models.BehaviorLog, org_id, models.BehaviorLog.incident_date.desc())

@app.post("/api/organizations/{org_id}/behavior-logs", response_model=BehaviorLogOut)
def create_behavior_log(org=Depends(require_org),
                        data: Dict[str, Any] = Depends(validate(BehaviorLogIn, inject=org_scope)),
                        db: Session = Depends(get_db)):
    return storage.create_behavior_log(db, data)

@app.patch("/api/organizations/{org_id}/behavior-logs/{id}", response_model=BehaviorLogOut)
def update_behavior_log(org_id: str, id: str, org=Depends(require_org),
                        data: Dict[str, Any] = Depends(validate(BehaviorLogUpdate)), db: Session = Depends(get_db)):
    return storage.update_behavior_log(db, id, org_id, data)

@app.delete("/api/organizations/{org_id}/behavior-logs/{id}")
def delete_behavior_log(org_id: str, id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    storage.delete_row(db, models.BehaviorLog, id, org_id, "Behavior log")
    return DELETED

# --- Academic logs ---
@app.get("/api/organizations/{org_id}/academic-logs", response_model=List[AcademicLogOut])
def list_academic_logs(org_id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    return storage.list_rows(db, models.AcademicLog, org_id, models.AcademicLog.assessment_date)

@app.post("/api/organizations/{org_id}/academic-logs", response_model=AcademicLogOut)
def create_academic_log(org=Depends(require_org),
                        data: Dict[str, Any] = Depends(validate(AcademicLogIn, inject=org_scope)),
                        db: Session = Depends(get_db)):
    return storage.create_academic_log(db, data)

@app.patch("/api/organizations/{org_id}/academic-logs/{id}", response_model=AcademicLogOut)
def update_academic_log(org_id: str, id: str, org=Depends(require_org),
                        data: Dict[str, Any] = Depends(validate(AcademicLogUpdate)), db: Session = Depends(get_db)):
    return storage.update_academic_log(db, id, org_id, data)

@app.delete("/api/organizations/{org_id}/academic-logs/{id}")
def delete_academic_log(org_id: str, id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    storage.delete_row(db, models.AcademicLog, id, org_id, "Academic log")
    return DELETED

# --- Follow-ups ---
@app.get("/api/organizations/{org_id}/follow-ups", response_model=List[FollowUpOut])
def list_follow_ups(org_id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    return storage.list_rows(db, models.FollowUp, org_id, models.FollowUp.created_at.desc())

@app.post("/api/organizations/{org_id}/follow-ups", response_model=FollowUpOut)
def create_follow_up(org=Depends(require_org),
                     data: Dict[str, Any] = Depends(validate(FollowUpIn, inject=org_scope)),
                     db: Session = Depends(get_db)):
    return storage.create_follow_up(db, data)

@app.patch("/api/organizations/{org_id}/follow-ups/{id}", response_model=FollowUpOut)
def update_follow_up(org_id: str, id: str, org=Depends(require_org),
                     data: Dict[str, Any] = Depends(validate(FollowUpUpdate)), db: Session = Depends(get_db)):
    return storage.update_row(db, models.FollowUp, id, org_id, data, "Follow-up")

@app.delete("/api/organizations/{org_id}/follow-ups/{id}")
def delete_follow_up(org_id: str, id: str, org=Depends(require_org), db: Session = Depends(get_db)):
    storage.delete_row(db, models.FollowUp, id, org_id, "Follow-up")
    return DELETED

# --- Categories (behavior + academic share one shape) ---
# registered last: the {kind} segment would otherwise shadow the routes above
CATEGORY_MODELS = {
    "behavior-log-categories": models.BehaviorLogCategory,
    "academic-log-categories": models.AcademicLogCategory,
}

def category_model(kind: str):
    """Resolve the {kind} path segment; declared ahead of the gate so an unknown kind is a 404."""
    model = CATEGORY_MODELS.get(kind)
    if model is None:
        raise NotFoundError(f"Unknown category kind: {kind}")
    return model

@app.get("/api/organizations/{org_id}/{kind}", response_model=List[CategoryOut])
def list_categories(org_id: str, org=Depends(require_org), model=Depends(category_model),
                    db: Session = Depends(get_db)):
    return storage.list_categories(db, model, org_id)

@app.post("/api/organizations/{org_id}/{kind}", response_model=CategoryOut)
def create_category(org=Depends(require_org), model=Depends(category_model),
                    data: Dict[str, Any] = Depends(validate(CategoryIn, inject=org_scope)),
                    db: Session = Depends(get_db)):
    return storage.create_row(db, model, data)

@app.patch("/api/organizations/{org_id}/{kind}/{id}", response_model=CategoryOut)
def update_category(org_id: str, id: str, org=Depends(require_org), model=Depends(category_model),
                    data: Dict[str, Any] = Depends(validate(CategoryUpdate)), db: Session = Depends(get_db)):
    return storage.update_row(db, model, id, org_id, data, "Category")

@app.delete("/api/organizations/{org_id}/{kind}/{id}")
def delete_category(org_id: str, id: str, org=Depends(require_org), model=Depends(category_model),
                    db: Session = Depends(get_db)):
    storage.delete_row(db, model, id, org_id, "Category")
    return DELETED
