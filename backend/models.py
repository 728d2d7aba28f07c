# backend/models.py - setup the tables
import uuid

from sqlalchemy import JSON, Column, Integer, Boolean, String, Text, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from backend.db import Base

def new_id() -> str:
    return str(uuid.uuid4())

class Organization(Base):
    __tablename__ = "organizations"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    code = Column(String(50))
    email = Column(String(255))
    phone = Column(String(50))
    address = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

class Class(Base):
    __tablename__ = "classes"
    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

class Student(Base):
    __tablename__ = "students"
    __table_args__ = (UniqueConstraint("organization_id", "email", name="unique_email_per_org"),)
    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255))
    class_id = Column(String(36), ForeignKey("classes.id"))
    gender = Column(String(50))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    klass = relationship("Class")

class Subject(Base):
    __tablename__ = "subjects"
    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    code = Column(String(50))
    description = Column(Text)
    is_default = Column(Boolean, nullable=False, default=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

class BehaviorLogCategory(Base):
    __tablename__ = "behavior_log_categories"
    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    color = Column(String(50))
    display_order = Column(Integer, default=0)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

class AcademicLogCategory(Base):
    __tablename__ = "academic_log_categories"
    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    color = Column(String(50))
    display_order = Column(Integer, default=0)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

class BehaviorLog(Base):
    __tablename__ = "behavior_logs"
    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    category_id = Column(String(36), ForeignKey("behavior_log_categories.id"), nullable=False)
    incident_date = Column(TIMESTAMP(timezone=True), nullable=False)
    notes = Column(Text, nullable=False)
    strategies = Column(Text)
    logged_by = Column(String(255), nullable=False)
    logged_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    category = relationship("BehaviorLogCategory")

class AcademicLog(Base):
    __tablename__ = "academic_logs"
    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    subject_id = Column(String(36), ForeignKey("subjects.id"), nullable=False)
    category_id = Column(String(36), ForeignKey("academic_log_categories.id"), nullable=False)
    assessment_date = Column(TIMESTAMP(timezone=True), nullable=False)
    grade = Column(String(20))
    score = Column(String(50))
    notes = Column(Text, nullable=False)
    logged_by = Column(String(255), nullable=False)
    logged_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

class FollowUp(Base):
    __tablename__ = "follow_ups"
    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    due_date = Column(TIMESTAMP(timezone=True))
    status = Column(String(50), nullable=False, server_default="To-Do")
    assignee = Column(String(255))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

class MeetingNote(Base):
    __tablename__ = "meeting_notes"
    id = Column(String(36), primary_key=True, default=new_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    date = Column(TIMESTAMP(timezone=True), nullable=False)
    participants = Column(JSON, nullable=False, default=list)
    summary = Column(Text, nullable=False)
    full_notes = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
