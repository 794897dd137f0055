# wellness_api/db/models.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, Text
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Company(Base):
    __tablename__ = "companies"
    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    size = Column(String(50), default="Not specified")
    industry = Column(String(100), default="Not specified")
    owner_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class User(Base):
    __tablename__ = "users"
    id = Column(String(64), primary_key=True, index=True, default=new_id)
    email = Column(String(100), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    role = Column(String(20), nullable=False, default="employee")
    company_id = Column(String(64), ForeignKey("companies.id"), nullable=False, index=True)
    department = Column(String(100), nullable=True)
    position = Column(String(100), nullable=True)

    # Hierarchy. manager_id is authoritative; direct_reports and reporting_chain are caches.
    manager_id = Column(String(64), ForeignKey("users.id"), nullable=True, index=True)
    hierarchy_level = Column(Integer, nullable=False, default=0)
    direct_reports = Column(JSON, nullable=False, default=list)
    reporting_chain = Column(JSON, nullable=False, default=list)

    can_view_team_reports = Column(Boolean, nullable=False, default=False)
    can_manage_employees = Column(Boolean, nullable=False, default=False)
    can_approve_leaves = Column(Boolean, nullable=False, default=False)
    is_department_head = Column(Boolean, nullable=False, default=False)
    skip_level_access = Column(Boolean, nullable=False, default=False)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    __table_args__ = ( CheckConstraint("role IN ('employee', 'manager', 'employer', 'hr', 'admin')"), )
    reports = relationship("WellnessReport", back_populates="employee")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class WellnessReport(Base):
    __tablename__ = "wellness_reports"
    id = Column(String(64), primary_key=True, index=True, default=new_id)
    employee_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    company_id = Column(String(64), ForeignKey("companies.id"), nullable=False, index=True)
    mood_rating = Column(Integer, nullable=False)
    stress_level = Column(Integer, nullable=False)
    anxiety_level = Column(Integer, nullable=False)
    work_satisfaction = Column(Integer, nullable=False)
    work_life_balance = Column(Integer, nullable=False)
    energy_level = Column(Integer, nullable=False)
    confidence_level = Column(Integer, nullable=False)
    sleep_quality = Column(Integer, nullable=False)
    overall_wellness = Column(Float, nullable=False)
    risk_level = Column(String(10), nullable=False)
    session_type = Column(String(10), nullable=False, default="text")
    session_duration = Column(Integer, nullable=True)
    ai_analysis = Column(Text, nullable=True)
    key_insights = Column(JSON, nullable=False, default=list)
    recommendations = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    __table_args__ = (
        CheckConstraint("risk_level IN ('low', 'medium', 'high')"),
        CheckConstraint("session_type IN ('text', 'voice')"),
    )
    employee = relationship("User", back_populates="reports")


class Call(Base):
    __tablename__ = "calls"
    id = Column(String(64), primary_key=True, index=True, default=new_id)
    caller_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    call_type = Column(String(10), nullable=False, default="voice")
    status = Column(String(20), nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    answered_at = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    end_reason = Column(String(50), nullable=True)
    ended_by = Column(String(64), nullable=True)
    call_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    __table_args__ = ( CheckConstraint("status IN ('initiating', 'active', 'rejected', 'ended')"), )
    session = relationship("CallSession", back_populates="call", uselist=False)


class CallSession(Base):
    """Live projection of a Call, kept in lockstep with it by every transition."""
    __tablename__ = "call_sessions"
    call_id = Column(String(64), ForeignKey("calls.id"), primary_key=True)
    caller_id = Column(String(64), nullable=False)
    receiver_id = Column(String(64), nullable=False)
    participants = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    answered_at = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    end_reason = Column(String(50), nullable=True)
    ended_by = Column(String(64), nullable=True)
    session_metadata = Column("metadata", JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    call = relationship("Call", back_populates="session")
