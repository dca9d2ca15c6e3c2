"""SQLAlchemy table models for users, jobs, applications and scraping sessions."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from job_tracker.core.models import (
    ActorRole,
    AdminReviewStatus,
    ApplicationMethod,
    ApplicationStatus,
    JobApplicationStatus,
    JobStatus,
    JobType,
    SalaryPeriod,
    ScrapingPlatform,
    SessionStatus,
    TriggerSource,
    WorkType,
)
from job_tracker.utils.timeutils import utcnow


def new_id() -> str:
    return uuid.uuid4().hex


def _enum(enum_cls: Type[Enum]) -> SAEnum:
    """Store enums by value in a plain string column."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )


class Base(DeclarativeBase):
    pass


class UserRecord(Base):
    """Registered user with the profile fields the core reads."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), default="")
    email: Mapped[str] = mapped_column(String(320), default="", index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[ActorRole] = mapped_column(_enum(ActorRole), default=ActorRole.USER)
    current_job_title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    experience_level: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    education_level: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    skills: Mapped[List[str]] = mapped_column(JSON, default=list)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resume_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    job_preferences: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    package: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_job_scraping_run: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class JobRecord(Base):
    """A scraped posting owned by exactly one target user."""

    __tablename__ = "jobs"
    __table_args__ = (
        UniqueConstraint("target_user_id", "title", "company", "location", name="uq_jobs_dedup_key"),
        Index("ix_jobs_visibility", "status", "admin_review_status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    target_user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    title: Mapped[str] = mapped_column(String(200))
    company: Mapped[str] = mapped_column(String(200))
    location: Mapped[str] = mapped_column(String(200))
    work_type: Mapped[WorkType] = mapped_column(_enum(WorkType))
    job_type: Mapped[JobType] = mapped_column(_enum(JobType))
    salary_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    salary_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    salary_currency: Mapped[str] = mapped_column(String(8), default="USD")
    salary_period: Mapped[SalaryPeriod] = mapped_column(_enum(SalaryPeriod), default=SalaryPeriod.YEARLY)
    description: Mapped[str] = mapped_column(Text, default="")
    requirements: Mapped[List[str]] = mapped_column(JSON, default=list)
    responsibilities: Mapped[List[str]] = mapped_column(JSON, default=list)
    skills: Mapped[List[str]] = mapped_column(JSON, default=list)
    benefits: Mapped[List[str]] = mapped_column(JSON, default=list)
    industry: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    company_size: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    apply_url: Mapped[str] = mapped_column(String(1000))
    company_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    platform: Mapped[ScrapingPlatform] = mapped_column(_enum(ScrapingPlatform), default=ScrapingPlatform.OTHER)
    original_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    scraping_session_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    match_score: Mapped[int] = mapped_column(Integer, default=0, index=True)
    status: Mapped[JobStatus] = mapped_column(_enum(JobStatus), default=JobStatus.ACTIVE)
    admin_review_status: Mapped[AdminReviewStatus] = mapped_column(
        _enum(AdminReviewStatus), default=AdminReviewStatus.PENDING
    )
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    application_status: Mapped[JobApplicationStatus] = mapped_column(
        _enum(JobApplicationStatus), default=JobApplicationStatus.NOT_APPLIED
    )
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    posted_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=3)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class ApplicationRecord(Base):
    """One application per (user, job) pair, versioned for optimistic locking."""

    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("user_id", "job_id", name="uq_applications_user_job"),
        Index("ix_applications_user_status", "user_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    job_id: Mapped[str] = mapped_column(ForeignKey("jobs.id"), index=True)
    status: Mapped[ApplicationStatus] = mapped_column(
        _enum(ApplicationStatus), default=ApplicationStatus.PENDING_REVIEW, index=True
    )
    match_score: Mapped[int] = mapped_column(Integer, default=0)
    application_method: Mapped[ApplicationMethod] = mapped_column(
        _enum(ApplicationMethod), default=ApplicationMethod.AUTO
    )
    cover_letter: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    withdrawal_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    applied_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    interview: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    offer: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=3)
    is_starred: Mapped[bool] = mapped_column(Boolean, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    job: Mapped[JobRecord] = relationship(lazy="joined")
    events: Mapped[List["ApplicationEventRecord"]] = relationship(
        back_populates="application",
        order_by="ApplicationEventRecord.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}


class ApplicationEventRecord(Base):
    """Append-only timeline entry of an application."""

    __tablename__ = "application_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[str] = mapped_column(ForeignKey("applications.id"), index=True)
    status: Mapped[ApplicationStatus] = mapped_column(_enum(ApplicationStatus))
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    application: Mapped[ApplicationRecord] = relationship(back_populates="events")


class ScrapingSessionRecord(Base):
    """One invocation of the external scraper for one user."""

    __tablename__ = "scraping_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(64), unique=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    status: Mapped[SessionStatus] = mapped_column(
        _enum(SessionStatus), default=SessionStatus.INITIATED, index=True
    )
    triggered_by: Mapped[TriggerSource] = mapped_column(_enum(TriggerSource), default=TriggerSource.MANUAL)
    search_criteria: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    results: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    platform_results: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    error_details: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    jobs_created: Mapped[List[str]] = mapped_column(JSON, default=list)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    timeout_occurred: Mapped[bool] = mapped_column(Boolean, default=False)
    upstream_status_code: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    upstream_response_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
