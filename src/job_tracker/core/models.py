"""Core data models for the job application tracker."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ActorRole(str, Enum):
    """Roles an acting user may hold."""
    USER = "user"
    ADMIN = "admin"


class WorkType(str, Enum):
    """Where the work happens."""
    REMOTE = "remote"
    HYBRID = "hybrid"
    ONSITE = "onsite"


class JobType(str, Enum):
    """Type of employment."""
    FULL_TIME = "full_time"
    PART_TIME = "part_time"
    CONTRACT = "contract"
    FREELANCE = "freelance"
    INTERNSHIP = "internship"


class SalaryPeriod(str, Enum):
    HOURLY = "hourly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ScrapingPlatform(str, Enum):
    """Job boards the scraper reports postings from."""
    LINKEDIN = "linkedin"
    INDEED = "indeed"
    GLASSDOOR = "glassdoor"
    MONSTER = "monster"
    ZIPRECRUITER = "ziprecruiter"
    CAREERBUILDER = "careerbuilder"
    OTHER = "other"


class JobStatus(str, Enum):
    """Lifecycle of a job posting. Jobs are deactivated, never deleted."""
    ACTIVE = "active"
    EXPIRED = "expired"
    FILLED = "filled"
    REMOVED = "removed"


class AdminReviewStatus(str, Enum):
    """Admin gate on job visibility."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class JobApplicationStatus(str, Enum):
    """Coarse application outcome mirrored onto the job."""
    NOT_APPLIED = "not_applied"
    APPLIED = "applied"
    REJECTED = "rejected"
    INTERVIEW = "interview"
    OFFER = "offer"


class ApplicationStatus(str, Enum):
    """Application lifecycle status."""
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"
    APPLICATION_SENT = "application_sent"
    VIEWED = "viewed"
    INTERVIEW_REQUESTED = "interview_requested"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEW_COMPLETED = "interview_completed"
    OFFER_RECEIVED = "offer_received"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_REJECTED = "offer_rejected"
    REJECTED_BY_EMPLOYER = "rejected_by_employer"
    WITHDRAWN = "withdrawn"


class ApplicationMethod(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"


class SessionStatus(str, Enum):
    """Scraping session lifecycle."""
    INITIATED = "initiated"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TriggerSource(str, Enum):
    """What started a scraping session."""
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    USER_PROFILE_UPDATE = "user_profile_update"
    PACKAGE_PURCHASE = "package_purchase"


class PackageType(str, Enum):
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class InterviewType(str, Enum):
    PHONE = "phone"
    VIDEO = "video"
    IN_PERSON = "in_person"
    TECHNICAL = "technical"
    PANEL = "panel"


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize aware datetimes to naive UTC, the form stored in the database."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Actor(BaseModel):
    """Authorization context passed with every mutating call."""
    id: str = Field(..., min_length=1, description="Acting user id")
    role: ActorRole = Field(ActorRole.USER, description="Acting user role")

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


# Profile

class JobPreferences(BaseModel):
    """User job preferences used for scoring and search criteria."""
    desired_roles: List[str] = Field(default_factory=list, description="Preferred job roles")
    preferred_locations: List[str] = Field(default_factory=list, description="Preferred locations")
    preferred_job_types: List[JobType] = Field(default_factory=list, description="Preferred employment types")
    preferred_work_types: List[WorkType] = Field(default_factory=list, description="Remote, hybrid, onsite")
    preferred_industries: List[str] = Field(default_factory=list, description="Preferred industries")
    min_salary: Optional[int] = Field(None, ge=0, description="Minimum salary expectation")
    max_salary: Optional[int] = Field(None, ge=0, description="Maximum salary expectation")
    auto_apply_enabled: bool = Field(False, description="Whether admins may auto-apply for the user")


class PackageInfo(BaseModel):
    """Purchased package gating premium features."""
    type: PackageType = Field(PackageType.BASIC, description="Package tier")
    purchased_at: Optional[datetime] = Field(None, description="Purchase time")
    expires_at: Optional[datetime] = Field(None, description="Expiry time, None for no expiry")
    max_job_applications: int = Field(50, description="Application allowance")

    @field_validator("purchased_at", "expires_at")
    @classmethod
    def _naive(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now


class UserProfile(BaseModel):
    """Profile consumed read-only by scoring and scraping."""
    user_id: str = Field(..., description="Unique user identifier")
    name: str = Field("", description="Full name")
    email: str = Field("", description="Email address")
    phone: Optional[str] = Field(None, description="Phone number")
    current_job_title: Optional[str] = Field(None, description="Current job title")
    experience_level: Optional[str] = Field(None, description="0-1, 1-3, 3-5, 5-10 or 10+")
    education_level: Optional[str] = Field(None, description="Highest education level")
    skills: List[str] = Field(default_factory=list, description="Skill names")
    location: Optional[str] = Field(None, description="Current location")
    bio: Optional[str] = Field(None, description="Short biography")
    resume_url: Optional[str] = Field(None, description="Uploaded resume location")
    job_preferences: JobPreferences = Field(default_factory=JobPreferences, description="Job preferences")
    package: PackageInfo = Field(default_factory=PackageInfo, description="Package information")
    onboarding_completed: bool = Field(False, description="Whether onboarding is finished")
    last_job_scraping_run: Optional[datetime] = Field(None, description="Last completed scraping run")

    @field_validator("last_job_scraping_run")
    @classmethod
    def _naive(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


def profile_completeness(profile: UserProfile) -> int:
    """Percentage of the profile that is filled in."""
    score = 0
    fields = [
        profile.name,
        profile.email,
        profile.phone,
        profile.current_job_title,
        profile.experience_level,
        profile.education_level,
        profile.location,
        profile.bio,
    ]
    for value in fields:
        if value and str(value).strip():
            score += 10

    if profile.skills:
        score += 10
    if profile.resume_url:
        score += 10

    return min(score, 100)


# Scraper boundary

class SalaryRange(BaseModel):
    """Salary band of a posting."""
    min: Optional[int] = Field(None, ge=0)
    max: Optional[int] = Field(None, ge=0)
    currency: str = Field("USD")
    period: SalaryPeriod = Field(SalaryPeriod.YEARLY)


class CamelModel(BaseModel):
    """Model exchanged with the scraping service in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScrapedPosting(CamelModel):
    """One raw job posting returned by the scraper."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True
    )

    title: str = Field(..., min_length=1, max_length=200)
    company: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    apply_url: str = Field(..., min_length=1)
    work_type: WorkType = WorkType.ONSITE
    job_type: JobType = JobType.FULL_TIME
    salary: SalaryRange = Field(default_factory=SalaryRange)
    description: str = ""
    requirements: List[str] = Field(default_factory=list)
    responsibilities: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    benefits: List[str] = Field(default_factory=list)
    industry: Optional[str] = None
    company_size: Optional[str] = None
    company_url: Optional[str] = None
    platform: ScrapingPlatform = ScrapingPlatform.OTHER
    original_id: Optional[str] = None
    posted_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None

    @field_validator("platform", mode="before")
    @classmethod
    def _unknown_platform(cls, value: Any) -> Any:
        if value is None:
            return ScrapingPlatform.OTHER
        if isinstance(value, str) and value.lower() not in {p.value for p in ScrapingPlatform}:
            return ScrapingPlatform.OTHER
        return value.lower() if isinstance(value, str) else value

    @field_validator("salary", mode="before")
    @classmethod
    def _empty_salary(cls, value: Any) -> Any:
        return value if value is not None else {}

    @field_validator("posted_date", "expiry_date")
    @classmethod
    def _naive_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class PlatformResult(CamelModel):
    """Per-platform breakdown reported by the scraper."""
    platform: str
    jobs_found: int = 0
    jobs_saved: int = 0
    errors: int = 0
    processing_time: Optional[int] = None


class ScraperReportedError(CamelModel):
    """Error the scraper reports for one platform."""
    platform: Optional[str] = None
    error_type: Optional[str] = Field(None, alias="type")
    message: str = ""


class ScraperResponse(CamelModel):
    """Body of a successful scrape response. Postings stay raw and are validated one by one."""
    jobs: List[Dict[str, Any]] = Field(default_factory=list)
    platform_results: List[PlatformResult] = Field(default_factory=list)
    total_jobs_found: int = 0
    errors: List[ScraperReportedError] = Field(default_factory=list)


class SearchCriteria(CamelModel):
    """Snapshot of the profile-derived scraping query."""
    job_title: str = ""
    desired_roles: List[str] = Field(default_factory=list)
    location: str = ""
    preferred_locations: List[str] = Field(default_factory=list)
    experience: str = ""
    skills: List[str] = Field(default_factory=list)
    job_types: List[JobType] = Field(default_factory=list)
    work_types: List[WorkType] = Field(default_factory=list)
    industries: List[str] = Field(default_factory=list)
    salary_min: int = 0
    salary_max: int = 0


class ScrapeSettings(CamelModel):
    max_jobs_per_platform: int
    platforms: List[str]
    timeout_ms: int


class ScrapeRequest(CamelModel):
    """Payload sent to the scraping service."""
    session_id: str
    user_id: str
    search_criteria: SearchCriteria
    user_profile: Dict[str, Any]
    settings: ScrapeSettings


# Application details

class InterviewDetails(BaseModel):
    """Interview arranged for an application."""
    scheduled_at: datetime
    type: Optional[InterviewType] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    interviewer_name: Optional[str] = None
    interviewer_email: Optional[str] = None
    notes: Optional[str] = None
    feedback: Optional[str] = None
    completed: bool = False

    @field_validator("scheduled_at")
    @classmethod
    def _naive(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class OfferDetails(BaseModel):
    """Offer received for an application."""
    amount: Optional[int] = Field(None, ge=0)
    currency: str = "USD"
    period: SalaryPeriod = SalaryPeriod.YEARLY
    benefits: List[str] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    negotiable: bool = True
    additional_terms: Optional[str] = None


# Read views

class JobView(BaseModel):
    """Read view of a stored job."""
    id: str
    target_user_id: str
    title: str
    company: str
    location: str
    work_type: WorkType
    job_type: JobType
    salary: SalaryRange
    description: str
    requirements: List[str]
    responsibilities: List[str]
    skills: List[str]
    benefits: List[str]
    industry: Optional[str]
    company_size: Optional[str]
    apply_url: str
    company_url: Optional[str]
    platform: ScrapingPlatform
    original_id: Optional[str]
    scraped_at: datetime
    match_score: int
    status: JobStatus
    admin_review_status: AdminReviewStatus
    reviewed_by: Optional[str]
    reviewed_at: Optional[datetime]
    review_notes: Optional[str]
    application_status: JobApplicationStatus
    applied_at: Optional[datetime]
    posted_date: datetime
    expiry_date: Optional[datetime]
    priority: int
    created_at: datetime
    updated_at: datetime

    @property
    def is_applicable(self) -> bool:
        return self.status == JobStatus.ACTIVE and self.admin_review_status == AdminReviewStatus.APPROVED

    @classmethod
    def from_record(cls, record: Any) -> "JobView":
        return cls(
            id=record.id,
            target_user_id=record.target_user_id,
            title=record.title,
            company=record.company,
            location=record.location,
            work_type=record.work_type,
            job_type=record.job_type,
            salary=SalaryRange(
                min=record.salary_min,
                max=record.salary_max,
                currency=record.salary_currency,
                period=record.salary_period,
            ),
            description=record.description,
            requirements=list(record.requirements or []),
            responsibilities=list(record.responsibilities or []),
            skills=list(record.skills or []),
            benefits=list(record.benefits or []),
            industry=record.industry,
            company_size=record.company_size,
            apply_url=record.apply_url,
            company_url=record.company_url,
            platform=record.platform,
            original_id=record.original_id,
            scraped_at=record.scraped_at,
            match_score=record.match_score,
            status=record.status,
            admin_review_status=record.admin_review_status,
            reviewed_by=record.reviewed_by,
            reviewed_at=record.reviewed_at,
            review_notes=record.review_notes,
            application_status=record.application_status,
            applied_at=record.applied_at,
            posted_date=record.posted_date,
            expiry_date=record.expiry_date,
            priority=record.priority,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class TimelineEntry(BaseModel):
    """One status change of an application."""
    status: ApplicationStatus
    timestamp: datetime
    note: Optional[str] = None
    updated_by: Optional[str] = None


class ApplicationView(BaseModel):
    """Read view of an application including its full timeline."""
    id: str
    user_id: str
    job_id: str
    status: ApplicationStatus
    match_score: int
    application_method: ApplicationMethod
    cover_letter: Optional[str]
    admin_notes: Optional[str]
    user_notes: Optional[str]
    withdrawal_reason: Optional[str]
    reviewed_by: Optional[str]
    reviewed_at: Optional[datetime]
    applied_by: Optional[str]
    applied_at: Optional[datetime]
    interview: Optional[InterviewDetails]
    offer: Optional[OfferDetails]
    timeline: List[TimelineEntry]
    priority: int
    is_starred: bool
    is_archived: bool
    created_at: datetime
    updated_at: datetime
    application_age_days: int

    @classmethod
    def from_record(cls, record: Any, now: Optional[datetime] = None) -> "ApplicationView":
        now = now or datetime.now(timezone.utc).replace(tzinfo=None)
        return cls(
            id=record.id,
            user_id=record.user_id,
            job_id=record.job_id,
            status=record.status,
            match_score=record.match_score,
            application_method=record.application_method,
            cover_letter=record.cover_letter,
            admin_notes=record.admin_notes,
            user_notes=record.user_notes,
            withdrawal_reason=record.withdrawal_reason,
            reviewed_by=record.reviewed_by,
            reviewed_at=record.reviewed_at,
            applied_by=record.applied_by,
            applied_at=record.applied_at,
            interview=InterviewDetails(**record.interview) if record.interview else None,
            offer=OfferDetails(**record.offer) if record.offer else None,
            timeline=[
                TimelineEntry(
                    status=event.status,
                    timestamp=event.timestamp,
                    note=event.note,
                    updated_by=event.updated_by,
                )
                for event in record.events
            ],
            priority=record.priority,
            is_starred=record.is_starred,
            is_archived=record.is_archived,
            created_at=record.created_at,
            updated_at=record.updated_at,
            application_age_days=max((now - record.created_at).days, 0),
        )


class SessionResults(BaseModel):
    """Reconciled counts of one scraping session."""
    total_jobs_found: int = 0
    jobs_saved: int = 0
    duplicates_skipped: int = 0
    error_count: int = 0
    discrepancy: int = 0


class SessionTiming(BaseModel):
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    timeout_occurred: bool = False


class ScrapingSessionView(BaseModel):
    """Read view of a scraping session."""
    session_id: str
    user_id: str
    status: SessionStatus
    triggered_by: TriggerSource
    search_criteria: Dict[str, Any]
    results: SessionResults
    platform_results: List[Dict[str, Any]]
    timing: SessionTiming
    error_details: List[Dict[str, Any]]
    jobs_created: List[str]

    @classmethod
    def from_record(cls, record: Any) -> "ScrapingSessionView":
        return cls(
            session_id=record.session_id,
            user_id=record.user_id,
            status=record.status,
            triggered_by=record.triggered_by,
            search_criteria=dict(record.search_criteria or {}),
            results=SessionResults(**(record.results or {})),
            platform_results=list(record.platform_results or []),
            timing=SessionTiming(
                started_at=record.started_at,
                completed_at=record.completed_at,
                duration_ms=record.duration_ms,
                timeout_occurred=record.timeout_occurred,
            ),
            error_details=list(record.error_details or []),
            jobs_created=list(record.jobs_created or []),
        )


# Queries

class JobSearchFilters(BaseModel):
    """Search and filter options for job listings."""
    q: Optional[str] = Field(None, description="Free text over title, company and description")
    location: Optional[str] = Field(None, description="Location substring")
    job_type: Optional[JobType] = None
    work_type: Optional[WorkType] = None
    industry: Optional[str] = None
    min_salary: Optional[int] = Field(None, ge=0)
    max_salary: Optional[int] = Field(None, ge=0)
    min_match_score: Optional[int] = Field(None, ge=0, le=100)
    posted_since: Optional[datetime] = Field(None, description="Only jobs posted at or after this time")
    posted_within_days: Optional[int] = Field(None, ge=0)
    target_user_id: Optional[str] = Field(None, description="Admin only: restrict to one user")
    status: Optional[JobStatus] = Field(None, description="Admin only")
    admin_review_status: Optional[AdminReviewStatus] = Field(None, description="Admin only")
    sort_by: Literal["match_score", "posted_date", "created_at", "salary", "company", "title"] = "match_score"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1)

    @field_validator("posted_since")
    @classmethod
    def _naive(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class ApplicationFilters(BaseModel):
    """Filter options for application listings."""
    status: Optional[ApplicationStatus] = None
    search: Optional[str] = Field(None, description="Matches job title or company")
    user_id: Optional[str] = Field(None, description="Admin only: restrict to one user")
    include_archived: bool = True
    sort_by: Literal["created_at", "updated_at", "match_score", "priority", "applied_at"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1)


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a listing."""
    items: List[T]
    page: int
    page_size: int
    total: int
    total_pages: int
