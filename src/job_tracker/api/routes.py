"""API routes for the job application tracker."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import text

from job_tracker import __version__
from job_tracker.config import settings
from job_tracker.core.errors import ForbiddenError
from job_tracker.core.models import (
    Actor,
    ActorRole,
    AdminReviewStatus,
    ApplicationFilters,
    ApplicationStatus,
    ApplicationView,
    InterviewDetails,
    JobSearchFilters,
    JobStatus,
    JobType,
    JobView,
    OfferDetails,
    Page,
    ScrapingSessionView,
    WorkType,
)
from job_tracker.api.models import (
    ApplicationReviewRequest,
    ApplyRequest,
    FlagsUpdate,
    HealthCheck,
    JobStatusUpdate,
    NotesUpdate,
    ReviewNotes,
    SaveJobRequest,
    ScrapeTriggerRequest,
    ScrapeTriggerResponse,
    StatusAdvanceRequest,
    StatusResponse,
    WithdrawRequest,
)
from job_tracker.services import TrackerServices
from job_tracker.utils.logging import get_logger

logger = get_logger(__name__)

# Create routers
jobs_router = APIRouter(prefix="/jobs", tags=["jobs"])
applications_router = APIRouter(prefix="/applications", tags=["applications"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])
scraping_router = APIRouter(prefix="/scraping", tags=["scraping"])
stats_router = APIRouter(prefix="/stats", tags=["stats"])
health_router = APIRouter(prefix="/health", tags=["health"])


def get_services(request: Request) -> TrackerServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


async def get_actor(
    actor_id: Optional[str] = Header(None, alias=settings.actor_id_header),
    actor_role: Optional[str] = Header(None, alias=settings.actor_role_header),
) -> Actor:
    """Build the acting user from headers set by the upstream authenticator."""
    if not actor_id:
        raise HTTPException(status_code=401, detail="Missing actor identity")
    try:
        role = ActorRole((actor_role or ActorRole.USER.value).lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown actor role: {actor_role}")
    return Actor(id=actor_id, role=role)


async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise ForbiddenError("Admin role required")
    return actor


# Jobs

@jobs_router.get("", response_model=Page[JobView])
def search_jobs(
    q: Optional[str] = None,
    location: Optional[str] = None,
    job_type: Optional[JobType] = None,
    work_type: Optional[WorkType] = None,
    industry: Optional[str] = None,
    min_salary: Optional[int] = Query(None, ge=0),
    max_salary: Optional[int] = Query(None, ge=0),
    min_match_score: Optional[int] = Query(None, ge=0, le=100),
    posted_since: Optional[datetime] = None,
    posted_within_days: Optional[int] = Query(None, ge=0),
    target_user_id: Optional[str] = None,
    status: Optional[JobStatus] = None,
    admin_review_status: Optional[AdminReviewStatus] = None,
    sort_by: str = Query("match_score", pattern="^(match_score|posted_date|created_at|salary|company|title)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1),
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    """Search jobs. Users see their own active, approved jobs only."""
    filters = JobSearchFilters(
        q=q,
        location=location,
        job_type=job_type,
        work_type=work_type,
        industry=industry,
        min_salary=min_salary,
        max_salary=max_salary,
        min_match_score=min_match_score,
        posted_since=posted_since,
        posted_within_days=posted_within_days,
        target_user_id=target_user_id,
        status=status,
        admin_review_status=admin_review_status,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )
    return services.jobs.search(filters, actor)


@jobs_router.get("/user/{user_id}", response_model=Page[JobView])
def list_user_jobs(
    user_id: str,
    status: Optional[JobStatus] = None,
    review_status: Optional[AdminReviewStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1),
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    return services.jobs.list_user_jobs(user_id, actor, status, review_status, page, page_size)


@jobs_router.get("/{job_id}", response_model=JobView)
def get_job(
    job_id: str,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    return services.jobs.get_job(job_id, actor)


@jobs_router.post("/{job_id}/save", response_model=ApplicationView, status_code=201)
def save_job(
    job_id: str,
    request: Optional[SaveJobRequest] = None,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    """Save a job; an admin applies on the user's behalf once approved."""
    return services.applications.save_job(job_id, actor, notes=request.notes if request else None)


@jobs_router.post("/{job_id}/apply", response_model=ApplicationView, status_code=201)
def apply_to_job(
    job_id: str,
    request: Optional[ApplyRequest] = None,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    request = request or ApplyRequest()
    return services.applications.apply_to_job(
        job_id, actor, cover_letter=request.cover_letter, notes=request.notes
    )


@jobs_router.post("/{job_id}/refresh-score", response_model=JobView)
def refresh_match_score(
    job_id: str,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    services.jobs.get_job(job_id, actor)
    services.jobs.refresh_match_score(job_id)
    return services.jobs.get_job(job_id, actor)


# Applications

@applications_router.get("", response_model=Page[ApplicationView])
def list_applications(
    status: Optional[ApplicationStatus] = None,
    search: Optional[str] = None,
    include_archived: bool = True,
    sort_by: str = Query("created_at", pattern="^(created_at|updated_at|match_score|priority|applied_at)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1),
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    filters = ApplicationFilters(
        status=status,
        search=search,
        include_archived=include_archived,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )
    return services.applications.list_applications(actor, filters)


@applications_router.get("/{application_id}", response_model=ApplicationView)
def get_application(
    application_id: str,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    return services.applications.get_application(application_id, actor)


@applications_router.post("/{application_id}/withdraw", response_model=ApplicationView)
def withdraw_application(
    application_id: str,
    request: Optional[WithdrawRequest] = None,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    return services.applications.withdraw(application_id, actor, reason=request.reason if request else None)


@applications_router.put("/{application_id}/notes", response_model=ApplicationView)
def update_notes(
    application_id: str,
    request: NotesUpdate,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    return services.applications.update_notes(application_id, actor, request.notes)


@applications_router.put("/{application_id}/flags", response_model=ApplicationView)
def update_flags(
    application_id: str,
    request: FlagsUpdate,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    return services.applications.update_flags(
        application_id,
        actor,
        priority=request.priority,
        is_starred=request.is_starred,
        is_archived=request.is_archived,
    )


# Admin

@admin_router.get("/jobs", response_model=Page[JobView])
def list_jobs_for_review(
    review_status: Optional[AdminReviewStatus] = AdminReviewStatus.PENDING,
    status: Optional[JobStatus] = None,
    user_id: Optional[str] = None,
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1),
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
):
    return services.jobs.list_jobs_for_review(actor, review_status, user_id, q, page, page_size, status=status)


@admin_router.post("/jobs/expire", response_model=StatusResponse)
def expire_jobs(
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
):
    expired = services.jobs.expire_jobs()
    return StatusResponse(status="ok", message=f"{expired} jobs expired", data={"expired": expired})


@admin_router.post("/jobs/{job_id}/approve", response_model=JobView)
def approve_job(
    job_id: str,
    request: Optional[ReviewNotes] = None,
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
):
    return services.jobs.approve(job_id, actor, notes=request.notes if request else None)


@admin_router.post("/jobs/{job_id}/reject", response_model=JobView)
def reject_job(
    job_id: str,
    request: Optional[ReviewNotes] = None,
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
):
    return services.jobs.reject(job_id, actor, notes=request.notes if request else None)


@admin_router.put("/jobs/{job_id}/status", response_model=JobView)
def set_job_status(
    job_id: str,
    request: JobStatusUpdate,
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
):
    return services.jobs.set_job_status(job_id, request.status, actor)


@admin_router.get("/applications", response_model=Page[ApplicationView])
def list_all_applications(
    status: Optional[ApplicationStatus] = None,
    user_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1),
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
):
    filters = ApplicationFilters(status=status, user_id=user_id, search=search, page=page, page_size=page_size)
    return services.applications.list_applications(actor, filters)


@admin_router.post("/applications/{application_id}/review", response_model=ApplicationView)
def review_application(
    application_id: str,
    request: ApplicationReviewRequest,
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
):
    return services.applications.review(application_id, actor, request.approve, request.notes)


@admin_router.post("/applications/{application_id}/apply", response_model=ApplicationView)
def apply_on_behalf(
    application_id: str,
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
):
    return services.applications.apply_on_behalf(application_id, actor)


@admin_router.post("/applications/{application_id}/status", response_model=ApplicationView)
def advance_status(
    application_id: str,
    request: StatusAdvanceRequest,
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
):
    return services.applications.advance_status(application_id, request.status, actor, request.note)


@admin_router.post("/applications/{application_id}/interview", response_model=ApplicationView)
def schedule_interview(
    application_id: str,
    request: InterviewDetails,
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
):
    return services.applications.schedule_interview(application_id, actor, request)


@admin_router.post("/applications/{application_id}/offer", response_model=ApplicationView)
def record_offer(
    application_id: str,
    request: OfferDetails,
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
):
    return services.applications.record_offer(application_id, actor, request)


@admin_router.get("/dashboard")
def dashboard(
    actor: Actor = Depends(require_admin),
    services: TrackerServices = Depends(get_services),
) -> Dict[str, Any]:
    return services.stats.dashboard()


# Scraping

@scraping_router.post("/trigger", response_model=ScrapeTriggerResponse, status_code=202)
async def trigger_scraping(
    request: Optional[ScrapeTriggerRequest] = None,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    """Start a scraping session and return at once; poll the session for its outcome."""
    request = request or ScrapeTriggerRequest()
    user_id = request.user_id or actor.id

    session_id = await services.orchestrator.trigger(
        user_id,
        actor,
        triggered_by=request.triggered_by,
        timeout_seconds=request.timeout_seconds,
    )

    if session_id is None:
        return ScrapeTriggerResponse(
            status="skipped",
            session_id=None,
            message="User is not eligible for scraping right now",
        )
    return ScrapeTriggerResponse(status="initiated", session_id=session_id, message="Scraping session initiated")


@scraping_router.get("/sessions/{session_id}", response_model=ScrapingSessionView)
def get_scraping_session(
    session_id: str,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    return services.orchestrator.get_session(session_id, actor)


@scraping_router.post("/sessions/{session_id}/cancel", response_model=ScrapingSessionView)
async def cancel_scraping_session(
    session_id: str,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    return await services.orchestrator.cancel(session_id, actor)


@scraping_router.get("/history", response_model=Page[ScrapingSessionView])
def scraping_history(
    user_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1),
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
):
    return services.orchestrator.history(user_id or actor.id, actor, page, page_size)


# Statistics

def _stats_scope(actor: Actor, user_id: Optional[str]) -> Optional[str]:
    """Users only ever see their own numbers; admins may pick a user or see everything."""
    if actor.is_admin:
        return user_id
    if user_id and user_id != actor.id:
        raise ForbiddenError("Cannot read another user's statistics")
    return actor.id


@stats_router.get("/applications")
def application_stats(
    user_id: Optional[str] = None,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
) -> Dict[str, Any]:
    return services.stats.application_summary(_stats_scope(actor, user_id))


@stats_router.get("/jobs")
def job_stats(
    user_id: Optional[str] = None,
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
) -> Dict[str, Any]:
    return services.stats.job_counts(_stats_scope(actor, user_id))


@stats_router.get("/scraping")
def scraping_stats(
    user_id: Optional[str] = None,
    days: int = Query(settings.scraping_stats_window_days, ge=1),
    actor: Actor = Depends(get_actor),
    services: TrackerServices = Depends(get_services),
) -> Dict[str, Any]:
    return services.stats.scraping_stats(_stats_scope(actor, user_id), days)


# Health

def _ping_database(services: TrackerServices) -> None:
    with services.database.session() as session:
        session.execute(text("SELECT 1"))


@health_router.get("/", response_model=HealthCheck)
async def health_check(services: TrackerServices = Depends(get_services)):
    """Health check endpoint."""
    components = {}

    try:
        await run_in_threadpool(_ping_database, services)
        components["database"] = "healthy"
    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        components["database"] = "unavailable"

    scraper = await services.orchestrator.client.health_check()
    components["scraper"] = scraper["status"]

    overall_status = "healthy" if all(status == "healthy" for status in components.values()) else "degraded"

    return HealthCheck(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        components=components,
    )


# Export all routers
all_routers = [
    jobs_router,
    applications_router,
    admin_router,
    scraping_router,
    stats_router,
    health_router,
]
