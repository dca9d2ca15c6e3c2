"""Scraping session orchestration: eligibility, dispatch, ingestion and session bookkeeping."""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from job_tracker.config import settings
from job_tracker.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UpstreamFailure,
)
from job_tracker.core.models import (
    Actor,
    Page,
    ScrapeRequest,
    ScrapeSettings,
    ScrapingSessionView,
    SearchCriteria,
    SessionResults,
    SessionStatus,
    TriggerSource,
    UserProfile,
)
from job_tracker.db.query import clamp_page_size, paginate, total_pages
from job_tracker.db.session import Database
from job_tracker.db.tables import ScrapingSessionRecord
from job_tracker.jobs.records import IngestResult, JobRecordManager
from job_tracker.profiles import ProfileProvider
from job_tracker.scraping.client import ScrapeOutcome, ScraperClient
from job_tracker.utils.logging import get_logger, log_actor
from job_tracker.utils.timeutils import duration_ms, utcnow

logger = get_logger(__name__)

# Sessions only move forward; terminal states have no successors
SESSION_TRANSITIONS = {
    SessionStatus.INITIATED: {SessionStatus.IN_PROGRESS, SessionStatus.FAILED, SessionStatus.CANCELLED},
    SessionStatus.IN_PROGRESS: {SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.FAILED: set(),
    SessionStatus.CANCELLED: set(),
}

ACTIVE_SESSION_STATUSES = (SessionStatus.INITIATED, SessionStatus.IN_PROGRESS)


def build_search_criteria(profile: UserProfile) -> SearchCriteria:
    """Snapshot the profile-derived query sent to the scraper."""
    preferences = profile.job_preferences
    return SearchCriteria(
        job_title=profile.current_job_title or next(iter(preferences.desired_roles), ""),
        desired_roles=list(preferences.desired_roles),
        location=profile.location or next(iter(preferences.preferred_locations), ""),
        preferred_locations=list(preferences.preferred_locations),
        experience=profile.experience_level or "",
        skills=list(profile.skills),
        job_types=list(preferences.preferred_job_types),
        work_types=list(preferences.preferred_work_types),
        industries=list(preferences.preferred_industries),
        salary_min=preferences.min_salary or 0,
        salary_max=preferences.max_salary or 0,
    )


def profile_summary(profile: UserProfile) -> Dict[str, Any]:
    return {
        "name": profile.name,
        "email": profile.email,
        "currentJobTitle": profile.current_job_title,
        "experienceLevel": profile.experience_level,
        "skills": list(profile.skills),
        "location": profile.location,
    }


def reconcile_results(outcome: ScrapeOutcome, ingest: IngestResult) -> SessionResults:
    """Combine the scraper's reported total with what ingestion actually did."""
    reported = outcome.response.total_jobs_found
    return SessionResults(
        total_jobs_found=reported,
        jobs_saved=ingest.saved,
        duplicates_skipped=ingest.duplicates,
        error_count=len(ingest.failures) + len(outcome.response.errors),
        discrepancy=reported - ingest.processed,
    )


class ScrapingOrchestrator:
    """
    Runs scraping sessions as fire-and-forget background tasks.

    ``trigger`` returns a session id immediately; the task owns every later
    write to that session and callers observe the outcome by polling.
    """

    def __init__(
        self,
        database: Database,
        profiles: ProfileProvider,
        jobs: JobRecordManager,
        client: Optional[ScraperClient] = None,
    ):
        self.database = database
        self.profiles = profiles
        self.jobs = jobs
        self.client = client or ScraperClient()
        self.logger = logger.bind(component="scraping_orchestrator")

        self._tasks: Dict[str, asyncio.Task] = {}

    # Dispatch

    async def trigger(
        self,
        user_id: str,
        actor: Actor,
        triggered_by: TriggerSource = TriggerSource.MANUAL,
        timeout_seconds: Optional[float] = None,
    ) -> Optional[str]:
        """
        Start a scraping session for a user.

        Returns the new session id, or None when the user is not eligible
        (onboarding incomplete, package expired, daily limit reached).
        """
        if not actor.is_admin and actor.id != user_id:
            raise ForbiddenError("Cannot start scraping for another user")

        profile = self.profiles.get_profile(user_id)
        if profile is None:
            raise NotFoundError(f"User {user_id} not found")

        now = utcnow()
        reason = self._ineligibility_reason(profile, now)
        if reason is not None:
            self.logger.info(
                "Scraping skipped",
                user_id=user_id,
                reason=reason,
                triggered_by=triggered_by.value,
                **log_actor(actor),
            )
            return None

        criteria = build_search_criteria(profile)
        with self.database.session() as session:
            record = ScrapingSessionRecord(
                user_id=user_id,
                status=SessionStatus.INITIATED,
                triggered_by=triggered_by,
                search_criteria=criteria.model_dump(by_alias=True, mode="json"),
                results=SessionResults().model_dump(),
                platform_results=[],
                error_details=[],
                jobs_created=[],
                started_at=now,
            )
            session.add(record)
            session.flush()
            session_id = record.session_id

        self.logger.info(
            "Scraping session initiated",
            session_id=session_id,
            user_id=user_id,
            triggered_by=triggered_by.value,
            **log_actor(actor),
        )

        task = asyncio.create_task(self.run_session(session_id, profile, timeout_seconds))
        self._tasks[session_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(session_id, None))
        return session_id

    def _ineligibility_reason(self, profile: UserProfile, now: datetime) -> Optional[str]:
        if not profile.onboarding_completed:
            return "onboarding_incomplete"
        if profile.package.is_expired(now):
            return "package_expired"

        limit = settings.scraping_daily_session_limits.get(
            profile.package.type.value,
            settings.scraping_daily_session_limits.get("basic", 0),
        )
        with self.database.session() as session:
            recent = session.scalar(
                select(func.count(ScrapingSessionRecord.id)).where(
                    ScrapingSessionRecord.user_id == profile.user_id,
                    ScrapingSessionRecord.started_at >= now - timedelta(days=1),
                )
            ) or 0
        if recent >= limit:
            return "daily_limit_reached"
        return None

    async def run_session(
        self,
        session_id: str,
        profile: UserProfile,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        """Body of the background task. Every outcome ends in a terminal session state."""
        try:
            await self._execute(session_id, profile, timeout_seconds)
        except asyncio.CancelledError:
            self.logger.info("Scraping task cancelled", session_id=session_id)
            # No-op when a user cancel already closed the session
            self._interrupt(session_id)
            raise
        except Exception as e:
            self.logger.error(
                "Scraping session crashed",
                session_id=session_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            await asyncio.to_thread(self._fail, session_id, e)

    async def _execute(self, session_id: str, profile: UserProfile, timeout_seconds: Optional[float]) -> None:
        # Database work runs in worker threads so a slow store never blocks the loop
        if not await asyncio.to_thread(self._update_session, session_id, SessionStatus.IN_PROGRESS):
            return

        timeout = timeout_seconds or self.client.timeout
        criteria = await asyncio.to_thread(self._search_criteria, session_id)

        request = ScrapeRequest(
            session_id=session_id,
            user_id=profile.user_id,
            search_criteria=criteria,
            user_profile=profile_summary(profile),
            settings=ScrapeSettings(
                max_jobs_per_platform=settings.scraper_max_jobs_per_platform,
                platforms=list(settings.scraper_platforms),
                timeout_ms=int(timeout * 1000),
            ),
        )

        try:
            outcome = await self.client.scrape_jobs(request, timeout=timeout)
        except UpstreamFailure as e:
            self.logger.warning(
                "Scraper call failed",
                session_id=session_id,
                error=e.message,
                timeout=e.timeout,
                upstream_status=e.upstream_status,
            )
            await asyncio.to_thread(self._fail, session_id, e)
            return

        if await asyncio.to_thread(self._status, session_id) != SessionStatus.IN_PROGRESS:
            self.logger.info("Discarding scraper response for closed session", session_id=session_id)
            return

        ingest = await asyncio.to_thread(
            self.jobs.ingest_batch, profile.user_id, outcome.response.jobs, session_id, profile=profile
        )
        await asyncio.to_thread(self._complete, session_id, profile.user_id, outcome, ingest)

    def _complete(self, session_id: str, user_id: str, outcome: ScrapeOutcome, ingest: IngestResult) -> None:
        results = reconcile_results(outcome, ingest)
        if results.discrepancy:
            self.logger.warning(
                "Scraping results do not reconcile",
                session_id=session_id,
                total_jobs_found=results.total_jobs_found,
                saved=ingest.saved,
                duplicates=ingest.duplicates,
                failures=len(ingest.failures),
                discrepancy=results.discrepancy,
            )

        now = utcnow()
        reported_errors = [
            {
                "platform": error.platform,
                "error_type": error.error_type or "SCRAPER_ERROR",
                "message": error.message,
                "timestamp": now.isoformat(),
            }
            for error in outcome.response.errors
        ]

        def mutate(record: ScrapingSessionRecord) -> None:
            record.results = results.model_dump()
            record.platform_results = [result.model_dump() for result in outcome.response.platform_results]
            record.error_details = list(record.error_details or []) + reported_errors + ingest.failures
            record.jobs_created = list(ingest.job_ids)
            record.completed_at = now
            record.duration_ms = duration_ms(record.started_at, now)
            record.upstream_status_code = outcome.status_code
            record.upstream_response_ms = outcome.elapsed_ms

        if not self._update_session(session_id, SessionStatus.COMPLETED, mutate):
            return

        self.profiles.record_scraping_run(user_id, now)
        self.logger.info(
            "Scraping session completed",
            session_id=session_id,
            user_id=user_id,
            jobs_saved=results.jobs_saved,
            duplicates_skipped=results.duplicates_skipped,
            error_count=results.error_count,
        )

    def _fail(self, session_id: str, error: Exception) -> None:
        now = utcnow()
        timed_out = isinstance(error, UpstreamFailure) and error.timeout
        upstream_status = error.upstream_status if isinstance(error, UpstreamFailure) else None
        detail = {
            "platform": None,
            "error_type": "TIMEOUT" if timed_out else type(error).__name__,
            "message": str(error),
            "timestamp": now.isoformat(),
        }

        def mutate(record: ScrapingSessionRecord) -> None:
            results = SessionResults(**(record.results or {}))
            results.error_count += 1
            record.results = results.model_dump()
            record.error_details = list(record.error_details or []) + [detail]
            record.timeout_occurred = timed_out
            record.upstream_status_code = upstream_status
            record.completed_at = now
            record.duration_ms = duration_ms(record.started_at, now)

        if self._update_session(session_id, SessionStatus.FAILED, mutate):
            self.logger.error("Scraping session failed", session_id=session_id, error=str(error), timeout=timed_out)

    def _interrupt(self, session_id: str) -> None:
        """Close a session whose task was cancelled without a user cancel, e.g. on shutdown."""
        now = utcnow()

        def mutate(record: ScrapingSessionRecord) -> None:
            results = SessionResults(**(record.results or {}))
            results.error_count += 1
            record.results = results.model_dump()
            record.error_details = list(record.error_details or []) + [{
                "platform": None,
                "error_type": "SHUTDOWN",
                "message": "Scraping task stopped before the session finished",
                "timestamp": now.isoformat(),
            }]
            record.completed_at = now
            record.duration_ms = duration_ms(record.started_at, now)

        if self._update_session(session_id, SessionStatus.FAILED, mutate):
            self.logger.warning("Scraping session interrupted", session_id=session_id)

    # Cancellation

    async def cancel(self, session_id: str, actor: Actor) -> ScrapingSessionView:
        """
        Cancel a session that has not finished yet.

        The local state change is guaranteed; stopping the remote scrape is
        best-effort.
        """
        view = self.get_session(session_id, actor)
        if view.status not in ACTIVE_SESSION_STATUSES:
            raise InvalidStateError(
                f"Session is already {view.status.value}",
                {"session_id": session_id, "status": view.status.value},
            )

        now = utcnow()

        def mutate(record: ScrapingSessionRecord) -> None:
            record.error_details = list(record.error_details or []) + [{
                "platform": None,
                "error_type": "CANCELLED",
                "message": f"Cancelled by {actor.id}",
                "timestamp": now.isoformat(),
            }]
            record.completed_at = now
            record.duration_ms = duration_ms(record.started_at, now)

        if not self._update_session(session_id, SessionStatus.CANCELLED, mutate):
            raise InvalidStateError("Session finished before it could be cancelled", {"session_id": session_id})

        task = self._tasks.get(session_id)
        if task is not None and not task.done():
            task.cancel()

        acknowledged = await self.client.cancel_scraping(session_id)
        self.logger.info(
            "Scraping session cancelled",
            session_id=session_id,
            remote_acknowledged=acknowledged,
            **log_actor(actor),
        )
        return self.get_session(session_id, actor)

    # Session writes

    def _update_session(
        self,
        session_id: str,
        target: SessionStatus,
        mutate: Optional[Callable[[ScrapingSessionRecord], None]] = None,
    ) -> bool:
        """
        Move a session to ``target`` if the transition is allowed.

        Returns False, and writes nothing, when the session already reached a
        state ``target`` cannot follow.
        """
        for attempt in range(1, settings.max_retries + 1):
            try:
                with self.database.session() as session:
                    record = self._get_record(session, session_id)
                    if target not in SESSION_TRANSITIONS[record.status]:
                        self.logger.warning(
                            "Discarding session update",
                            session_id=session_id,
                            status=record.status.value,
                            target=target.value,
                        )
                        return False

                    record.status = target
                    if mutate:
                        mutate(record)
                    return True
            except StaleDataError:
                self.logger.warning("Concurrent session update, retrying", session_id=session_id, attempt=attempt)

        raise ConflictError("Scraping session was modified concurrently", {"session_id": session_id})

    def _search_criteria(self, session_id: str) -> SearchCriteria:
        with self.database.session() as session:
            return SearchCriteria.model_validate(self._get_record(session, session_id).search_criteria)

    def _status(self, session_id: str) -> SessionStatus:
        with self.database.session() as session:
            return self._get_record(session, session_id).status

    @staticmethod
    def _get_record(session: Session, session_id: str) -> ScrapingSessionRecord:
        record = session.scalar(
            select(ScrapingSessionRecord).where(ScrapingSessionRecord.session_id == session_id)
        )
        if record is None:
            raise NotFoundError(f"Scraping session {session_id} not found")
        return record

    # Reads

    def get_session(self, session_id: str, actor: Actor) -> ScrapingSessionView:
        with self.database.session() as session:
            record = session.scalar(
                select(ScrapingSessionRecord).where(ScrapingSessionRecord.session_id == session_id)
            )
            if record is None or (not actor.is_admin and record.user_id != actor.id):
                raise NotFoundError(f"Scraping session {session_id} not found")
            return ScrapingSessionView.from_record(record)

    def history(
        self,
        user_id: str,
        actor: Actor,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[ScrapingSessionView]:
        """Sessions of one user, newest first."""
        if not actor.is_admin and actor.id != user_id:
            raise ForbiddenError("Cannot read another user's scraping history")

        size = clamp_page_size(page_size)
        stmt = (
            select(ScrapingSessionRecord)
            .where(ScrapingSessionRecord.user_id == user_id)
            .order_by(ScrapingSessionRecord.started_at.desc(), ScrapingSessionRecord.id.desc())
        )
        with self.database.session() as session:
            rows, total = paginate(session, stmt, page, size)
            items = [ScrapingSessionView.from_record(row) for row in rows]

        return Page[ScrapingSessionView](
            items=items,
            page=page,
            page_size=size,
            total=total,
            total_pages=total_pages(total, size),
        )

    def active_sessions(self) -> List[str]:
        return [session_id for session_id, task in self._tasks.items() if not task.done()]

    async def wait_for_session(self, session_id: str, timeout: Optional[float] = None) -> ScrapingSessionView:
        """Wait for a session's background task, then return the session."""
        task = self._tasks.get(session_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)

        with self.database.session() as session:
            return ScrapingSessionView.from_record(self._get_record(session, session_id))

    async def shutdown(self) -> None:
        """Cancel outstanding tasks and close the scraper client."""
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)
        await self.client.aclose()
