"""Job record management: ingestion, deduplication, review gating and search."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from job_tracker.core.errors import (
    ForbiddenError,
    NotFoundError,
    PartialIngestFailure,
)
from job_tracker.core.models import (
    Actor,
    AdminReviewStatus,
    JobSearchFilters,
    JobStatus,
    JobView,
    Page,
    ScrapedPosting,
    UserProfile,
)
from job_tracker.db.query import clamp_page_size, paginate, total_pages
from job_tracker.db.session import Database
from job_tracker.db.tables import JobRecord
from job_tracker.jobs.matcher import MatchScorer
from job_tracker.profiles import ProfileProvider
from job_tracker.utils.logging import get_logger, log_actor
from job_tracker.utils.timeutils import utcnow

logger = get_logger(__name__)


@dataclass
class IngestResult:
    """Outcome of ingesting one scraper batch."""
    saved: int = 0
    duplicates: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)
    job_ids: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.saved + self.duplicates + len(self.failures)


def _salary_sort_key():
    return func.coalesce(JobRecord.salary_max, JobRecord.salary_min, 0)


SORT_COLUMNS = {
    "match_score": lambda: JobRecord.match_score,
    "posted_date": lambda: JobRecord.posted_date,
    "created_at": lambda: JobRecord.created_at,
    "salary": _salary_sort_key,
    "company": lambda: JobRecord.company,
    "title": lambda: JobRecord.title,
}


class JobRecordManager:
    """
    Owns the job lifecycle.

    Jobs are created from scraper batches with ``status=active`` and
    ``admin_review_status=pending``; only admins move the review status, and
    jobs are deactivated rather than deleted.
    """

    def __init__(self, database: Database, profiles: ProfileProvider, scorer: Optional[MatchScorer] = None):
        self.database = database
        self.profiles = profiles
        self.scorer = scorer or MatchScorer()
        self.logger = logger.bind(component="job_record_manager")

    # Ingestion

    def ingest_batch(
        self,
        user_id: str,
        raw_postings: List[Any],
        session_id: Optional[str] = None,
        profile: Optional[UserProfile] = None,
    ) -> IngestResult:
        """
        Store a scraper batch for one user.

        Each posting is committed on its own so a bad posting never aborts
        the rest of the batch. Raises NotFoundError when the target profile
        is missing, since no posting could be scored.
        """
        profile = profile or self.profiles.get_profile(user_id)
        if profile is None:
            raise NotFoundError(f"Profile not found for user {user_id}", {"user_id": user_id})

        result = IngestResult()
        self.logger.info(
            "Ingesting scraped postings",
            user_id=user_id,
            session_id=session_id,
            postings=len(raw_postings),
        )

        for raw in raw_postings:
            try:
                job_id = self._ingest_one(user_id, raw, profile, session_id)
            except PartialIngestFailure as e:
                self._record_failure(result, e, session_id)
                continue
            except Exception as e:
                failure = PartialIngestFailure(
                    f"{type(e).__name__}: {e}",
                    raw if isinstance(raw, dict) else None,
                )
                self._record_failure(result, failure, session_id)
                continue

            if job_id is None:
                result.duplicates += 1
            else:
                result.saved += 1
                result.job_ids.append(job_id)

        self.logger.info(
            "Ingestion finished",
            user_id=user_id,
            session_id=session_id,
            saved=result.saved,
            duplicates=result.duplicates,
            failures=len(result.failures),
        )
        return result

    def _record_failure(self, result: IngestResult, failure: PartialIngestFailure, session_id: Optional[str]) -> None:
        record = failure.to_record()
        record["timestamp"] = utcnow().isoformat()
        result.failures.append(record)
        self.logger.warning(
            "Failed to ingest posting",
            session_id=session_id,
            title=record.get("title"),
            company=record.get("company"),
            error=failure.message,
        )

    def _ingest_one(
        self,
        user_id: str,
        raw: Any,
        profile: UserProfile,
        session_id: Optional[str],
    ) -> Optional[str]:
        """Persist one posting. Returns the new job id, or None for a duplicate."""
        if not isinstance(raw, dict):
            raise PartialIngestFailure("Posting is not an object")

        try:
            posting = ScrapedPosting.model_validate(raw)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise PartialIngestFailure(f"Invalid posting: {location} {first.get('msg')}", raw) from e

        try:
            with self.database.session() as session:
                if self._find_duplicate(session, user_id, posting) is not None:
                    self.logger.debug(
                        "Skipping duplicate posting",
                        user_id=user_id,
                        title=posting.title,
                        company=posting.company,
                    )
                    return None

                record = self._build_record(user_id, posting, profile, session_id)
                session.add(record)
                session.flush()
                job_id = record.id
        except IntegrityError:
            # Lost a race against a concurrent insert of the same dedup key
            with self.database.session() as session:
                if self._find_duplicate(session, user_id, posting) is not None:
                    return None
            raise

        return job_id

    @staticmethod
    def _find_duplicate(session: Session, user_id: str, posting: ScrapedPosting) -> Optional[str]:
        return session.scalar(
            select(JobRecord.id).where(
                JobRecord.target_user_id == user_id,
                JobRecord.title == posting.title,
                JobRecord.company == posting.company,
                JobRecord.location == posting.location,
            )
        )

    def _build_record(
        self,
        user_id: str,
        posting: ScrapedPosting,
        profile: UserProfile,
        session_id: Optional[str],
    ) -> JobRecord:
        now = utcnow()
        return JobRecord(
            target_user_id=user_id,
            title=posting.title,
            company=posting.company,
            location=posting.location,
            work_type=posting.work_type,
            job_type=posting.job_type,
            salary_min=posting.salary.min,
            salary_max=posting.salary.max,
            salary_currency=posting.salary.currency,
            salary_period=posting.salary.period,
            description=posting.description,
            requirements=list(posting.requirements),
            responsibilities=list(posting.responsibilities),
            skills=list(posting.skills),
            benefits=list(posting.benefits),
            industry=posting.industry,
            company_size=posting.company_size,
            apply_url=posting.apply_url,
            company_url=posting.company_url,
            platform=posting.platform,
            original_id=posting.original_id,
            scraped_at=now,
            scraping_session_id=session_id,
            match_score=self.scorer.score(posting, profile),
            status=JobStatus.ACTIVE,
            admin_review_status=AdminReviewStatus.PENDING,
            posted_date=posting.posted_date or now,
            expiry_date=posting.expiry_date,
        )

    # Scoring

    def refresh_match_score(self, job_id: str) -> bool:
        """
        Recompute a job's score from its owner's current profile.

        Returns False and keeps the previous score when the profile is gone.
        """
        with self.database.session() as session:
            user_id = session.scalar(select(JobRecord.target_user_id).where(JobRecord.id == job_id))
        if user_id is None:
            raise NotFoundError(f"Job {job_id} not found")

        profile = self.profiles.get_profile(user_id)
        if profile is None:
            self.logger.warning("Profile missing, keeping previous match score", job_id=job_id, user_id=user_id)
            return False

        with self.database.session() as session:
            record = session.get(JobRecord, job_id)
            previous = record.match_score
            record.match_score = self.scorer.score(record, profile)
            current = record.match_score

        self.logger.info("Match score refreshed", job_id=job_id, previous=previous, match_score=current)
        return True

    # Reads

    def get_job(self, job_id: str, actor: Actor) -> JobView:
        with self.database.session() as session:
            record = session.get(JobRecord, job_id)
            if record is None or (not actor.is_admin and record.target_user_id != actor.id):
                raise NotFoundError(f"Job {job_id} not found")
            return JobView.from_record(record)

    def search(self, filters: JobSearchFilters, actor: Actor, now: Optional[datetime] = None) -> Page[JobView]:
        """Search jobs. Non-admin callers only ever see their own active, approved jobs."""
        conditions = []
        if actor.is_admin:
            if filters.target_user_id:
                conditions.append(JobRecord.target_user_id == filters.target_user_id)
            if filters.status:
                conditions.append(JobRecord.status == filters.status)
            if filters.admin_review_status:
                conditions.append(JobRecord.admin_review_status == filters.admin_review_status)
        else:
            conditions.extend([
                JobRecord.target_user_id == actor.id,
                JobRecord.status == JobStatus.ACTIVE,
                JobRecord.admin_review_status == AdminReviewStatus.APPROVED,
            ])

        if filters.q:
            pattern = f"%{filters.q.strip()}%"
            conditions.append(or_(
                JobRecord.title.ilike(pattern),
                JobRecord.company.ilike(pattern),
                JobRecord.description.ilike(pattern),
            ))
        if filters.location:
            conditions.append(JobRecord.location.ilike(f"%{filters.location.strip()}%"))
        if filters.industry:
            conditions.append(JobRecord.industry.ilike(f"%{filters.industry.strip()}%"))
        if filters.job_type:
            conditions.append(JobRecord.job_type == filters.job_type)
        if filters.work_type:
            conditions.append(JobRecord.work_type == filters.work_type)

        # Salary range overlap
        if filters.min_salary is not None:
            conditions.append(_salary_sort_key() >= filters.min_salary)
        if filters.max_salary is not None:
            conditions.append(func.coalesce(JobRecord.salary_min, 0) <= filters.max_salary)

        if filters.min_match_score is not None:
            conditions.append(JobRecord.match_score >= filters.min_match_score)

        cutoff = filters.posted_since
        if filters.posted_within_days is not None:
            window_start = (now or utcnow()) - timedelta(days=filters.posted_within_days)
            cutoff = max(cutoff, window_start) if cutoff else window_start
        if cutoff is not None:
            conditions.append(JobRecord.posted_date >= cutoff)

        sort_column = SORT_COLUMNS[filters.sort_by]()
        ordering = sort_column.desc() if filters.sort_order == "desc" else sort_column.asc()
        stmt = select(JobRecord).where(*conditions).order_by(ordering, JobRecord.id)

        return self._page(stmt, filters.page, filters.page_size)

    def list_user_jobs(
        self,
        user_id: str,
        actor: Actor,
        status: Optional[JobStatus] = None,
        review_status: Optional[AdminReviewStatus] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[JobView]:
        """Jobs scraped for one user, newest first."""
        if not actor.is_admin and actor.id != user_id:
            raise ForbiddenError("Cannot list another user's jobs")

        conditions = [JobRecord.target_user_id == user_id]
        if not actor.is_admin:
            # Owners only see what an admin has released
            review_status = AdminReviewStatus.APPROVED
        if review_status:
            conditions.append(JobRecord.admin_review_status == review_status)
        if status:
            conditions.append(JobRecord.status == status)

        stmt = select(JobRecord).where(*conditions).order_by(JobRecord.scraped_at.desc(), JobRecord.id)
        return self._page(stmt, page, page_size)

    def list_jobs_for_review(
        self,
        actor: Actor,
        review_status: Optional[AdminReviewStatus] = AdminReviewStatus.PENDING,
        user_id: Optional[str] = None,
        q: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        status: Optional[JobStatus] = None,
    ) -> Page[JobView]:
        self._require_admin(actor, "list jobs for review")

        conditions = []
        if review_status:
            conditions.append(JobRecord.admin_review_status == review_status)
        if status:
            conditions.append(JobRecord.status == status)
        if user_id:
            conditions.append(JobRecord.target_user_id == user_id)
        if q:
            pattern = f"%{q.strip()}%"
            conditions.append(or_(JobRecord.title.ilike(pattern), JobRecord.company.ilike(pattern)))

        stmt = select(JobRecord).where(*conditions).order_by(JobRecord.created_at.desc(), JobRecord.id)
        return self._page(stmt, page, page_size)

    def _page(self, stmt, page: int, page_size: Optional[int]) -> Page[JobView]:
        size = clamp_page_size(page_size)
        with self.database.session() as session:
            rows, total = paginate(session, stmt, page, size)
            items = [JobView.from_record(row) for row in rows]

        return Page[JobView](
            items=items,
            page=page,
            page_size=size,
            total=total,
            total_pages=total_pages(total, size),
        )

    # Admin actions

    def approve(self, job_id: str, actor: Actor, notes: Optional[str] = None) -> JobView:
        return self._review(job_id, actor, AdminReviewStatus.APPROVED, notes)

    def reject(self, job_id: str, actor: Actor, notes: Optional[str] = None) -> JobView:
        return self._review(job_id, actor, AdminReviewStatus.REJECTED, notes)

    def _review(self, job_id: str, actor: Actor, decision: AdminReviewStatus, notes: Optional[str]) -> JobView:
        self._require_admin(actor, f"mark jobs {decision.value}")

        with self.database.session() as session:
            record = session.get(JobRecord, job_id)
            if record is None:
                raise NotFoundError(f"Job {job_id} not found")

            # Re-reviewing overwrites the previous decision
            record.admin_review_status = decision
            record.reviewed_by = actor.id
            record.reviewed_at = utcnow()
            record.review_notes = notes
            session.flush()
            view = JobView.from_record(record)

        self.logger.info("Job reviewed", job_id=job_id, decision=decision.value, **log_actor(actor))
        return view

    def set_job_status(self, job_id: str, status: JobStatus, actor: Actor) -> JobView:
        self._require_admin(actor, "change job status")

        with self.database.session() as session:
            record = session.get(JobRecord, job_id)
            if record is None:
                raise NotFoundError(f"Job {job_id} not found")
            previous = record.status
            record.status = status
            session.flush()
            view = JobView.from_record(record)

        self.logger.info(
            "Job status changed",
            job_id=job_id,
            previous=previous.value,
            status=status.value,
            **log_actor(actor),
        )
        return view

    def expire_jobs(self, now: Optional[datetime] = None) -> int:
        """Mark active jobs past their expiry date as expired."""
        now = now or utcnow()
        with self.database.session() as session:
            result = session.execute(
                update(JobRecord)
                .where(
                    JobRecord.status == JobStatus.ACTIVE,
                    JobRecord.expiry_date.is_not(None),
                    JobRecord.expiry_date < now,
                )
                .values(status=JobStatus.EXPIRED, updated_at=now)
            )
            expired = result.rowcount or 0

        self.logger.info("Expired jobs swept", expired=expired)
        return expired

    @staticmethod
    def _require_admin(actor: Actor, action: str) -> None:
        if not actor.is_admin:
            raise ForbiddenError(f"Only admins may {action}")
