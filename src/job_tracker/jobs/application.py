"""Application lifecycle: creation, actor-gated transitions and the timeline."""

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from job_tracker.config import settings
from job_tracker.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from job_tracker.core.models import (
    Actor,
    AdminReviewStatus,
    ApplicationFilters,
    ApplicationMethod,
    ApplicationStatus,
    ApplicationView,
    InterviewDetails,
    JobApplicationStatus,
    JobStatus,
    OfferDetails,
    Page,
)
from job_tracker.db.query import clamp_page_size, paginate, total_pages
from job_tracker.db.session import Database
from job_tracker.db.tables import ApplicationEventRecord, ApplicationRecord, JobRecord
from job_tracker.notifications import NotificationDispatcher, StatusChangeEvent
from job_tracker.utils.logging import get_logger, log_actor
from job_tracker.utils.timeutils import utcnow

logger = get_logger(__name__)

MAX_COVER_LETTER_LENGTH = 2000
MAX_NOTES_LENGTH = 1000

TERMINAL_STATUSES = frozenset({
    ApplicationStatus.WITHDRAWN,
    ApplicationStatus.REJECTED,
    ApplicationStatus.OFFER_REJECTED,
    ApplicationStatus.REJECTED_BY_EMPLOYER,
})

# Advanced by employer signals, relayed by an admin
DOWNSTREAM_STATUSES = frozenset({
    ApplicationStatus.APPLICATION_SENT,
    ApplicationStatus.VIEWED,
    ApplicationStatus.INTERVIEW_REQUESTED,
    ApplicationStatus.INTERVIEW_SCHEDULED,
    ApplicationStatus.INTERVIEW_COMPLETED,
    ApplicationStatus.OFFER_RECEIVED,
    ApplicationStatus.OFFER_ACCEPTED,
    ApplicationStatus.OFFER_REJECTED,
    ApplicationStatus.REJECTED_BY_EMPLOYER,
})

# Coarse outcome mirrored onto the job
JOB_STATUS_MIRROR = {
    ApplicationStatus.APPLIED: JobApplicationStatus.APPLIED,
    ApplicationStatus.INTERVIEW_REQUESTED: JobApplicationStatus.INTERVIEW,
    ApplicationStatus.INTERVIEW_SCHEDULED: JobApplicationStatus.INTERVIEW,
    ApplicationStatus.INTERVIEW_COMPLETED: JobApplicationStatus.INTERVIEW,
    ApplicationStatus.OFFER_RECEIVED: JobApplicationStatus.OFFER,
    ApplicationStatus.OFFER_ACCEPTED: JobApplicationStatus.OFFER,
    ApplicationStatus.OFFER_REJECTED: JobApplicationStatus.OFFER,
    ApplicationStatus.REJECTED_BY_EMPLOYER: JobApplicationStatus.REJECTED,
}

SORT_COLUMNS = {
    "created_at": ApplicationRecord.created_at,
    "updated_at": ApplicationRecord.updated_at,
    "match_score": ApplicationRecord.match_score,
    "priority": ApplicationRecord.priority,
    "applied_at": ApplicationRecord.applied_at,
}


def is_terminal(status: ApplicationStatus) -> bool:
    return status in TERMINAL_STATUSES


def validate_transition(current: ApplicationStatus, target: ApplicationStatus, actor: Actor) -> None:
    """
    Check that ``actor`` may move an application from ``current`` to ``target``.

    Authorization is checked before state so an unauthorized caller learns
    nothing about the application. Raises ForbiddenError or InvalidStateError.
    """
    if target == ApplicationStatus.WITHDRAWN:
        if actor.is_admin:
            raise ForbiddenError("Only the applicant may withdraw an application")
    elif not actor.is_admin:
        raise ForbiddenError(f"Only admins may move applications to {target.value}")

    if is_terminal(current):
        raise InvalidStateError(
            f"Application is already {current.value}",
            {"current": current.value, "target": target.value},
        )

    if target == ApplicationStatus.PENDING_REVIEW:
        raise InvalidStateError("Applications cannot return to pending_review")

    if target in (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED):
        if current != ApplicationStatus.PENDING_REVIEW:
            raise InvalidStateError(
                f"Only pending_review applications can be reviewed, current status is {current.value}",
                {"current": current.value, "target": target.value},
            )

    if target == ApplicationStatus.APPLIED and current != ApplicationStatus.APPROVED:
        raise InvalidStateError(
            f"Only approved applications can be applied, current status is {current.value}",
            {"current": current.value, "target": target.value},
        )


def _check_length(name: str, value: Optional[str], limit: int) -> None:
    if value is not None and len(value) > limit:
        raise InvalidInputError(f"{name} must be at most {limit} characters", {"field": name, "limit": limit})


Mutation = Callable[[ApplicationRecord, datetime], None]


class ApplicationWorkflow:
    """
    Owns the Application entity.

    Every status change and its timeline entry are written in one
    transaction. Writes are optimistically locked on the application's
    version column; a stale write is retried against fresh state.
    """

    def __init__(self, database: Database, notifier: Optional[NotificationDispatcher] = None):
        self.database = database
        self.notifier = notifier or NotificationDispatcher()
        self.logger = logger.bind(component="application_workflow")

    # Creation

    def save_job(self, job_id: str, actor: Actor, notes: Optional[str] = None) -> ApplicationView:
        """Save a job for admin-assisted application."""
        return self._create(job_id, actor, ApplicationMethod.AUTO, user_notes=notes)

    def apply_to_job(
        self,
        job_id: str,
        actor: Actor,
        cover_letter: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ApplicationView:
        """Apply to a job manually."""
        _check_length("cover_letter", cover_letter, MAX_COVER_LETTER_LENGTH)
        return self._create(job_id, actor, ApplicationMethod.MANUAL, cover_letter=cover_letter, user_notes=notes)

    def _create(
        self,
        job_id: str,
        actor: Actor,
        method: ApplicationMethod,
        cover_letter: Optional[str] = None,
        user_notes: Optional[str] = None,
    ) -> ApplicationView:
        _check_length("user_notes", user_notes, MAX_NOTES_LENGTH)

        try:
            with self.database.session() as session:
                job = session.get(JobRecord, job_id)
                if job is None or job.target_user_id != actor.id:
                    raise NotFoundError(f"Job {job_id} not found")
                if job.status != JobStatus.ACTIVE or job.admin_review_status != AdminReviewStatus.APPROVED:
                    raise InvalidStateError(
                        "Job is not open for applications",
                        {"status": job.status.value, "admin_review_status": job.admin_review_status.value},
                    )

                existing = self._existing_application(session, actor.id, job_id)
                if existing is not None:
                    raise ConflictError(
                        "An application for this job already exists",
                        {"job_id": job_id, "application_id": existing},
                    )

                now = utcnow()
                record = ApplicationRecord(
                    user_id=actor.id,
                    job_id=job_id,
                    status=ApplicationStatus.PENDING_REVIEW,
                    match_score=job.match_score,
                    application_method=method,
                    cover_letter=cover_letter,
                    user_notes=user_notes,
                    created_at=now,
                    updated_at=now,
                )
                record.events.append(ApplicationEventRecord(
                    status=ApplicationStatus.PENDING_REVIEW,
                    timestamp=now,
                    note="Application created" if method == ApplicationMethod.MANUAL else "Job saved",
                    updated_by=actor.id,
                ))
                session.add(record)
                session.flush()
                view = ApplicationView.from_record(record, now)
        except IntegrityError as e:
            # The unique (user, job) constraint caught a concurrent creation
            self.logger.warning("Concurrent application creation rejected", job_id=job_id, **log_actor(actor))
            raise ConflictError("An application for this job already exists", {"job_id": job_id}) from e

        self.logger.info(
            "Application created",
            application_id=view.id,
            job_id=job_id,
            method=method.value,
            **log_actor(actor),
        )
        return view

    @staticmethod
    def _existing_application(session: Session, user_id: str, job_id: str) -> Optional[str]:
        return session.scalar(
            select(ApplicationRecord.id).where(
                ApplicationRecord.user_id == user_id,
                ApplicationRecord.job_id == job_id,
            )
        )

    # Transitions

    def review(
        self,
        application_id: str,
        actor: Actor,
        approve: bool,
        notes: Optional[str] = None,
    ) -> ApplicationView:
        """Admin review of a pending application."""
        _check_length("admin_notes", notes, MAX_NOTES_LENGTH)

        def mutate(record: ApplicationRecord, now: datetime) -> None:
            record.reviewed_by = actor.id
            record.reviewed_at = now
            if notes is not None:
                record.admin_notes = notes

        target = ApplicationStatus.APPROVED if approve else ApplicationStatus.REJECTED
        return self._transition(application_id, actor, target, note=notes, mutate=mutate)

    def apply_on_behalf(self, application_id: str, actor: Actor, note: Optional[str] = None) -> ApplicationView:
        """Submit an approved application for the user."""

        def mutate(record: ApplicationRecord, now: datetime) -> None:
            record.applied_by = actor.id
            record.applied_at = now
            record.job.applied_at = now

        return self._transition(
            application_id,
            actor,
            ApplicationStatus.APPLIED,
            note=note or "Applied on behalf of user",
            mutate=mutate,
        )

    def advance_status(
        self,
        application_id: str,
        target: ApplicationStatus,
        actor: Actor,
        note: Optional[str] = None,
    ) -> ApplicationView:
        """Record an employer-side status change."""
        if not actor.is_admin:
            raise ForbiddenError("Only admins may advance application status")
        if target not in DOWNSTREAM_STATUSES:
            raise InvalidStateError(
                f"Status {target.value} has a dedicated operation",
                {"target": target.value},
            )
        return self._transition(application_id, actor, target, note=note)

    def schedule_interview(
        self,
        application_id: str,
        actor: Actor,
        interview: InterviewDetails,
        note: Optional[str] = None,
    ) -> ApplicationView:
        def mutate(record: ApplicationRecord, now: datetime) -> None:
            record.interview = interview.model_dump(mode="json")

        return self._transition(
            application_id,
            actor,
            ApplicationStatus.INTERVIEW_SCHEDULED,
            note=note or f"Interview scheduled for {interview.scheduled_at.isoformat()}",
            mutate=mutate,
        )

    def record_offer(
        self,
        application_id: str,
        actor: Actor,
        offer: OfferDetails,
        note: Optional[str] = None,
    ) -> ApplicationView:
        def mutate(record: ApplicationRecord, now: datetime) -> None:
            record.offer = offer.model_dump(mode="json")

        return self._transition(
            application_id,
            actor,
            ApplicationStatus.OFFER_RECEIVED,
            note=note or "Offer received",
            mutate=mutate,
        )

    def withdraw(self, application_id: str, actor: Actor, reason: Optional[str] = None) -> ApplicationView:
        """Withdraw an own, non-terminal application."""
        _check_length("reason", reason, MAX_NOTES_LENGTH)

        def mutate(record: ApplicationRecord, now: datetime) -> None:
            record.withdrawal_reason = reason

        return self._transition(
            application_id,
            actor,
            ApplicationStatus.WITHDRAWN,
            note=reason or "Withdrawn by user",
            mutate=mutate,
        )

    def _transition(
        self,
        application_id: str,
        actor: Actor,
        target: ApplicationStatus,
        note: Optional[str] = None,
        mutate: Optional[Mutation] = None,
    ) -> ApplicationView:
        previous: dict = {}

        def apply(record: ApplicationRecord, now: datetime) -> None:
            validate_transition(record.status, target, actor)
            previous["status"] = record.status

            if mutate:
                mutate(record, now)
            record.status = target
            record.events.append(ApplicationEventRecord(
                status=target,
                timestamp=now,
                note=note,
                updated_by=actor.id,
            ))

            mirrored = JOB_STATUS_MIRROR.get(target)
            if mirrored is not None:
                record.job.application_status = mirrored

        view = self._write(application_id, actor, apply)

        self.logger.info(
            "Application status changed",
            application_id=application_id,
            previous=previous["status"].value,
            status=target.value,
            **log_actor(actor),
        )
        self.notifier.dispatch(StatusChangeEvent(
            application_id=view.id,
            user_id=view.user_id,
            job_id=view.job_id,
            previous_status=previous["status"],
            status=target,
            actor_id=actor.id,
            occurred_at=view.updated_at,
            note=note,
        ))
        return view

    def _write(self, application_id: str, actor: Actor, apply: Mutation) -> ApplicationView:
        """Read-modify-write one application, retrying when another writer got there first."""
        for attempt in range(1, settings.max_retries + 1):
            try:
                with self.database.session() as session:
                    record = self._load(session, application_id, actor)
                    now = utcnow()
                    apply(record, now)
                    record.updated_at = now
                    session.flush()
                    return ApplicationView.from_record(record, now)
            except StaleDataError:
                self.logger.warning(
                    "Concurrent application update, retrying",
                    application_id=application_id,
                    attempt=attempt,
                )

        raise ConflictError(
            "Application was modified concurrently, please retry",
            {"application_id": application_id},
        )

    @staticmethod
    def _load(session: Session, application_id: str, actor: Actor) -> ApplicationRecord:
        record = session.get(ApplicationRecord, application_id)
        if record is None or (not actor.is_admin and record.user_id != actor.id):
            raise NotFoundError(f"Application {application_id} not found")
        return record

    # Non-status updates

    def update_notes(self, application_id: str, actor: Actor, notes: Optional[str]) -> ApplicationView:
        """Admins write admin notes, owners write their own notes."""
        _check_length("notes", notes, MAX_NOTES_LENGTH)

        def apply(record: ApplicationRecord, now: datetime) -> None:
            if actor.is_admin:
                record.admin_notes = notes
            else:
                record.user_notes = notes

        return self._write(application_id, actor, apply)

    def update_flags(
        self,
        application_id: str,
        actor: Actor,
        priority: Optional[int] = None,
        is_starred: Optional[bool] = None,
        is_archived: Optional[bool] = None,
    ) -> ApplicationView:
        if actor.is_admin:
            raise ForbiddenError("Only the applicant may change application flags")
        if priority is not None and not 1 <= priority <= 5:
            raise InvalidInputError("priority must be between 1 and 5", {"field": "priority"})

        def apply(record: ApplicationRecord, now: datetime) -> None:
            if priority is not None:
                record.priority = priority
            if is_starred is not None:
                record.is_starred = is_starred
            if is_archived is not None:
                record.is_archived = is_archived

        return self._write(application_id, actor, apply)

    # Reads

    def get_application(self, application_id: str, actor: Actor) -> ApplicationView:
        with self.database.session() as session:
            return ApplicationView.from_record(self._load(session, application_id, actor))

    def list_applications(self, actor: Actor, filters: Optional[ApplicationFilters] = None) -> Page[ApplicationView]:
        """Users see their own applications, admins see everyone's."""
        filters = filters or ApplicationFilters()

        conditions = []
        if not actor.is_admin:
            conditions.append(ApplicationRecord.user_id == actor.id)
        elif filters.user_id:
            conditions.append(ApplicationRecord.user_id == filters.user_id)

        if filters.status:
            conditions.append(ApplicationRecord.status == filters.status)
        if not filters.include_archived:
            conditions.append(ApplicationRecord.is_archived.is_(False))
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            conditions.append(
                ApplicationRecord.job_id.in_(
                    select(JobRecord.id).where(or_(JobRecord.title.ilike(pattern), JobRecord.company.ilike(pattern)))
                )
            )

        column = SORT_COLUMNS[filters.sort_by]
        ordering = column.desc() if filters.sort_order == "desc" else column.asc()
        stmt = select(ApplicationRecord).where(*conditions).order_by(ordering, ApplicationRecord.id)

        size = clamp_page_size(filters.page_size)
        now = utcnow()
        with self.database.session() as session:
            rows, total = paginate(session, stmt, filters.page, size)
            items = [ApplicationView.from_record(row, now) for row in rows]

        return Page[ApplicationView](
            items=items,
            page=filters.page,
            page_size=size,
            total=total,
            total_pages=total_pages(total, size),
        )
