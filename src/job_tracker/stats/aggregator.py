"""Read-only statistics over applications, jobs and scraping sessions."""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func, select

from job_tracker.config import settings
from job_tracker.core.models import (
    AdminReviewStatus,
    ApplicationStatus,
    JobStatus,
    SessionStatus,
)
from job_tracker.db.session import Database
from job_tracker.db.tables import ApplicationRecord, JobRecord, ScrapingSessionRecord
from job_tracker.utils.logging import get_logger
from job_tracker.utils.timeutils import utcnow

logger = get_logger(__name__)

OFFER_STATUSES = (
    ApplicationStatus.OFFER_RECEIVED,
    ApplicationStatus.OFFER_ACCEPTED,
    ApplicationStatus.OFFER_REJECTED,
)

INTERVIEW_OR_LATER = (
    ApplicationStatus.INTERVIEW_REQUESTED,
    ApplicationStatus.INTERVIEW_SCHEDULED,
    ApplicationStatus.INTERVIEW_COMPLETED,
) + OFFER_STATUSES


def percentage(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


class StatisticsAggregator:
    """Derived counts and rates. Never writes."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logger.bind(component="statistics_aggregator")

    def application_counts(self, user_id: Optional[str] = None) -> Dict[str, int]:
        """Count applications by status. Every status is present and the counts sum to ``total``."""
        counts = {status.value: 0 for status in ApplicationStatus}

        stmt = select(ApplicationRecord.status, func.count(ApplicationRecord.id)).group_by(ApplicationRecord.status)
        if user_id:
            stmt = stmt.where(ApplicationRecord.user_id == user_id)

        with self.database.session() as session:
            for status, count in session.execute(stmt):
                counts[status.value] = count

        counts["total"] = sum(counts.values())
        return counts

    def application_summary(self, user_id: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        counts = self.application_counts(user_id)
        total = counts["total"]
        offers = sum(counts[status.value] for status in OFFER_STATUSES)
        interviews = sum(counts[status.value] for status in INTERVIEW_OR_LATER)

        now = now or utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        stmt = select(func.count(ApplicationRecord.id)).where(ApplicationRecord.created_at >= month_start)
        if user_id:
            stmt = stmt.where(ApplicationRecord.user_id == user_id)

        with self.database.session() as session:
            this_month = session.scalar(stmt) or 0

        return {
            "counts": counts,
            "total": total,
            "offers": offers,
            "success_rate": percentage(offers, total),
            "interview_rate": percentage(interviews, total),
            "this_month": this_month,
        }

    def job_counts(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        by_status = {status.value: 0 for status in JobStatus}
        by_review = {status.value: 0 for status in AdminReviewStatus}

        status_stmt = select(JobRecord.status, func.count(JobRecord.id)).group_by(JobRecord.status)
        review_stmt = select(JobRecord.admin_review_status, func.count(JobRecord.id)).group_by(
            JobRecord.admin_review_status
        )
        score_stmt = select(func.avg(JobRecord.match_score))
        if user_id:
            status_stmt = status_stmt.where(JobRecord.target_user_id == user_id)
            review_stmt = review_stmt.where(JobRecord.target_user_id == user_id)
            score_stmt = score_stmt.where(JobRecord.target_user_id == user_id)

        with self.database.session() as session:
            for status, count in session.execute(status_stmt):
                by_status[status.value] = count
            for status, count in session.execute(review_stmt):
                by_review[status.value] = count
            average = session.scalar(score_stmt)

        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_review_status": by_review,
            "average_match_score": round(float(average), 2) if average is not None else 0.0,
        }

    def scraping_stats(
        self,
        user_id: Optional[str] = None,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Rolling-window scraping statistics."""
        days = days or settings.scraping_stats_window_days
        since = (now or utcnow()) - timedelta(days=days)

        stmt = select(ScrapingSessionRecord).where(ScrapingSessionRecord.started_at >= since)
        if user_id:
            stmt = stmt.where(ScrapingSessionRecord.user_id == user_id)

        with self.database.session() as session:
            records = session.scalars(stmt).all()

        by_status = {status.value: 0 for status in SessionStatus}
        jobs_found = jobs_saved = duplicates = errors = 0
        durations = []
        for record in records:
            by_status[record.status.value] += 1
            results = record.results or {}
            jobs_found += results.get("total_jobs_found", 0)
            jobs_saved += results.get("jobs_saved", 0)
            duplicates += results.get("duplicates_skipped", 0)
            errors += results.get("error_count", 0)
            if record.duration_ms is not None:
                durations.append(record.duration_ms)

        total = len(records)
        completed = by_status[SessionStatus.COMPLETED.value]
        return {
            "days": days,
            "total_sessions": total,
            "by_status": by_status,
            "completed_sessions": completed,
            "success_rate": percentage(completed, total),
            "total_jobs_found": jobs_found,
            "total_jobs_saved": jobs_saved,
            "total_duplicates_skipped": duplicates,
            "total_errors": errors,
            "average_duration_ms": round(sum(durations) / len(durations)) if durations else 0,
        }

    def dashboard(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Admin overview across all users."""
        jobs = self.job_counts()
        applications = self.application_summary(now=now)
        self.logger.debug("Dashboard computed", jobs=jobs["total"], applications=applications["total"])
        return {
            "jobs": jobs,
            "applications": applications,
            "scraping": self.scraping_stats(now=now),
            "pending_job_reviews": jobs["by_review_status"][AdminReviewStatus.PENDING.value],
            "pending_application_reviews": applications["counts"][ApplicationStatus.PENDING_REVIEW.value],
            "awaiting_submission": applications["counts"][ApplicationStatus.APPROVED.value],
        }
