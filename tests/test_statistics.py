"""Tests for the statistics aggregator."""

from datetime import timedelta

import pytest

from conftest import ADMIN, build_profile
from job_tracker.core.models import (
    Actor,
    ApplicationStatus,
    SessionResults,
    SessionStatus,
    TriggerSource,
)
from job_tracker.db.tables import ScrapingSessionRecord
from job_tracker.stats.aggregator import percentage
from job_tracker.utils.timeutils import utcnow

USER = Actor(id="user-1")


def add_session(services, user_id="user-1", status=SessionStatus.COMPLETED, age=timedelta(0), duration_ms=1000, **results):
    """Insert a finished scraping session directly."""
    started = utcnow() - age
    with services.database.session() as session:
        session.add(ScrapingSessionRecord(
            user_id=user_id,
            status=status,
            triggered_by=TriggerSource.SCHEDULED,
            search_criteria={},
            results=SessionResults(**results).model_dump(),
            platform_results=[],
            error_details=[],
            jobs_created=[],
            started_at=started,
            completed_at=started + timedelta(milliseconds=duration_ms),
            duration_ms=duration_ms,
        ))


class TestApplicationStatistics:

    @pytest.fixture
    def applications(self, services, seed_job):
        """One offer, one rejection and one waiting for review."""
        workflow = services.applications
        offer = workflow.save_job(seed_job(services, title="Offer Role"), USER)
        workflow.review(offer.id, ADMIN, approve=True)
        workflow.apply_on_behalf(offer.id, ADMIN)
        workflow.advance_status(offer.id, ApplicationStatus.OFFER_RECEIVED, ADMIN)

        rejected = workflow.save_job(seed_job(services, title="Rejected Role"), USER)
        workflow.review(rejected.id, ADMIN, approve=False)

        workflow.save_job(seed_job(services, title="Pending Role"), USER)

        services.profiles.save_profile(build_profile("user-2"))
        workflow.save_job(seed_job(services, user_id="user-2", title="Other Role"), Actor(id="user-2"))

    def test_counts_cover_every_status_and_sum_to_total(self, services, applications):
        counts = services.stats.application_counts("user-1")

        assert set(counts) == {status.value for status in ApplicationStatus} | {"total"}
        assert counts["total"] == 3
        assert sum(value for key, value in counts.items() if key != "total") == counts["total"]
        assert counts[ApplicationStatus.OFFER_RECEIVED.value] == 1
        assert counts[ApplicationStatus.REJECTED.value] == 1
        assert counts[ApplicationStatus.PENDING_REVIEW.value] == 1

    def test_counts_across_users(self, services, applications):
        assert services.stats.application_counts()["total"] == 4

    def test_summary_rates(self, services, applications):
        summary = services.stats.application_summary("user-1")

        assert summary["total"] == 3
        assert summary["offers"] == 1
        assert summary["success_rate"] == 33.33
        assert summary["interview_rate"] == 33.33
        assert summary["this_month"] == 3

    def test_this_month_uses_the_given_clock(self, services, applications):
        summary = services.stats.application_summary("user-1", now=utcnow() + timedelta(days=62))

        assert summary["this_month"] == 0

    def test_empty_summary(self, services):
        summary = services.stats.application_summary("nobody")

        assert summary["total"] == 0
        assert summary["success_rate"] == 0.0
        assert summary["interview_rate"] == 0.0


class TestJobStatistics:

    def test_job_counts(self, services, seed_job):
        seed_job(services, title="Approved Role")
        seed_job(services, title="Pending Role", approve=False)

        counts = services.stats.job_counts("user-1")

        assert counts["total"] == 2
        assert counts["by_status"]["active"] == 2
        assert counts["by_review_status"]["approved"] == 1
        assert counts["by_review_status"]["pending"] == 1
        assert counts["average_match_score"] == 87.0

    def test_no_jobs(self, services):
        counts = services.stats.job_counts("user-1")

        assert counts["total"] == 0
        assert counts["average_match_score"] == 0.0


class TestScrapingStatistics:

    @pytest.fixture(autouse=True)
    def profile(self, services):
        services.profiles.save_profile(build_profile("user-1"))

    def test_window_and_totals(self, services):
        add_session(services, total_jobs_found=10, jobs_saved=6, duplicates_skipped=3, error_count=1, duration_ms=2000)
        add_session(services, total_jobs_found=4, jobs_saved=4, duration_ms=1000)
        add_session(services, status=SessionStatus.FAILED, error_count=1, duration_ms=3000)
        add_session(services, age=timedelta(days=45), total_jobs_found=99)

        stats = services.stats.scraping_stats("user-1", days=30)

        assert stats["days"] == 30
        assert stats["total_sessions"] == 3
        assert stats["completed_sessions"] == 2
        assert stats["by_status"]["failed"] == 1
        assert stats["success_rate"] == 66.67
        assert stats["total_jobs_found"] == 14
        assert stats["total_jobs_saved"] == 10
        assert stats["total_duplicates_skipped"] == 3
        assert stats["total_errors"] == 2
        assert stats["average_duration_ms"] == 2000

    def test_wider_window_includes_older_sessions(self, services):
        add_session(services, age=timedelta(days=45), total_jobs_found=99)

        assert services.stats.scraping_stats("user-1", days=30)["total_sessions"] == 0
        assert services.stats.scraping_stats("user-1", days=60)["total_jobs_found"] == 99


class TestDashboard:

    def test_dashboard_highlights_admin_work(self, services, seed_job):
        seed_job(services, title="Unreviewed Role", approve=False)
        waiting = services.applications.save_job(seed_job(services, title="Saved Role"), USER)
        approved = services.applications.save_job(seed_job(services, title="Approved Role"), USER)
        services.applications.review(approved.id, ADMIN, approve=True)

        dashboard = services.stats.dashboard()

        assert dashboard["pending_job_reviews"] == 1
        assert dashboard["pending_application_reviews"] == 1
        assert dashboard["awaiting_submission"] == 1
        assert dashboard["jobs"]["total"] == 3
        assert dashboard["applications"]["total"] == 2
        assert dashboard["scraping"]["total_sessions"] == 0
        assert waiting.status == ApplicationStatus.PENDING_REVIEW


@pytest.mark.parametrize("part, whole, expected", [
    (0, 0, 0.0),
    (1, 3, 33.33),
    (2, 3, 66.67),
    (5, 5, 100.0),
])
def test_percentage(part, whole, expected):
    assert percentage(part, whole) == expected
