"""Tests for job ingestion, review gating and search."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import ADMIN, build_posting, build_profile
from job_tracker.core.errors import ForbiddenError, NotFoundError
from job_tracker.core.models import (
    Actor,
    AdminReviewStatus,
    JobSearchFilters,
    JobStatus,
    ScrapingPlatform,
)
from job_tracker.utils.timeutils import utcnow

USER = Actor(id="user-1")
OTHER = Actor(id="user-2")


class TestIngestion:
    """Batch ingestion with deduplication and partial failure tolerance."""

    def test_duplicates_within_one_batch(self, services):
        """Two identical postings in one batch store a single job."""
        services.profiles.save_profile(build_profile("user-1"))

        result = services.jobs.ingest_batch("user-1", [build_posting(), build_posting()])

        assert result.saved == 1
        assert result.duplicates == 1
        assert result.failures == []
        assert services.stats.job_counts("user-1")["total"] == 1

    def test_duplicate_across_batches_leaves_existing_record_untouched(self, services, seed_job):
        job_id = seed_job(services)
        before = services.jobs.get_job(job_id, ADMIN)

        result = services.jobs.ingest_batch(
            "user-1", [build_posting(description="Changed description", skills=["cobol"])]
        )

        assert result.saved == 0
        assert result.duplicates == 1
        after = services.jobs.get_job(job_id, ADMIN)
        assert after.description == before.description
        assert after.skills == before.skills
        assert after.match_score == before.match_score

    def test_dedup_key_is_case_sensitive_and_per_user(self, services):
        services.profiles.save_profile(build_profile("user-1"))
        services.profiles.save_profile(build_profile("user-2"))

        first = services.jobs.ingest_batch("user-1", [build_posting(), build_posting(company="ACME GmbH")])
        second = services.jobs.ingest_batch("user-2", [build_posting()])

        assert first.saved == 2
        assert second.saved == 1

    def test_new_jobs_are_active_pending_and_scored(self, services):
        services.profiles.save_profile(build_profile("user-1"))

        result = services.jobs.ingest_batch("user-1", [build_posting()], session_id="session-1")
        job = services.jobs.get_job(result.job_ids[0], ADMIN)

        assert job.status == JobStatus.ACTIVE
        assert job.admin_review_status == AdminReviewStatus.PENDING
        assert job.platform == ScrapingPlatform.LINKEDIN
        # python + sql of 3 skills, Berlin preferred, full time, hybrid preferred
        assert job.match_score == 87
        assert not job.is_applicable

    def test_bad_postings_do_not_abort_the_batch(self, services):
        services.profiles.save_profile(build_profile("user-1"))
        missing_company = build_posting(title="Data Engineer")
        del missing_company["company"]

        result = services.jobs.ingest_batch(
            "user-1",
            [
                build_posting(title="Platform Engineer"),
                missing_company,
                "not a posting",
                build_posting(title="Site Reliability Engineer"),
            ],
        )

        assert result.saved == 2
        assert len(result.failures) == 2
        failure = result.failures[0]
        assert failure["error_type"] == "JOB_CREATION_ERROR"
        assert failure["title"] == "Data Engineer"
        assert "company" in failure["message"]
        assert "timestamp" in failure

    def test_unknown_platform_is_stored_as_other(self, services):
        services.profiles.save_profile(build_profile("user-1"))

        result = services.jobs.ingest_batch("user-1", [build_posting(platform="stepstone")])

        assert services.jobs.get_job(result.job_ids[0], ADMIN).platform == ScrapingPlatform.OTHER

    def test_missing_profile_is_fatal(self, services):
        with pytest.raises(NotFoundError):
            services.jobs.ingest_batch("ghost", [build_posting()])


class TestMatchScoreRefresh:

    def test_refresh_uses_current_profile(self, services, seed_job):
        job_id = seed_job(services)
        services.profiles.save_profile(build_profile("user-1", skills=["python", "sql", "kubernetes"]))

        assert services.jobs.refresh_match_score(job_id) is True
        assert services.jobs.get_job(job_id, ADMIN).match_score == 100

    def test_refresh_without_profile_keeps_previous_score(self, services, seed_job, monkeypatch):
        job_id = seed_job(services)
        previous = services.jobs.get_job(job_id, ADMIN).match_score
        monkeypatch.setattr(services.profiles, "get_profile", lambda user_id: None)

        assert services.jobs.refresh_match_score(job_id) is False
        assert services.jobs.get_job(job_id, ADMIN).match_score == previous

    def test_refresh_unknown_job(self, services):
        with pytest.raises(NotFoundError):
            services.jobs.refresh_match_score("missing")


class TestReviewGating:

    def test_only_admins_review(self, services, seed_job):
        job_id = seed_job(services, approve=False)

        with pytest.raises(ForbiddenError):
            services.jobs.approve(job_id, USER)

    def test_approve_records_reviewer(self, services, seed_job):
        job_id = seed_job(services, approve=False)

        job = services.jobs.approve(job_id, ADMIN, notes="good fit")

        assert job.admin_review_status == AdminReviewStatus.APPROVED
        assert job.reviewed_by == ADMIN.id
        assert job.reviewed_at is not None
        assert job.review_notes == "good fit"
        assert job.is_applicable

    def test_re_review_overwrites(self, services, seed_job):
        job_id = seed_job(services)

        job = services.jobs.approve(job_id, ADMIN, notes="second look")
        assert job.review_notes == "second look"

        job = services.jobs.reject(job_id, ADMIN)
        assert job.admin_review_status == AdminReviewStatus.REJECTED
        assert job.review_notes is None

    def test_review_queue_is_admin_only(self, services, seed_job):
        seed_job(services, approve=False)
        seed_job(services, title="Approved Role")

        with pytest.raises(ForbiddenError):
            services.jobs.list_jobs_for_review(USER)

        queue = services.jobs.list_jobs_for_review(ADMIN)
        assert queue.total == 1
        assert queue.items[0].admin_review_status == AdminReviewStatus.PENDING

    def test_owner_sees_only_approved_jobs(self, services, seed_job):
        seed_job(services, approve=False)
        approved = seed_job(services, title="Approved Role")

        page = services.jobs.list_user_jobs("user-1", USER)
        assert [job.id for job in page.items] == [approved]

        with pytest.raises(ForbiddenError):
            services.jobs.list_user_jobs("user-1", OTHER)

        assert services.jobs.list_user_jobs("user-1", ADMIN).total == 2

    def test_jobs_are_invisible_to_other_users(self, services, seed_job):
        job_id = seed_job(services)

        with pytest.raises(NotFoundError):
            services.jobs.get_job(job_id, OTHER)


class TestJobStatus:

    def test_set_status_requires_admin(self, services, seed_job):
        job_id = seed_job(services)

        with pytest.raises(ForbiddenError):
            services.jobs.set_job_status(job_id, JobStatus.FILLED, USER)

        assert services.jobs.set_job_status(job_id, JobStatus.FILLED, ADMIN).status == JobStatus.FILLED

    def test_expire_jobs(self, services, seed_job):
        now = utcnow()
        past = seed_job(services, title="Old Role", expiryDate=(now - timedelta(days=1)).isoformat())
        future = seed_job(services, title="Fresh Role", expiryDate=(now + timedelta(days=10)).isoformat())
        open_ended = seed_job(services, title="Open Role")

        assert services.jobs.expire_jobs(now) == 1

        assert services.jobs.get_job(past, ADMIN).status == JobStatus.EXPIRED
        assert services.jobs.get_job(future, ADMIN).status == JobStatus.ACTIVE
        assert services.jobs.get_job(open_ended, ADMIN).status == JobStatus.ACTIVE
        assert services.jobs.expire_jobs(now) == 0


class TestSearch:

    @pytest.fixture
    def catalog(self, services, seed_job):
        ids = {
            "backend": seed_job(services),
            "remote": seed_job(
                services,
                title="Remote Python Developer",
                company="Globex",
                location="Anywhere",
                workType="remote",
                salary={"min": 90000, "max": 120000},
            ),
            "contract": seed_job(
                services,
                title="Frontend Contractor",
                company="Initech",
                location="Munich",
                jobType="contract",
                workType="onsite",
                skills=["react"],
                salary=None,
                postedDate=(utcnow() - timedelta(days=40)).isoformat(),
            ),
            "pending": seed_job(services, title="Unreviewed Role", approve=False),
        }
        services.jobs.set_job_status(
            seed_job(services, title="Filled Role"), JobStatus.FILLED, ADMIN
        )
        seed_job(services, user_id="user-2", profile=build_profile("user-2"))
        return ids

    def test_users_only_see_their_active_approved_jobs(self, services, catalog):
        page = services.jobs.search(JobSearchFilters(), USER)

        assert {job.id for job in page.items} == {catalog["backend"], catalog["remote"], catalog["contract"]}
        assert page.total == 3

    def test_admins_see_everything(self, services, catalog):
        assert services.jobs.search(JobSearchFilters(), ADMIN).total == 6
        assert services.jobs.search(JobSearchFilters(target_user_id="user-2"), ADMIN).total == 1
        assert services.jobs.search(JobSearchFilters(status=JobStatus.FILLED), ADMIN).total == 1

    def test_default_sort_is_match_score_descending(self, services, catalog):
        scores = [job.match_score for job in services.jobs.search(JobSearchFilters(), USER).items]
        assert scores == sorted(scores, reverse=True)

    def test_free_text_and_location(self, services, catalog):
        by_text = services.jobs.search(JobSearchFilters(q="globex"), USER)
        assert [job.id for job in by_text.items] == [catalog["remote"]]

        by_location = services.jobs.search(JobSearchFilters(location="munich"), USER)
        assert [job.id for job in by_location.items] == [catalog["contract"]]

    def test_type_filters(self, services, catalog):
        contract = services.jobs.search(JobSearchFilters(job_type="contract"), USER)
        assert [job.id for job in contract.items] == [catalog["contract"]]

        remote = services.jobs.search(JobSearchFilters(work_type="remote"), USER)
        assert [job.id for job in remote.items] == [catalog["remote"]]

    def test_salary_overlap(self, services, catalog):
        high = services.jobs.search(JobSearchFilters(min_salary=100000), USER)
        assert [job.id for job in high.items] == [catalog["remote"]]

        low = services.jobs.search(JobSearchFilters(max_salary=70000), USER)
        assert catalog["backend"] in {job.id for job in low.items}
        assert catalog["remote"] not in {job.id for job in low.items}

    def test_min_match_score_and_posted_cutoff(self, services, catalog):
        strong = services.jobs.search(JobSearchFilters(min_match_score=80), USER)
        assert all(job.match_score >= 80 for job in strong.items)
        assert catalog["contract"] not in {job.id for job in strong.items}

        recent = services.jobs.search(JobSearchFilters(posted_within_days=30), USER)
        assert catalog["contract"] not in {job.id for job in recent.items}
        assert recent.total == 2

    def test_aware_cutoff_combines_with_posted_window(self, services, catalog):
        cutoff = datetime(2020, 1, 1, tzinfo=timezone.utc)

        page = services.jobs.search(JobSearchFilters(posted_since=cutoff, posted_within_days=30), USER)

        assert {job.id for job in page.items} == {catalog["backend"], catalog["remote"]}

    def test_aware_cutoff_is_compared_in_utc(self, services, catalog):
        plus_five = timezone(timedelta(hours=5))
        an_hour_ago = (datetime.now(timezone.utc) - timedelta(hours=1)).astimezone(plus_five)

        page = services.jobs.search(JobSearchFilters(posted_since=an_hour_ago), USER)

        assert page.total == 2
        assert catalog["contract"] not in {job.id for job in page.items}

    def test_sorting_and_pagination(self, services, catalog):
        first = services.jobs.search(JobSearchFilters(sort_by="company", sort_order="asc", page_size=2), USER)
        second = services.jobs.search(
            JobSearchFilters(sort_by="company", sort_order="asc", page=2, page_size=2), USER
        )

        assert [job.company for job in first.items] == ["Acme GmbH", "Globex"]
        assert [job.company for job in second.items] == ["Initech"]
        assert first.total == 3
        assert first.total_pages == 2
