"""Tests for the profile provider and profile helpers."""

from datetime import datetime, timedelta

import pytest

from conftest import build_profile
from job_tracker.core.models import PackageInfo, PackageType, UserProfile, profile_completeness
from job_tracker.db.tables import UserRecord


class TestProfileProvider:

    def test_save_and_read_back(self, services):
        saved = build_profile("user-1", bio="Builds things", package=PackageInfo(type=PackageType.PREMIUM))
        services.profiles.save_profile(saved)

        profile = services.profiles.get_profile("user-1")

        assert profile.skills == ["Python", "SQL", "Docker"]
        assert profile.job_preferences.preferred_locations == ["Berlin"]
        assert profile.package.type == PackageType.PREMIUM
        assert profile.bio == "Builds things"
        assert profile.onboarding_completed

    def test_save_replaces_existing_profile(self, services):
        services.profiles.save_profile(build_profile("user-1"))
        services.profiles.save_profile(build_profile("user-1", skills=["Go"]))

        assert services.profiles.get_profile("user-1").skills == ["Go"]

    def test_unknown_and_inactive_users_have_no_profile(self, services):
        services.profiles.save_profile(build_profile("user-1"))
        with services.database.session() as session:
            session.get(UserRecord, "user-1").is_active = False

        assert services.profiles.get_profile("user-1") is None
        assert services.profiles.get_profile("ghost") is None

    def test_record_scraping_run(self, services):
        services.profiles.save_profile(build_profile("user-1"))
        when = datetime(2030, 5, 1, 12, 0)

        services.profiles.record_scraping_run("user-1", when)
        services.profiles.record_scraping_run("ghost", when)

        assert services.profiles.get_profile("user-1").last_job_scraping_run == when


class TestPackage:

    def test_no_expiry_never_expires(self):
        assert not PackageInfo().is_expired(datetime(2100, 1, 1))

    def test_expiry(self):
        now = datetime(2030, 1, 1)
        package = PackageInfo(expires_at=now)

        assert not package.is_expired(now - timedelta(seconds=1))
        assert package.is_expired(now + timedelta(seconds=1))


class TestProfileCompleteness:

    def test_empty_profile(self):
        assert profile_completeness(UserProfile(user_id="user-1")) == 0

    def test_blank_strings_do_not_count(self):
        assert profile_completeness(UserProfile(user_id="user-1", name="   ", bio="")) == 0

    @pytest.mark.parametrize("fields, expected", [
        ({"name": "Ada"}, 10),
        ({"name": "Ada", "email": "ada@example.com", "skills": ["Python"]}, 30),
        ({"resume_url": "https://files.example.com/cv.pdf"}, 10),
    ])
    def test_partial_profiles(self, fields, expected):
        assert profile_completeness(UserProfile(user_id="user-1", **fields)) == expected

    def test_full_profile_is_capped_at_100(self):
        profile = build_profile(
            "user-1",
            phone="+49 30 1234",
            education_level="master",
            bio="Backend engineer",
            resume_url="https://files.example.com/cv.pdf",
        )

        assert profile_completeness(profile) == 100
