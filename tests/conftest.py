"""Shared fixtures for the job tracker tests."""

from typing import Any, Callable, Dict, Optional

import pytest

from job_tracker.core.models import (
    Actor,
    ActorRole,
    JobPreferences,
    JobType,
    PackageInfo,
    UserProfile,
    WorkType,
)
from job_tracker.db.session import Database
from job_tracker.scraping.client import ScraperClient
from job_tracker.services import TrackerServices

ADMIN = Actor(id="admin-1", role=ActorRole.ADMIN)


def build_profile(user_id: str = "user-1", **overrides: Any) -> UserProfile:
    data: Dict[str, Any] = {
        "user_id": user_id,
        "name": "Ada Lovelace",
        "email": f"{user_id}@example.com",
        "current_job_title": "Backend Engineer",
        "experience_level": "3-5",
        "skills": ["Python", "SQL", "Docker"],
        "location": "Berlin, Germany",
        "job_preferences": JobPreferences(
            desired_roles=["Backend Engineer"],
            preferred_locations=["Berlin"],
            preferred_job_types=[JobType.FULL_TIME],
            preferred_work_types=[WorkType.REMOTE, WorkType.HYBRID],
            min_salary=60000,
            max_salary=90000,
        ),
        "package": PackageInfo(),
        "onboarding_completed": True,
    }
    data.update(overrides)
    return UserProfile(**data)


def build_posting(**overrides: Any) -> Dict[str, Any]:
    """A raw posting as the scraper sends it (camelCase)."""
    posting: Dict[str, Any] = {
        "title": "Backend Engineer",
        "company": "Acme GmbH",
        "location": "Berlin, Germany",
        "workType": "hybrid",
        "jobType": "full_time",
        "salary": {"min": 65000, "max": 85000, "currency": "EUR", "period": "yearly"},
        "description": "Build APIs in Python.",
        "skills": ["python", "sql", "kubernetes"],
        "applyUrl": "https://jobs.example.com/acme/backend",
        "platform": "linkedin",
        "originalId": "li-123",
    }
    posting.update(overrides)
    return posting


@pytest.fixture
def make_services() -> Callable[..., TrackerServices]:
    """Factory for services on a fresh database (in-memory unless a URL is given)."""
    created = []

    def factory(url: str = "sqlite://", scraper: Optional[ScraperClient] = None) -> TrackerServices:
        services = TrackerServices.build(database=Database(url, echo=False), scraper=scraper)
        created.append(services)
        return services

    yield factory

    for services in created:
        services.database.dispose()


@pytest.fixture
def services(make_services) -> TrackerServices:
    return make_services()


@pytest.fixture
def file_services(make_services, tmp_path) -> TrackerServices:
    """Services on a file database, so concurrent sessions use separate connections."""
    return make_services(f"sqlite:///{tmp_path / 'tracker.db'}")


@pytest.fixture
def seed_job() -> Callable[..., str]:
    """Ingest one posting for a user (creating the profile if needed) and return the job id."""

    def factory(
        services: TrackerServices,
        user_id: str = "user-1",
        approve: bool = True,
        profile: Optional[UserProfile] = None,
        **posting_overrides: Any,
    ) -> str:
        if services.profiles.get_profile(user_id) is None:
            services.profiles.save_profile(profile or build_profile(user_id))

        result = services.jobs.ingest_batch(user_id, [build_posting(**posting_overrides)])
        assert result.saved == 1, result
        job_id = result.job_ids[0]
        if approve:
            services.jobs.approve(job_id, ADMIN)
        return job_id

    return factory
