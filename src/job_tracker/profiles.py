"""Profile provider backed by the users table."""

from datetime import datetime
from typing import Optional, Protocol

from job_tracker.core.models import (
    ActorRole,
    JobPreferences,
    PackageInfo,
    UserProfile,
)
from job_tracker.db.session import Database
from job_tracker.db.tables import UserRecord
from job_tracker.utils.logging import get_logger

logger = get_logger(__name__)


class ProfileProvider(Protocol):
    """Read access to user profiles."""

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        ...

    def record_scraping_run(self, user_id: str, when: datetime) -> None:
        ...


class SqlProfileProvider:
    """Reads and writes profiles stored in the users table."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logger.bind(component="profile_provider")

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        with self.database.session() as session:
            record = session.get(UserRecord, user_id)
            if record is None or not record.is_active:
                return None
            return self._to_profile(record)

    def save_profile(self, profile: UserProfile, role: ActorRole = ActorRole.USER) -> UserProfile:
        """Create or replace a user's profile."""
        with self.database.session() as session:
            record = session.get(UserRecord, profile.user_id)
            if record is None:
                record = UserRecord(id=profile.user_id)
                session.add(record)

            record.name = profile.name
            record.email = profile.email
            record.phone = profile.phone
            record.role = role
            record.current_job_title = profile.current_job_title
            record.experience_level = profile.experience_level
            record.education_level = profile.education_level
            record.skills = list(profile.skills)
            record.location = profile.location
            record.bio = profile.bio
            record.resume_url = profile.resume_url
            record.job_preferences = profile.job_preferences.model_dump(mode="json")
            record.package = profile.package.model_dump(mode="json")
            record.onboarding_completed = profile.onboarding_completed
            record.last_job_scraping_run = profile.last_job_scraping_run

        self.logger.info("Profile saved", user_id=profile.user_id, role=role.value)
        return profile

    def record_scraping_run(self, user_id: str, when: datetime) -> None:
        with self.database.session() as session:
            record = session.get(UserRecord, user_id)
            if record is not None:
                record.last_job_scraping_run = when

    @staticmethod
    def _to_profile(record: UserRecord) -> UserProfile:
        return UserProfile(
            user_id=record.id,
            name=record.name or "",
            email=record.email or "",
            phone=record.phone,
            current_job_title=record.current_job_title,
            experience_level=record.experience_level,
            education_level=record.education_level,
            skills=list(record.skills or []),
            location=record.location,
            bio=record.bio,
            resume_url=record.resume_url,
            job_preferences=JobPreferences(**(record.job_preferences or {})),
            package=PackageInfo(**(record.package or {})),
            onboarding_completed=record.onboarding_completed,
            last_job_scraping_run=record.last_job_scraping_run,
        )
