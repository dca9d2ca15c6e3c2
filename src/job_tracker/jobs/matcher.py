"""Match scoring between a job and a user profile."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from job_tracker.core.models import UserProfile, WorkType


@dataclass
class MatchBreakdown:
    """Points awarded per scoring category."""
    skills: float = 0.0
    location: float = 0.0
    job_type: float = 0.0
    work_type: float = 0.0
    matched_skills: List[str] = field(default_factory=list)
    missing_skills: List[str] = field(default_factory=list)

    @property
    def raw_total(self) -> float:
        return self.skills + self.location + self.job_type + self.work_type

    @property
    def score(self) -> int:
        # Half-up rounding, then clamp to the 0-100 range
        return max(0, min(100, int(math.floor(self.raw_total + 0.5))))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "skills": round(self.skills, 2),
            "location": self.location,
            "job_type": self.job_type,
            "work_type": self.work_type,
            "matched_skills": self.matched_skills,
            "missing_skills": self.missing_skills,
        }


def _value(item: Any) -> Optional[str]:
    if item is None:
        return None
    return item.value if isinstance(item, Enum) else str(item)


def _listed(items: Optional[Iterable[Any]]) -> List[str]:
    return [str(item).strip().lower() for item in (items or []) if item and str(item).strip()]


def _normalized(items: Optional[Iterable[Any]]) -> Set[str]:
    return set(_listed(items))


class MatchScorer:
    """
    Scores how well a job fits a profile on a 0-100 scale.

    Works on any job object exposing ``skills``, ``location``, ``work_type``
    and ``job_type``; stored jobs and raw scraped postings both qualify.
    Scoring is pure: no I/O, no logging, same inputs give the same score.
    """

    def __init__(self):
        # Category weights for overall scoring
        self.category_weights = {
            "skills": 40.0,
            "location": 20.0,
            "job_type": 20.0,
            "work_type": 20.0,
        }

    def score(self, job: Any, profile: UserProfile) -> int:
        return self.breakdown(job, profile).score

    def breakdown(self, job: Any, profile: UserProfile) -> MatchBreakdown:
        result = MatchBreakdown()
        preferences = profile.job_preferences

        self._score_skills(job, profile, result)

        if self._location_matches(job, preferences.preferred_locations):
            result.location = self.category_weights["location"]

        job_type = _value(getattr(job, "job_type", None))
        if job_type and job_type in {_value(t) for t in preferences.preferred_job_types}:
            result.job_type = self.category_weights["job_type"]

        work_type = _value(getattr(job, "work_type", None))
        if work_type and work_type in {_value(t) for t in preferences.preferred_work_types}:
            result.work_type = self.category_weights["work_type"]

        return result

    def _score_skills(self, job: Any, profile: UserProfile, result: MatchBreakdown) -> None:
        listed = _listed(getattr(job, "skills", None))
        job_skills = set(listed)
        user_skills = _normalized(profile.skills)
        if not job_skills or not user_skills:
            result.missing_skills = sorted(job_skills)
            return

        matched = job_skills & user_skills
        # Denominator is the job's skill list as posted, repeats included
        result.skills = self.category_weights["skills"] * len(matched) / len(listed)
        result.matched_skills = sorted(matched)
        result.missing_skills = sorted(job_skills - matched)

    @staticmethod
    def _location_matches(job: Any, preferred_locations: List[str]) -> bool:
        if _value(getattr(job, "work_type", None)) == WorkType.REMOTE.value:
            return True

        job_location = (getattr(job, "location", None) or "").strip().lower()
        if not job_location:
            return False

        for preferred in preferred_locations:
            candidate = (preferred or "").strip().lower()
            if candidate and (candidate in job_location or job_location in candidate):
                return True
        return False


default_scorer = MatchScorer()


def score_job(job: Any, profile: UserProfile) -> int:
    """Score a job against a profile with the default weights."""
    return default_scorer.score(job, profile)
