"""Wiring of the tracker components."""

from dataclasses import dataclass
from typing import Optional

from job_tracker.db.session import Database
from job_tracker.jobs.application import ApplicationWorkflow
from job_tracker.jobs.matcher import MatchScorer
from job_tracker.jobs.records import JobRecordManager
from job_tracker.notifications import LoggingNotificationHook, NotificationDispatcher
from job_tracker.profiles import SqlProfileProvider
from job_tracker.scraping.client import ScraperClient
from job_tracker.scraping.orchestrator import ScrapingOrchestrator
from job_tracker.stats.aggregator import StatisticsAggregator


@dataclass
class TrackerServices:
    """All components sharing one database."""
    database: Database
    profiles: SqlProfileProvider
    scorer: MatchScorer
    jobs: JobRecordManager
    applications: ApplicationWorkflow
    orchestrator: ScrapingOrchestrator
    stats: StatisticsAggregator
    notifier: NotificationDispatcher

    @classmethod
    def build(
        cls,
        database: Optional[Database] = None,
        scraper: Optional[ScraperClient] = None,
        notifier: Optional[NotificationDispatcher] = None,
        create_schema: bool = True,
    ) -> "TrackerServices":
        database = database or Database()
        if create_schema:
            database.create_all()

        if notifier is None:
            notifier = NotificationDispatcher()
            notifier.register(LoggingNotificationHook())

        profiles = SqlProfileProvider(database)
        scorer = MatchScorer()
        jobs = JobRecordManager(database, profiles, scorer)
        return cls(
            database=database,
            profiles=profiles,
            scorer=scorer,
            jobs=jobs,
            applications=ApplicationWorkflow(database, notifier),
            orchestrator=ScrapingOrchestrator(database, profiles, jobs, scraper),
            stats=StatisticsAggregator(database),
            notifier=notifier,
        )

    async def aclose(self) -> None:
        await self.orchestrator.shutdown()
        self.database.dispose()
