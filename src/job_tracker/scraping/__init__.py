"""Scraper client and session orchestration."""

from .client import ScraperClient, ScrapeOutcome
from .orchestrator import ScrapingOrchestrator, build_search_criteria

__all__ = [
    "ScraperClient",
    "ScrapeOutcome",
    "ScrapingOrchestrator",
    "build_search_criteria",
]
