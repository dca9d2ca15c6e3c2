"""HTTP client for the external job scraping service."""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from job_tracker.config import settings
from job_tracker.core.errors import UpstreamFailure
from job_tracker.core.models import ScrapeRequest, ScraperResponse
from job_tracker.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ScrapeOutcome:
    """Parsed scraper response plus transport facts recorded on the session."""
    response: ScraperResponse
    status_code: int
    elapsed_ms: int


class ScraperClient:
    """
    Client for the scraping service.

    One request/response call per session. Transport errors, timeouts,
    non-2xx responses and malformed bodies all raise UpstreamFailure.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.scraper_service_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.scraper_api_key
        self.timeout = timeout or settings.scraper_timeout_seconds

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key

        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=transport,
        )

        self.logger = logger.bind(component="scraper_client")

    async def scrape_jobs(self, request: ScrapeRequest, timeout: Optional[float] = None) -> ScrapeOutcome:
        """
        Ask the scraper for postings matching a session's criteria.

        Args:
            request: Session id, user id, criteria, profile summary and settings
            timeout: Overrides the client timeout for this call

        Returns:
            ScrapeOutcome with the parsed body, status code and elapsed time
        """
        payload = request.model_dump(by_alias=True, mode="json")
        started = time.perf_counter()

        self.logger.info(
            "Calling scraper",
            session_id=request.session_id,
            user_id=request.user_id,
            platforms=request.settings.platforms,
        )

        try:
            response = await self.client.post(
                "/api/scrape-jobs",
                json=payload,
                timeout=timeout or self.timeout,
            )
        except httpx.TimeoutException as e:
            raise UpstreamFailure(
                f"Scraper request timed out: {e}",
                timeout=True,
                details={"session_id": request.session_id},
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamFailure(
                f"Scraper request failed: {type(e).__name__}: {e}",
                details={"session_id": request.session_id},
            ) from e

        elapsed_ms = int((time.perf_counter() - started) * 1000)

        if not response.is_success:
            raise UpstreamFailure(
                f"Scraper returned HTTP {response.status_code}",
                status_code=response.status_code,
                details={"session_id": request.session_id, "body": response.text[:500]},
            )

        try:
            body = response.json()
            if isinstance(body, dict) and isinstance(body.get("data"), dict):
                # Some deployments wrap the payload in {"success": ..., "data": {...}}
                body = body["data"]
            parsed = ScraperResponse.model_validate(body)
        except (ValueError, ValidationError) as e:
            raise UpstreamFailure(
                f"Malformed scraper response: {e}",
                status_code=response.status_code,
                details={"session_id": request.session_id},
            ) from e

        self.logger.info(
            "Scraper responded",
            session_id=request.session_id,
            status_code=response.status_code,
            jobs=len(parsed.jobs),
            total_jobs_found=parsed.total_jobs_found,
            elapsed_ms=elapsed_ms,
        )
        return ScrapeOutcome(response=parsed, status_code=response.status_code, elapsed_ms=elapsed_ms)

    async def cancel_scraping(self, session_id: str) -> bool:
        """Best-effort remote cancellation. Returns whether the scraper acknowledged it."""
        try:
            response = await self.client.post(
                "/api/cancel-scraping",
                json={"sessionId": session_id},
                timeout=settings.scraper_cancel_timeout_seconds,
            )
        except httpx.HTTPError as e:
            self.logger.warning("Remote cancellation failed", session_id=session_id, error=str(e))
            return False

        if not response.is_success:
            self.logger.warning(
                "Remote cancellation rejected",
                session_id=session_id,
                status_code=response.status_code,
            )
            return False
        return True

    async def health_check(self) -> Dict[str, Any]:
        try:
            response = await self.client.get("/health", timeout=settings.scraper_cancel_timeout_seconds)
        except httpx.HTTPError as e:
            return {"status": "unhealthy", "error": str(e)}

        if not response.is_success:
            return {"status": "unhealthy", "status_code": response.status_code}

        try:
            details = response.json()
        except ValueError:
            details = {}
        return {"status": "healthy", "status_code": response.status_code, "details": details}

    async def aclose(self) -> None:
        await self.client.aclose()
