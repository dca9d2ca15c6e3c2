"""API models for request/response schemas."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from job_tracker.core.models import ApplicationStatus, JobStatus, TriggerSource


class SaveJobRequest(BaseModel):
    """Save a job for admin-assisted application."""
    notes: Optional[str] = Field(None, max_length=1000, description="Personal notes")


class ApplyRequest(BaseModel):
    """Apply to a job manually."""
    cover_letter: Optional[str] = Field(None, max_length=2000, description="Cover letter text")
    notes: Optional[str] = Field(None, max_length=1000, description="Personal notes")


class ReviewNotes(BaseModel):
    """Optional notes attached to an admin job review."""
    notes: Optional[str] = Field(None, max_length=1000, description="Review notes")


class JobStatusUpdate(BaseModel):
    status: JobStatus = Field(..., description="New job status")


class ApplicationReviewRequest(BaseModel):
    """Admin decision on a pending application."""
    approve: bool = Field(..., description="Approve or reject")
    notes: Optional[str] = Field(None, max_length=1000, description="Admin notes")


class StatusAdvanceRequest(BaseModel):
    """Employer-side status change relayed by an admin."""
    status: ApplicationStatus = Field(..., description="Target status")
    note: Optional[str] = Field(None, max_length=1000, description="Timeline note")


class WithdrawRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000, description="Withdrawal reason")


class NotesUpdate(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000, description="Notes text, None clears")


class FlagsUpdate(BaseModel):
    """Owner-controlled application flags."""
    priority: Optional[int] = Field(None, ge=1, le=5, description="Priority from 1 to 5")
    is_starred: Optional[bool] = Field(None, description="Starred flag")
    is_archived: Optional[bool] = Field(None, description="Archived flag")


class ScrapeTriggerRequest(BaseModel):
    """Request to start a scraping session."""
    user_id: Optional[str] = Field(None, description="Target user, defaults to the actor")
    triggered_by: TriggerSource = Field(TriggerSource.MANUAL, description="What started the session")
    timeout_seconds: Optional[float] = Field(None, gt=0, description="Scraper call timeout")


class ScrapeTriggerResponse(BaseModel):
    """Immediate answer to a trigger; the session outcome is polled separately."""
    status: str = Field(..., description="initiated or skipped")
    session_id: Optional[str] = Field(None, description="Session identifier when initiated")
    message: str = Field(..., description="Result message")


class HealthCheck(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Check timestamp")
    version: str = Field(..., description="Service version")
    components: Dict[str, str] = Field(..., description="Component status")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(..., description="Error timestamp")


class StatusResponse(BaseModel):
    """Generic status response."""
    status: str = Field(..., description="Operation status")
    message: str = Field(..., description="Status message")
    data: Optional[Dict[str, Any]] = Field(None, description="Additional data")
