"""Result models for mailbox sync, lease renewal and ledger purge."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class SyncResult(BaseModel):
    """Outcome of one sync_mailbox pass."""

    mailbox_id: int
    success: bool
    sync_type: Literal["incremental", "full", "none"] = "none"
    messages_processed: int = 0
    messages_skipped: int = 0
    messages_failed: int = 0
    conversations_updated: int = 0
    extraction_jobs: int = 0
    cursor: Optional[str] = None
    cursor_advanced: bool = False
    error: Optional[str] = None


class LeaseRenewalResult(BaseModel):
    """Per-mailbox entry of a lease sweep."""

    mailbox_id: int
    email: str
    success: bool
    error: Optional[str] = None
    new_expiration: Optional[datetime] = None


class LeaseSweepReport(BaseModel):
    renewed: int = 0
    failed: int = 0
    total: int = 0
    results: list[LeaseRenewalResult] = Field(default_factory=list)


class PurgeReport(BaseModel):
    deleted: int
    cutoff_time: datetime
