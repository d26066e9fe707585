# app/models/ingest.py
from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field


class IngestSuccess(BaseModel):
    key: str
    record: Any = None


class IngestFailure(BaseModel):
    key: str
    reason: str


class IngestSkip(BaseModel):
    key: str
    reason: str


class IngestReport(BaseModel):
    """
    Per-item outcome of one batch run. Success, failure and skip are separate
    buckets; a batch never fails as a whole because of a single item.
    """

    succeeded: List[IngestSuccess] = Field(default_factory=list)
    failed: List[IngestFailure] = Field(default_factory=list)
    skipped: List[IngestSkip] = Field(default_factory=list)

    def add_success(self, key: str, record: Any = None) -> None:
        self.succeeded.append(IngestSuccess(key=key, record=record))

    def add_failure(self, key: str, reason: str) -> None:
        self.failed.append(IngestFailure(key=key, reason=reason))

    def add_skip(self, key: str, reason: str) -> None:
        self.skipped.append(IngestSkip(key=key, reason=reason))

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped)

    @property
    def ok(self) -> bool:
        return not self.failed

    def counters(self) -> dict:
        return {
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
        }


class BlogNewsRun(BaseModel):
    blog_id: str
    blog_name: str
    report: IngestReport = Field(default_factory=IngestReport)
    error: Optional[str] = None


class NewsSweepResult(BaseModel):
    blogs_processed: int = 0
    total_generated: int = 0
    total_errors: int = 0
    total_skipped: int = 0
    details: List[BlogNewsRun] = Field(default_factory=list)
