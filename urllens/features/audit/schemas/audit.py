"""
Audit Schemas

Request/response models for the audit API and the session records the audit
service hands to the persistence store.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from urllens.features.audit.schemas.discovery import DiscoveryResult
from urllens.features.audit.schemas.score import AuditResult
from urllens.platform.config import settings
from urllens.platform.exceptions import InvalidSessionTransition
from urllens.platform.utils.url_validator import is_valid_domain, normalize_domain, validate_urls


# ============================================================================
# Session
# ============================================================================

class AuditMode(str, Enum):
    BATCH = "batch"
    DOMAIN = "domain"


class AuditStatus(str, Enum):
    """Audit session status state machine"""
    PENDING = "pending"
    DISCOVERING = "discovering"
    TESTING = "testing"
    SCORING = "scoring"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: Dict[AuditStatus, frozenset] = {
    AuditStatus.PENDING: frozenset({AuditStatus.DISCOVERING, AuditStatus.TESTING, AuditStatus.FAILED}),
    AuditStatus.DISCOVERING: frozenset({AuditStatus.TESTING, AuditStatus.FAILED}),
    AuditStatus.TESTING: frozenset({AuditStatus.SCORING, AuditStatus.FAILED}),
    AuditStatus.SCORING: frozenset({AuditStatus.COMPLETED, AuditStatus.FAILED}),
    AuditStatus.COMPLETED: frozenset(),
    AuditStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({AuditStatus.COMPLETED, AuditStatus.FAILED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditSession(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    mode: AuditMode
    domain: Optional[str] = None
    total_urls: int = 0
    completed_urls: int = 0
    status: AuditStatus = AuditStatus.PENDING
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, status: AuditStatus, error: Optional[str] = None) -> None:
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidSessionTransition(
                f"Cannot move audit session {self.id} from {self.status.value} to {status.value}"
            )
        self.status = status
        if status in TERMINAL_STATUSES:
            self.completed_at = _utcnow()
        if error is not None:
            self.error = error


class AuditProgress(BaseModel):
    session_id: Optional[str] = None
    status: AuditStatus
    current_step: str
    total_urls: int
    completed_urls: int
    percent_complete: int = 0

    @classmethod
    def build(
        cls,
        status: AuditStatus,
        current_step: str,
        total_urls: int,
        completed_urls: int,
        session_id: Optional[str] = None,
    ) -> "AuditProgress":
        percent = round(completed_urls / total_urls * 100) if total_urls else 0
        return cls(
            session_id=session_id,
            status=status,
            current_step=current_step,
            total_urls=total_urls,
            completed_urls=completed_urls,
            percent_complete=percent,
        )


# ============================================================================
# Summary
# ============================================================================

class ProtectionCount(BaseModel):
    name: str
    count: int


class AuditSummary(BaseModel):
    total_urls: int
    accessible_count: int
    blocked_count: int
    average_score: int
    js_required_count: int
    best_entry_points: List[AuditResult] = Field(default_factory=list, max_length=5)
    by_status: Dict[int, int] = Field(default_factory=dict)
    recommendation_breakdown: Dict[str, int] = Field(default_factory=dict)
    common_protections: List[ProtectionCount] = Field(default_factory=list)


class AuditRunResult(BaseModel):
    session: AuditSession
    results: List[AuditResult]
    discovery: Optional[DiscoveryResult] = None
    summary: AuditSummary


# ============================================================================
# Requests
# ============================================================================

class AuditRequest(BaseModel):
    """Request to audit a batch of URLs or a whole domain."""
    mode: AuditMode
    urls: Optional[List[str]] = None
    domain: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "mode": "batch",
                "urls": ["https://example.com", "https://example.com/about"],
            }
        }

    @model_validator(mode="after")
    def _validate_for_mode(self) -> "AuditRequest":
        if self.mode == AuditMode.BATCH:
            if not self.urls:
                raise ValueError("URLs array is required for batch mode")
            if len(self.urls) > settings.AUDIT_MAX_URLS_PER_BATCH:
                raise ValueError(f"Maximum {settings.AUDIT_MAX_URLS_PER_BATCH} URLs allowed per batch")
            valid, invalid = validate_urls(self.urls)
            if invalid:
                shown = ", ".join(str(url) for url in invalid[:3])
                more = "..." if len(invalid) > 3 else ""
                raise ValueError(f"Invalid URLs found: {shown}{more}")
            self.urls = valid
            self.domain = None
        else:
            if not self.domain:
                raise ValueError("Domain is required for domain mode")
            if not is_valid_domain(self.domain):
                raise ValueError("Invalid domain format")
            self.domain = normalize_domain(self.domain)
            self.urls = None
        return self


class DiscoverRequest(BaseModel):
    domain: str
    max_urls: Optional[int] = Field(default=None, ge=1, le=500)
    include_common_paths: bool = True

    class Config:
        json_schema_extra = {
            "example": {
                "domain": "example.com",
                "max_urls": 50,
                "include_common_paths": True,
            }
        }

    @model_validator(mode="after")
    def _validate_domain(self) -> "DiscoverRequest":
        if not is_valid_domain(self.domain):
            raise ValueError("Invalid domain format")
        self.domain = normalize_domain(self.domain)
        return self


class AuditJobResponse(BaseModel):
    session_id: str
    status: str
    message: str
