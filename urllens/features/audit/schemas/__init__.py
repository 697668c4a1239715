from .probe import BotSignal, BotVendor, ProbeOutcome, RedirectHop, MAX_REDIRECT_HOPS
from .score import AuditResult, Recommendation, ScoreBreakdown
from .discovery import DiscoveredURL, DiscoveryResult, DiscoverySource, DiscoverySourceType
from .audit import (
    AuditJobResponse,
    AuditMode,
    AuditProgress,
    AuditRequest,
    AuditRunResult,
    AuditSession,
    AuditStatus,
    AuditSummary,
    DiscoverRequest,
    ProtectionCount,
)

__all__ = [
    "BotSignal",
    "BotVendor",
    "ProbeOutcome",
    "RedirectHop",
    "MAX_REDIRECT_HOPS",
    "AuditResult",
    "Recommendation",
    "ScoreBreakdown",
    "DiscoveredURL",
    "DiscoveryResult",
    "DiscoverySource",
    "DiscoverySourceType",
    "AuditJobResponse",
    "AuditMode",
    "AuditProgress",
    "AuditRequest",
    "AuditRunResult",
    "AuditSession",
    "AuditStatus",
    "AuditSummary",
    "DiscoverRequest",
    "ProtectionCount",
]
