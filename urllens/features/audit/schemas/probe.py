"""
Probe Schemas

Immutable records produced by one probe of one URL.
"""
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_REDIRECT_HOPS = 10


class BotVendor(str, Enum):
    CLOUDFLARE = "Cloudflare"
    AKAMAI = "Akamai"
    PERIMETERX = "PerimeterX"
    DATADOME = "DataDome"
    IMPERVA = "Imperva"
    RECAPTCHA = "reCAPTCHA"
    HCAPTCHA = "hCaptcha"
    DISTIL_NETWORKS = "DistilNetworks"
    SHAPE_SECURITY = "ShapeSecurity"
    CHALLENGE_PAGE = "ChallengePage"


class RedirectHop(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_url: str
    to_url: str
    status: int


class BotSignal(BaseModel):
    model_config = ConfigDict(frozen=True)

    vendor: BotVendor
    evidence: str


class ProbeOutcome(BaseModel):
    """Result of one bounded investigation of a single URL. Never mutated."""

    model_config = ConfigDict(frozen=True)

    requested_url: str
    final_url: str
    http_status: int = 0
    redirect_chain: Tuple[RedirectHop, ...] = Field(default=(), max_length=MAX_REDIRECT_HOPS)
    accessible: bool = False
    blocked_reason: Optional[str] = None
    content_type: Optional[str] = None
    js_required: bool = False
    bot_signals: Tuple[BotSignal, ...] = ()
    response_time_ms: int = 0
    body_sample: str = Field(default="", exclude=True, repr=False)

    @field_validator("bot_signals")
    @classmethod
    def _one_signal_per_vendor(cls, signals: Tuple[BotSignal, ...]) -> Tuple[BotSignal, ...]:
        seen = set()
        unique = []
        for signal in signals:
            if signal.vendor not in seen:
                seen.add(signal.vendor)
                unique.append(signal)
        return tuple(unique)

    @property
    def has_bot_signals(self) -> bool:
        return len(self.bot_signals) > 0

    @property
    def vendors(self) -> Tuple[BotVendor, ...]:
        return tuple(signal.vendor for signal in self.bot_signals)
