import asyncio
import logging
import socket
import ssl
import time
from typing import Dict, List, Optional
from urllib.parse import urljoin

import httpx

from urllens.features.audit.schemas.probe import ProbeOutcome, RedirectHop
from urllens.features.audit.services.probing.signatures import (
    SignatureCatalog,
    cookie_names_from_headers,
    load_signature_catalog,
)
from urllens.platform.config import settings

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
HEAD_REJECTED_STATUSES = frozenset({405, 501})
HTML_CONTENT_TYPES = ("text/html", "application/xhtml")
TIMEOUT_STATUS = 408

_DNS_HINTS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "temporary failure in name resolution",
    "no address associated",
    "enotfound",
)
_REFUSED_HINTS = ("connection refused", "econnrefused", "errno 111", "errno 61")
_TLS_HINTS = ("ssl", "certificate", "tls")


def is_html_content_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    lowered = content_type.lower()
    return any(kind in lowered for kind in HTML_CONTENT_TYPES)


def classify_network_error(exc: Exception) -> str:
    """Map an HTTP client failure onto a short, user-facing blocked reason."""
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "Timeout"

    cause = exc.__cause__ or exc.__context__
    if isinstance(cause, socket.gaierror):
        return "DNS resolution failed"
    if isinstance(cause, ConnectionRefusedError):
        return "Connection refused"
    if isinstance(cause, ssl.SSLError):
        return "SSL/TLS error"

    message = str(exc) or type(exc).__name__
    lowered = message.lower()
    if any(hint in lowered for hint in _DNS_HINTS):
        return "DNS resolution failed"
    if any(hint in lowered for hint in _REFUSED_HINTS):
        return "Connection refused"
    if any(hint in lowered for hint in _TLS_HINTS):
        return "SSL/TLS error"
    return f"Network error: {message}"


class _ProbeState:
    """Scratch state of one probe; survives cancellation so partial hops are kept."""

    def __init__(self, url: str):
        self.requested_url = url
        self.current_url = url
        self.redirects: List[RedirectHop] = []
        self.status = 0
        self.content_type: Optional[str] = None
        self.headers: Dict[str, str] = {}
        self.cookie_names: List[str] = []
        self.body = ""
        self.accessible = False
        self.blocked_reason: Optional[str] = None

    def record_response(self, response: httpx.Response) -> None:
        self.status = response.status_code
        self.content_type = response.headers.get("content-type")
        self.headers = {k.lower(): v for k, v in response.headers.items()}
        self.cookie_names = cookie_names_from_headers(response.headers.get_list("set-cookie"))

    def fail(self, reason: str, status: int) -> None:
        self.accessible = False
        self.blocked_reason = reason
        self.status = status
        self.content_type = None
        self.body = ""


class UrlProber:
    """
    One bounded HTTP investigation per URL: manual redirect walk with HEAD,
    a body sample for HTML pages, then bot-protection and JavaScript
    fingerprinting. Every failure is returned as data on the ProbeOutcome.
    """

    def __init__(
        self,
        catalog: Optional[SignatureCatalog] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        user_agent: Optional[str] = None,
        max_redirects: Optional[int] = None,
        max_body_bytes: Optional[int] = None,
        default_timeout: Optional[float] = None,
    ):
        self.catalog = catalog or load_signature_catalog()
        self.transport = transport
        self.user_agent = user_agent or settings.AUDIT_USER_AGENT
        self.max_redirects = settings.AUDIT_MAX_REDIRECTS if max_redirects is None else max_redirects
        self.max_body_bytes = max_body_bytes or settings.AUDIT_MAX_BODY_BYTES
        self.default_timeout = default_timeout or settings.AUDIT_TIMEOUT_SECONDS

    async def probe(self, url: str, timeout: Optional[float] = None) -> ProbeOutcome:
        timeout = timeout or self.default_timeout
        state = _ProbeState(url)
        start_time = time.perf_counter()

        try:
            await asyncio.wait_for(self._investigate(state, timeout), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            state.fail("Timeout", TIMEOUT_STATUS)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            state.fail(classify_network_error(e), 0)

        response_time_ms = int((time.perf_counter() - start_time) * 1000)
        outcome = self._build_outcome(state, response_time_ms)

        logger.debug(
            f"Probed {url}: status={outcome.http_status} accessible={outcome.accessible} "
            f"hops={len(outcome.redirect_chain)} signals={[s.vendor.value for s in outcome.bot_signals]} "
            f"({response_time_ms}ms)"
        )
        return outcome

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=False,
            timeout=timeout,
            transport=self.transport,
            headers={
                "User-Agent": self.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.5",
            },
        )

    async def _investigate(self, state: _ProbeState, timeout: float) -> None:
        async with self._client(timeout) as client:
            response = await self._fetch_metadata(client, state.current_url)

            while response.status_code in REDIRECT_STATUSES and len(state.redirects) < self.max_redirects:
                location = response.headers.get("location")
                if not location:
                    break
                next_url = urljoin(state.current_url, location)
                state.redirects.append(
                    RedirectHop(from_url=state.current_url, to_url=next_url, status=response.status_code)
                )
                state.current_url = next_url
                response = await self._fetch_metadata(client, next_url)

            state.record_response(response)

            if state.status in REDIRECT_STATUSES:
                if len(state.redirects) >= self.max_redirects:
                    state.blocked_reason = "Redirect limit reached"
                else:
                    state.blocked_reason = "Redirect without Location header"
                return

            if not self._admissible(state):
                return

            await self._fetch_body(client, state)

    async def _fetch_metadata(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        response = await client.head(url)
        if response.status_code in HEAD_REJECTED_STATUSES:
            # Server refuses HEAD; a streamed GET whose body is never read stands in
            async with client.stream("GET", url) as response:
                pass
        return response

    async def _fetch_body(self, client: httpx.AsyncClient, state: _ProbeState) -> None:
        async with client.stream("GET", state.current_url) as response:
            state.record_response(response)
            if not self._admissible(state):
                return
            state.body = await self._read_sample(response)
            state.accessible = True

    def _admissible(self, state: _ProbeState) -> bool:
        if not 200 <= state.status < 300:
            state.blocked_reason = f"HTTP {state.status}"
            return False
        if not is_html_content_type(state.content_type):
            state.blocked_reason = (
                f"Non-HTML content: {state.content_type}" if state.content_type else "Missing content type"
            )
            return False
        return True

    async def _read_sample(self, response: httpx.Response) -> str:
        chunks = []
        size = 0
        async for chunk in response.aiter_bytes():
            chunk = chunk[: self.max_body_bytes - size]
            chunks.append(chunk)
            size += len(chunk)
            if size >= self.max_body_bytes:
                break
        return b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")

    def _build_outcome(self, state: _ProbeState, response_time_ms: int) -> ProbeOutcome:
        bot_signals = self.catalog.detect_bot_signals(state.body, state.headers, state.cookie_names)
        js_required = self.catalog.detect_js_required(state.body)

        return ProbeOutcome(
            requested_url=state.requested_url,
            final_url=state.current_url,
            http_status=state.status,
            redirect_chain=tuple(state.redirects),
            accessible=state.accessible,
            blocked_reason=None if state.accessible else state.blocked_reason,
            content_type=state.content_type,
            js_required=js_required,
            bot_signals=tuple(bot_signals),
            response_time_ms=response_time_ms,
            body_sample=state.body,
        )
