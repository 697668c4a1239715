import asyncio

import pytest

from urllens.features.audit.schemas.audit import AuditMode, AuditRequest, AuditSession, AuditStatus
from urllens.features.audit.schemas.score import Recommendation
from urllens.features.audit.services.audit_service import AuditService
from urllens.features.audit.services.discovery.domain_discovery import COMMON_PATHS
from urllens.features.audit.services.probing.url_prober import UrlProber
from urllens.platform.exceptions import (
    AuditFailedError,
    InvalidSessionTransition,
    SessionNotFoundError,
)


class HangingProber:
    """Never answers; lets a test cancel a run mid-batch."""

    transport = None

    def __init__(self):
        self.started = asyncio.Event()

    async def probe(self, url, timeout=None):
        self.started.set()
        await asyncio.Event().wait()


class ExplodingOrchestrator:
    async def run_batch(self, urls, on_progress=None, session_id=None):
        raise RuntimeError("worker pool crashed")


@pytest.fixture
def service(fake_site, audit_store):
    return AuditService(store=audit_store, prober=UrlProber(transport=fake_site.transport), concurrency=2)


def batch_request(*urls):
    return AuditRequest(mode=AuditMode.BATCH, urls=list(urls))


@pytest.mark.asyncio
async def test_batch_run_walks_state_machine(fake_site, service, audit_store):
    fake_site.html("https://example.com/")
    fake_site.add("https://example.com/admin", status=403, headers=[("content-type", "text/html")])
    updates = []

    run = await service.run(
        batch_request("https://example.com/", "https://example.com/admin"),
        on_progress=updates.append,
    )

    assert [u.status for u in updates] == [
        AuditStatus.TESTING,
        AuditStatus.TESTING,
        AuditStatus.TESTING,
        AuditStatus.SCORING,
        AuditStatus.COMPLETED,
    ]
    assert [u.completed_urls for u in updates[1:3]] == [1, 2]
    assert all(u.session_id == run.session.id for u in updates)

    assert run.session.status == AuditStatus.COMPLETED
    assert run.session.completed_at is not None
    assert run.discovery is None
    assert [r.url for r in run.results] == ["https://example.com/", "https://example.com/admin"]
    assert run.results[0].recommendation == Recommendation.BEST_ENTRY_POINT
    assert run.results[1].recommendation == Recommendation.BLOCKED
    assert run.summary.accessible_count == 1

    stored = await audit_store.get_session(run.session.id)
    assert stored.status == AuditStatus.COMPLETED
    assert stored.completed_urls == stored.total_urls == 2
    assert len(await audit_store.list_results(run.session.id)) == 2


@pytest.mark.asyncio
async def test_async_progress_callback_is_awaited(fake_site, service):
    fake_site.html("https://example.com/")
    steps = []

    async def on_progress(progress):
        await asyncio.sleep(0)
        steps.append(progress.current_step)

    await service.run(batch_request("https://example.com/"), on_progress=on_progress)

    assert len(steps) == 4
    assert steps[1] == "Testing URLs (1/1)"
    assert steps[-1] == "Audit complete"


@pytest.mark.asyncio
async def test_domain_run_discovers_first(fake_site, service):
    fake_site.html("https://example.com")
    fake_site.html("https://example.com/about")
    statuses = []

    run = await service.run(
        AuditRequest(mode=AuditMode.DOMAIN, domain="https://Example.com/"),
        on_progress=lambda progress: statuses.append(progress.status),
    )

    assert statuses[0] == AuditStatus.DISCOVERING
    assert statuses[1] == AuditStatus.TESTING
    assert statuses[-1] == AuditStatus.COMPLETED
    assert run.session.domain == "example.com"
    assert run.discovery is not None
    assert run.session.total_urls == len(COMMON_PATHS) + 1
    assert len(run.results) == run.session.total_urls
    assert {r.url for r in run.summary.best_entry_points} == {
        "https://example.com",
        "https://example.com/about",
    }


@pytest.mark.asyncio
async def test_orchestration_error_marks_session_failed(fake_site, audit_store):
    service = AuditService(
        store=audit_store,
        prober=UrlProber(transport=fake_site.transport),
        orchestrator=ExplodingOrchestrator(),
    )

    with pytest.raises(AuditFailedError) as exc_info:
        await service.run(batch_request("https://example.com"))

    stored = await audit_store.get_session(exc_info.value.session_id)
    assert stored.status == AuditStatus.FAILED
    assert stored.error == "worker pool crashed"
    assert stored.completed_at is not None
    assert await audit_store.list_results(stored.id) == []


@pytest.mark.asyncio
async def test_cancelled_run_marks_session_failed(audit_store):
    prober = HangingProber()
    service = AuditService(store=audit_store, prober=prober)
    session = await service.create_session(batch_request("https://example.com"))

    run = asyncio.create_task(service.execute(session, batch_request("https://example.com")))
    await asyncio.wait_for(prober.started.wait(), timeout=2)
    run.cancel()

    with pytest.raises(asyncio.CancelledError):
        await run

    stored = await audit_store.get_session(session.id)
    assert stored.status == AuditStatus.FAILED
    assert stored.error == "Audit cancelled"
    assert stored.completed_at is not None


@pytest.mark.asyncio
async def test_execute_requires_pending_session(fake_site, service):
    fake_site.html("https://example.com")
    request = batch_request("https://example.com")
    run = await service.run(request)

    with pytest.raises(InvalidSessionTransition):
        await service.execute(run.session, request)


@pytest.mark.asyncio
async def test_unknown_session_raises(service):
    with pytest.raises(SessionNotFoundError):
        await service.get_session("missing")
    with pytest.raises(SessionNotFoundError):
        await service.list_results("missing")


@pytest.mark.asyncio
async def test_mark_failed_leaves_terminal_session_alone(fake_site, service, audit_store):
    fake_site.html("https://example.com")
    run = await service.run(batch_request("https://example.com"))

    await service.mark_failed(run.session, "too late")

    stored = await audit_store.get_session(run.session.id)
    assert stored.status == AuditStatus.COMPLETED
    assert stored.error is None


def test_session_transitions():
    session = AuditSession(mode=AuditMode.BATCH)
    session.transition_to(AuditStatus.TESTING)
    session.transition_to(AuditStatus.SCORING)
    session.transition_to(AuditStatus.COMPLETED)
    assert session.is_terminal

    with pytest.raises(InvalidSessionTransition):
        session.transition_to(AuditStatus.FAILED)


def test_session_cannot_skip_testing():
    session = AuditSession(mode=AuditMode.DOMAIN)
    session.transition_to(AuditStatus.DISCOVERING)

    with pytest.raises(InvalidSessionTransition):
        session.transition_to(AuditStatus.SCORING)

    session.transition_to(AuditStatus.FAILED, error="boom")
    assert session.error == "boom"
    assert session.completed_at is not None


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"mode": "batch"}, "URLs array is required"),
        ({"mode": "batch", "urls": ["http://"]}, "Invalid URLs found"),
        ({"mode": "domain"}, "Domain is required"),
        ({"mode": "domain", "domain": "not a domain"}, "Invalid domain format"),
    ],
)
def test_request_validation(payload, message):
    with pytest.raises(ValueError, match=message):
        AuditRequest.model_validate(payload)


def test_request_normalizes_urls_and_domain():
    batch = AuditRequest.model_validate({"mode": "batch", "urls": ["example.com/shop"], "domain": "x.com"})
    assert batch.urls == ["https://example.com/shop"]
    assert batch.domain is None

    domain = AuditRequest.model_validate({"mode": "domain", "domain": "HTTPS://Example.com/path"})
    assert domain.domain == "example.com"
    assert domain.urls is None
