import asyncio
import json
from typing import AsyncGenerator

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, status
from kombu.exceptions import OperationalError
from sse_starlette.sse import EventSourceResponse

from urllens.features.audit.schemas.audit import (
    AuditJobResponse,
    AuditProgress,
    AuditRequest,
    AuditSession,
    AuditStatus,
    DiscoverRequest,
)
from urllens.features.audit.services.audit_service import AuditService
from urllens.features.audit.services.orchestration.summary import build_audit_summary
from urllens.features.audit.services.probing.url_prober import UrlProber
from urllens.features.audit.services.store import AuditStore, SqlAlchemyAuditStore
from urllens.features.audit.workers.tasks import run_audit_job
from urllens.platform.config import settings
from urllens.platform.db.session import SessionLocal
from urllens.platform.exceptions import AuditFailedError, FeatureDisabledError
from urllens.platform.logger import get_logger
from urllens.platform.response import api_response
from urllens.platform.services.sse_helper import progress_channel

logger = get_logger(__name__)

STREAM_MAX_SECONDS = 300
HEARTBEAT_SECONDS = 30.0

STATUS_STEPS = {
    AuditStatus.PENDING: "Waiting to start",
    AuditStatus.DISCOVERING: "Discovering URLs",
    AuditStatus.TESTING: "Testing URLs",
    AuditStatus.SCORING: "Summarizing results",
    AuditStatus.COMPLETED: "Audit complete",
    AuditStatus.FAILED: "Audit failed",
}


def require_audit_feature():
    if not settings.AUDIT_FEATURE_ENABLED:
        raise FeatureDisabledError("This feature is not yet available")


def get_audit_store() -> AuditStore:
    return SqlAlchemyAuditStore(SessionLocal)


def get_prober() -> UrlProber:
    return UrlProber()


def get_audit_service(
    store: AuditStore = Depends(get_audit_store),
    prober: UrlProber = Depends(get_prober),
) -> AuditService:
    return AuditService(store=store, prober=prober)


router = APIRouter(prefix="/audit", tags=["audit"], dependencies=[Depends(require_audit_feature)])


def _session_progress(session: AuditSession) -> AuditProgress:
    step = STATUS_STEPS[session.status]
    if session.status == AuditStatus.TESTING:
        step = f"Testing URLs ({session.completed_urls}/{session.total_urls})"
    return AuditProgress.build(
        status=session.status,
        current_step=step,
        total_urls=session.total_urls,
        completed_urls=session.completed_urls,
        session_id=session.id,
    )


@router.post("", summary="Run a scrapability audit")
async def run_audit(payload: AuditRequest, service: AuditService = Depends(get_audit_service)):
    """
    Audit a batch of URLs or a whole domain and wait for the result.

    - **batch**: up to 100 URLs; missing schemes default to https
    - **domain**: URLs are discovered from robots.txt, sitemaps and common paths first
    """
    run = await service.run(payload)

    return api_response(
        data={
            "session_id": run.session.id,
            "session": run.session,
            "results": run.results,
            "discovery": run.discovery,
            "summary": run.summary,
        },
        message=f"Audited {run.summary.total_urls} URLs",
        status_code=status.HTTP_200_OK,
    )


@router.post("/jobs", summary="Queue a scrapability audit")
async def queue_audit(payload: AuditRequest, service: AuditService = Depends(get_audit_service)):
    session = await service.create_session(payload)

    try:
        run_audit_job.delay(session.id, payload.model_dump(mode="json"))
    except OperationalError as e:
        logger.error(f"[{session.id}] Could not enqueue audit job: {e}")
        await service.mark_failed(session, f"Could not enqueue audit job: {e}")
        raise AuditFailedError(session.id, str(e)) from e

    logger.info(f"[{session.id}] Audit job queued")
    return api_response(
        data=AuditJobResponse(
            session_id=session.id,
            status=session.status.value,
            message="Audit queued",
        ),
        message="Audit queued",
        status_code=status.HTTP_202_ACCEPTED,
    )


@router.post("/discover", summary="Discover URLs on a domain")
async def discover_urls(payload: DiscoverRequest, service: AuditService = Depends(get_audit_service)):
    result = await service.discover(
        payload.domain,
        max_urls=payload.max_urls,
        include_common_paths=payload.include_common_paths,
    )
    return api_response(
        data=result,
        message=f"Discovered {len(result.discovered_urls)} URLs on {result.domain}",
    )


@router.get("/{session_id}", summary="Audit session status")
async def get_audit_session(session_id: str, service: AuditService = Depends(get_audit_service)):
    session = await service.get_session(session_id)
    return api_response(
        data={"session": session, "progress": _session_progress(session)},
        message="Audit session retrieved",
    )


@router.get("/{session_id}/results", summary="Stored audit results")
async def get_audit_results(session_id: str, service: AuditService = Depends(get_audit_service)):
    session = await service.get_session(session_id)
    results = await service.list_results(session_id)
    return api_response(
        data={
            "session": session,
            "results": results,
            "summary": build_audit_summary(results),
        },
        message=f"Retrieved {len(results)} audit results",
    )


async def audit_progress_stream(session: AuditSession) -> AsyncGenerator[dict, None]:
    """
    Stream progress for one session: the stored status first, then every
    event published on the session's Redis channel until a terminal status.
    """
    yield {"event": "progress", "data": _session_progress(session).model_dump_json()}

    if session.is_terminal:
        yield {"event": "complete", "data": json.dumps({"session_id": session.id, "status": session.status.value})}
        return

    redis_client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    pubsub = redis_client.pubsub()
    channel = progress_channel(session.id)
    loop = asyncio.get_running_loop()

    try:
        await pubsub.subscribe(channel)
        logger.info(f"SSE: Subscribed to {channel}")
        started = loop.time()

        while loop.time() - started < STREAM_MAX_SECONDS:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=HEARTBEAT_SECONDS)
            if not message or message["type"] != "message":
                yield {"event": "heartbeat", "data": json.dumps({"timestamp": loop.time()})}
                continue

            event = json.loads(message["data"])
            yield {"event": "progress", "data": json.dumps(event)}

            if event.get("status") in (AuditStatus.COMPLETED.value, AuditStatus.FAILED.value):
                yield {"event": "complete", "data": json.dumps({"session_id": session.id, "status": event["status"]})}
                return

        yield {"event": "timeout", "data": json.dumps({"message": "Connection timeout"})}
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        await redis_client.aclose()
        logger.info(f"SSE: Closed connection for {channel}")


@router.get("/{session_id}/events", summary="Stream audit progress (SSE)")
async def stream_audit_events(session_id: str, service: AuditService = Depends(get_audit_service)):
    """
    **Event Types:**
    - `progress`: AuditProgress update
    - `heartbeat`: keep-alive while no progress arrives
    - `complete`: session reached completed or failed
    - `timeout`: stream closed after 5 minutes
    """
    session = await service.get_session(session_id)
    return EventSourceResponse(audit_progress_stream(session))
