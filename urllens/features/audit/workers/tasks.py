import asyncio
import logging
from typing import Any, Dict

from sqlalchemy.ext.asyncio import async_sessionmaker

from urllens.features.audit.schemas.audit import AuditProgress, AuditRequest, AuditStatus
from urllens.features.audit.services.audit_service import AuditService
from urllens.features.audit.services.store import SqlAlchemyAuditStore
from urllens.platform.celery_app import celery_app
from urllens.platform.config import settings
from urllens.platform.db.session import build_engine
from urllens.platform.exceptions import AuditFailedError
from urllens.platform.services.sse_helper import (
    publish_audit_completion,
    publish_audit_error,
    publish_audit_progress,
)

logger = logging.getLogger(__name__)


async def _run_audit(session_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute a queued session inside the worker's own event loop.

    A fresh NullPool engine is used per task: pooled connections are bound to
    the loop that created them and asyncio.run() closes that loop on return.
    """
    engine = build_engine(settings.DATABASE_URL, pooled=False)
    store = SqlAlchemyAuditStore(async_sessionmaker(engine, expire_on_commit=False, autoflush=False))
    service = AuditService(store=store)

    def publish(progress: AuditProgress) -> None:
        # The final event is published with the average score below
        if progress.status != AuditStatus.COMPLETED:
            publish_audit_progress(session_id, progress.model_dump(mode="json"))

    try:
        session = await service.get_session(session_id)
        request = AuditRequest.model_validate(payload)
        run = await service.execute(session, request, on_progress=publish)
    finally:
        await engine.dispose()

    publish_audit_completion(session_id, run.summary.total_urls, run.summary.average_score)
    return {
        "session_id": session_id,
        "status": run.session.status.value,
        "total_urls": run.summary.total_urls,
        "average_score": run.summary.average_score,
    }


@celery_app.task(
    bind=True,
    name="urllens.features.audit.workers.tasks.run_audit_job",
)
def run_audit_job(self, session_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run a queued audit session to completion.

    Args:
        session_id: ID of a pending session created by POST /audit/jobs
        payload: The AuditRequest body, JSON-serialized

    Returns:
        Session id, final status, URL count and average score
    """
    logger.info(f"[{session_id}] Starting audit job (task {self.request.id})")

    try:
        result = asyncio.run(_run_audit(session_id, payload))
    except AuditFailedError as e:
        publish_audit_error(session_id, e.public_message)
        raise

    logger.info(f"[{session_id}] Audit job finished: average score {result['average_score']}")
    return result
