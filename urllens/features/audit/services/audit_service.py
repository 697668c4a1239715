import asyncio
import logging
from typing import List, Optional

from urllens.features.audit.schemas.audit import (
    AuditMode,
    AuditProgress,
    AuditRequest,
    AuditRunResult,
    AuditSession,
    AuditStatus,
)
from urllens.features.audit.schemas.discovery import DiscoveryResult
from urllens.features.audit.schemas.score import AuditResult
from urllens.features.audit.services.discovery.domain_discovery import DomainDiscoveryService
from urllens.features.audit.services.orchestration.batch_orchestrator import (
    BatchOrchestrator,
    ProgressCallback,
    emit_progress,
)
from urllens.features.audit.services.orchestration.summary import build_audit_summary
from urllens.features.audit.services.probing.url_prober import UrlProber
from urllens.features.audit.services.store import AuditStore
from urllens.platform.config import settings
from urllens.platform.exceptions import (
    AuditFailedError,
    AuditInputError,
    InvalidSessionTransition,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)


class AuditService:
    """
    Drives one audit session through
    pending -> discovering (domain mode) -> testing -> scoring -> completed,
    persisting the session after every transition and after every probe.
    Any error during a run marks the session failed and raises AuditFailedError.
    """

    def __init__(
        self,
        store: AuditStore,
        prober: Optional[UrlProber] = None,
        discovery: Optional[DomainDiscoveryService] = None,
        orchestrator: Optional[BatchOrchestrator] = None,
        concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.store = store
        self.timeout = timeout or settings.AUDIT_TIMEOUT_SECONDS
        self.prober = prober or UrlProber()
        self.discovery = discovery or DomainDiscoveryService(prober=self.prober, transport=self.prober.transport)
        self.orchestrator = orchestrator or BatchOrchestrator(
            prober=self.prober, concurrency=concurrency, timeout=self.timeout
        )

    async def create_session(self, request: AuditRequest) -> AuditSession:
        session = AuditSession(
            mode=request.mode,
            domain=request.domain,
            total_urls=len(request.urls) if request.mode == AuditMode.BATCH else 0,
        )
        await self.store.create_session(session)
        logger.info(f"[{session.id}] Created {request.mode.value} audit session")
        return session

    async def get_session(self, session_id: str) -> AuditSession:
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Audit session {session_id} not found")
        return session

    async def list_results(self, session_id: str) -> List[AuditResult]:
        await self.get_session(session_id)
        return await self.store.list_results(session_id)

    async def execute(
        self,
        session: AuditSession,
        request: AuditRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AuditRunResult:
        """
        Run a pending session to completion.

        Args:
            session: Session returned by create_session
            request: The validated request the session was created from
            on_progress: Receives lifecycle and per-URL AuditProgress updates

        Returns:
            AuditRunResult with results sorted by descending score

        Raises:
            InvalidSessionTransition: session is not pending
            AuditFailedError: the run aborted; the session is stored as failed
        """
        if session.status != AuditStatus.PENDING:
            raise InvalidSessionTransition(
                f"Audit session {session.id} is {session.status.value}, expected pending"
            )

        discovery: Optional[DiscoveryResult] = None
        try:
            if request.mode == AuditMode.DOMAIN:
                await self._advance(session, AuditStatus.DISCOVERING, f"Discovering URLs on {request.domain}", on_progress)
                discovery = await self.discovery.discover(
                    request.domain,
                    max_urls=settings.AUDIT_MAX_URLS_PER_DOMAIN,
                    timeout=self.timeout,
                )
                urls = discovery.urls
            else:
                urls = list(request.urls or [])

            if not urls:
                raise AuditInputError("No URLs to audit")

            session.total_urls = len(urls)
            await self._advance(session, AuditStatus.TESTING, f"Testing URLs (0/{len(urls)})", on_progress)

            async def record_progress(progress: AuditProgress) -> None:
                session.completed_urls = progress.completed_urls
                await self.store.update_session(session)
                await emit_progress(on_progress, progress)

            results = await self.orchestrator.run_batch(urls, on_progress=record_progress, session_id=session.id)

            await self._advance(session, AuditStatus.SCORING, "Summarizing results", on_progress)
            summary = build_audit_summary(results)
            await self.store.save_results(session.id, results)

            await self._advance(session, AuditStatus.COMPLETED, "Audit complete", on_progress)
        except asyncio.CancelledError:
            logger.warning(f"[{session.id}] Audit cancelled")
            await self.mark_failed(session, "Audit cancelled")
            raise
        except Exception as e:
            logger.error(f"[{session.id}] Audit failed: {e}", exc_info=True)
            await self.mark_failed(session, str(e) or type(e).__name__)
            raise AuditFailedError(session.id, str(e)) from e

        logger.info(
            f"[{session.id}] Audit completed: {summary.accessible_count}/{summary.total_urls} accessible, "
            f"average score {summary.average_score}"
        )
        return AuditRunResult(session=session, results=results, discovery=discovery, summary=summary)

    async def run(self, request: AuditRequest, on_progress: Optional[ProgressCallback] = None) -> AuditRunResult:
        session = await self.create_session(request)
        return await self.execute(session, request, on_progress=on_progress)

    async def discover(
        self,
        domain: str,
        max_urls: Optional[int] = None,
        include_common_paths: bool = True,
    ) -> DiscoveryResult:
        return await self.discovery.discover(
            domain,
            max_urls=max_urls,
            timeout=self.timeout,
            include_common_paths=include_common_paths,
        )

    async def _advance(
        self,
        session: AuditSession,
        status: AuditStatus,
        step: str,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        session.transition_to(status)
        await self.store.update_session(session)
        logger.info(f"[{session.id}] {status.value}: {step}")
        await emit_progress(
            on_progress,
            AuditProgress.build(
                status=status,
                current_step=step,
                total_urls=session.total_urls,
                completed_urls=session.completed_urls,
                session_id=session.id,
            ),
        )

    async def mark_failed(self, session: AuditSession, error: str) -> None:
        if session.is_terminal:
            return
        session.transition_to(AuditStatus.FAILED, error=error)
        try:
            await self.store.update_session(session)
        except Exception as e:
            # The original failure is what gets raised to the caller
            logger.error(f"[{session.id}] Could not persist failed status: {e}", exc_info=True)

