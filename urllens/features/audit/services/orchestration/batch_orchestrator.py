import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from urllens.features.audit.schemas.audit import AuditProgress, AuditStatus
from urllens.features.audit.schemas.score import AuditResult
from urllens.features.audit.services.probing.url_prober import UrlProber
from urllens.features.audit.services.scoring.scoring_engine import ScoringEngine
from urllens.platform.config import settings

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[AuditProgress], Union[None, Awaitable[None]]]


async def emit_progress(on_progress: Optional[ProgressCallback], progress: AuditProgress) -> None:
    """Deliver one update to a sync or async progress callback."""
    if on_progress is None:
        return
    maybe_awaitable = on_progress(progress)
    if inspect.isawaitable(maybe_awaitable):
        await maybe_awaitable


class BatchOrchestrator:
    """
    Probes a URL list in sequential waves of `concurrency` probes and scores
    every outcome. The completed counter and the progress callback are only
    touched from the orchestrator loop, never from inside a probe.
    """

    def __init__(
        self,
        prober: Optional[UrlProber] = None,
        concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.prober = prober or UrlProber()
        self.concurrency = max(1, concurrency or settings.AUDIT_CONCURRENCY)
        self.timeout = timeout or settings.AUDIT_TIMEOUT_SECONDS

    async def run_batch(
        self,
        urls: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
        session_id: Optional[str] = None,
    ) -> List[AuditResult]:
        """
        Probe and score every URL.

        Args:
            urls: URLs to audit, already validated
            on_progress: Called once per finished probe; may be sync or async
            session_id: Copied onto each AuditProgress

        Returns:
            One AuditResult per input URL, stably sorted by descending total score
        """
        total = len(urls)
        completed = 0
        by_position: Dict[int, AuditResult] = {}
        log_prefix = f"[{session_id}] " if session_id else ""

        for start in range(0, total, self.concurrency):
            chunk = urls[start:start + self.concurrency]
            tasks = [
                asyncio.create_task(self._probe_one(start + offset, url))
                for offset, url in enumerate(chunk)
            ]
            try:
                for finished in asyncio.as_completed(tasks):
                    position, result = await finished
                    by_position[position] = result
                    completed += 1
                    await emit_progress(
                        on_progress,
                        AuditProgress.build(
                            status=AuditStatus.TESTING,
                            current_step=f"Testing URLs ({completed}/{total})",
                            total_urls=total,
                            completed_urls=completed,
                            session_id=session_id,
                        ),
                    )
            except BaseException:
                for task in tasks:
                    task.cancel()
                raise

            logger.info(f"{log_prefix}Wave complete: {completed}/{total} URLs probed")

        results = [by_position[position] for position in range(total)]
        return sorted(results, key=lambda result: result.total, reverse=True)

    async def _probe_one(self, position: int, url: str) -> Tuple[int, AuditResult]:
        outcome = await self.prober.probe(url, timeout=self.timeout)
        return position, ScoringEngine.evaluate(outcome)
