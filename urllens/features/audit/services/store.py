"""
Audit persistence

The audit service writes sessions and scored results through the AuditStore
interface. InMemoryAuditStore backs tests and single-process runs;
SqlAlchemyAuditStore persists to url_audit_sessions / url_audit_results.
"""
import logging
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from urllens.features.audit.models.audit_result import UrlAuditResult
from urllens.features.audit.models.audit_session import UrlAuditSession
from urllens.features.audit.schemas.audit import AuditSession
from urllens.features.audit.schemas.probe import BotSignal, ProbeOutcome, RedirectHop
from urllens.features.audit.schemas.score import AuditResult, Recommendation, ScoreBreakdown
from urllens.platform.exceptions import SessionNotFoundError

logger = logging.getLogger(__name__)

SCORE_COMPONENTS = ("http_status", "js_penalty_avoided", "html_bonus", "bot_protection_bonus", "redirect_bonus")


class AuditStore:
    """Async persistence for audit sessions and their results."""

    async def create_session(self, session: AuditSession) -> AuditSession:
        raise NotImplementedError

    async def update_session(self, session: AuditSession) -> None:
        raise NotImplementedError

    async def get_session(self, session_id: str) -> Optional[AuditSession]:
        raise NotImplementedError

    async def save_results(self, session_id: str, results: Sequence[AuditResult]) -> None:
        raise NotImplementedError

    async def list_results(self, session_id: str) -> List[AuditResult]:
        raise NotImplementedError


class InMemoryAuditStore(AuditStore):

    def __init__(self):
        self._sessions: Dict[str, AuditSession] = {}
        self._results: Dict[str, List[AuditResult]] = {}

    async def create_session(self, session: AuditSession) -> AuditSession:
        self._sessions[session.id] = session.model_copy(deep=True)
        return session

    async def update_session(self, session: AuditSession) -> None:
        if session.id not in self._sessions:
            raise SessionNotFoundError(f"Audit session {session.id} not found")
        self._sessions[session.id] = session.model_copy(deep=True)

    async def get_session(self, session_id: str) -> Optional[AuditSession]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def save_results(self, session_id: str, results: Sequence[AuditResult]) -> None:
        if session_id not in self._sessions:
            raise SessionNotFoundError(f"Audit session {session_id} not found")
        self._results[session_id] = list(results)

    async def list_results(self, session_id: str) -> List[AuditResult]:
        return list(self._results.get(session_id, []))


class SqlAlchemyAuditStore(AuditStore):

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def create_session(self, session: AuditSession) -> AuditSession:
        async with self.session_factory() as db:
            db.add(
                UrlAuditSession(
                    id=session.id,
                    mode=session.mode,
                    domain=session.domain,
                    status=session.status,
                    total_urls=session.total_urls,
                    completed_urls=session.completed_urls,
                    error_message=session.error,
                    created_at=session.created_at,
                    completed_at=session.completed_at,
                )
            )
            await db.commit()
        return session

    async def update_session(self, session: AuditSession) -> None:
        async with self.session_factory() as db:
            row = await db.get(UrlAuditSession, session.id)
            if row is None:
                raise SessionNotFoundError(f"Audit session {session.id} not found")
            row.domain = session.domain
            row.status = session.status
            row.total_urls = session.total_urls
            row.completed_urls = session.completed_urls
            row.error_message = session.error
            row.completed_at = session.completed_at
            await db.commit()

    async def get_session(self, session_id: str) -> Optional[AuditSession]:
        async with self.session_factory() as db:
            row = await db.get(UrlAuditSession, session_id)
            if row is None:
                return None
            return AuditSession(
                id=row.id,
                mode=row.mode,
                domain=row.domain,
                total_urls=row.total_urls,
                completed_urls=row.completed_urls,
                status=row.status,
                error=row.error_message,
                created_at=row.created_at,
                completed_at=row.completed_at,
            )

    async def save_results(self, session_id: str, results: Sequence[AuditResult]) -> None:
        async with self.session_factory() as db:
            if await db.get(UrlAuditSession, session_id) is None:
                raise SessionNotFoundError(f"Audit session {session_id} not found")
            await db.execute(delete(UrlAuditResult).where(UrlAuditResult.session_id == session_id))
            db.add_all(result_to_row(session_id, rank, result) for rank, result in enumerate(results))
            await db.commit()
        logger.info(f"[{session_id}] Stored {len(results)} audit results")

    async def list_results(self, session_id: str) -> List[AuditResult]:
        async with self.session_factory() as db:
            rows = await db.execute(
                select(UrlAuditResult)
                .where(UrlAuditResult.session_id == session_id)
                .order_by(UrlAuditResult.rank)
            )
            return [row_to_result(row) for row in rows.scalars().all()]


def result_to_row(session_id: str, rank: int, result: AuditResult) -> UrlAuditResult:
    outcome = result.outcome
    return UrlAuditResult(
        session_id=session_id,
        rank=rank,
        url=outcome.requested_url,
        final_url=outcome.final_url,
        http_status=outcome.http_status,
        accessible=outcome.accessible,
        blocked_reason=outcome.blocked_reason,
        content_type=outcome.content_type,
        js_required=outcome.js_required,
        response_time_ms=outcome.response_time_ms,
        redirect_chain=[hop.model_dump() for hop in outcome.redirect_chain],
        bot_signals=[signal.model_dump(mode="json") for signal in outcome.bot_signals],
        score_total=result.total,
        score_breakdown={name: getattr(result.score, name) for name in SCORE_COMPONENTS},
        recommendation=result.recommendation.value,
    )


def row_to_result(row: UrlAuditResult) -> AuditResult:
    outcome = ProbeOutcome(
        requested_url=row.url,
        final_url=row.final_url,
        http_status=row.http_status,
        redirect_chain=tuple(RedirectHop(**hop) for hop in row.redirect_chain or []),
        accessible=row.accessible,
        blocked_reason=row.blocked_reason,
        content_type=row.content_type,
        js_required=row.js_required,
        bot_signals=tuple(BotSignal(**signal) for signal in row.bot_signals or []),
        response_time_ms=row.response_time_ms,
    )
    return AuditResult(
        outcome=outcome,
        score=ScoreBreakdown(**{name: row.score_breakdown[name] for name in SCORE_COMPONENTS}),
        recommendation=Recommendation(row.recommendation),
    )
