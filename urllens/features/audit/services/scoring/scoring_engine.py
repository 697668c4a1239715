import logging

from urllens.features.audit.schemas.probe import ProbeOutcome
from urllens.features.audit.schemas.score import AuditResult, Recommendation, ScoreBreakdown
from urllens.features.audit.services.probing.url_prober import is_html_content_type

logger = logging.getLogger(__name__)


class ScoringEngine:
    """
    Turns a ProbeOutcome into a 0-100 scrapability score.

    Five independent components are summed:
        http_status           up to 40
        js_penalty_avoided    up to 20
        html_bonus            up to 15
        bot_protection_bonus  up to 15
        redirect_bonus        up to 10
    """

    @staticmethod
    def score(outcome: ProbeOutcome) -> ScoreBreakdown:
        """
        Score one probe outcome.

        Args:
            outcome: Result of UrlProber.probe

        Returns:
            ScoreBreakdown whose total is the clamped sum of the components
        """
        return ScoreBreakdown(
            http_status=ScoringEngine._status_points(outcome.http_status),
            js_penalty_avoided=0 if outcome.js_required else 20,
            html_bonus=ScoringEngine._content_type_points(outcome.content_type),
            bot_protection_bonus=ScoringEngine._bot_protection_points(len(outcome.bot_signals)),
            redirect_bonus=ScoringEngine._redirect_points(len(outcome.redirect_chain)),
        )

    @staticmethod
    def recommend(total: int, accessible: bool, has_bot_signals: bool) -> Recommendation:
        """First matching rule wins; every input combination maps to a recommendation."""
        if not accessible:
            return Recommendation.BLOCKED
        if total >= 85:
            return Recommendation.BEST_ENTRY_POINT
        if total >= 70:
            return Recommendation.GOOD
        if total >= 50:
            return Recommendation.MODERATE
        if has_bot_signals:
            return Recommendation.BLOCKED
        return Recommendation.CHALLENGING

    @staticmethod
    def evaluate(outcome: ProbeOutcome) -> AuditResult:
        breakdown = ScoringEngine.score(outcome)
        recommendation = ScoringEngine.recommend(
            breakdown.total, outcome.accessible, outcome.has_bot_signals
        )
        logger.debug(f"Scored {outcome.requested_url}: {breakdown.total} ({recommendation.value})")
        return AuditResult(outcome=outcome, score=breakdown, recommendation=recommendation)

    @staticmethod
    def _status_points(status: int) -> int:
        if status == 200:
            return 40
        if 200 <= status < 300:
            return 30
        if 300 <= status < 400:
            return 20
        if status in (403, 429):
            return 5
        return 0

    @staticmethod
    def _content_type_points(content_type) -> int:
        if is_html_content_type(content_type):
            return 15
        if content_type:
            return 5
        return 0

    @staticmethod
    def _bot_protection_points(signal_count: int) -> int:
        if signal_count == 0:
            return 15
        if signal_count == 1:
            return 5
        return 0

    @staticmethod
    def _redirect_points(hop_count: int) -> int:
        if hop_count == 0:
            return 10
        if hop_count <= 2:
            return 8
        if hop_count <= 4:
            return 4
        return 0
