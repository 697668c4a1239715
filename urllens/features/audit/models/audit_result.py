from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from urllens.platform.db.base import BaseModel


class UrlAuditResult(BaseModel):
    """One scored probe outcome; `rank` keeps the score ordering of the batch."""

    __tablename__ = "url_audit_results"

    session_id = Column(
        String(36), ForeignKey("url_audit_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session = relationship("UrlAuditSession", back_populates="results")

    rank = Column(Integer, nullable=False)
    url = Column(Text, nullable=False)
    final_url = Column(Text, nullable=False)
    http_status = Column(Integer, default=0, nullable=False)
    accessible = Column(Boolean, default=False, nullable=False)
    blocked_reason = Column(Text, nullable=True)
    content_type = Column(String(255), nullable=True)
    js_required = Column(Boolean, default=False, nullable=False)
    response_time_ms = Column(Integer, default=0, nullable=False)

    # [{"from_url", "to_url", "status"}] and [{"vendor", "evidence"}]
    redirect_chain = Column(JSON, nullable=False, default=list)
    bot_signals = Column(JSON, nullable=False, default=list)

    score_total = Column(Integer, nullable=False, index=True)  # 0-100
    score_breakdown = Column(JSON, nullable=False)
    recommendation = Column(String(32), nullable=False, index=True)

    def __repr__(self):
        return f"<UrlAuditResult {self.url} {self.score_total}>"
