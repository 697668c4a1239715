from sqlalchemy import CheckConstraint, Column, DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import relationship

from urllens.features.audit.schemas.audit import AuditMode, AuditStatus
from urllens.platform.db.base import BaseModel


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class UrlAuditSession(BaseModel):

    __tablename__ = "url_audit_sessions"

    mode = Column(Enum(AuditMode, name="url_audit_mode", values_callable=_enum_values), nullable=False)
    domain = Column(String(255), nullable=True, index=True)

    # Job status (state machine)
    status = Column(Enum(AuditStatus, name="url_audit_status", values_callable=_enum_values), default=AuditStatus.PENDING, nullable=False, index=True)

    total_urls = Column(Integer, default=0, nullable=False)
    completed_urls = Column(Integer, default=0, nullable=False)

    error_message = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    results = relationship(
        "UrlAuditResult",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="UrlAuditResult.rank",
    )

    __table_args__ = (
        CheckConstraint("completed_urls >= 0", name="ck_url_audit_sessions_completed_non_negative"),
        CheckConstraint("completed_urls <= total_urls", name="ck_url_audit_sessions_completed_le_total"),
    )

    def __repr__(self):
        return f"<UrlAuditSession {self.id} {self.status}>"
