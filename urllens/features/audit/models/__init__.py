"""
Audit models package.
"""
from urllens.features.audit.models.audit_session import UrlAuditSession
from urllens.features.audit.models.audit_result import UrlAuditResult

__all__ = ["UrlAuditSession", "UrlAuditResult"]
