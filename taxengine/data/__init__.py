"""
Data access layer: one repository per TaxEngine table.
"""

from taxengine.data.base import BaseRepository
from taxengine.data.clients import ClientCompanyRepository
from taxengine.data.periods import AccountingPeriodRepository
from taxengine.data.claims import ClaimPackRepository, SubmissionRepository
from taxengine.data.audit import AuditLogRepository
from taxengine.data.users import UserRepository
from taxengine.data.settings import TemplateRepository, GatewayRepository, PermissionRepository

__all__ = [
    "BaseRepository",
    "ClientCompanyRepository",
    "AccountingPeriodRepository",
    "ClaimPackRepository",
    "SubmissionRepository",
    "AuditLogRepository",
    "UserRepository",
    "TemplateRepository",
    "GatewayRepository",
    "PermissionRepository",
]
