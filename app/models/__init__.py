from app.models.admin_audit_log import AdminAuditLog
from app.models.banner import Banner
from app.models.loan_request import (
    LoanRequest,
    LoanRequestAssignment,
    LoanRequestAuditLog,
    LoanRequestComment,
)
from app.models.pending_change import BannerPendingChange, PropertyPendingChange
from app.models.pending_change_idempotency import PendingChangeIdempotency
from app.models.property import Property
from app.models.property_assignment import PropertyAgentAssignment, PropertyEmployeeAssignment
from app.models.sla_config import SlaConfig
from app.models.upload import Upload
from app.models.user import User

__all__ = [
    "AdminAuditLog",
    "Banner",
    "BannerPendingChange",
    "LoanRequest",
    "LoanRequestAssignment",
    "LoanRequestAuditLog",
    "LoanRequestComment",
    "PendingChangeIdempotency",
    "Property",
    "PropertyAgentAssignment",
    "PropertyEmployeeAssignment",
    "PropertyPendingChange",
    "SlaConfig",
    "Upload",
    "User",
]
