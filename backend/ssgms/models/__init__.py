from ssgms.models.deletion_log import DeletionLog
from ssgms.models.grant import Disbursement, FundSource, Grant, GrantYear
from ssgms.models.profile import Profile

__all__ = [
    # Reference data
    "FundSource",
    "GrantYear",
    # Grant ledger
    "Grant",
    "Disbursement",
    # Team
    "Profile",
    # Audit
    "DeletionLog",
]
