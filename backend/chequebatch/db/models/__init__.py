"""
Models package — re-exports Base and all models.

When adding a new model:
    1. Create ``chequebatch/db/models/<table_name>.py``
    2. Import it here
"""

from chequebatch.db.models.base import Base
from chequebatch.db.models.batch_job import BatchJobRow
from chequebatch.db.models.batch_item import BatchItemRow
from chequebatch.db.models.decision_audit import DecisionAuditRow

__all__ = [
    "Base",
    "BatchJobRow",
    "BatchItemRow",
    "DecisionAuditRow",
]
