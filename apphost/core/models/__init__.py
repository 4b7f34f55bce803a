# =============================================================================
# apphost/core/models/ - Persistent Models
# =============================================================================
# - mongo_model.py: MongoModel base class for application models
# - patch_record.py: PatchRecord schema for the migration coordinator
# =============================================================================

from .mongo_model import MongoModel
from .patch_record import PATCH_COLLECTION, PatchRecord, PatchStatus

__all__ = [
    "MongoModel",
    "PATCH_COLLECTION",
    "PatchRecord",
    "PatchStatus",
]
