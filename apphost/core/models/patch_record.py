# =============================================================================
# apphost/core/models/patch_record.py - Patch Record Schema
# =============================================================================
# One document per claimed patch script in the `Patch` collection. The
# document's _id is the script's version id; MongoDB's unique _id index is
# what lets exactly one instance claim a given patch.
#
# Flow: (insert) pending -> completed
# A record left in `pending` belongs to a patch that is still running or
# whose process crashed. It is never reclaimed automatically.
# =============================================================================

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

PATCH_COLLECTION = "Patch"


class PatchStatus(str, Enum):
    """Possible states of a patch record."""
    PENDING = "pending"
    COMPLETED = "completed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PatchRecord(BaseModel):
    """
    Persisted marker of a claimed or applied patch.

    Field aliases match the stored document:

        {"_id": 3, "status": "completed", "startedAt": ..., "completedAt": ...}
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: int = Field(..., alias="_id", ge=1)
    status: PatchStatus = PatchStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow, alias="startedAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")

    @classmethod
    def claim(cls, patch_id: int) -> "PatchRecord":
        """New pending record for a patch about to run."""
        return cls(id=patch_id)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
