# =============================================================================
# apphost/core/patches.py - Data Patch Coordinator
# =============================================================================
# Applies versioned one-time data patches exactly once, even when several
# instances of the application start against the same database.
#
# How a patch is claimed:
#   1. Read the highest patch id recorded in the `Patch` collection.
#   2. For every newer script, in ascending order, insert a `pending` record
#      whose _id is the script's id.
#   3. If the insert hits the unique _id index, another instance owns that
#      patch: skip it. Otherwise run the patch and mark it `completed`.
#
# A failing patch stops the application: the data is in an unknown state,
# so the coordinator logs the error and destroys the application instead of
# continuing with the remaining patches.
# =============================================================================

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from apphost.core.models.patch_record import PATCH_COLLECTION, PatchRecord, PatchStatus, utcnow
from apphost.core.modules import PatchScript, resolve_artifact
from apphost.exceptions import ConfigurationError
from apphost.lib.log import scoped_logger

if TYPE_CHECKING:
    from apphost.core.application import Application

logger = logging.getLogger(__name__)


class MigrationCoordinator:
    """
    Runs the unapplied patch scripts of an application.

    Example:
        coordinator = MigrationCoordinator(app, registry.patches)
        if not await coordinator.run():
            # a patch failed and the application has been destroyed
            ...
    """

    def __init__(self, app: Application, scripts: list[PatchScript]):
        self.app = app
        self.scripts = sorted(scripts, key=lambda script: script.id)

    @property
    def collection(self) -> Any:
        return self.app.mongo.get_collection(PATCH_COLLECTION)

    async def latest_record(self) -> PatchRecord | None:
        """The record with the highest patch id, if any."""
        docs = await self.collection.find({}).sort("_id", DESCENDING).limit(1).to_list()
        return PatchRecord.model_validate(docs[0]) if docs else None

    async def pending_scripts(self) -> list[PatchScript]:
        """Scripts newer than the latest record, in ascending order."""
        latest = await self.latest_record()
        if latest is not None and latest.status == PatchStatus.PENDING:
            # No reclaim: a pending record is either still running elsewhere
            # or was left behind by a crashed process and needs an operator.
            self.app.app_logger.warning(
                f"Patch {latest.id} has been pending since {latest.started_at.isoformat()}"
            )
        max_id = latest.id if latest is not None else 0
        return [script for script in self.scripts if script.id > max_id]

    async def claim(self, script: PatchScript) -> bool:
        """
        Insert the pending record for a script.

        Returns:
            False if another instance already claimed it
        """
        try:
            await self.collection.insert_one(PatchRecord.claim(script.id).to_document())
        except DuplicateKeyError:
            return False
        return True

    async def complete(self, script: PatchScript) -> None:
        await self.collection.update_one(
            {"_id": script.id},
            {"$set": {"status": PatchStatus.COMPLETED.value, "completedAt": utcnow()}},
        )

    async def run(self) -> bool:
        """
        Apply every unapplied patch.

        Returns:
            True if all patches were applied or skipped, False if one failed
            (in which case the application has been destroyed)

        Raises:
            ConfigurationError: If there are patches but no database
            ModuleLoadError: If a patch file cannot be imported
        """
        if not self.scripts:
            return True

        if self.app.mongo is None:
            raise ConfigurationError(
                f"Found {len(self.scripts)} patch scripts but no database is configured",
                suggestion="Add a mongo section to the configuration or remove api/patches",
            )

        for script in await self.pending_scripts():
            patch = resolve_artifact(script.artifact, "patch")

            if not await self.claim(script):
                self.app.app_logger.info(f"Patch {script.id} is claimed by another instance, skipping")
                continue

            patch_logger = scoped_logger(self.app.logger, "patch", script=script.id)
            try:
                await patch(self.app, patch_logger)
                await self.complete(script)
            except Exception:
                self.app.app_logger.exception(f"Patch {script.id} failed, stopping the application")
                await self.app.destroy()
                return False

            self.app.app_logger.info(f"Patch {script.id} applied")

        return True
