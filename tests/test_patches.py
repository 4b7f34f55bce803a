# =============================================================================
# tests/test_patches.py - Migration Coordinator Tests
# =============================================================================
# This module contains tests for:
# - Selecting the patches newer than the latest record
# - Claiming through the unique _id index
# - Exactly-once execution across concurrent coordinators
# - Stopping the application when a patch fails
#
# Tests use the in-memory database from conftest.py.
# =============================================================================

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from apphost.core.models import PATCH_COLLECTION, PatchRecord, PatchStatus
from apphost.core.modules import ModuleRegistry
from apphost.core.patches import MigrationCoordinator
from apphost.exceptions import ConfigurationError


def recording_patch(patch_id, calls):
    async def patch(app, logger):
        calls.append(patch_id)
    return patch


def registry_with(*patches):
    registry = ModuleRegistry()
    for patch_id, patch in patches:
        registry.add_patch(patch_id, patch)
    return registry


async def seed(fake_db, patch_id, status="completed"):
    record = PatchRecord(id=patch_id, status=status)
    if status == "completed":
        record.completed_at = datetime.now(timezone.utc)
    await fake_db.get_collection(PATCH_COLLECTION).insert_one(record.to_document())


# =============================================================================
# PatchRecord Tests
# =============================================================================

class TestPatchRecord:
    """Test the stored document shape."""

    def test_claim_document(self):
        doc = PatchRecord.claim(3).to_document()

        assert doc["_id"] == 3
        assert doc["status"] == "pending"
        assert isinstance(doc["startedAt"], datetime)
        assert "completedAt" not in doc

    def test_from_document(self):
        record = PatchRecord.model_validate({"_id": 2, "status": "completed", "startedAt": datetime.now(timezone.utc)})

        assert record.id == 2
        assert record.status == PatchStatus.COMPLETED.value


# =============================================================================
# Coordinator Tests
# =============================================================================

class TestMigrationCoordinator:
    """Test MigrationCoordinator.run()."""

    @pytest.mark.asyncio
    async def test_no_patches_needs_no_database(self, fake_host):
        fake_host.mongo = None

        assert await MigrationCoordinator(fake_host, []).run() is True

    @pytest.mark.asyncio
    async def test_patches_without_database_raise(self, fake_host):
        fake_host.mongo = None
        registry = registry_with((1, recording_patch(1, [])))

        with pytest.raises(ConfigurationError):
            await MigrationCoordinator(fake_host, registry.patches).run()

    @pytest.mark.asyncio
    async def test_fresh_database_runs_all_in_order(self, fake_host, fake_db):
        calls = []
        registry = registry_with(
            (3, recording_patch(3, calls)),
            (1, recording_patch(1, calls)),
            (2, recording_patch(2, calls)),
        )

        assert await MigrationCoordinator(fake_host, registry.patches).run() is True

        assert calls == [1, 2, 3]
        records = fake_db.get_collection(PATCH_COLLECTION).docs
        assert sorted(records) == [1, 2, 3]
        assert all(record["status"] == "completed" for record in records.values())
        assert all(isinstance(record["completedAt"], datetime) for record in records.values())

    @pytest.mark.asyncio
    async def test_only_newer_patches_run(self, fake_host, fake_db):
        """Test that with record 1 applied, patches 2 and 3 run."""
        await seed(fake_db, 1)
        calls = []
        registry = registry_with(*[(patch_id, recording_patch(patch_id, calls)) for patch_id in (1, 2, 3)])

        await MigrationCoordinator(fake_host, registry.patches).run()

        assert calls == [2, 3]
        records = fake_db.get_collection(PATCH_COLLECTION).docs
        assert [records[patch_id]["status"] for patch_id in (2, 3)] == ["completed", "completed"]

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, fake_host, fake_db):
        await seed(fake_db, 2)
        calls = []
        registry = registry_with((1, recording_patch(1, calls)), (2, recording_patch(2, calls)))

        assert await MigrationCoordinator(fake_host, registry.patches).run() is True
        assert calls == []

    @pytest.mark.asyncio
    async def test_pending_latest_record_is_not_reclaimed(self, fake_host, fake_db, caplog):
        """Test that a patch left pending is reported and not run again."""
        await seed(fake_db, 1, status="pending")
        calls = []
        registry = registry_with((1, recording_patch(1, calls)), (2, recording_patch(2, calls)))

        with caplog.at_level(logging.WARNING, logger="test-host"):
            await MigrationCoordinator(fake_host, registry.patches).run()

        assert calls == [2]
        assert "Patch 1 has been pending" in caplog.text

    @pytest.mark.asyncio
    async def test_claim_conflict(self, fake_host):
        """Test that the second claim of the same patch loses."""
        registry = registry_with((1, recording_patch(1, [])))
        coordinator = MigrationCoordinator(fake_host, registry.patches)
        script = registry.patches[0]

        assert await coordinator.claim(script) is True
        assert await coordinator.claim(script) is False

    @pytest.mark.asyncio
    async def test_concurrent_coordinators_run_each_patch_once(self, fake_host, fake_db):
        """Test two instances starting against the same database."""
        calls = []

        async def slow_patch(app, logger):
            calls.append(1)
            await asyncio.sleep(0.01)

        registry = registry_with((1, slow_patch), (2, recording_patch(2, calls)))

        results = await asyncio.gather(
            MigrationCoordinator(fake_host, registry.patches).run(),
            MigrationCoordinator(fake_host, registry.patches).run(),
        )

        assert results == [True, True]
        assert sorted(calls) == [1, 2]

    @pytest.mark.asyncio
    async def test_failing_patch_destroys_the_app(self, fake_host, fake_db):
        calls = []

        async def broken_patch(app, logger):
            raise RuntimeError("column missing")

        registry = registry_with(
            (1, recording_patch(1, calls)),
            (2, broken_patch),
            (3, recording_patch(3, calls)),
        )

        assert await MigrationCoordinator(fake_host, registry.patches).run() is False

        assert calls == [1]
        fake_host.destroy.assert_awaited_once()
        records = fake_db.get_collection(PATCH_COLLECTION).docs
        assert records[2]["status"] == "pending"
        assert 3 not in records

    @pytest.mark.asyncio
    async def test_patch_receives_scoped_logger(self, fake_host, caplog):
        async def chatty_patch(app, logger):
            logger.info("Backfilled prices")

        registry = registry_with((4, chatty_patch))

        with caplog.at_level(logging.INFO, logger="test-host"):
            await MigrationCoordinator(fake_host, registry.patches).run()

        assert "[patch script=4] Backfilled prices" in caplog.text
