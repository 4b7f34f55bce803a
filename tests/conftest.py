# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Clears host environment variables that would leak into configuration
# - In-memory MongoDB fake that raises the real DuplicateKeyError
# - A copy of tests/fixtures/sample_app per test
# =============================================================================

import asyncio
import copy
import logging
import shutil
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from apphost.lib.log import scoped_logger
from apphost.lib.mongo_client import build_mongo_url

FIXTURES_DIR = Path(__file__).parent / "fixtures"


# =============================================================================
# In-memory MongoDB
# =============================================================================
# Covers the subset of the async pymongo API used by the host and the sample
# application: equality filters, $set / $inc updates, upserts, sort + limit.

def _matches(doc, filter):
    return all(doc.get(key) == value for key, value in filter.items())


def _apply_update(doc, update):
    for key, value in update.get("$set", {}).items():
        doc[key] = value
    for key, value in update.get("$inc", {}).items():
        doc[key] = doc.get(key, 0) + value


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        self._docs.sort(key=lambda doc: doc[key], reverse=direction < 0)
        return self

    def limit(self, count):
        if count:
            self._docs = self._docs[:count]
        return self

    async def to_list(self, length=None):
        await asyncio.sleep(0)
        return [copy.deepcopy(doc) for doc in self._docs[:length]]


class FakeCollection:
    def __init__(self, name):
        self.name = name
        self.docs = {}

    def _find(self, filter):
        return [doc for doc in self.docs.values() if _matches(doc, filter or {})]

    async def insert_one(self, doc):
        # Yield first so concurrent claims interleave like real round trips
        await asyncio.sleep(0)
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        if doc["_id"] in self.docs:
            raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} dup key: {doc['_id']}", 11000)
        self.docs[doc["_id"]] = doc
        return SimpleNamespace(inserted_id=doc["_id"], acknowledged=True)

    async def find_one(self, filter=None):
        await asyncio.sleep(0)
        found = self._find(filter)
        return copy.deepcopy(found[0]) if found else None

    def find(self, filter=None):
        return FakeCursor(self._find(filter))

    async def update_one(self, filter, update, upsert=False):
        await asyncio.sleep(0)
        found = self._find(filter)
        if found:
            doc = found[0]
            before = copy.deepcopy(doc)
            _apply_update(doc, update)
            return SimpleNamespace(matched_count=1, modified_count=int(doc != before), upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        doc = dict(filter)
        _apply_update(doc, update)
        result = await self.insert_one(doc)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=result.inserted_id)

    async def delete_one(self, filter):
        await asyncio.sleep(0)
        found = self._find(filter)
        if found:
            del self.docs[found[0]["_id"]]
        return SimpleNamespace(deleted_count=len(found[:1]))


class FakeDatabase:
    def __init__(self, name="shop"):
        self.name = name
        self.collections = {}

    def get_collection(self, name):
        return self.collections.setdefault(name, FakeCollection(name))

    def __getitem__(self, name):
        return self.get_collection(name)


class FakeMongoConnection:
    """Stands in for MongoConnection; every instance shares one database."""

    def __init__(self, settings, database):
        self.settings = settings
        self.database = database
        self.connected = False
        self.closed = False

    @property
    def safe_url(self):
        return build_mongo_url(self.settings, mask_password=True)

    async def connect(self):
        self.connected = True
        return self.database

    async def ping(self):
        return self.connected and not self.closed

    async def close(self):
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the developer's shell from leaking into configuration."""
    for name in ("HOST", "PORT", "ENVIRONMENT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def fake_mongo(monkeypatch, fake_db):
    """
    Route Application database connections to the in-memory fake.

    Returns the list of connections opened, in order.
    """
    connections = []

    def connect(settings):
        connection = FakeMongoConnection(settings, fake_db)
        connections.append(connection)
        return connection

    monkeypatch.setattr("apphost.core.application.MongoConnection", connect)
    return connections


@pytest.fixture
def app_dir(tmp_path, monkeypatch):
    """A fresh copy of the sample application, run in the `test` environment."""
    target = tmp_path / "sample_app"
    shutil.copytree(FIXTURES_DIR / "sample_app", target)
    monkeypatch.setenv("ENVIRONMENT", "test")
    return target


@pytest.fixture
def fake_host(fake_db):
    """The parts of an Application that models and the patch coordinator use."""
    logger = logging.getLogger("test-host")
    return SimpleNamespace(
        mongo=fake_db,
        logger=logger,
        app_logger=scoped_logger(logger, "app"),
        destroy=AsyncMock(),
        models={},
        services={},
    )
