# =============================================================================
# apphost/core/models/mongo_model.py - Document Model Base
# =============================================================================
# Base class for the models in an application's api/models/ directory.
# Each subclass is bound to one collection (named after the class unless
# `collection_name` is set) when the Model Loader calls init(app).
#
# Usage:
#   class Product(MongoModel):
#       title: str
#       price: float = 0
#
#   model = Product
#
#   product = await Product.create({"title": "Tea", "price": 3.5})
#   await product.update({"price": 4})
# =============================================================================

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar, Iterable

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field

from apphost.lib.utils import normalize_object_id, try_object_id

if TYPE_CHECKING:
    from apphost.core.application import Application

logger = logging.getLogger(__name__)


class MongoModel(BaseModel):
    """
    CRUD over a single MongoDB collection.

    Fields declared on subclasses are validated by pydantic; undeclared
    document fields are kept as extras, so reload() never drops data.
    """

    model_config = ConfigDict(
        extra="allow",
        arbitrary_types_allowed=True,
        populate_by_name=True,
    )

    id: Any = Field(default=None, alias="_id")

    # Bound by init(); each subclass gets its own collection
    collection: ClassVar[Any] = None
    collection_name: ClassVar[str | None] = None

    # -------------------------------------------------------------------------
    # Instance Methods
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Plain dict with ObjectIds rendered as strings."""
        data = {
            key: str(value) if isinstance(value, ObjectId) else value
            for key, value in self.model_dump(exclude={"id"}).items()
        }
        data["id"] = str(self.id) if self.id is not None else None
        return data

    def clone(self) -> MongoModel:
        """Deep copy, so changes to nested values don't leak back."""
        return self.model_copy(deep=True)

    async def reload(self) -> None:
        """Refresh fields from the database."""
        doc = await type(self).collection.find_one({"_id": self.id})
        if doc is None:
            return
        for key, value in doc.items():
            setattr(self, "id" if key == "_id" else key, value)

    async def update(self, changes: dict[str, Any]) -> bool:
        """
        Apply `changes` with $set and mirror them on this instance.

        Returns:
            Whether the database document was modified
        """
        result = await type(self).collection.update_one({"_id": self.id}, {"$set": changes})
        self._apply(changes)
        return result.modified_count == 1

    async def update_concurrently(self, filter: dict[str, Any], changes: dict[str, Any]) -> bool:
        """
        Optimistic update guarded by `filter`.

        The instance is only changed when the guarded update matched, e.g.

            await order.update_concurrently({"status": "new"}, {"status": "paid"})

        Returns:
            Whether the database document was modified
        """
        result = await type(self).collection.update_one(
            {**filter, "_id": self.id},
            {"$set": changes},
        )
        if result.modified_count == 1:
            self._apply(changes)
            return True
        return False

    async def delete(self) -> bool:
        result = await type(self).collection.delete_one({"_id": self.id})
        return result.deleted_count == 1

    def _apply(self, changes: dict[str, Any]) -> None:
        for key, value in changes.items():
            setattr(self, key, value)

    # -------------------------------------------------------------------------
    # Class Methods
    # -------------------------------------------------------------------------

    @classmethod
    async def init(cls, app: Application) -> None:
        """Bind the model to its collection in the application's database."""
        cls.collection = app.mongo.get_collection(cls.collection_name or cls.__name__)
        logger.debug(f"Model {cls.__name__} bound to collection {cls.collection.name}")

    @classmethod
    async def create(cls, doc: dict[str, Any]):
        """Insert a document and return it as a model instance."""
        result = await cls.collection.insert_one(dict(doc))
        return await cls.find_by_id(result.inserted_id)

    @classmethod
    async def find_by_id(cls, id: ObjectId | str):
        """
        Fetch one document by id.

        Returns:
            The model instance, or None if the id is malformed or unknown
        """
        object_id = try_object_id(id)
        if object_id is None:
            return None
        doc = await cls.collection.find_one({"_id": object_id})
        return cls.model_validate(doc) if doc else None

    @classmethod
    def from_docs(cls, docs: Iterable[dict[str, Any]]) -> list:
        return [cls.model_validate(doc) for doc in docs]

    @staticmethod
    def to_ids(entities: Iterable[MongoModel]) -> list[Any]:
        return [entity.id for entity in entities]

    @staticmethod
    def to_map(entities: Iterable[MongoModel]) -> dict[str, MongoModel]:
        """Index entities by their id as a string."""
        return {str(entity.id): entity for entity in entities}

    @staticmethod
    def normalize_ids(ids: Iterable[ObjectId | str]) -> list[ObjectId]:
        return [normalize_object_id(id) for id in ids]
