"""
MongoDB access helpers.

The module-level ``db`` handle is ``None`` when the service is not configured;
every helper goes through ``get_db()`` so that state surfaces as
``DatabaseUnavailable`` instead of an AttributeError deep inside a route.

Tenant-owned collections (categories, products, orders, clients) are only ever
touched through ``TenantCollection``, which refuses to exist without a seller id
and injects that id into every filter and every inserted document.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient

import config

logger = logging.getLogger("storefront.database")

db = None
if config.DATABASE_URL and config.DATABASE_NAME:
    try:
        client = MongoClient(config.DATABASE_URL)
        db = client[config.DATABASE_NAME]
    except Exception:
        logger.exception("Could not initialise MongoDB client")
        db = None
else:
    logger.warning("DATABASE_URL / DATABASE_NAME not set, running in setup-required mode")


class DatabaseUnavailable(RuntimeError):
    pass


def get_db():
    if db is None:
        raise DatabaseUnavailable("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_dict(data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def doc_key(doc_id: str) -> Union[ObjectId, str]:
    """Generated ids are ObjectIds, caller-supplied ids (sellers, users, clients) are plain strings."""
    if isinstance(doc_id, str) and ObjectId.is_valid(doc_id):
        return ObjectId(doc_id)
    return doc_id


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(collection_name: str, data: Union[BaseModel, dict], doc_id: Optional[str] = None) -> str:
    data_dict = _to_dict(data)
    now = _now()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    if doc_id is not None:
        data_dict["_id"] = doc_id
    result = get_db()[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  sort: Optional[List[Tuple[str, int]]] = None) -> List[dict]:
    cursor = get_db()[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(collection_name: str, doc_id: str) -> Optional[dict]:
    return get_db()[collection_name].find_one({"_id": doc_key(doc_id)})


def update_document(collection_name: str, doc_id: str, fields: dict) -> bool:
    res = get_db()[collection_name].update_one(
        {"_id": doc_key(doc_id)}, {"$set": {**fields, "updated_at": _now()}}
    )
    return res.matched_count > 0


def delete_document(collection_name: str, doc_id: str) -> bool:
    res = get_db()[collection_name].delete_one({"_id": doc_key(doc_id)})
    return res.deleted_count > 0


class TenantCollection:
    """A collection view pinned to one seller."""

    def __init__(self, name: str, seller_id: str):
        if not isinstance(seller_id, str) or not seller_id.strip():
            raise ValueError("seller_id is required for tenant-scoped access")
        self.name = name
        self.seller_id = seller_id

    def scoped(self, filter_dict: Optional[dict] = None) -> dict:
        # seller_id goes last so a caller filter can never widen the scope
        return {**(filter_dict or {}), "seller_id": self.seller_id}

    def find(self, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
             sort: Optional[List[Tuple[str, int]]] = None) -> List[dict]:
        return get_documents(self.name, self.scoped(filter_dict), limit, sort)

    def find_one(self, filter_dict: Optional[dict] = None) -> Optional[dict]:
        return get_db()[self.name].find_one(self.scoped(filter_dict))

    def get(self, doc_id: str) -> Optional[dict]:
        return self.find_one({"_id": doc_key(doc_id)})

    def insert(self, data: Union[BaseModel, dict], doc_id: Optional[str] = None) -> str:
        data_dict = _to_dict(data)
        data_dict["seller_id"] = self.seller_id
        return create_document(self.name, data_dict, doc_id)

    def update(self, doc_id: str, fields: dict) -> bool:
        fields = {k: v for k, v in fields.items() if k != "seller_id"}
        res = get_db()[self.name].update_one(
            self.scoped({"_id": doc_key(doc_id)}), {"$set": {**fields, "updated_at": _now()}}
        )
        return res.matched_count > 0

    def upsert(self, doc_id: str, fields: dict) -> None:
        """Merge-write: fields are set, the document is created if missing.

        The equality filter (``_id`` and ``seller_id``) is copied onto a newly
        inserted document by MongoDB itself.
        """
        now = _now()
        fields = {k: v for k, v in fields.items() if k != "seller_id"}
        get_db()[self.name].update_one(
            self.scoped({"_id": doc_id}),
            {
                "$set": {**fields, "updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )

    def delete(self, doc_id: str) -> bool:
        res = get_db()[self.name].delete_one(self.scoped({"_id": doc_key(doc_id)}))
        return res.deleted_count > 0
