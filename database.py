"""
Database access

Thin gateway over a MongoDB database. Routes receive a DocumentStore through
FastAPI dependencies instead of touching the pymongo collections directly.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "topic_catalog")

_client: Optional[MongoClient] = MongoClient(DATABASE_URL) if DATABASE_URL else None
db: Optional[Database] = _client[DATABASE_NAME] if _client is not None else None


def oid_str(value: Any) -> str:
    return str(value) if isinstance(value, (ObjectId, str)) else str(value)


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(doc)
    doc["id"] = oid_str(doc.pop("_id", doc.get("id")))
    return doc


class DocumentStore:
    """Collection-based CRUD used by every view."""

    def __init__(self, database: Database):
        self.db = database

    def list_documents(
        self,
        collection_name: str,
        order_by: Optional[str] = None,
        filter_dict: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self.db[collection_name].find(filter_dict or {})
        if order_by:
            cursor = cursor.sort(order_by, ASCENDING)
        return [serialize_doc(x) for x in cursor]

    def get_document(self, collection_name: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self.db[collection_name].find_one({"_id": ObjectId(doc_id)})
        return serialize_doc(doc) if doc else None

    def add_document(self, collection_name: str, data: Any) -> str:
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True)
        data = dict(data)
        now = datetime.now(timezone.utc)
        data.setdefault("created_at", now)
        data["updated_at"] = now
        result = self.db[collection_name].insert_one(data)
        logger.info("Added %s document %s", collection_name, result.inserted_id)
        return str(result.inserted_id)

    def update_document(self, collection_name: str, doc_id: str, fields: Dict[str, Any]) -> bool:
        fields = dict(fields)
        fields["updated_at"] = datetime.now(timezone.utc)
        result = self.db[collection_name].update_one({"_id": ObjectId(doc_id)}, {"$set": fields})
        logger.info("Updated %s document %s (matched=%s)", collection_name, doc_id, result.matched_count)
        return bool(result.matched_count)

    def append_to_list(self, collection_name: str, doc_id: str, field: str, value: Any) -> bool:
        """Append ``value`` to an array field in one server-side update."""
        result = self.db[collection_name].update_one(
            {"_id": ObjectId(doc_id)},
            {"$push": {field: value}, "$set": {"updated_at": datetime.now(timezone.utc)}},
        )
        logger.info("Appended to %s.%s on %s (matched=%s)", collection_name, field, doc_id, result.matched_count)
        return bool(result.matched_count)

    def delete_document(self, collection_name: str, doc_id: str) -> bool:
        result = self.db[collection_name].delete_one({"_id": ObjectId(doc_id)})
        logger.info("Deleted %s document %s (deleted=%s)", collection_name, doc_id, result.deleted_count)
        return bool(result.deleted_count)


def get_store() -> DocumentStore:
    if db is None:
        raise HTTPException(status_code=503, detail="Database is not configured")
    return DocumentStore(db)
