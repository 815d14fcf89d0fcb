"""
Shared fixtures.

The app talks to MongoDB through DocumentStore/ObjectStorage; tests swap both
for in-memory fakes via dependency overrides so no database is needed.
"""
import os

# Keep the app import-safe regardless of the developer's environment.
os.environ.pop("DATABASE_URL", None)

import copy
import io
import threading
from collections import defaultdict
from datetime import datetime, timezone

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from database import get_store
from main import app
from storage import get_storage, object_handle


def _matches(doc, filter_dict):
    return all(doc.get(k) == v for k, v in (filter_dict or {}).items())


class InMemoryDocumentStore:
    def __init__(self):
        self.collections = defaultdict(dict)
        self.lock = threading.Lock()

    def list_documents(self, collection_name, order_by=None, filter_dict=None):
        docs = [copy.deepcopy(d) for d in self.collections[collection_name].values() if _matches(d, filter_dict)]
        if order_by:
            docs.sort(key=lambda d: (d.get(order_by) is not None, d.get(order_by) or 0))
        return docs

    def get_document(self, collection_name, doc_id):
        doc = self.collections[collection_name].get(doc_id)
        return copy.deepcopy(doc) if doc else None

    def add_document(self, collection_name, data):
        if hasattr(data, "model_dump"):
            data = data.model_dump(by_alias=True)
        doc_id = str(ObjectId())
        doc = copy.deepcopy(dict(data))
        doc.setdefault("created_at", datetime.now(timezone.utc))
        doc["id"] = doc_id
        self.collections[collection_name][doc_id] = doc
        return doc_id

    def update_document(self, collection_name, doc_id, fields):
        doc = self.collections[collection_name].get(doc_id)
        if doc is None:
            return False
        doc.update(copy.deepcopy(fields))
        return True

    def append_to_list(self, collection_name, doc_id, field, value):
        with self.lock:
            doc = self.collections[collection_name].get(doc_id)
            if doc is None:
                return False
            doc.setdefault(field, []).append(copy.deepcopy(value))
            return True

    def delete_document(self, collection_name, doc_id):
        return self.collections[collection_name].pop(doc_id, None) is not None


class FakeGridOut(io.BytesIO):
    def __init__(self, data, filename, content_type):
        super().__init__(data)
        self.filename = filename
        self.metadata = {"contentType": content_type}


class InMemoryObjectStorage:
    def __init__(self):
        self.objects = {}

    def list_objects(self, prefix):
        prefix = prefix.rstrip("/") + "/"
        return [
            object_handle(o["path"], oid, o["content_type"], len(o["data"]))
            for oid, o in self.objects.items()
            if o["path"].startswith(prefix)
        ]

    def upload(self, path, data, content_type=None):
        oid = str(ObjectId())
        self.objects[oid] = {"path": path, "data": data, "content_type": content_type}
        return object_handle(path, oid, content_type, len(data))

    def open(self, object_id):
        o = self.objects.get(object_id)
        if o is None:
            return None
        return FakeGridOut(o["data"], o["path"], o["content_type"])

    def delete(self, object_id):
        self.objects.pop(object_id, None)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def object_storage():
    return InMemoryObjectStorage()


@pytest.fixture
def client(store, object_storage):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_storage] = lambda: object_storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def add_topic(store):
    """Insert a topic straight into the fake store with a fixed timestamp."""

    def _add(ts, sub, class_name, category="General", title=None, **extra):
        data = {
            "topic": title or f"{class_name} {sub} {ts}",
            "class": class_name,
            "category": category,
            "subCategory": sub,
            "description": "",
            "timestamp": ts,
        }
        data.update(extra)
        return store.add_document("topics", data)

    return _add
