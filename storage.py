"""
Object storage for uploaded attachments, backed by GridFS.

Objects are addressed by a "/"-separated path kept in the GridFS filename,
e.g. files/Algebra/1700000000000-worksheet.pdf.
"""
import re
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import gridfs
from gridfs.errors import NoFile
from bson import ObjectId
from fastapi import HTTPException
from pymongo.database import Database

from database import db

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".pdf")


def object_handle(path: str, object_id: Any, content_type: Optional[str], size: int) -> Dict[str, Any]:
    return {
        "id": str(object_id),
        "name": path.rsplit("/", 1)[-1],
        "path": path,
        "content_type": content_type,
        "size": size,
    }


class ObjectStorage:
    def __init__(self, database: Database, bucket: str = "fs"):
        self.fs = gridfs.GridFS(database, collection=bucket)

    def list_objects(self, prefix: str) -> List[Dict[str, Any]]:
        prefix = prefix.rstrip("/") + "/"
        files = self.fs.find({"filename": {"$regex": "^" + re.escape(prefix)}}).sort("uploadDate", 1)
        return [object_handle(f.filename, f._id, (f.metadata or {}).get("contentType"), f.length) for f in files]

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> Dict[str, Any]:
        object_id = self.fs.put(data, filename=path, metadata={"contentType": content_type})
        logger.info("Stored object %s (%d bytes)", path, len(data))
        return object_handle(path, object_id, content_type, len(data))

    def open(self, object_id: str):
        try:
            return self.fs.get(ObjectId(object_id))
        except NoFile:
            return None

    def delete(self, object_id: str) -> None:
        self.fs.delete(ObjectId(object_id))
        logger.info("Deleted object %s", object_id)


def content_disposition(name: str) -> str:
    # latin-1 only in the plain parameter; the real name travels in filename*
    fallback = "".join(c for c in name if 32 <= ord(c) < 127 and c not in '"\\').strip()
    return f"inline; filename=\"{fallback or 'download'}\"; filename*=UTF-8''{quote(name, safe='')}"


def resolve_download_url(handle: Dict[str, Any], base_url: str) -> str:
    return f"{base_url.rstrip('/')}/api/files/download/{handle['id']}?filename={quote(handle['name'])}"


def is_allowed_filename(filename: str) -> bool:
    return (filename or "").lower().endswith(ALLOWED_EXTENSIONS)


def get_storage() -> ObjectStorage:
    if db is None:
        raise HTTPException(status_code=503, detail="Database is not configured")
    return ObjectStorage(db)
