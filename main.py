import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from bson import ObjectId
from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

# Local database utilities
from database import DocumentStore, db, get_store
from storage import ObjectStorage, content_disposition, get_storage, is_allowed_filename, resolve_download_url
from navigation import (
    UNCATEGORIZED,
    build_navbar_classes,
    build_sidebar_tree,
    describe_attachment,
    excerpt,
    file_urls,
    filter_sidebar_tree,
    is_small_screen,
    scroll_window,
    sequence_topics,
    window_state,
)

# Schemas for reference
from schemas import ClassOption, Comment as CommentSchema, Draft as DraftSchema, Topic as TopicSchema

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

TOPICS = "topics"
CLASSES = "classes"
COMMENTS = "comments"
DRAFTS = "drafts"
DRAFT_KEY = "user_draft"


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        try:
            db[TOPICS].create_index([("timestamp", ASCENDING)])
            db[TOPICS].create_index([("subCategory", ASCENDING)])
            db[COMMENTS].create_index([("subCategory", ASCENDING), ("created_at", ASCENDING)])
        except PyMongoError as e:
            logger.warning(f"Could not create indexes: {e} - continuing without them")
    yield


app = FastAPI(title="Topic Catalog API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PyMongoError)
async def document_store_error(request: Request, exc: PyMongoError):
    logger.error("Document store call failed on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=503, content={"detail": "Document store unavailable"})


# -----------------------
# Utility helpers
# -----------------------
def parse_id(value: str, kind: str) -> str:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {kind} id")
    return value


def join_classes(value: Union[str, List[str], None]) -> str:
    if isinstance(value, str):
        return value.strip()
    return ", ".join(c.strip() for c in (value or []) if c and c.strip())


def base_url(request: Request) -> str:
    return PUBLIC_BASE_URL or str(request.base_url)


def fetch_topics(store: DocumentStore, sub_category: Optional[str] = None) -> List[Dict[str, Any]]:
    q = {"subCategory": sub_category} if sub_category is not None else None
    return store.list_documents(TOPICS, order_by="timestamp", filter_dict=q)


def topic_out(record: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(record)
    out["fileURL"] = file_urls(record)
    out["attachments"] = [describe_attachment(u) for u in out["fileURL"]]
    out["excerpt"] = excerpt(record.get("description"))
    return out


def topic_link(record: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if record is None:
        return None
    return {
        "id": record.get("id"),
        "topic": record.get("topic"),
        "class": record.get("class"),
        "subCategory": record.get("subCategory"),
    }


def get_topic_or_404(store: DocumentStore, topic_id: str) -> Dict[str, Any]:
    topic = store.get_document(TOPICS, parse_id(topic_id, "topic"))
    if not topic:
        raise HTTPException(status_code=404, detail="Topic not found")
    return topic


# -----------------------
# Pydantic request models
# -----------------------
class TopicIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topic: str = ""
    class_: Union[str, List[str]] = Field(..., alias="class", description="One class label or a multi-select list")
    category: str = ""
    subCategory: str = ""
    description: str = ""
    date: str = ""
    fileURL: List[str] = Field(default_factory=list)


class TopicUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topic: Optional[str] = None
    class_: Optional[Union[str, List[str]]] = Field(None, alias="class")
    category: Optional[str] = None
    subCategory: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    fileURL: Optional[Union[str, List[str]]] = None


class ClassIn(BaseModel):
    name: str = Field(..., min_length=1)


class CommentIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = ""
    comment: str = Field(..., min_length=1)


class ReplyIn(BaseModel):
    reply: str


# -----------------------
# Basic routes
# -----------------------
@app.get("/")
def root():
    return {"message": "Topic Catalog API"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = db.name
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
                response["connection_status"] = "Connected"
            except PyMongoError as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


@app.get("/schema")
def schema():
    return {
        "topics": TopicSchema.model_json_schema(),
        "classes": ClassOption.model_json_schema(),
        "comments": CommentSchema.model_json_schema(),
        "drafts": DraftSchema.model_json_schema(),
    }


# -----------------------
# Navigation
# -----------------------
@app.get("/api/navbar")
def navbar(
    start: int = Query(0, ge=0),
    direction: Optional[Literal["left", "right"]] = None,
    width: Optional[int] = Query(None, ge=0, description="Viewport width; below 992 the full list is returned"),
    store: DocumentStore = Depends(get_store),
):
    classes = build_navbar_classes(fetch_topics(store))
    small = is_small_screen(width)
    if direction:
        start = scroll_window(start, len(classes), direction, small_screen=small)
    state = window_state(classes, start, small_screen=small)
    state["classes"] = state.pop("items")
    return state


@app.get("/api/sidebar")
def sidebar(search: Optional[str] = None, store: DocumentStore = Depends(get_store)):
    return filter_sidebar_tree(build_sidebar_tree(fetch_topics(store)), search)


# -----------------------
# Topic management
# -----------------------
@app.get("/api/topics")
def list_topics(store: DocumentStore = Depends(get_store)):
    return [topic_out(t) for t in fetch_topics(store)]


@app.post("/api/topics", status_code=201)
def create_topic(payload: TopicIn, store: DocumentStore = Depends(get_store)):
    class_label = join_classes(payload.class_)
    if not class_label:
        raise HTTPException(status_code=400, detail="Please select a class")
    data = payload.model_dump(by_alias=True)
    data["class"] = class_label
    data["timestamp"] = datetime.now(timezone.utc)
    topic_id = store.add_document(TOPICS, data)
    logger.info("Created topic %s in %s / %s", topic_id, class_label, payload.subCategory or UNCATEGORIZED)
    return topic_out(get_topic_or_404(store, topic_id))


@app.get("/api/topics/{topic_id}")
def get_topic(topic_id: str, store: DocumentStore = Depends(get_store)):
    topic = get_topic_or_404(store, topic_id)
    # labels are compared after trimming, so the sequencer filters the full list
    siblings = fetch_topics(store)
    previous, following = sequence_topics(siblings, topic["id"])
    out = topic_out(topic)
    out["previous"] = topic_link(previous)
    out["next"] = topic_link(following)
    return out


@app.put("/api/topics/{topic_id}")
def update_topic(topic_id: str, payload: TopicUpdate, store: DocumentStore = Depends(get_store)):
    fields = payload.model_dump(exclude_unset=True, by_alias=True)
    if "class" in fields:
        fields["class"] = join_classes(fields["class"])
        if not fields["class"]:
            raise HTTPException(status_code=400, detail="Please select a class")
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")
    if not store.update_document(TOPICS, parse_id(topic_id, "topic"), fields):
        raise HTTPException(status_code=404, detail="Topic not found")
    return topic_out(get_topic_or_404(store, topic_id))


@app.delete("/api/topics/{topic_id}")
def delete_topic(topic_id: str, store: DocumentStore = Depends(get_store)):
    if not store.delete_document(TOPICS, parse_id(topic_id, "topic")):
        raise HTTPException(status_code=404, detail="Topic not found")
    return {"ok": True}


@app.post("/api/topics/{topic_id}/files", status_code=201)
def upload_topic_file(
    topic_id: str,
    request: Request,
    file: UploadFile = File(...),
    store: DocumentStore = Depends(get_store),
    storage: ObjectStorage = Depends(get_storage),
):
    topic = get_topic_or_404(store, topic_id)
    if not is_allowed_filename(file.filename):
        raise HTTPException(status_code=400, detail="Only .jpg, .jpeg, .png and .pdf files can be attached")
    stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    sub_category = topic.get("subCategory") or UNCATEGORIZED
    handle = storage.upload(f"files/{sub_category}/{stamp}-{file.filename}", file.file.read(), file.content_type)
    url = resolve_download_url(handle, base_url(request))
    try:
        if "fileURL" in topic and not isinstance(topic["fileURL"], list):
            store.update_document(TOPICS, topic["id"], {"fileURL": file_urls(topic)})
        attached = store.append_to_list(TOPICS, topic["id"], "fileURL", url)
    except PyMongoError:
        storage.delete(handle["id"])
        raise
    if not attached:
        storage.delete(handle["id"])
        raise HTTPException(status_code=404, detail="Topic not found")
    return {"file": dict(handle, url=url), "fileURL": file_urls(get_topic_or_404(store, topic["id"]))}


# -----------------------
# Subcategory page
# -----------------------
@app.get("/api/description/{sub_category}")
def describe_sub_category(
    sub_category: str,
    request: Request,
    store: DocumentStore = Depends(get_store),
    storage: ObjectStorage = Depends(get_storage),
):
    topics = [topic_out(t) for t in fetch_topics(store, sub_category)]
    files = [dict(h, url=resolve_download_url(h, base_url(request))) for h in storage.list_objects(f"files/{sub_category}")]
    comments = store.list_documents(COMMENTS, order_by="created_at", filter_dict={"subCategory": sub_category})
    return {
        "subCategory": sub_category,
        "title": topics[0].get("topic") if topics else None,
        "topics": topics,
        "files": files,
        "comments": comments,
    }


# -----------------------
# Class options
# -----------------------
@app.get("/api/classes")
def list_classes(store: DocumentStore = Depends(get_store)):
    return [{"id": x["id"], "name": x.get("name")} for x in store.list_documents(CLASSES, order_by="created_at")]


@app.post("/api/classes", status_code=201)
def add_class(payload: ClassIn, store: DocumentStore = Depends(get_store)):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Class name is empty")
    if store.list_documents(CLASSES, filter_dict={"name": name}):
        raise HTTPException(status_code=409, detail="Class with this name already exists")
    class_id = store.add_document(CLASSES, ClassOption(name=name))
    return {"id": class_id, "name": name}


# -----------------------
# Draft
# -----------------------
@app.get("/api/drafts")
def get_draft(store: DocumentStore = Depends(get_store)):
    drafts = store.list_documents(DRAFTS, filter_dict={"key": DRAFT_KEY})
    if not drafts:
        raise HTTPException(status_code=404, detail="No draft saved")
    return drafts[0]


@app.put("/api/drafts")
def save_draft(payload: DraftSchema, store: DocumentStore = Depends(get_store)):
    data = payload.model_dump(by_alias=True)
    data["key"] = DRAFT_KEY
    existing = store.list_documents(DRAFTS, filter_dict={"key": DRAFT_KEY})
    if existing:
        store.update_document(DRAFTS, existing[0]["id"], data)
        draft_id = existing[0]["id"]
    else:
        draft_id = store.add_document(DRAFTS, data)
    return store.get_document(DRAFTS, draft_id)


# -----------------------
# Comments
# -----------------------
@app.get("/api/comments/{sub_category}")
def list_comments(sub_category: str, store: DocumentStore = Depends(get_store)):
    return store.list_documents(COMMENTS, order_by="created_at", filter_dict={"subCategory": sub_category})


@app.post("/api/comments/{sub_category}", status_code=201)
def add_comment(sub_category: str, payload: CommentIn, store: DocumentStore = Depends(get_store)):
    data = CommentSchema(subCategory=sub_category, **payload.model_dump())
    comment_id = store.add_document(COMMENTS, data)
    return store.get_document(COMMENTS, comment_id)


@app.post("/api/comments/{sub_category}/{comment_id}/replies")
def add_reply(sub_category: str, comment_id: str, payload: ReplyIn, store: DocumentStore = Depends(get_store)):
    reply = payload.reply.strip()
    if not reply:
        raise HTTPException(status_code=400, detail="Please enter a reply.")
    comment = store.get_document(COMMENTS, parse_id(comment_id, "comment"))
    if not comment or comment.get("subCategory") != sub_category:
        raise HTTPException(status_code=404, detail="Comment not found")
    if not store.append_to_list(COMMENTS, comment_id, "replies", reply):
        raise HTTPException(status_code=404, detail="Comment not found")
    comment = store.get_document(COMMENTS, comment_id)
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    return {"id": comment_id, "replies": comment.get("replies") or []}


# -----------------------
# Files
# -----------------------
@app.get("/api/files/{sub_category}")
def list_files(sub_category: str, request: Request, storage: ObjectStorage = Depends(get_storage)):
    return [dict(h, url=resolve_download_url(h, base_url(request))) for h in storage.list_objects(f"files/{sub_category}")]


@app.get("/api/files/download/{file_id}")
def download_file(file_id: str, storage: ObjectStorage = Depends(get_storage)):
    grid_out = storage.open(parse_id(file_id, "file"))
    if grid_out is None:
        raise HTTPException(status_code=404, detail="File not found")
    name = grid_out.filename.rsplit("/", 1)[-1]
    media_type = (grid_out.metadata or {}).get("contentType") or "application/octet-stream"
    return StreamingResponse(grid_out, media_type=media_type, headers={"Content-Disposition": content_disposition(name)})


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
