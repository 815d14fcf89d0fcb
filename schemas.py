"""
Database Schemas for the Topic Catalog

Each Pydantic model below corresponds to a MongoDB collection.
- Topic -> "topics"
- ClassOption -> "classes"
- Comment -> "comments" (keyed by subCategory)
- Draft -> "drafts"
Uploaded attachments live in GridFS (see storage.py).
"""
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Topic(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topic: str = Field("", description="Topic title")
    class_: str = Field(..., alias="class", description="Class label; several classes are joined with ', '")
    category: str = Field("", description="Category within the class")
    subCategory: str = Field("", description="Subcategory; not unique across classes")
    description: str = Field("", description="HTML description")
    date: str = Field("", description="Optional YYYY-MM-DD date picked in the admin form")
    fileURL: Union[str, List[str]] = Field(default_factory=list, description="Attachment URL(s)")
    timestamp: Optional[datetime] = Field(None, description="Creation instant used for ordering")


class ClassOption(BaseModel):
    name: str = Field(..., description="Selectable class label, e.g. Class 6")


class Comment(BaseModel):
    subCategory: str = Field(..., description="Subcategory the comment was left on")
    name: str = Field(..., description="Commenter name")
    email: str = Field("", description="Commenter email")
    comment: str = Field(..., description="Comment text")
    replies: List[str] = Field(default_factory=list, description="Replies, oldest first")


class Draft(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field("user_draft", description="Draft slot; the admin form keeps a single draft")
    topic: str = ""
    date: str = ""
    class_: List[str] = Field(default_factory=list, alias="class")
    category: str = ""
    subCategory: str = ""
    description: str = ""
    file: List[str] = Field(default_factory=list, description="Names of files picked before saving")
