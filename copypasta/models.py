from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field, model_validator


class ItemType(str, Enum):
    note = "note"
    file = "file"


class _Timestamps(BaseModel):
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_expiry(self):
        if self.created_at and self.expires_at and self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self


class NoteCreate(_Timestamps):
    content: str
    language: Optional[str] = None
    original_size: Optional[int] = Field(default=None, ge=0)


class FileCreate(_Timestamps):
    content: str                                    # is_text=False の場合は base64
    file_name: str = Field(min_length=1)
    file_type: str = "application/octet-stream"
    is_text: bool = False
    language: Optional[str] = None
    original_size: Optional[int] = Field(default=None, ge=0)


class ItemEdit(BaseModel):
    content: str
    language: Optional[str] = None


class ReorderRequest(BaseModel):
    ids: List[str]


class ItemDraft(BaseModel):
    """ItemStore.insert に渡す保存前のメタデータ"""
    type: ItemType
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    is_text: bool = True
    language: str = "text"
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class Item(BaseModel):
    id: str
    type: ItemType
    content: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    is_text: bool = True
    language: str = "text"
    original_size: int = 0
    created_at: datetime
    expires_at: datetime
    order: int = 0
    url: Optional[str] = None


class SuccessOut(BaseModel):
    success: bool = True


class BulkOut(BaseModel):
    success: bool
    removed: int
    failed: int


class SweepOut(BaseModel):
    removed: int
    failed: int


class StatsOut(BaseModel):
    notes: int
    files: int
    total_size: int
    disk_total: int
    disk_used: int
    disk_free: int
