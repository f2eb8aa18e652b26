from fastapi import APIRouter, Depends, File, Form, UploadFile
from typing import List, Optional
import os

from ..models import (
    BulkOut,
    FileCreate,
    Item,
    ItemEdit,
    NoteCreate,
    ReorderRequest,
    StatsOut,
    SuccessOut,
    SweepOut,
)
from ..services.items import ItemService, get_service

router = APIRouter(tags=["items"])


@router.get("/items", response_model=list[Item])
def list_items(service: ItemService = Depends(get_service)):
    return service.list()


@router.get("/items/stats", response_model=StatsOut)
def get_stats(service: ItemService = Depends(get_service)):
    """件数・合計サイズ・ディスク使用量"""
    return service.stats()._asdict()


@router.get("/items/{item_id}", response_model=Item)
def get_item(item_id: str, service: ItemService = Depends(get_service)):
    return service.get(item_id)


@router.post("/notes", response_model=Item, status_code=201)
def create_note(note: NoteCreate, service: ItemService = Depends(get_service)):
    return service.insert_note(note)


@router.post("/files", response_model=Item, status_code=201)
def create_file(data: FileCreate, service: ItemService = Depends(get_service)):
    return service.insert_file(data)


@router.post("/files/upload", response_model=list[Item], status_code=201)
def upload_files(
    files: Optional[List[UploadFile]] = File(None),
    content: Optional[str] = Form(None),
    language: Optional[str] = Form(None),
    service: ItemService = Depends(get_service),
):
    """ファイル複数とメモをまとめて受け付ける"""

    parts = []
    for file in files or []:

        # 読み込む前にサイズ制限
        file.file.seek(0, os.SEEK_END)
        size = file.file.tell()
        file.file.seek(0)
        service.check_size(size)

        parts.append((file.filename, file.content_type, file.file.read()))

    return service.upload_many(parts, content=content, language=language)


@router.put("/items/order", response_model=SuccessOut)
def reorder_items(data: ReorderRequest, service: ItemService = Depends(get_service)):
    service.reorder(data.ids)
    return {"success": True}


@router.put("/items/{item_id}", response_model=SuccessOut)
def edit_item(item_id: str, data: ItemEdit, service: ItemService = Depends(get_service)):
    service.edit(item_id, data)
    return {"success": True}


@router.delete("/items/{item_id}", response_model=SuccessOut)
def delete_item(item_id: str, service: ItemService = Depends(get_service)):
    service.remove(item_id)
    return {"success": True}


@router.delete("/items", response_model=BulkOut)
def delete_all_items(service: ItemService = Depends(get_service)):
    result = service.remove_all()
    return {"success": result.failed == 0, "removed": result.removed, "failed": result.failed}


@router.post("/items/clean-expired", response_model=SweepOut)
def clean_expired(service: ItemService = Depends(get_service)):
    result = service.clean_expired()
    return {"removed": result.removed, "failed": result.failed}
