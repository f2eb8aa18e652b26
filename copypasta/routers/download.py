from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
import os

from ..errors import ServiceError
from ..services.items import ItemService, get_service

router = APIRouter(tags=["download"])


@router.get("/download/{item_id}")
def download_item(
    item_id: str,
    inline: bool = False,
    service: ItemService = Depends(get_service),
):
    """本文のダウンロード（Range 指定は FileResponse が処理）"""

    item = service.get(item_id, with_content=False)
    path = service.content_path(item)

    if not os.path.isfile(path):
        raise ServiceError(ServiceError.NOT_FOUND, "Item content not found")

    return FileResponse(
        path,
        media_type=item.file_type or "text/plain",
        filename=item.file_name or f"{item.id}.txt",
        content_disposition_type="inline" if inline else "attachment",
    )
