import base64
import binascii
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional
from urllib.parse import quote

from ..errors import (
    InvalidItemError,
    ItemNotEditableError,
    ItemNotFoundError,
    ItemTooLargeError,
    ServiceError,
    StoreError,
)
from ..language import ExtensionLanguageDetector, LanguageDetector, TEXT, default_detector
from ..models import FileCreate, Item, ItemDraft, ItemEdit, ItemType, NoteCreate
from ..store import BulkResult, ItemStore, StoreStats
from ..utils import is_text_mime, normalize_newlines, utcnow
from .expiry import SweepResult, sweep_expired

logger = logging.getLogger("copypasta")

BINARY = "binary"


class ItemService:
    """
    リクエスト側の入力チェックとエラー変換
    ItemStore の例外は必ず ServiceError に変換して返す
    """

    def __init__(self, store: ItemStore, detector: Optional[LanguageDetector] = None):
        self.store = store
        self.detector = detector or default_detector()

    @property
    def max_size_mb(self) -> int:
        return self.store.max_bytes // (1024 * 1024)

    @contextmanager
    def _translate(self):
        try:
            yield
        except ItemNotFoundError as e:
            raise ServiceError(ServiceError.NOT_FOUND, "Item not found") from e
        except ItemTooLargeError as e:
            raise ServiceError(ServiceError.TOO_LARGE, f"File size must be under {self.max_size_mb}MB") from e
        except ItemNotEditableError as e:
            raise ServiceError(ServiceError.NOT_EDITABLE, str(e)) from e
        except InvalidItemError as e:
            raise ServiceError(ServiceError.VALIDATION, str(e)) from e
        except StoreError as e:
            logger.error(f"Storage failure: {e}")
            raise ServiceError(ServiceError.STORAGE, "Storage operation failed") from e
        except (OSError, sqlite3.Error) as e:
            logger.exception("Unexpected storage failure")
            raise ServiceError(ServiceError.STORAGE, "Storage operation failed") from e

    def _language(self, content: str, language: Optional[str], file_name: Optional[str] = None) -> str:
        if language and language.strip().lower() not in ("", "auto"):
            return language.strip()
        return self.detector.detect(content, file_name)

    def check_size(self, size: Optional[int]):
        if size is not None and size > self.store.max_bytes:
            raise ServiceError(ServiceError.TOO_LARGE, f"File size must be under {self.max_size_mb}MB")

    @staticmethod
    def _present(item: Item) -> Item:
        item.url = f"/download/{quote(item.id)}"
        return item

    # ------------------------------------------------------------
    # 作成
    # ------------------------------------------------------------

    def insert_note(self, data: NoteCreate) -> Item:

        if not data.content.strip():
            raise ServiceError(ServiceError.VALIDATION, "Note content is required")

        # 改行コードの正規化
        content = normalize_newlines(data.content)

        draft = ItemDraft(
            type=ItemType.note,
            is_text=True,
            language=self._language(content, data.language),
            created_at=data.created_at,
            expires_at=data.expires_at,
        )

        with self._translate():
            item = self.store.insert(draft, content.encode("utf-8"))

        item.content = content
        return self._present(item)

    def insert_file(self, data: FileCreate) -> Item:
        """JSON でのアップロード（バイナリは base64）"""

        self.check_size(data.original_size)

        if data.is_text:
            payload = data.content.encode("utf-8")
            language = self._language(data.content, data.language, data.file_name)
        else:
            try:
                payload = base64.b64decode(data.content, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ServiceError(ServiceError.VALIDATION, "File content is not valid base64") from e
            language = BINARY

        return self._store_file(
            data.file_name, data.file_type, data.is_text, language, payload,
            data.created_at, data.expires_at,
        )

    def upload_file(self, file_name: str, file_type: Optional[str], payload: bytes) -> Item:
        """multipart でのアップロード"""

        if not file_name:
            raise ServiceError(ServiceError.VALIDATION, "File name is required")

        self.check_size(len(payload))

        file_type = file_type or "application/octet-stream"
        is_text = is_text_mime(file_type) or ExtensionLanguageDetector().detect("", file_name) != TEXT

        if is_text:
            # MIME・拡張子がテキストでも UTF-8 で読めなければバイナリ扱い
            try:
                text = payload.decode("utf-8")
            except UnicodeDecodeError:
                is_text = False

        if is_text:
            language = self._language(text, None, file_name)
        else:
            language = BINARY

        return self._store_file(file_name, file_type, is_text, language, payload)

    def upload_many(self, files, content: Optional[str] = None, language: Optional[str] = None) -> List[Item]:
        """
        ファイル複数 + メモ 1 件をまとめてアップロード
        files は (file_name, file_type, payload) のリスト
        サイズは全件先にチェックして、1 件でも超えていれば何も保存しない
        """

        has_note = bool(content and content.strip())
        if not files and not has_note:
            raise ServiceError(ServiceError.VALIDATION, "Nothing to upload")

        for _, _, payload in files:
            self.check_size(len(payload))

        items = [self.upload_file(name, file_type, payload) for name, file_type, payload in files]

        if has_note:
            items.append(self.insert_note(NoteCreate(content=content, language=language)))

        return items

    def _store_file(
        self,
        file_name: str,
        file_type: str,
        is_text: bool,
        language: str,
        payload: bytes,
        created_at: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
    ) -> Item:

        draft = ItemDraft(
            type=ItemType.file,
            file_name=file_name,
            file_type=file_type,
            is_text=is_text,
            language=language,
            created_at=created_at,
            expires_at=expires_at,
        )

        with self._translate():
            item = self.store.insert(draft, payload)

        if is_text:
            item.content = payload.decode("utf-8", errors="replace")
        return self._present(item)

    # ------------------------------------------------------------
    # 参照・更新・削除
    # ------------------------------------------------------------

    def list(self) -> List[Item]:
        with self._translate():
            items = self.store.list()
        return [self._present(item) for item in items]

    def get(self, item_id: str, with_content: bool = True) -> Item:
        with self._translate():
            item = self.store.get(item_id, with_content=with_content)
        return self._present(item)

    def content_path(self, item: Item) -> str:
        return self.store.content_path(item)

    def edit(self, item_id: str, data: ItemEdit) -> Item:

        if not data.content.strip():
            raise ServiceError(ServiceError.VALIDATION, "Content is required")

        with self._translate():
            current = self.store.get(item_id, with_content=False)

        content = normalize_newlines(data.content) if current.type == ItemType.note else data.content
        language = self._language(content, data.language, current.file_name)

        with self._translate():
            item = self.store.update_content(item_id, content.encode("utf-8"), language)

        item.content = content
        return self._present(item)

    def remove(self, item_id: str):
        with self._translate():
            self.store.remove(item_id)

    def remove_all(self) -> BulkResult:
        with self._translate():
            return self.store.remove_all()

    def reorder(self, ids: List[str]):
        with self._translate():
            self.store.reorder(ids)

    def clean_expired(self, now: Optional[datetime] = None) -> SweepResult:
        with self._translate():
            return sweep_expired(self.store, now)

    def stats(self) -> StoreStats:
        with self._translate():
            return self.store.stats()


# ------------------------------------------------------------
# FastAPI 依存関係
# ------------------------------------------------------------

_service = None


def init_service(config, clock=utcnow, detector: Optional[LanguageDetector] = None) -> ItemService:

    global _service

    store = ItemStore.from_config(config, clock=clock)
    _service = ItemService(store, detector)

    return _service


def get_service() -> ItemService:

    if _service is None:
        raise RuntimeError("init_service(config) が呼ばれていません")

    return _service
