import os
import shutil
import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, List, NamedTuple, Optional

from .database import get_connection, init_db
from .errors import (
    InvalidItemError,
    ItemNotEditableError,
    ItemNotFoundError,
    ItemTooLargeError,
    StorageError,
    StoreError,
)
from .models import Item, ItemDraft, ItemType
from .utils import build_item_id, to_iso, to_utc, utcnow

logger = logging.getLogger("storage")

NOTES_DIR = "notes"
FILES_DIR = "files"

LIST_BY = ("order", "created")
INSERT_AT = ("top", "bottom")


class BulkResult(NamedTuple):
    removed: int
    failed: int


class StoreStats(NamedTuple):
    notes: int
    files: int
    total_size: int
    disk_total: int
    disk_used: int
    disk_free: int


class ItemStore:
    """
    ノート・ファイルの保存先
    メタデータは sqlite、本文は notes/ files/ 以下に 1 アイテム 1 ファイルで保存する
    """

    def __init__(
        self,
        data_dir: str,
        db_path: Optional[str] = None,
        max_size_mb: int = 50,
        expiry_days: int = 14,
        list_by: str = "order",
        insert_at: str = "top",
        clock: Callable[[], datetime] = utcnow,
    ):
        if list_by not in LIST_BY:
            raise ValueError(f"Unsupported ordering.list_by: {list_by}")
        if insert_at not in INSERT_AT:
            raise ValueError(f"Unsupported ordering.insert_at: {insert_at}")

        self.data_dir = os.path.abspath(data_dir)
        self.notes_dir = os.path.join(self.data_dir, NOTES_DIR)
        self.files_dir = os.path.join(self.data_dir, FILES_DIR)
        self.db_path = db_path or os.path.join(self.data_dir, "copypasta.db")
        self.max_bytes = int(max_size_mb * 1024 * 1024)
        self.expiry_days = expiry_days
        self.list_by = list_by
        self.insert_at = insert_at
        self.clock = clock

        self.ensure_dirs()
        init_db(self.db_path)

    @classmethod
    def from_config(cls, config, clock: Callable[[], datetime] = utcnow):
        return cls(
            data_dir=config["data_dir"],
            db_path=config["database"]["path"],
            max_size_mb=config["upload"]["max_size_mb"],
            expiry_days=config["expiry"]["days"],
            list_by=config["ordering"]["list_by"],
            insert_at=config["ordering"]["insert_at"],
            clock=clock,
        )

    # ------------------------------------------------------------
    # 内部処理
    # ------------------------------------------------------------

    def ensure_dirs(self):
        for path in (self.data_dir, self.notes_dir, self.files_dir):
            os.makedirs(path, exist_ok=True)

    def connect(self):
        return get_connection(self.db_path)

    @contextmanager
    def _cursor(self):
        try:
            conn = self.connect()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Database unavailable: {e}") from e

        try:
            yield conn, conn.cursor()
        except sqlite3.Error as e:
            raise StorageError(f"Database error: {e}") from e
        finally:
            conn.close()

    def dir_for(self, item_type) -> str:
        return self.files_dir if ItemType(item_type) == ItemType.file else self.notes_dir

    def content_path(self, item: Item) -> str:
        return os.path.join(self.dir_for(item.type), item.id)

    @staticmethod
    def _write(path: str, payload: bytes):
        # 一時ファイルに書いてから置き換える
        tmp_path = f"{path}.tmp"
        try:
            with open(tmp_path, "wb") as f:
                f.write(payload)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    @staticmethod
    def _row_to_item(row) -> Item:
        return Item(
            id=row["id"],
            type=row["type"],
            file_name=row["file_name"],
            file_type=row["file_type"],
            is_text=bool(row["is_text"]),
            language=row["language"],
            original_size=row["original_size"],
            created_at=row["created_at"],
            expires_at=row["expires_at"],
            order=row["sort_order"],
        )

    def read_content(self, item: Item) -> Optional[str]:
        """テキストの本文を返す（バイナリファイルは None）"""
        if not item.is_text:
            return None
        with open(self.content_path(item), "r", encoding="utf-8", errors="replace", newline="") as f:
            return f.read()

    def _with_content(self, item: Item) -> Item:
        try:
            item.content = self.read_content(item)
        except OSError as e:
            logger.warning(f"Could not read content of {item.id}: {e}")
        return item

    def _next_order(self, cur) -> int:
        if self.insert_at == "bottom":
            cur.execute("SELECT MAX(sort_order) FROM items")
            value = cur.fetchone()[0]
            return 0 if value is None else value + 1

        cur.execute("SELECT MIN(sort_order) FROM items")
        value = cur.fetchone()[0]
        return 0 if value is None else value - 1

    def _order_clause(self) -> str:
        if self.list_by == "created":
            return "ORDER BY created_at DESC, id DESC"
        return "ORDER BY sort_order ASC, created_at DESC, id DESC"

    # ------------------------------------------------------------
    # 操作
    # ------------------------------------------------------------

    def insert(self, draft: ItemDraft, payload: bytes) -> Item:
        """
        アイテムを保存して保存後のレコードを返す
        pending で仮登録 -> 本文を書き込み -> ready に更新、の順で行う
        """
        size = len(payload)
        if size > self.max_bytes:
            raise ItemTooLargeError(size, self.max_bytes)

        created_at = to_utc(draft.created_at) if draft.created_at else self.clock()
        if draft.expires_at:
            expires_at = to_utc(draft.expires_at)
        else:
            expires_at = created_at + timedelta(days=self.expiry_days)

        # 保存形式に合わせてミリ秒に丸める
        created_at = created_at.replace(microsecond=created_at.microsecond // 1000 * 1000)
        expires_at = expires_at.replace(microsecond=expires_at.microsecond // 1000 * 1000)
        if expires_at <= created_at:
            raise InvalidItemError("expires_at must be later than created_at")

        target_dir = self.dir_for(draft.type)
        file_name = draft.file_name if draft.type == ItemType.file else None

        with self._cursor() as (conn, cur):

            def taken(candidate):
                cur.execute("SELECT 1 FROM items WHERE id=?", (candidate,))
                return cur.fetchone() is not None or os.path.exists(os.path.join(target_dir, candidate))

            item_id = build_item_id(created_at, file_name, exists=taken)
            order = self._next_order(cur)

            cur.execute(
                """
                INSERT INTO items (id, type, file_name, file_type, is_text, language,
                                   original_size, created_at, expires_at, sort_order, state)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending')
                """,
                (
                    item_id, draft.type.value, file_name, draft.file_type, int(draft.is_text),
                    draft.language, size, to_iso(created_at), to_iso(expires_at), order,
                ),
            )
            conn.commit()

            path = os.path.join(target_dir, item_id)
            try:
                self._write(path, payload)
                cur.execute("UPDATE items SET state='ready' WHERE id=?", (item_id,))
                conn.commit()
            except (OSError, sqlite3.Error) as e:
                logger.error(f"Failed to store {item_id}: {e}")
                self._discard(conn, cur, item_id, path)
                raise StorageError(f"Failed to store item: {e}") from e

        logger.info(f"📝 Stored {draft.type.value} {item_id} ({size} bytes)")

        return Item(
            id=item_id,
            type=draft.type,
            file_name=file_name,
            file_type=draft.file_type,
            is_text=draft.is_text,
            language=draft.language,
            original_size=size,
            created_at=created_at,
            expires_at=expires_at,
            order=order,
        )

    def _discard(self, conn, cur, item_id, path):
        # 残ったものは起動時のメンテナンスで片付く
        try:
            cur.execute("DELETE FROM items WHERE id=?", (item_id,))
            conn.commit()
        except sqlite3.Error as e:
            logger.warning(f"Could not roll back record {item_id}: {e}")
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.warning(f"Could not remove partial file {path}: {e}")

    def list(self, with_content: bool = True) -> List[Item]:
        with self._cursor() as (conn, cur):
            cur.execute(f"SELECT * FROM items WHERE state='ready' {self._order_clause()}")
            items = [self._row_to_item(row) for row in cur.fetchall()]

        if with_content:
            items = [self._with_content(item) for item in items]
        return items

    def get(self, item_id: str, with_content: bool = True) -> Item:
        with self._cursor() as (conn, cur):
            cur.execute("SELECT * FROM items WHERE id=? AND state='ready'", (item_id,))
            row = cur.fetchone()

        if not row:
            raise ItemNotFoundError(item_id)

        item = self._row_to_item(row)
        return self._with_content(item) if with_content else item

    def remove(self, item_id: str) -> Item:
        """レコードを削除してから本文ファイルを削除する"""
        with self._cursor() as (conn, cur):
            cur.execute("SELECT * FROM items WHERE id=?", (item_id,))
            row = cur.fetchone()
            if not row:
                raise ItemNotFoundError(item_id)

            item = self._row_to_item(row)
            cur.execute("DELETE FROM items WHERE id=?", (item_id,))
            conn.commit()

        path = self.content_path(item)
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            # レコードは削除済みなのでログだけ（ファイルはメンテナンスで削除）
            logger.warning(f"Failed to delete file {path}: {e}")

        logger.info(f"🗑️ Removed {item.type.value} {item_id}")
        return item

    def remove_all(self) -> BulkResult:
        removed = 0
        failed = 0

        for item in self.list(with_content=False):
            try:
                self.remove(item.id)
                removed += 1
            except StoreError as e:
                failed += 1
                logger.warning(f"Could not remove {item.id}: {e}")

        if failed == 0:
            # 取り残されたファイルも含めてディレクトリを作り直す
            for path in (self.notes_dir, self.files_dir):
                shutil.rmtree(path, ignore_errors=True)
        self.ensure_dirs()

        logger.info(f"🧹 Removed all items: {removed} removed, {failed} failed")
        return BulkResult(removed, failed)

    def reorder(self, ids: List[str]):
        """並び順を ids の順番に書き換える（存在しない ID は無視）"""
        with self._cursor() as (conn, cur):
            cur.executemany(
                "UPDATE items SET sort_order=? WHERE id=?",
                [(position, item_id) for position, item_id in enumerate(ids)],
            )
            conn.commit()

    def update_content(self, item_id: str, payload: bytes, language: str) -> Item:
        item = self.get(item_id, with_content=False)

        if not item.is_text:
            raise ItemNotEditableError(f"Binary file {item_id} cannot be edited")

        size = len(payload)
        if size > self.max_bytes:
            raise ItemTooLargeError(size, self.max_bytes)

        try:
            self._write(self.content_path(item), payload)
        except OSError as e:
            raise StorageError(f"Failed to write item: {e}") from e

        with self._cursor() as (conn, cur):
            cur.execute(
                "UPDATE items SET language=?, original_size=? WHERE id=?",
                (language, size, item_id),
            )
            conn.commit()

        logger.info(f"✏️ Updated {item_id} ({size} bytes)")
        return item.model_copy(update={"language": language, "original_size": size})

    def expired(self, now: Optional[datetime] = None) -> List[Item]:
        now = to_utc(now) if now else self.clock()
        with self._cursor() as (conn, cur):
            cur.execute(
                "SELECT * FROM items WHERE state='ready' AND expires_at < ? ORDER BY expires_at",
                (to_iso(now),),
            )
            return [self._row_to_item(row) for row in cur.fetchall()]

    def stats(self) -> StoreStats:
        counts = {ItemType.note.value: 0, ItemType.file.value: 0}
        total_size = 0

        with self._cursor() as (conn, cur):
            cur.execute("""
                SELECT type, COUNT(*), COALESCE(SUM(original_size), 0)
                FROM items
                WHERE state='ready'
                GROUP BY type
            """)
            for item_type, count, size in cur.fetchall():
                counts[item_type] = count
                total_size += size

        try:
            usage = shutil.disk_usage(self.data_dir)
        except OSError as e:
            raise StorageError(f"Could not read disk usage: {e}") from e

        return StoreStats(
            notes=counts[ItemType.note.value],
            files=counts[ItemType.file.value],
            total_size=total_size,
            disk_total=usage.total,
            disk_used=usage.used,
            disk_free=usage.free,
        )


