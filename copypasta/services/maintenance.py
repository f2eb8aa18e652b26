import os
import logging
from typing import NamedTuple

logger = logging.getLogger("maintenance")


class ReconcileReport(NamedTuple):
    pending: int
    dangling: int
    orphans: int


def _remove_file(path) -> bool:
    """消せなかったファイルはログだけ残して次回に回す"""

    try:
        if os.path.exists(path):
            os.remove(path)
        return True
    except OSError as e:
        logger.warning(f"Failed to delete file {path}: {e}")
        return False


def purge_pending_items(store, cur):
    """書き込み途中で止まった (pending のままの) アイテムを削除"""

    cur.execute("SELECT id, type FROM items WHERE state='pending'")
    rows = cur.fetchall()

    for item_id, item_type in rows:
        _remove_file(os.path.join(store.dir_for(item_type), item_id))
        cur.execute("DELETE FROM items WHERE id=?", (item_id,))

    if rows:
        logger.info(f"🗑️ Deleted {len(rows)} unfinished items")
    return len(rows)


def remove_dangling_records(store, cur):
    """本文ファイルが無くなったレコードを削除"""

    cur.execute("SELECT id, type FROM items WHERE state='ready'")
    missing = [
        item_id for item_id, item_type in cur.fetchall()
        if not os.path.exists(os.path.join(store.dir_for(item_type), item_id))
    ]

    for item_id in missing:
        cur.execute("DELETE FROM items WHERE id=?", (item_id,))

    if missing:
        logger.info(f"🧹 Deleted {len(missing)} records without content")
    return len(missing)


def remove_orphan_files(store, cur):
    """レコードの無いファイルを削除"""

    cur.execute("SELECT id, type FROM items")
    known = {(item_type, item_id) for item_id, item_type in cur.fetchall()}

    removed = 0
    for item_type, directory in (("note", store.notes_dir), ("file", store.files_dir)):
        for name in os.listdir(directory):
            path = os.path.join(directory, name)
            if (item_type, name) in known or not os.path.isfile(path):
                continue
            if _remove_file(path):
                removed += 1

    if removed:
        logger.info(f"🧽 Deleted {removed} orphaned files")
    return removed


def run_maintenance(store) -> ReconcileReport:
    """起動時のメンテナンス処理を実行"""

    store.ensure_dirs()

    conn = store.connect()
    try:
        cur = conn.cursor()

        # 順番はこの通りで
        pending = purge_pending_items(store, cur)
        dangling = remove_dangling_records(store, cur)
        orphans = remove_orphan_files(store, cur)

        conn.commit()
    finally:
        conn.close()

    return ReconcileReport(pending, dangling, orphans)
