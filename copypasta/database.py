import sqlite3
from pathlib import Path


def get_connection(db_path):

    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=10.0, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.row_factory = sqlite3.Row  # 辞書形式で取得

    return conn


def init_db(db_path):

    conn = get_connection(db_path)
    cur = conn.cursor()

    cur.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='items'")
    has_items = cur.fetchone() is not None

    if has_items:
        # カラムチェック
        cur.execute("PRAGMA table_info(items)")
        columns = [row[1] for row in cur.fetchall()]

        if "state" not in columns:
            cur.execute("ALTER TABLE items ADD COLUMN state TEXT NOT NULL DEFAULT 'ready'")

    else:
        # state: 'pending' はファイル書き込み前の仮登録
        cur.execute("""
            CREATE TABLE items (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                file_name TEXT,
                file_type TEXT,
                is_text INTEGER NOT NULL DEFAULT 1,
                language TEXT NOT NULL DEFAULT 'text',
                original_size INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                sort_order INTEGER NOT NULL DEFAULT 0,
                state TEXT NOT NULL DEFAULT 'pending'
            )
        """)

    cur.execute("CREATE INDEX IF NOT EXISTS items_created_at ON items (created_at)")
    cur.execute("CREATE INDEX IF NOT EXISTS items_expires_at ON items (expires_at)")

    conn.commit()
    conn.close()
