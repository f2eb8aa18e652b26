import unicodedata
import re
from datetime import datetime, timezone


TEXT_MIME_TYPES = ("application/json", "application/javascript", "application/xml")


def normalize_newlines(text: str) -> str:
    """改行コードの正規化"""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def sanitize_filename(name: str, maxlen: int = 100) -> str:
    """
    保存用ファイル名の正規化
    パス区切りや制御文字を除去し、ID の一部として使える形にする
    """
    name = unicodedata.normalize("NFC", name or "")
    name = name.replace("\\", "/").rsplit("/", 1)[-1]          # ディレクトリ部分は捨てる
    name = re.sub(r'[\x00-\x1F\x7F]', '_', name)              # 制御文字
    name = re.sub(r'[:*?"<>|]', '_', name)                    # Windows 禁止
    name = name.strip().strip('.')
    if not name:
        name = "untitled"
    if len(name) > maxlen:
        base, dot, ext = name.rpartition(".")
        if dot and len(ext) < 16:
            name = base[:maxlen - len(ext) - 1] + "." + ext
        else:
            name = name[:maxlen]
    return name


def build_item_id(created_at: datetime, file_name=None, exists=None) -> str:
    """
    作成時刻(ms)からIDを生成
    ファイルは "<ms>-<ファイル名>"、ノートは "<ms>"、重複時は _1, _2 ... を付加
    """
    stamp = str(int(created_at.timestamp() * 1000))

    if file_name:
        base, ext = _split_ext(f"{stamp}-{sanitize_filename(file_name)}")
    else:
        base, ext = stamp, ""

    candidate = base + ext
    i = 1
    while exists is not None and exists(candidate):
        candidate = f"{base}_{i}{ext}"
        i += 1
    return candidate


def _split_ext(name: str):
    base, dot, ext = name.rpartition(".")
    if not dot or not base or "-" not in base:
        return name, ""
    return base, "." + ext


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """naive な datetime は UTC とみなす"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    return to_utc(value).isoformat(timespec="milliseconds")


def is_text_mime(mime_type) -> bool:
    mime_type = (mime_type or "").split(";", 1)[0].strip().lower()
    return mime_type.startswith("text/") or mime_type in TEXT_MIME_TYPES
