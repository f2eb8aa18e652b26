class StoreError(Exception):
    """ItemStore が送出する例外の基底クラス"""


class ItemNotFoundError(StoreError):

    def __init__(self, item_id: str):
        super().__init__(f"Item not found: {item_id}")
        self.item_id = item_id


class ItemTooLargeError(StoreError):

    def __init__(self, size: int, limit: int):
        super().__init__(f"Item size {size} bytes exceeds the {limit // (1024 * 1024)}MB limit")
        self.size = size
        self.limit = limit


class InvalidItemError(StoreError):
    pass


class ItemNotEditableError(StoreError):
    pass


class StorageError(StoreError):
    pass


class ServiceError(Exception):
    """
    利用者に表示できるエラー
    kind は機械可読な短い識別子、message は表示用メッセージ
    """

    VALIDATION = "validation-error"
    TOO_LARGE = "file-too-large"
    NOT_FOUND = "not-found"
    NOT_EDITABLE = "not-editable"
    STORAGE = "storage-error"

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self):
        return f"ServiceError({self.kind!r}, {self.message!r})"
