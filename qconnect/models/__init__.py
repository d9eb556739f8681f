from qconnect.models.db_storage import DBStorage, StorageUnavailable

storage = DBStorage()

from qconnect.models.token_store import RefreshTokenStore  # noqa: E402

refresh_tokens = RefreshTokenStore(storage)

__all__ = ["storage", "refresh_tokens", "DBStorage", "RefreshTokenStore", "StorageUnavailable"]
