"""Object storage adapters."""

from import_handler.adapters.storage.gcs_storage import GCSStorage
from import_handler.adapters.storage.local_storage import LocalStorage

__all__ = ["GCSStorage", "LocalStorage"]
