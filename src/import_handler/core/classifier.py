"""Trigger filtering and import file classification."""

import base64
import binascii
import json
import re
from pathlib import PurePosixPath
from typing import Any, Optional

from import_handler.core.entities import ParserKind, StorageEvent

IMPORTS_PREFIX = "imports/"
CONTENT_TYPES = ("text/csv", "application/zip")
ARCHIVE_PREFIX = "MATTER"
LIST_PREFIX = "URL_LIST"


def classify(
    file_name: str,
    archive_prefix: str = ARCHIVE_PREFIX,
    list_prefix: str = LIST_PREFIX,
) -> Optional[ParserKind]:
    """Pick a parser from the file name, or None if unsupported.

    Only the stem is looked at (directories and extension dropped) and the
    prefix comparison is case-sensitive: ``matter-export.zip`` is unsupported.
    """
    stem = PurePosixPath(file_name).stem
    if stem.startswith(archive_prefix):
        return ParserKind.MATTER_ARCHIVE
    if stem.startswith(list_prefix):
        return ParserKind.URL_LIST
    return None


def should_handle(
    event: StorageEvent,
    path_prefix: str = IMPORTS_PREFIX,
    content_types: tuple[str, ...] = CONTENT_TYPES,
) -> bool:
    """Check that a storage event is an upload this pipeline processes."""
    if not event.name.startswith(path_prefix):
        return False
    return event.content_type.lower() in content_types


def extract_user_id(name: str, path_prefix: str = IMPORTS_PREFIX) -> Optional[str]:
    """Extract the uploading user's id from ``<prefix>/<user id>/<file>``."""
    pattern = re.compile(re.escape(path_prefix.rstrip("/")) + r"/(.*?)/")
    match = pattern.match(name)
    if not match or not match.group(1):
        return None
    return match.group(1)


def is_storage_event(obj: Any) -> bool:
    return isinstance(obj, dict) and all(
        key in obj for key in ("name", "bucket", "contentType")
    )


def to_storage_event(obj: dict) -> StorageEvent:
    return StorageEvent(
        name=str(obj["name"]),
        bucket=str(obj["bucket"]),
        content_type=str(obj["contentType"]),
    )


def decode_pubsub_push(body: Any) -> Optional[StorageEvent]:
    """Decode a Pub/Sub push body carrying a storage notification.

    Returns None when the body is not a push envelope or its data is not a
    storage event.
    """
    if not isinstance(body, dict):
        return None
    message = body.get("message")
    if not isinstance(message, dict) or "data" not in message:
        return None

    try:
        raw = base64.b64decode(message["data"]).decode("utf-8").strip()
        obj = json.loads(raw)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
        print(f"⚠️  Could not decode Pub/Sub message: {e}")
        return None

    if not is_storage_event(obj):
        return None
    return to_storage_event(obj)
