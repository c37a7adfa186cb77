import functools
import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

from chatsync.core.exceptions import RemoteUnavailable

logger = logging.getLogger(__name__)


def remote_errors(func):
    """Translate driver failures into RemoteUnavailable at the repository boundary."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as exc:
            logger.error("%s failed: %s", func.__qualname__, exc)
            raise RemoteUnavailable(f"Backend call {func.__name__} failed") from exc

    return wrapper


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def normalize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is not None:
        doc["_id"] = str(doc.get("_id"))
    return doc
