import hashlib
import hmac
import logging
import os
import re
import time
from datetime import timedelta
from urllib.parse import urlencode

from app.core.exceptions import InvalidInputError, StorageError

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,254}$")
URL_SAFETY_MARGIN = timedelta(hours=1)


def _ext_from_mime(mime_type: str) -> str:
    mime = (mime_type or "").lower()
    if mime == "image/png":
        return ".png"
    if mime in {"image/jpeg", "image/jpg"}:
        return ".jpg"
    if mime == "image/webp":
        return ".webp"
    return ".bin"


def blob_key_for(comic_id: str, mime_type: str = "image/png") -> str:
    return f"{comic_id}{_ext_from_mime(mime_type)}"


def validate_key(key: str) -> str:
    if not key or not _KEY_PATTERN.match(key) or ".." in key:
        raise InvalidInputError(f"Invalid media key: {key!r}")
    return key


class LocalArtifactStore:
    """Filesystem blob store.

    With ``public_read`` the returned URL is the plain media path. Otherwise
    it carries an expiry and an HMAC signature checked by the media route.
    """

    def __init__(
        self,
        root_dir: str,
        url_prefix: str,
        *,
        public_read: bool = False,
        signing_key: str = "",
        url_ttl: timedelta = timedelta(days=7) + URL_SAFETY_MARGIN,
        base_url: str = "",
        clock=time.time,
    ):
        if not public_read and not signing_key:
            raise ValueError("signing_key is required when public_read is disabled")
        self.root_dir = root_dir
        self.url_prefix = url_prefix.rstrip("/")
        self.public_read = public_read
        self.url_ttl = url_ttl
        self.base_url = base_url.rstrip("/")
        self._signing_key = signing_key.encode("utf-8")
        self._clock = clock

    def path_for(self, key: str) -> str:
        return os.path.join(self.root_dir, validate_key(key))

    def put(self, key: str, data: bytes, content_type: str = "image/png") -> str:
        if not data:
            raise InvalidInputError("Refusing to store an empty artifact")
        path = self.path_for(key)
        try:
            os.makedirs(self.root_dir, exist_ok=True)
            tmp_path = f"{path}.tmp"
            with open(tmp_path, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
        except OSError as exc:
            logger.error("artifact write failed key=%s error=%r", key, exc)
            raise StorageError(f"Failed to store artifact {key}: {exc}", store="blob") from exc

        logger.info("artifact stored key=%s bytes=%s content_type=%s", key, len(data), content_type)
        return self.url_for(key)

    def exists(self, key: str) -> bool:
        return os.path.isfile(self.path_for(key))

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete artifact {key}: {exc}", store="blob") from exc
        logger.info("artifact deleted key=%s", key)
        return True

    def url_for(self, key: str) -> str:
        validate_key(key)
        url = f"{self.base_url}{self.url_prefix}/{key}"
        if self.public_read:
            return url
        expires = int(self._clock() + self.url_ttl.total_seconds())
        query = urlencode({"expires": expires, "signature": self.sign(key, expires)})
        return f"{url}?{query}"

    def sign(self, key: str, expires: int) -> str:
        message = f"{key}:{expires}".encode("utf-8")
        return hmac.new(self._signing_key, message, hashlib.sha256).hexdigest()

    def verify(self, key: str, expires: int, signature: str) -> bool:
        if self.public_read:
            return True
        if expires < self._clock():
            return False
        return hmac.compare_digest(self.sign(key, expires), signature or "")
