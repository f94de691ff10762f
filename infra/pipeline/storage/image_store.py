import io
import logging
import random
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse, unquote

import requests
from PIL import Image


class ImageFetchError(Exception):
    """An image reference could not be resolved to bytes."""

    def __init__(self, ref: str, reason: str, transient: bool = False):
        self.ref = ref
        self.reason = reason
        self.transient = transient
        super().__init__(f"Cannot fetch image {ref}: {reason}")


class ImageStore:
    """Resolves image references and stores derived images.

    References may be file:// URIs, http(s) URLs or plain paths. Derived
    images are written under the blob root and returned as file:// URIs.
    """
    def __init__(
        self,
        root: Path,
        session: Optional[requests.Session] = None,
        max_retries: int = 3,
        timeout: int = 60,
        logger: Optional[logging.Logger] = None
    ):
        self.root = Path(root)
        self.session = session or requests.Session()
        self.max_retries = max_retries
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def put(self, key: str, data: bytes) -> str:
        if ".." in Path(key).parts:
            raise ValueError(f"Invalid blob key: {key!r}")
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = path.with_suffix(path.suffix + '.tmp')
        try:
            with open(temp_file, 'wb') as f:
                f.write(data)
            temp_file.replace(path)
        except Exception:
            if temp_file.exists():
                temp_file.unlink()
            raise
        return path.resolve().as_uri()

    def put_image(self, key: str, image: Image.Image, quality: int = 80) -> str:
        buffered = io.BytesIO()
        image.convert("RGB").save(buffered, format="JPEG", quality=quality)
        return self.put(key, buffered.getvalue())

    def local_path(self, ref: str) -> Optional[Path]:
        parsed = urlparse(ref)
        if parsed.scheme == "file":
            return Path(unquote(parsed.path))
        if parsed.scheme in ("http", "https"):
            return None
        return Path(ref).expanduser()

    def exists(self, ref: Optional[str]) -> bool:
        """Whether a reference resolves. Remote URLs are assumed present."""
        if not ref:
            return False
        path = self.local_path(ref)
        if path is None:
            return True
        return path.exists()

    def read(self, ref: str) -> bytes:
        if not ref:
            raise ImageFetchError(str(ref), "empty reference")

        path = self.local_path(ref)
        if path is not None:
            if not path.exists():
                raise ImageFetchError(ref, "file not found")
            return path.read_bytes()

        return self._download(ref)

    def open(self, ref: str) -> Image.Image:
        data = self.read(ref)
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except Exception as e:
            raise ImageFetchError(ref, f"not a readable image ({e})")
        return image

    def _download(self, url: str) -> bytes:
        attempts = max(1, self.max_retries)
        for attempt in range(attempts):
            try:
                response = self.session.get(url, timeout=self.timeout)
                if response.status_code >= 500 and attempt < attempts - 1:
                    self._sleep(url, attempt, f"HTTP {response.status_code}")
                    continue
                if not response.ok:
                    raise ImageFetchError(
                        url, f"HTTP {response.status_code}",
                        transient=response.status_code >= 500
                    )
                return response.content

            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                if attempt < attempts - 1:
                    self._sleep(url, attempt, type(e).__name__)
                    continue
                raise ImageFetchError(url, str(e), transient=True)

        raise ImageFetchError(url, "retries exhausted", transient=True)

    def _sleep(self, url: str, attempt: int, reason: str):
        delay = 2.0 + random.uniform(-1.5, 1.5)
        self.logger.debug(f"Image fetch failed ({reason}), retrying in {delay:.1f}s: {url}")
        time.sleep(delay)
