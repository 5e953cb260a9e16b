"""Source and destination storage clients.

The crawler and the migration worker depend only on the two abstract
interfaces; the HTTP implementations below talk to a storage-zone listing API
(source) and a bucket object API (destination) with ``requests``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from urllib.parse import quote

import requests

from blob_migrator.core.config import settings
from blob_migrator.core.errors import StorageError
from blob_migrator.dtos.queue_dto import SourceObject

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
STREAM_CHUNK_BYTES = 1024 * 1024


class SourceStorage(ABC):
    """Read side: list a directory and download objects."""

    @abstractmethod
    def list_directory(self, path: str) -> list[SourceObject]:
        """Return the immediate children of *path* (which ends with ``/``)."""

    @abstractmethod
    def download(self, path: str, *, streaming: bool = False) -> bytes | Iterable[bytes]:
        """Return the whole body, or a chunk iterator when *streaming*."""

    def absolute_url(self, path: str) -> str | None:
        return None


class DestinationStorage(ABC):
    """Write side: put one object."""

    @abstractmethod
    def upload(self, path: str, content_type: str | None, body: bytes | Iterable[bytes]) -> None:
        """Store *body* under *path*; raise StorageError on failure."""


def _raise_for_status(res: requests.Response, path: str) -> None:
    try:
        res.raise_for_status()
    except requests.HTTPError as e:
        res.close()
        raise StorageError(
            f"{path} returned HTTP {res.status_code}",
            path=path,
            status_code=res.status_code,
        ) from e


class ResponseStream:
    """
    Chunk iterator over a streamed response.

    The connection is released once iteration ends or on close(), whichever
    comes first; close() also covers a body that is never read.
    """

    def __init__(self, res: requests.Response) -> None:
        self._res = res

    def __iter__(self) -> Iterator[bytes]:
        try:
            yield from self._res.iter_content(chunk_size=STREAM_CHUNK_BYTES)
        except requests.RequestException as e:
            raise StorageError(f"Stream interrupted: {e}") from e
        finally:
            self._res.close()

    def close(self) -> None:
        self._res.close()


class HttpSourceStorage(SourceStorage):
    """
    Storage-zone client.

    ``GET {base}/{zone}{path}`` on a directory returns a JSON array of
    objects with ``ObjectName``, ``IsDirectory``, ``Length`` and
    ``ContentType``; on a file it returns the file body.
    """

    def __init__(
        self,
        base_url: str | None = None,
        storage_zone: str | None = None,
        access_key: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or settings.SOURCE_BASE_URL).rstrip("/")
        self.storage_zone = storage_zone if storage_zone is not None else settings.SOURCE_STORAGE_ZONE
        self.access_key = access_key if access_key is not None else settings.SOURCE_ACCESS_KEY
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def absolute_url(self, path: str) -> str:
        return f"{self.base_url}/{self.storage_zone}{quote(path, safe='/')}"

    def _get(self, path: str, *, stream: bool = False) -> requests.Response:
        try:
            res = self.session.get(
                self.absolute_url(path),
                headers={"AccessKey": self.access_key},
                timeout=self.timeout,
                stream=stream,
            )
        except requests.RequestException as e:
            raise StorageError(f"GET {path} failed: {e}", path=path) from e
        _raise_for_status(res, path)
        return res

    def list_directory(self, path: str) -> list[SourceObject]:
        res = self._get(path)
        try:
            items = res.json()
        except ValueError as e:
            raise StorageError(f"Listing for {path} is not JSON", path=path) from e
        if not isinstance(items, list):
            raise StorageError(f"Listing for {path} is not an array", path=path)

        return [
            SourceObject(
                name=item["ObjectName"],
                is_directory=bool(item.get("IsDirectory")),
                size=item.get("Length") or 0,
                content_type=item.get("ContentType") or None,
            )
            for item in items
        ]

    def download(self, path: str, *, streaming: bool = False) -> bytes | Iterable[bytes]:
        res = self._get(path, stream=streaming)
        if streaming:
            return ResponseStream(res)
        return res.content


class HttpDestinationStorage(DestinationStorage):
    """Bucket client: ``POST {base}/storage/v1/object/{bucket}/{path}`` with upsert."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        bucket: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or settings.DEST_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.DEST_API_KEY
        self.bucket = bucket or settings.DEST_BUCKET
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(path, safe='/')}"

    def upload(self, path: str, content_type: str | None, body: bytes | Iterable[bytes]) -> None:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": content_type or DEFAULT_CONTENT_TYPE,
            "x-upsert": "true",
        }
        try:
            res = self.session.post(
                self.object_url(path), data=body, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise StorageError(f"POST {path} failed: {e}", path=path) from e
        _raise_for_status(res, path)
        res.close()
        logger.debug("Uploaded %s (%s)", path, headers["Content-Type"])
