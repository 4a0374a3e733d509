"""Blob storage adapter for reference assets and generated artifacts."""
import logging
import time
import uuid
from dataclasses import dataclass

import requests
from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from requests.exceptions import RequestException, Timeout

from .exceptions import ArtifactStorageError, BlobStoreError, ReferenceAssetMissing
from .prompts import ERROR_MESSAGES

logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = "generated-images"
ARTIFACT_CONTENT_TYPE = "image/jpeg"


@dataclass(frozen=True)
class StoredArtifact:
    url: str
    path: str


class BlobStore:
    """
    Thin wrapper over a Django storage backend.

    ``download`` accepts either a storage path or an absolute http(s) URL, since
    catalog rows may carry only a public URL.
    """

    def __init__(self, storage=None, timeout=None):
        self.storage = storage or default_storage
        self.timeout = timeout or getattr(settings, "REFERENCE_DOWNLOAD_TIMEOUT_SECONDS", 30)

    def upload(self, data: bytes, path: str, content_type: str) -> StoredArtifact:
        content = ContentFile(data)
        content.content_type = content_type
        name = self.storage.save(path, content)
        logger.info(f"File uploaded successfully: {name}")
        return StoredArtifact(url=self.storage.url(name), path=name)

    def download(self, reference: str) -> bytes:
        if reference.startswith(("http://", "https://")):
            return self._fetch_url(reference)

        try:
            with self.storage.open(reference, "rb") as handle:
                return handle.read()
        except FileNotFoundError as exc:
            raise ReferenceAssetMissing(
                f"{ERROR_MESSAGES['MISSING_REFERENCE_IMAGE']}: {reference}"
            ) from exc
        except OSError as exc:
            raise BlobStoreError(f"Failed to read {reference} from storage: {exc}") from exc

    def delete(self, path: str) -> None:
        """Remove ``path``; a missing object is not an error."""
        if not self.storage.exists(path):
            logger.warning(f"File not found for deletion: {path}")
            return
        self.storage.delete(path)
        logger.info(f"File deleted successfully: {path}")

    def _fetch_url(self, url: str) -> bytes:
        try:
            response = requests.get(url, timeout=self.timeout)
        except Timeout as exc:
            raise BlobStoreError(f"Timed out downloading reference image after {self.timeout} seconds") from exc
        except RequestException as exc:
            raise BlobStoreError(f"Failed to download reference image: {exc}") from exc

        if response.status_code == 404:
            raise ReferenceAssetMissing(f"{ERROR_MESSAGES['MISSING_REFERENCE_IMAGE']}: {url}")
        if response.status_code >= 400:
            raise BlobStoreError(f"Reference image download failed with HTTP {response.status_code}")
        return response.content


def artifact_path() -> str:
    """Unique storage path for one generated image."""
    return f"{ARTIFACT_PREFIX}/{int(time.time() * 1000)}-{uuid.uuid4()}/image.jpg"


def store_artifact(blob_store: BlobStore, data: bytes) -> StoredArtifact:
    try:
        return blob_store.upload(data, artifact_path(), ARTIFACT_CONTENT_TYPE)
    except Exception as exc:
        logger.error(f"Failed to store generated image: {exc}")
        raise ArtifactStorageError(ERROR_MESSAGES["STORAGE_ERROR"]) from exc
