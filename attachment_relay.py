"""
Attachment relay: download a file from one system and re-upload it to an
Asana task, producing a durable URL.

Each attachment is independent. One failure never aborts its siblings; the
caller gets a per-item status list instead.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from base_client import IntegrationAPIError
from value_converter import AttachmentRef, filename_from_url, is_valid_url

logger = logging.getLogger(__name__)

UPLOADED_NO_URL = "uploaded"

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_INVALID_URL = "invalid_url"


@dataclass
class AttachmentResult:
    index: int
    url: str
    status: str
    destination_url: Optional[str] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        data = {"index": self.index, "url": self.url, "status": self.status}
        if self.destination_url:
            data["permanent_url"] = self.destination_url
        if self.error:
            data["error"] = self.error
        return data


class AttachmentRelay:
    """Moves file bytes from a source URL onto an Asana task"""

    def __init__(self, asana, source_client=None, max_workers: int = 4):
        """
        Args:
            asana: AsanaClient used for the upload
            source_client: client used to download, defaults to ``asana``
        """
        self.asana = asana
        self.source = source_client or asana
        self.max_workers = max(1, max_workers)

    def relay(self, source_url: str, destination_parent_id: str,
              filename: Optional[str] = None, content_type: Optional[str] = None) -> Optional[str]:
        """
        Download ``source_url`` and upload it to ``destination_parent_id``.

        Returns the permanent/download URL, ``"uploaded"`` when Asana gave no
        URL back, or ``None`` on failure. Invalid URLs are rejected without a
        request; use ``relay_all`` to tell them apart from failures.
        """
        if not is_valid_url(source_url):
            logger.error(f"Invalid attachment URL: {source_url}")
            return None

        try:
            response = self.source.download(source_url)
        except (IntegrationAPIError, requests.RequestException) as e:
            logger.error(f"✗ Failed to download attachment {source_url}: {e}")
            return None

        content = response.content or b""
        detected_type = response.headers.get("content-type") if response.headers else None
        content_type = content_type or detected_type or "application/octet-stream"
        filename = filename or filename_from_url(source_url)

        logger.info(f"Uploading {filename} ({content_type}, {len(content)} bytes) to Asana task {destination_parent_id}")
        try:
            data = self.asana.upload_attachment(destination_parent_id, filename, content, content_type)
        except (IntegrationAPIError, requests.RequestException) as e:
            logger.error(f"✗ Error uploading attachment to Asana: {e}")
            return None

        permanent_url = (data or {}).get("permanent_url") or (data or {}).get("download_url") \
            or (data or {}).get("view_url")
        if permanent_url:
            logger.info(f"✓ Attachment uploaded: {permanent_url}")
            return permanent_url

        logger.info("Note: No permanent URL in response, but upload succeeded")
        return UPLOADED_NO_URL

    def _relay_one(self, index: int, ref: AttachmentRef, destination_parent_id: str) -> AttachmentResult:
        if not is_valid_url(ref.url):
            logger.warning(f"⚠ Attachment {index} is not a valid URL, skipping upload")
            return AttachmentResult(index=index, url=ref.url, status=STATUS_INVALID_URL, error="Invalid URL format")

        destination = self.relay(ref.url, destination_parent_id, ref.filename, ref.content_type)
        if destination and destination.strip():
            return AttachmentResult(index=index, url=ref.url, status=STATUS_SUCCESS, destination_url=destination)
        return AttachmentResult(index=index, url=ref.url, status=STATUS_FAILED,
                                error="Upload failed - no URL returned")

    def relay_all(self, refs: List[AttachmentRef], destination_parent_id: str) -> List[AttachmentResult]:
        """Relay every ref concurrently; results keep input order"""
        if not refs:
            return []

        logger.info(f"Processing {len(refs)} attachment(s) for task {destination_parent_id}")
        workers = min(self.max_workers, len(refs))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self._relay_one, i, ref, destination_parent_id)
                       for i, ref in enumerate(refs, 1)]
            results = []
            for i, future in enumerate(futures, 1):
                try:
                    results.append(future.result())
                except Exception as e:  # per-item isolation
                    logger.error(f"✗ Unexpected error relaying attachment {i}: {e}")
                    results.append(AttachmentResult(index=i, url=refs[i - 1].url, status=STATUS_FAILED, error=str(e)))

        ok = sum(1 for r in results if r.status == STATUS_SUCCESS)
        logger.info(f"Attachment processing complete: {ok}/{len(refs)} successful")
        return results


def summarize(results: List[AttachmentResult]) -> Optional[str]:
    """One-line status for the response card"""
    total = len(results)
    if total == 0:
        return None
    success = sum(1 for r in results if r.status == STATUS_SUCCESS)
    if success == total:
        return f"✓ {success} attachment(s) uploaded successfully"
    if success > 0:
        return f"⚠ {success}/{total} attachment(s) uploaded successfully"
    attempted = sum(1 for r in results if r.status != STATUS_INVALID_URL)
    if attempted > 0:
        return f"✗ Failed to upload {total} attachment(s)"
    return f"⚠ {total} attachment(s) skipped (invalid URLs)"
