"""
Asset upload support for screenshots, previews and review images.

App Store Connect assets go through the same lifecycle:

1. Reserve: POST the asset resource with file name, size and checksum; the
   response carries ``uploadOperations`` (pre-signed URL, byte range, headers).
2. Upload: PUT each byte range to its URL, retrying transient failures.
3. Commit: PATCH the asset with ``uploaded: true`` and the checksum.
4. Optionally poll ``assetDeliveryState`` until processing finishes.
"""

import base64
import hashlib
import logging
import os
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .exceptions import PollTimeoutError, TransportError, UploadError, ValidationError
from .transport import HttpResponse, Transport

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429})

ASSET_COMPLETE = "COMPLETE"
ASSET_FAILED = "FAILED"


def is_retryable_status(status: int) -> bool:
    """Server errors, rate limiting and request timeouts are worth retrying."""
    return status >= 500 or status in RETRYABLE_STATUS_CODES


@dataclass
class UploadOperation:
    """One pre-signed upload target covering a byte range of the file."""

    url: str
    offset: int
    length: int
    headers: Dict[str, str] = field(default_factory=dict)
    method: str = "PUT"

    @classmethod
    def from_api(cls, operation: Dict[str, Any]) -> "UploadOperation":
        headers = {
            header["name"]: header["value"]
            for header in operation.get("requestHeaders") or []
        }
        return cls(
            url=operation["url"],
            offset=int(operation.get("offset", 0)),
            length=int(operation["length"]),
            headers=headers,
            method=operation.get("method") or "PUT",
        )


@dataclass
class RetryPolicy:
    """Linear backoff: attempt n waits base_sleep * n plus a little jitter."""

    max_retries: int = 0
    base_sleep: float = 1.0
    jitter: float = 0.1

    def delay(self, attempt: int) -> float:
        return self.base_sleep * attempt + random.uniform(0, self.jitter)


class PartUploader:
    """Upload single byte ranges to pre-signed URLs with retry."""

    def __init__(
        self,
        transport: Transport,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def upload(self, operation: UploadOperation, data: bytes) -> HttpResponse:
        """
        PUT ``data`` to the operation's URL.

        Args:
            operation: Target URL and headers from the reservation
            data: Exact bytes for this operation's range

        Returns:
            The successful (2xx) response

        Raises:
            UploadError: Non-retryable status, or retries exhausted on a status
            TransportError: Retries exhausted on connection-level faults
        """
        max_retries = max(0, int(self.policy.max_retries))
        attempt = 0

        while True:
            attempt += 1
            try:
                response = self.transport.execute(
                    operation.method,
                    operation.url,
                    headers=operation.headers,
                    raw_body=data,
                )
            except TransportError as e:
                if attempt > max_retries:
                    logger.error(f"upload_part: giving up after {attempt} attempts: {e}")
                    raise
                self._backoff(attempt, e)
                continue

            if response.ok:
                if attempt > 1:
                    logger.info(f"upload_part: succeeded on attempt {attempt}")
                return response

            error = UploadError(f"Upload failed: {response.status}", status=response.status)
            if not is_retryable_status(response.status) or attempt > max_retries:
                raise error
            self._backoff(attempt, error)

    def _backoff(self, attempt: int, error: Exception) -> None:
        wait = self.policy.delay(attempt)
        logger.warning(
            f"upload_part: attempt {attempt} failed ({error}); retrying in {wait:.2f}s"
        )
        self.sleep(wait)


def file_checksum(file_path: str) -> str:
    """Base64 encoded MD5 digest, as expected by sourceFileChecksum."""
    digest = hashlib.md5()
    with open(file_path, "rb") as f:
        for block in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(block)
    return base64.b64encode(digest.digest()).decode("ascii")


def read_chunk(file_path: str, offset: int, length: int) -> bytes:
    with open(file_path, "rb") as f:
        f.seek(offset)
        return f.read(length)


class AssetUploader:
    """
    Reserve, upload and commit an asset through an API client.

    The client supplies ``post``/``patch`` for the JSON:API calls, the
    transport used for the pre-signed PUTs and the upload retry policy.
    """

    def __init__(self, api, sleep: Callable[[float], None] = time.sleep):
        self.api = api
        self.parts = PartUploader(api.transport, api.upload_retry_policy, sleep=sleep)

    def upload(
        self,
        resource_type: str,
        relationship: str,
        parent_type: str,
        parent_id: str,
        file_path: str,
    ) -> Dict[str, Any]:
        """
        Upload a file as a new asset of ``resource_type``.

        Args:
            resource_type: e.g. ``appScreenshots``
            relationship: Relationship name pointing at the parent resource
            parent_type: JSON:API type of the parent
            parent_id: ID of the parent resource
            file_path: Local file to upload

        Returns:
            The reservation document (``data`` holds the new asset)
        """
        if not os.path.isfile(file_path):
            raise ValidationError(f"File not found: {file_path}")

        file_name = os.path.basename(file_path)
        file_size = os.path.getsize(file_path)
        checksum = file_checksum(file_path)

        reservation = self.api.post(
            f"/{resource_type}",
            body={
                "data": {
                    "type": resource_type,
                    "attributes": {
                        "fileName": file_name,
                        "fileSize": file_size,
                        "sourceFileChecksum": checksum,
                    },
                    "relationships": {
                        relationship: {"data": {"type": parent_type, "id": parent_id}}
                    },
                }
            },
        )

        asset_id = reservation["data"]["id"]
        operations = self.operations_from(reservation)
        logger.info(
            f"Reserved {resource_type} {asset_id} for {file_name} "
            f"({file_size} bytes, {len(operations)} parts)"
        )

        for index, operation in enumerate(operations, start=1):
            logger.debug(
                f"Uploading part {index}/{len(operations)} "
                f"offset={operation.offset} length={operation.length}"
            )
            chunk = read_chunk(file_path, operation.offset, operation.length)
            self.parts.upload(operation, chunk)

        self.api.patch(
            f"/{resource_type}/{asset_id}",
            body={
                "data": {
                    "type": resource_type,
                    "id": asset_id,
                    "attributes": {"uploaded": True, "sourceFileChecksum": checksum},
                }
            },
        )
        logger.info(f"Committed {resource_type} {asset_id}")

        return reservation

    @staticmethod
    def operations_from(reservation: Dict[str, Any]) -> List[UploadOperation]:
        attributes = reservation.get("data", {}).get("attributes") or {}
        return [UploadOperation.from_api(op) for op in attributes.get("uploadOperations") or []]


def wait_for_asset(
    fetch_state: Callable[[], Dict[str, Any]],
    interval: float = 2.0,
    timeout: float = 300.0,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Dict[str, Any]:
    """
    Poll an asset's delivery state until processing finishes.

    Args:
        fetch_state: Returns the ``assetDeliveryState`` dict (``state``, ``errors``)
        interval: Seconds between polls
        timeout: Upper bound on the total wait

    Returns:
        The final delivery state once it is COMPLETE

    Raises:
        UploadError: The asset reached FAILED
        PollTimeoutError: The timeout elapsed first
    """
    deadline = clock() + timeout
    polls = 0

    while True:
        delivery = fetch_state() or {}
        polls += 1
        state = delivery.get("state")
        logger.debug(f"wait_for_asset: poll {polls} state={state}")

        if state == ASSET_COMPLETE:
            return delivery
        if state == ASSET_FAILED:
            errors = delivery.get("errors") or []
            details = ", ".join(
                err.get("description") or err.get("code") or str(err) for err in errors
            )
            raise UploadError(f"Asset processing failed{': ' + details if details else ''}")

        remaining = deadline - clock()
        if remaining <= 0:
            raise PollTimeoutError(
                f"Asset still {state or 'UNKNOWN'} after {timeout:.0f}s ({polls} polls)"
            )
        sleep(min(interval, remaining))
