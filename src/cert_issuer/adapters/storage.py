"""
Object storage adapter — certificate files in a Supabase Storage bucket via httpx.

Adapter layer — implements the ArtifactStore port against the Storage REST API:

  upload  POST   {url}/storage/v1/object/{bucket}/{prefix}/{id}.{ext}   (x-upsert: true)
  public  GET    {url}/storage/v1/object/public/{bucket}/{prefix}/{id}.{ext}
  list    POST   {url}/storage/v1/object/list/{bucket}
  delete  DELETE {url}/storage/v1/object/{bucket}

Uploads never retry: the orchestrator reports the failure for that recipient
and moves on. Failures are classified so the batch report tells the
operator what to fix:

  NETWORK_UNREACHABLE  DNS, connect, timeout or other transport errors
  ACCESS_DENIED        401/403, or a row-level security rejection in the body
  UPLOAD_FAILED        anything else
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx
import structlog

from cert_issuer.domain.models import StoredArtifact, extension_for
from cert_issuer.railway import ErrorCode, Result

log = structlog.get_logger()

_LIST_PAGE_SIZE = 1000

ACCESS_DENIED_HINT = (
    "Storage rejected the upload (access policy). Uploads need a service role key "
    "or an INSERT row-level security policy on the bucket, even when the bucket is public."
)


class SupabaseArtifactStore:
    """
    Store certificate artifacts in a Supabase Storage bucket.

    Implements the ArtifactStore port. One httpx.Client per call, bounded by
    the configured timeout.
    """

    def __init__(
        self,
        url: str,
        key: str,
        bucket: str,
        prefix: str = "certificates",
        timeout: int = 30,
    ) -> None:
        self._url = url.rstrip("/")
        self._key = key
        self._bucket = bucket
        self._prefix = prefix.strip("/")
        self._timeout = timeout

    # ─────────────────────── Paths ───────────────────────

    def object_path(self, issuance_id: str, content_type: str) -> str:
        return f"{self._prefix}/{issuance_id}.{extension_for(content_type)}"

    def public_url(self, path: str) -> str:
        return f"{self._url}/storage/v1/object/public/{self._bucket}/{path}"

    def _headers(self, **extra: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._key}", "apikey": self._key, **extra}

    # ─────────────────────── Port ───────────────────────

    def upload(self, content: bytes, issuance_id: str, content_type: str) -> Result[str]:
        """
        Upload (or overwrite) the artifact for issuance_id and return its public URL.
        """
        path = self.object_path(issuance_id, content_type)
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(
                    f"{self._url}/storage/v1/object/{self._bucket}/{path}",
                    content=content,
                    headers=self._headers(**{"Content-Type": content_type, "x-upsert": "true"}),
                )
        except httpx.TransportError as e:
            return self._unreachable(e)

        if response.is_success:
            url = self.public_url(path)
            log.info("storage.uploaded", issuance_id=issuance_id, path=path, size=len(content))
            return Result.success(url)
        return self._rejected(response)

    def list_artifacts(self) -> Result[list[StoredArtifact]]:
        """Every object under the prefix, paging through the listing."""
        found: list[StoredArtifact] = []
        offset = 0
        try:
            with httpx.Client(timeout=self._timeout) as client:
                while True:
                    response = client.post(
                        f"{self._url}/storage/v1/object/list/{self._bucket}",
                        headers=self._headers(),
                        json={
                            "prefix": self._prefix,
                            "limit": _LIST_PAGE_SIZE,
                            "offset": offset,
                            "sortBy": {"column": "name", "order": "asc"},
                        },
                    )
                    if not response.is_success:
                        return self._rejected(response, "list artifacts")
                    entries: list[dict[str, Any]] = response.json()
                    found.extend(_stored(entry) for entry in entries if entry.get("id"))
                    if len(entries) < _LIST_PAGE_SIZE:
                        break
                    offset += _LIST_PAGE_SIZE
        except httpx.TransportError as e:
            return self._unreachable(e)
        return Result.success(found)

    def delete(self, issuance_ids: list[str]) -> Result[int]:
        """
        Remove the artifacts of the given issuance ids (both known extensions).

        Returns the number of objects the store reports as removed.
        """
        if not issuance_ids:
            return Result.success(0)
        paths = [
            self.object_path(issuance_id, content_type)
            for issuance_id in issuance_ids
            for content_type in ("application/pdf", "image/png")
        ]
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.request(
                    "DELETE",
                    f"{self._url}/storage/v1/object/{self._bucket}",
                    headers=self._headers(),
                    json={"prefixes": paths},
                )
        except httpx.TransportError as e:
            return self._unreachable(e)
        if not response.is_success:
            return self._rejected(response, "delete artifacts")
        removed = len(response.json())
        log.info("storage.deleted", requested=len(issuance_ids), removed=removed)
        return Result.success(removed)

    # ─────────────────────── Error classification ───────────────────────

    def _unreachable(self, error: httpx.TransportError) -> Result[Any]:
        log.error("storage.unreachable", url=self._url, error=str(error))
        return Result.failure(
            ErrorCode.NETWORK_UNREACHABLE,
            f"Cannot reach storage at {self._url}. Verify the project exists and is active, "
            f"the URL is correct, and network connectivity works ({type(error).__name__}: {error})",
            error,
        )

    def _rejected(self, response: httpx.Response, action: str = "upload certificate") -> Result[Any]:
        message = _error_message(response)
        if _is_access_denied(response, message):
            log.error("storage.access_denied", status=response.status_code, error=message)
            return Result.failure(ErrorCode.ACCESS_DENIED, f"{ACCESS_DENIED_HINT} ({message})")
        log.error("storage.upload_failed", status=response.status_code, error=message)
        return Result.failure(
            ErrorCode.UPLOAD_FAILED,
            f"Failed to {action}: HTTP {response.status_code} {message}",
        )


def _issuance_id(object_name: str) -> str:
    """``cert_abc.pdf`` → ``cert_abc``."""
    return object_name.rsplit("/", 1)[-1].rsplit(".", 1)[0]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


def _is_access_denied(response: httpx.Response, message: str) -> bool:
    if response.status_code in (401, 403):
        return True
    if "row-level security" in message.lower():
        return True
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and str(body.get("statusCode")) in ("401", "403")


def _stored(entry: dict[str, Any]) -> StoredArtifact:
    created = entry.get("created_at")
    return StoredArtifact(
        issuance_id=_issuance_id(entry["name"]),
        created_at=datetime.fromisoformat(created) if created else None,
    )
