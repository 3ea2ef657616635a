"""
FastAPI + Uvicorn ASGI application — the certificate issuance web service.

Endpoints:
  GET  /api/health                     liveness
  POST /api/admin/upload-csv           bulk issuance from a CSV upload
  GET  /api/certificate/{id}           public lookup of one certificate
  GET  /api/admin/certificates         paginated listing, newest first
  GET  /api/admin/search?query=        name / email / id search
  GET  /api/admin/stats                total count and most recent issuances

A batch is synchronous I/O from start to finish, so the upload endpoint runs
it in a worker thread (asyncio.to_thread) to keep the event loop free.
The orphan sweep is not scheduled here; run `cert-issuer schedule` next to
the web service.

Entry point for production: uvicorn cert_issuer.asgi:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, File, UploadFile
from fastapi.responses import JSONResponse

from cert_issuer import __version__
from cert_issuer.adapters.repository import PsycopgIssuanceRepository
from cert_issuer.config import AppSettings
from cert_issuer.domain.models import BatchOutcome, IssuanceRecord, RecordPage, RepositoryStats
from cert_issuer.main import Adapters, configure_structlog, create_adapters
from cert_issuer.pipeline import run_csv_upload
from cert_issuer.railway import LoggingExecutionContext
from cert_issuer.railway.http_support import build_fastapi_response

# ─────────────────────── Global State ───────────────────────
# Set during app startup; endpoints answer 503 until it is populated.

_adapters: Adapters | None = None
log = structlog.get_logger()

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI lifespan context manager — runs on startup and shutdown.

    Startup: load settings, create adapters, make sure the table exists.
    """
    global _adapters

    settings = AppSettings()  # type: ignore[call-arg]
    configure_structlog(settings.log_level)
    log.info(
        "asgi.startup_config",
        version=__version__,
        log_level=settings.log_level,
        artifact_format=settings.artifact.format,
        bucket=settings.storage.bucket,
    )

    adapters = create_adapters(settings)
    if isinstance(adapters.repository, PsycopgIssuanceRepository):
        adapters.repository.ensure_schema().peek_failure(
            lambda err: log.warning("asgi.schema_unavailable", failure=str(err))
        )
    _adapters = adapters
    log.info("asgi.startup_complete")

    yield

    log.info("asgi.shutdown", reason="SIGTERM or server stop")
    _adapters = None


# ─────────────────────── FastAPI Application ───────────────────────

app = FastAPI(
    title="cert-issuer",
    description="Bulk certificate issuance — render, store, record and notify",
    version=__version__,
    lifespan=lifespan,
)


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


def _unavailable() -> JSONResponse:
    return _error(503, "Service not initialized")


def _positive_int(raw: str | None, default: int) -> int:
    """Parse a query parameter; missing, non-numeric or non-positive values give default."""
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value > 0 else default


def _records(records: list[IssuanceRecord]) -> list[dict[str, str]]:
    return [record.to_public_dict() for record in records]


@app.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "Server is running"}


@app.post("/api/admin/upload-csv")
async def upload_csv(file: UploadFile | None = File(None)) -> JSONResponse:
    """
    Issue certificates for every valid row of the uploaded CSV.

    Returns 400 when no file is sent, when the file is not a readable CSV,
    or when no row passes validation. Otherwise 200 with the batch report,
    even when some recipients failed.
    """
    if file is None:
        return _error(400, "No file uploaded")
    if _adapters is None:
        return _unavailable()

    adapters = _adapters
    content = await file.read()
    log.info("upload.received", filename=file.filename, size=len(content))

    ctx = LoggingExecutionContext(operation="CertificateBatch")
    result = await asyncio.to_thread(
        ctx.execute,
        lambda: run_csv_upload(
            content,
            file.filename,
            adapters.renderer,
            adapters.store,
            adapters.repository,
            adapters.notifier,
        ),
    )
    if result.is_failure():
        failure = result.error()
        log.warning("upload.rejected", failure=str(failure))
        return build_fastapi_response(result)

    outcome: BatchOutcome = result.value()
    if outcome.valid_rows == 0:
        return _error(
            400,
            "No valid records found in CSV",
            validationErrors=outcome.to_response()["csvValidationErrors"],
        )
    return JSONResponse(status_code=200, content=outcome.to_response())


@app.get("/api/certificate/{issuance_id}")
async def get_certificate(issuance_id: str) -> JSONResponse:
    if _adapters is None:
        return _unavailable()
    result = await asyncio.to_thread(_adapters.repository.find_by_id, issuance_id)
    return build_fastapi_response(result.map(IssuanceRecord.to_public_dict))


@app.get("/api/admin/certificates")
async def list_certificates(page: str | None = None, limit: str | None = None) -> JSONResponse:
    if _adapters is None:
        return _unavailable()
    page_number = _positive_int(page, DEFAULT_PAGE)
    page_size = _positive_int(limit, DEFAULT_LIMIT)
    result = await asyncio.to_thread(_adapters.repository.list_records, page_number, page_size)

    def _body(found: RecordPage) -> JSONResponse:
        return JSONResponse(
            status_code=200,
            content={
                "success": True,
                "data": _records(found.records),
                "pagination": {
                    "total": found.total,
                    "page": found.page,
                    "limit": found.limit,
                    "pages": found.pages,
                },
            },
        )

    return result.either(on_success=_body, on_failure=lambda _: build_fastapi_response(result))


@app.get("/api/admin/search")
async def search_certificates(query: str | None = None) -> JSONResponse:
    if not query or not query.strip():
        return _error(400, "Search query is required")
    if _adapters is None:
        return _unavailable()
    result = await asyncio.to_thread(_adapters.repository.search, query.strip())
    return result.either(
        on_success=lambda found: JSONResponse(
            status_code=200,
            content={"success": True, "data": _records(found), "count": len(found)},
        ),
        on_failure=lambda _: build_fastapi_response(result),
    )


@app.get("/api/admin/stats")
async def stats() -> JSONResponse:
    if _adapters is None:
        return _unavailable()
    result = await asyncio.to_thread(_adapters.repository.stats)

    def _summary(found: RepositoryStats) -> dict[str, Any]:
        return {"totalCertificates": found.total, "recentCertificates": _records(found.recent)}

    return build_fastapi_response(result.map(_summary))


if __name__ == "__main__":
    # For local testing: python -m uvicorn cert_issuer.asgi:app --reload
    import uvicorn

    uvicorn.run(
        "cert_issuer.asgi:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
