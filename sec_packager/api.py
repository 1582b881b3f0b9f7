"""
HTTP front end for the filing packager.

Endpoints:
  GET /api/pack?ticker=AAPL&daysBack=365&maxEx=25&maxMb=75&exhibits=1&deep=0&all=1&asOf=2024-01-01
    -> streamed ZIP archive
  GET /health -> {"status": "ok"}
"""

import logging
from datetime import date
from typing import Iterator, Optional

import uvicorn
from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from sec_packager.archive import PackBuilder, PackPlan, archive_filename
from sec_packager.client import SECClient
from sec_packager.config import get_settings
from sec_packager.errors import (
    ConfigurationError,
    FetchError,
    NoEligibleFilingsError,
    TickerNotFoundError,
)
from sec_packager.logging_config import setup_logging
from sec_packager.models import PackRequest

logger = logging.getLogger(__name__)

app = FastAPI(title="SEC Filing Packager")


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _describe_validation(errors: list[dict]) -> str:
    parts = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("query", "body")]
        field_name = ".".join(location) or "request"
        parts.append(f"{field_name}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts) or "Invalid request"


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, _describe_validation(exc.errors()))


@app.exception_handler(ValidationError)
async def handle_model_validation(request: Request, exc: ValidationError) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, _describe_validation(exc.errors()))


@app.exception_handler(TickerNotFoundError)
async def handle_ticker_not_found(request: Request, exc: TickerNotFoundError) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(NoEligibleFilingsError)
async def handle_no_filings(request: Request, exc: NoEligibleFilingsError) -> JSONResponse:
    return error_response(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(ConfigurationError)
async def handle_configuration(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error: %s", exc)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


@app.exception_handler(FetchError)
async def handle_fetch(request: Request, exc: FetchError) -> JSONResponse:
    logger.error("Registry fetch failed: %s", exc)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred")


def get_client() -> SECClient:
    """Dependency creating a client per request (raises ConfigurationError early)."""
    return SECClient()


def _stream_and_close(builder: PackBuilder, plan: PackPlan) -> Iterator[bytes]:
    try:
        yield from builder.stream(plan)
    finally:
        builder.client.close()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/api/pack")
def build_pack(
    ticker: str = Query(..., min_length=1),
    days_back: int = Query(365, alias="daysBack", ge=30, le=730),
    max_ex: int = Query(25, alias="maxEx", ge=1, le=100),
    max_mb: int = Query(75, alias="maxMb", ge=5, le=500),
    exhibits: bool = Query(True),
    deep: bool = Query(False),
    all_filings: bool = Query(True, alias="all"),
    as_of: Optional[date] = Query(None, alias="asOf"),
    client: SECClient = Depends(get_client),
) -> StreamingResponse:
    """Build and stream a filing pack for one ticker."""
    builder = PackBuilder(client)
    try:
        pack_request = PackRequest(
            ticker=ticker,
            days_back=days_back,
            max_exhibits=max_ex,
            max_mb=max_mb,
            include_exhibits=exhibits,
            deep=deep,
            all_filings=all_filings,
            as_of=as_of,
        )
        plan = builder.prepare(pack_request)
    except Exception:
        client.close()
        raise

    filename = archive_filename(plan.company.ticker)
    return StreamingResponse(
        _stream_and_close(builder, plan),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def main() -> None:
    """Run the packager HTTP server."""
    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
