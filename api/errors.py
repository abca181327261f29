"""
Exception handlers mapping ingestion errors onto HTTP responses
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.exceptions import (
    IngestionException,
    IngestionFailedError,
    LedgerError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return error_response(404, exc.message)


async def ingestion_failed_handler(request: Request, exc: IngestionFailedError) -> JSONResponse:
    logger.error(
        f"Ingestion failed for {request.url.path}: {exc.message}",
        extra={"error_context": exc.to_dict()}
    )
    return error_response(500, exc.message)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    logger.error(exc.describe(), extra={"error_context": exc.to_dict()})
    return error_response(500, "Snapshot ledger unavailable")


async def ingestion_error_handler(request: Request, exc: IngestionException) -> JSONResponse:
    logger.error(exc.describe(), extra={"error_context": exc.to_dict()})
    return error_response(500, "Internal server error")


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(IngestionFailedError, ingestion_failed_handler)
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(IngestionException, ingestion_error_handler)
