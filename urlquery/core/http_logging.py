from __future__ import annotations

import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Iterable
from uuid import uuid4

from fastapi import FastAPI, Request

REQUEST_ID_HEADER = "X-Request-ID"
QUERY_ERRORS_HEADER = "X-Query-Errors"
REQUEST_ID_MAX_LENGTH = 128
_REQUEST_ID_PUNCTUATION = "._-"
_LOG = logging.getLogger("urlquery.http")


@dataclass
class CompileOutcome:
    fields: int = 0
    sort: int = 0
    limit: int = 0
    skip: int = 0
    errors: list[str] = field(default_factory=list)

    @classmethod
    def of(cls, query: Any, errors: Iterable[Any]) -> "CompileOutcome":
        return cls(
            fields=len(query.filter),
            sort=len(query.sort),
            limit=query.limit,
            skip=query.skip,
            errors=[err.kind for err in errors],
        )


def resolve_request_id(raw: str | None) -> str:
    value = (raw or "").strip()
    if (
        0 < len(value) <= REQUEST_ID_MAX_LENGTH
        and value.isascii()
        and all(c.isalnum() or c in _REQUEST_ID_PUNCTUATION for c in value)
    ):
        return value
    return uuid4().hex


def record_outcome(request: Request, outcome: CompileOutcome) -> None:
    request.state.compile_outcome = outcome


def install_request_logging(app: FastAPI) -> None:
    @app.middleware("http")
    async def _compile_logging_middleware(request: Request, call_next):
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started_at = perf_counter()

        response = await call_next(request)

        # Compiled queries depend on the full query string; never cache them.
        response.headers["Cache-Control"] = "no-store"
        response.headers[REQUEST_ID_HEADER] = request_id
        duration_ms = (perf_counter() - started_at) * 1000.0

        outcome: CompileOutcome | None = getattr(request.state, "compile_outcome", None)
        if outcome is None:
            _LOG.info("%s %s status=%s duration_ms=%.2f request_id=%s",
                      request.method, request.url.path, response.status_code, duration_ms, request_id)
            return response

        errors = ",".join(outcome.errors)
        if errors:
            response.headers[QUERY_ERRORS_HEADER] = errors
        _LOG.info(
            "compile %s status=%s fields=%d sort=%d limit=%d skip=%d errors=%s duration_ms=%.2f request_id=%s",
            request.url.path,
            response.status_code,
            outcome.fields,
            outcome.sort,
            outcome.limit,
            outcome.skip,
            errors or "none",
            duration_ms,
            request_id,
        )
        return response
