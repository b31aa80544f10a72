from __future__ import annotations

from typing import Callable

from fastapi import HTTPException, Request

from urlquery.core.http_logging import CompileOutcome, record_outcome
from urlquery.schemas.query import Query
from urlquery.services.parser import Parser


def query_dependency(parser: Parser) -> Callable[[Request], Query]:
    def _inner(request: Request) -> Query:
        query, errors = parser.compile(request.query_params)
        record_outcome(request, CompileOutcome.of(query, errors))
        if errors:
            raise HTTPException(status_code=400, detail=[err.to_detail() for err in errors])
        return query
    return _inner
