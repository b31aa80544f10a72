from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder

from urlquery.api.deps import query_dependency
from urlquery.core.config import settings
from urlquery.schemas.query import Query
from urlquery.services.parser import Parser
from urlquery.services.primitives import ExtendedJsonPrimitives

router = APIRouter()

parser = Parser.from_settings(ExtendedJsonPrimitives(settings.sort_fields_list or None))


@router.get("/compile")
def compile_query(query: Query = Depends(query_dependency(parser))) -> dict[str, Any]:
    return jsonable_encoder(query.to_find_kwargs())
