import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from urlquery.core.config import settings
from urlquery.core.http_logging import install_request_logging
from urlquery.api.router import router as query_router

logging.basicConfig(level=settings.LOG_LEVEL)

app = FastAPI(title=settings.APP_NAME, version="0.1.0")
install_request_logging(app)

app.include_router(query_router, prefix="/api/query")

@app.get("/", include_in_schema=False)
def landing():
    return JSONResponse({"service": settings.APP_NAME, "status": "ok"})

@app.get("/health")
def health():
    return {"status": "ok"}
