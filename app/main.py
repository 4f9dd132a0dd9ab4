import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.errors import PipelineError
from app.core.logging import setup_logging
from app.api.endpoints import router as api_router
from app.db.postgres import init_db

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging(logging.DEBUG if settings.DEBUG else logging.INFO)
    logger.info("Starting up subtitle translation backend...")
    await init_db()

    yield

    # Shutdown
    logger.info("Shutting down subtitle translation backend...")

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

app.include_router(api_router, prefix="/api")


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.reason}: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.reason}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    reason = "method_not_allowed" if exc.status_code == 405 else "http_error"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail), "reason": reason},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": f"Malformed request: {errors}", "reason": "invalid_request"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error in {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Failed to translate video subtitles", "reason": "internal_error"},
    )
