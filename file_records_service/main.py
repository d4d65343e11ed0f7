from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import errors
from config import Settings
from database import build_engine, build_session_factory, create_db_and_tables
from notifier import ConnectionManager
from routers import auth as auth_router
from routers import files as files_router
from routers import realtime as realtime_router
from logging_config import get_logger, set_log_level
from storage import BlobStorage

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    logger.info("File Records Service starting up...")
    await create_db_and_tables(app.state.engine)
    logger.info(f"File storage path configured at: {settings.STORAGE_BASE_PATH}")
    yield
    logger.info("File Records Service shutting down...")
    await app.state.notifier.close()
    await app.state.engine.dispose()


def error_body(settings: Settings, message: str, errors_list=None, detail: Optional[str] = None) -> dict:
    body = {"success": False, "message": message}
    if errors_list:
        body["errors"] = errors_list
    if detail and not settings.is_production:
        body["error"] = detail
    return body


def install_exception_handlers(app: FastAPI):
    @app.exception_handler(errors.AppError)
    async def app_error_handler(request: Request, exc: errors.AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
        detail = str(exc.__cause__) if exc.__cause__ else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(app.state.settings, exc.message, exc.errors, detail),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == 404 and message == "Not Found":
            message = f"Not Found - {request.url.path}"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(app.state.settings, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()]
        return JSONResponse(
            status_code=400,
            content=error_body(app.state.settings, "Invalid request", problems),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=error_body(app.state.settings, "Internal server error", detail=str(exc)),
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    set_log_level(settings.LOG_LEVEL)

    app = FastAPI(
        title="File Records Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = build_engine(settings.DATABASE_URL)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.storage = BlobStorage(settings.STORAGE_BASE_PATH)
    app.state.notifier = ConnectionManager()

    origins = [origin for origin in [settings.FRONTEND_URL, "http://localhost:3000", "http://localhost:5000"] if origin]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    install_exception_handlers(app)

    app.include_router(auth_router.router, prefix=settings.API_PREFIX)
    app.include_router(files_router.router, prefix=settings.API_PREFIX)
    app.include_router(realtime_router.router)

    @app.get("/ping", tags=["Health"])
    async def ping():
        return {"ping": "pong! from FRS"}

    @app.get("/", tags=["Root"])
    async def read_root():
        return {"message": "Welcome to the File Records Service API"}

    @app.get(f"{settings.API_PREFIX}/health", tags=["Health"])
    async def health(request: Request):
        return {
            "success": True,
            "message": "File Management System API is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.ENVIRONMENT,
            "realtime": True,
            "connectedClients": getattr(request.app.state.notifier, "connected_clients", 0),
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    current_settings = app.state.settings
    logger.info(f"Starting FRS on {current_settings.FRS_HOST}:{current_settings.FRS_PORT}")
    uvicorn.run("main:app", host=current_settings.FRS_HOST, port=current_settings.FRS_PORT, reload=True)
