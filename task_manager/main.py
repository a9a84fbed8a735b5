"""
Task Manager API - application module.
"""
import logging
import time
from typing import Any, Dict
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import get_settings
from .core.database import check_db_connection, init_db
from .core.exceptions import TaskManagerError, Unauthenticated, ValidationError
from .routers import auth, tasks

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _field_name(loc) -> str:
    # ("body", "title") -> "title"; ("query", "page") -> "page"
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or str(loc[0])


def _error_message(error: dict) -> str:
    message = error.get("msg", "Invalid value.")
    return message.removeprefix("Value error, ")


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as ``{"message": ...}`` (plus ``errors`` for validation failures)"""

    @app.exception_handler(TaskManagerError)
    async def task_manager_error_handler(request: Request, exc: TaskManagerError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors: Dict[str, list] = {}
        for error in exc.errors():
            errors.setdefault(_field_name(error.get("loc", ("body",))), []).append(_error_message(error))
        first = next(iter(errors.values()))[0] if errors else "The given data was invalid."
        return JSONResponse(
            status_code=ValidationError.status_code,
            content={"message": first, "errors": errors}
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions"""
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail},
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": str(exc) if settings.debug else "Server Error"}
        )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Task Manager API",
        description="Multi-user task management with token auth and task assignment",
        version=settings.service_version
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        """Log all requests with timing"""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        response.headers["X-Process-Time"] = f"{process_time:.4f}"
        if request.url.path != "/health":
            logger.info(f"{request.method} {request.url.path} - {response.status_code} ({process_time:.3f}s)")
        return response

    register_exception_handlers(app)

    app.include_router(auth.router, prefix=settings.api_prefix)
    app.include_router(tasks.router, prefix=settings.api_prefix + "/tasks", tags=["tasks"])

    @app.on_event("startup")
    async def startup_event():
        """Initialize database on startup"""
        logger.info("Starting Task Manager API...")
        init_db()
        logger.info("Task Manager API startup completed")

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Root endpoint"""
        return {
            "service": settings.service_name,
            "version": settings.service_version,
            "status": "running",
            "message": "Task Manager API is operational"
        }

    @app.get("/health")
    def health_check() -> Dict[str, Any]:
        """Health check endpoint"""
        db_healthy = check_db_connection()
        return {
            "service": settings.service_name,
            "version": settings.service_version,
            "status": "healthy" if db_healthy else "unhealthy",
            "database": "connected" if db_healthy else "disconnected",
            "timestamp": time.time()
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("task_manager.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
