# ai_searcher/main.py
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging
from contextlib import asynccontextmanager

from ai_searcher.api.endpoints import search, query, feedback, history, health
from ai_searcher.api.dependencies import shutdown_handler
from ai_searcher.api.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from ai_searcher.config.settings import settings
from ai_searcher.core.exceptions import CustomHTTPException
from ai_searcher.database.connection import init_database, close_database

API_PREFIX = "/api/ai-searcher"

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events"""
    logger.info("Starting AI Searcher backend...")
    try:
        await init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.warning(f"Database initialization failed: {e} - continuing without database")

    yield

    logger.info("Shutting down AI Searcher backend...")
    await shutdown_handler()
    try:
        await close_database()
    except Exception as e:
        logger.warning(f"Database close failed: {e}")
    logger.info("Application shutdown completed")

def _error_body(request: Request, detail, error_code, **extra) -> dict:
    body = {
        "success": False,
        "error": detail,
        "error_code": error_code,
        "request_id": getattr(request.state, "request_id", None)
    }
    body.update({k: v for k, v in extra.items() if v is not None})
    return body

def create_app() -> FastAPI:
    app = FastAPI(
        title="AI Searcher Backend",
        description="Academic query generation, Google Scholar search and feedback-based ranking",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan
    )

    # Last added runs first
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(search.router, prefix=API_PREFIX, tags=["search"])
    app.include_router(query.router, prefix=API_PREFIX, tags=["query"])
    app.include_router(feedback.router, prefix=API_PREFIX, tags=["feedback"])
    app.include_router(history.router, prefix=API_PREFIX, tags=["history"])
    app.include_router(health.router, prefix=API_PREFIX, tags=["health"])

    @app.exception_handler(CustomHTTPException)
    async def custom_exception_handler(request: Request, exc: CustomHTTPException):
        headers = {"Retry-After": "60"} if exc.status_code == 429 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                request, exc.detail, exc.error_code,
                fallback_url=getattr(exc, "fallback_url", None)
            ),
            headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return JSONResponse(
            status_code=400,
            content=_error_body(
                request,
                f"{location}: {message}" if location else message,
                "INVALID_REQUEST"
            )
        )

    @app.get("/")
    async def root():
        return {"message": "AI Searcher Backend", "status": "running", "version": "1.0.0"}

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ai_searcher.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
