from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from careerhub.config import get_settings
from careerhub.database import init_db
from careerhub.middleware.correlation import CorrelationMiddleware, get_correlation_id
from careerhub.routes import notifications, ai_chat, chat_history, reports, scheduler
from careerhub.services.redis_client import init_redis, close_redis
from careerhub.services.scheduler_service import scheduler_service
from careerhub.utils.logger import logger
from careerhub.utils import metrics

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting CareerHub backend...")
    await init_db()
    await init_redis()
    if settings.scheduler_enabled:
        scheduler_service.start()
    logger.info(f"Backend ready at http://{settings.backend_host}:{settings.backend_port}")
    yield
    scheduler_service.shutdown()
    await close_redis()
    logger.info("Backend stopped")


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# Rate limiting lives on the AI chat routes
app.state.limiter = ai_chat.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS - Explicit origins for security
allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
    expose_headers=["X-Correlation-ID"],
)
app.add_middleware(CorrelationMiddleware)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "request.unhandled_error",
        extra={"path": request.url.path, "error": str(exc)[:500], "error_type": type(exc).__name__},
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "correlationID": get_correlation_id()},
    )


# Health check endpoint (minimal response to prevent information disclosure)
@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/metrics")
async def get_metrics():
    return metrics.get_snapshot()


# Register routes
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
app.include_router(ai_chat.router, prefix="/api/ai", tags=["AI Chat"])
app.include_router(chat_history.router, prefix="/api/chat-history", tags=["Chat History"])
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])
app.include_router(scheduler.router, prefix="/api/scheduler", tags=["Scheduler"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "careerhub.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.debug
    )
