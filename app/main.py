from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from app.config import get_settings
from app.database import init_db
from app.dependencies import build_cache_store
from app.middleware.correlation import CorrelationMiddleware
from app.routes import recommendations
from app.services.ai_cache_service import AICacheService
from app.utils.logger import logger
from app.utils.metrics import get_snapshot

settings = get_settings()

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(title=settings.app_name, version=settings.app_version)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(CorrelationMiddleware)

# CORS - Explicit origins from config
allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-User-ID", "X-Correlation-ID"],
)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.app_name} backend...")
    if settings.cache_backend.lower() == "sql":
        await init_db()
    store = build_cache_store(settings)
    app.state.ai_cache = AICacheService(store, ttl_hours=settings.ai_cache_ttl_hours)
    logger.info(f"Backend ready at http://{settings.backend_host}:{settings.backend_port}")


@app.on_event("shutdown")
async def shutdown_event():
    cache = getattr(app.state, "ai_cache", None)
    if cache is not None:
        await cache.store.close()


# Health check endpoint (minimal response to prevent information disclosure)
@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/metrics")
async def metrics():
    return get_snapshot()


# Register routes
app.include_router(recommendations.router, prefix="/api/recommendations", tags=["Recommendations"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.debug
    )
