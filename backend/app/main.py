"""
Autopilot Risk Gate - FastAPI Application

Main entry point for the backend API.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.api.v1 import router as api_v1_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    print(f"Starting {settings.app_name} v{settings.app_version}")
    print(f"Environment: {settings.environment}")
    print(f"Signal provider: {settings.signal_provider} (IV gate: {settings.iv_gate_source})")
    print(f"Broker: {settings.broker_mode}")

    # Initialize database
    from app.db.database import init_db, close_db
    await init_db()
    print("Database initialized")

    # Initialize Redis market-state cache
    from app.services.cache.redis_client import init_redis, close_redis
    redis_client = await init_redis()
    if redis_client:
        print("Redis cache connected")
    else:
        print("Redis unavailable - using in-memory market state")

    # Build the safety gateway up front so circuit state starts clean
    from app.services.safety import get_safety_gateway, close_safety_gateway
    gateway = get_safety_gateway()
    print(f"Safety gateway ready ({gateway.provider.name})")

    yield

    # Shutdown
    print("Shutting down...")
    from app.services.proposals import close_proposal_service
    await close_proposal_service()
    await close_safety_gateway()
    await close_redis()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Autopilot Risk Gate API

    ## Architecture
    - **Event Classifier**: Maps headlines to market event types
    - **IV Scoring Engine**: 0-10 volatility score and implied move envelope
    - **Safety Signal Gateway**: Threats, blind spots and IV gate behind circuit breakers
    - **Risk Validation Pipeline**: Concurrent risk checks with readable reasons
    - **Proposal Lifecycle**: pending -> approved/rejected/expired -> executed/failed

    ## Core Principles
    - Autopilot proposes, human acknowledges
    - Fail closed when safety cannot be verified
    - Every block carries a reason
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_v1_router, prefix=settings.api_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"{settings.app_name} API",
        "docs": "/docs",
        "health": "/health",
    }
