"""
Cathedral Build Engine - FastAPI Application

Main entry point for the build ledger backend.

Architecture:
- Blueprint (static JSON) → cached, immutable segment list
- Completed work → BuildLedgerService.apply_points → allocation
- Violation evaluators → DragonService attacks → damage
- Daily scheduler → DragonService.run_daily_repairs → restoration
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import build_router, scheduler_router
from .database import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Cathedral Build Engine",
    description="""
    Cathedral Build Engine - Progress Ledger

    Tracks cumulative build progress across the ordered segments of a
    blueprint. Progress grows from completed work, shrinks from dragon
    attacks on rule violations, and is restored on perfect days.

    ## Key Principles
    - Every mutation writes exactly one append-only build event
    - Attacks and repairs are applied at most once per dedupe key
    - Progress never goes below zero or above a segment's cost
    - Points beyond the blueprint's capacity are dropped, not banked
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(build_router)
app.include_router(scheduler_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Cathedral Build Engine",
        "version": "1.0.0",
        "description": "Build progress ledger with dragon attacks and repairs",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
