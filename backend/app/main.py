"""
Implant Warranty - FastAPI Application

Main entry point for the implant warranty backend.

Architecture:
- Patient flow (public):  blank record → serials → patient info → established
- Staff flow (bearer JWT): batch creation, authorized reads, maintenance
- Continuity between patient steps: `warranty_step` device-binding cookie
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CORS_ALLOWED_ORIGINS, LOG_LEVEL
from .database import init_db
from .routers import auth_router, warranty_router, admin_router
from .services.warranty import get_pii_codec

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and PII codec on startup; a bad key stops startup."""
    init_db()
    get_pii_codec()
    logger.info("Implant warranty service started")
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Implant Warranty",
    description="""
    Implant Warranty - Registration and Tracking

    Patients register implanted devices against a pre-issued blank record;
    staff create those records and maintain them.

    ## Patient Flow
    1. **Step 1**: Serial number(s) + surgery date → warranty window locked
    2. **Step 2**: Patient details (identity number and phone stored encrypted)
    3. **Step 3**: Confirmation → warranty active, emails sent

    ## Key Principles
    - Steps only move forward; each step is re-checked at write time
    - A serial can back at most one warranty
    - Zero-year products end the flow without a warranty
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# The binding cookie is cross-site (SameSite=None), so origins must be explicit
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(warranty_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Implant Warranty",
        "version": "1.0.0",
        "docs": "/docs",
        "api": API_PREFIX,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
