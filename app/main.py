"""
University Student Portal - Main Application

FastAPI backend with:
- MongoDB for every portal entity
- JWT authentication with student/admin roles
- APScheduler for fee and library reminder sweeps
- DeepSeek AI for the help chatbot (optional)

Run: uvicorn app.main:app --reload
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import __version__
from app.api.routes import api_router
from app.api.routes.system_routes import health_payload
from app.core.config import get_settings
from app.core.exceptions import register_exception_handlers
from app.core.logging_config import setup_logging
from app.db.mongodb import init_mongo_indexes
from app.services.scheduler import shutdown_scheduler, start_scheduler

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="University Student Portal",
    description="""
    REST API for a university student portal.

    ## Features
    - **Authentication**: JWT access/refresh tokens, student and admin roles
    - **Fees**: Fee records, mocked payments, receipts, refunds, discounts
    - **Library**: Catalogue, borrowing, renewals and fines
    - **Exams**: Timetable, results and transcripts
    - **Hostel**: Rooms, allocations and service requests
    - **Placements**: Jobs, applications and interviews
    - **Notifications**: Targeted fan-out and scheduled reminders
    - **Gamification**: Points, levels, badges and leaderboard

    Every response uses the envelope `{success, message, data}`.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include API routes
app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    """Initialize MongoDB indexes and start the reminder scheduler."""
    try:
        init_mongo_indexes()
    except Exception as e:
        logger.warning(f"MongoDB index initialization failed: {e}")

    if settings.scheduler_enabled:
        start_scheduler()
    else:
        logger.info("Scheduler disabled by configuration")


@app.on_event("shutdown")
async def shutdown_event():
    shutdown_scheduler()


@app.get("/", tags=["Health"])
async def root():
    """API info."""
    return {
        "success": True,
        "message": "University Student Portal API is running",
        "data": {"version": __version__, "docs": "/docs", "api": "/api"},
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return health_payload()
