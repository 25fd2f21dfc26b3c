"""
System Routes

GET /system/config - Current system configuration
PUT /system/config - Update configuration sections (admin)
GET /system/stats - Document counts per collection (admin)
POST /system/jobs/{job_name}/run - Run a reminder sweep now (admin)
GET /health - Service and database health
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from app.core.auth import get_current_user, require_admin
from app.db.mongodb import get_collection, test_mongo_connection, COLLECTIONS
from app.services import system_service
from app.services.mongo_service import serialize_doc
from app.services.reminder_jobs import JOBS
from app.schemas.schemas import APIResponse, SystemConfigUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["System"])
health_router = APIRouter(tags=["Health"])


def health_payload() -> dict:
    mongo_ok = test_mongo_connection()
    return {
        "status": "healthy" if mongo_ok else "degraded",
        "databases": {"mongodb": "connected" if mongo_ok else "disconnected"},
        "timestamp": datetime.utcnow().isoformat(),
    }


@health_router.get("/health")
async def health_check():
    return health_payload()


@router.get("/config", response_model=APIResponse)
async def get_config(user: dict = Depends(get_current_user)):
    return APIResponse(data=serialize_doc(system_service.get_config()))


@router.put("/config", response_model=APIResponse)
async def update_config(request: SystemConfigUpdate, admin: dict = Depends(require_admin)):
    """Deep-merge the given sections into the stored configuration."""
    updates = request.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No configuration sections to update")
    config = system_service.update_config(updates, updated_by=admin["_id"])
    logger.info(f"Admin {admin['email']} updated system config: {', '.join(updates)}")
    return APIResponse(message="Configuration updated successfully", data=serialize_doc(config))


@router.get("/stats", response_model=APIResponse)
async def system_stats(admin: dict = Depends(require_admin)):
    counts = {
        key: get_collection(name).count_documents({})
        for key, name in COLLECTIONS.items()
    }
    return APIResponse(data={"collections": counts, "generated_at": datetime.utcnow()})


@router.post("/jobs/{job_name}/run", response_model=APIResponse)
async def run_job(job_name: str, admin: dict = Depends(require_admin)):
    """Run one of the scheduled sweeps immediately."""
    job = JOBS.get(job_name)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Unknown job '{job_name}'")
    count = job()
    logger.info(f"Admin {admin['email']} ran job {job_name} ({count} items)")
    return APIResponse(message=f"Job {job_name} completed", data={"job": job_name, "processed": count})
