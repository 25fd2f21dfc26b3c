"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from app.api.routes.auth_routes import router as auth_router
from app.api.routes.user_routes import router as user_router
from app.api.routes.fee_routes import router as fee_router
from app.api.routes.library_routes import router as library_router
from app.api.routes.exam_routes import router as exam_router
from app.api.routes.course_routes import router as course_router
from app.api.routes.hostel_routes import router as hostel_router
from app.api.routes.placement_routes import router as placement_router
from app.api.routes.certificate_routes import router as certificate_router
from app.api.routes.notification_routes import router as notification_router
from app.api.routes.gamification_routes import router as gamification_router
from app.api.routes.chatbot_routes import router as chatbot_router
from app.api.routes.system_routes import router as system_router, health_router

# Main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(health_router)
api_router.include_router(auth_router)
api_router.include_router(user_router)
api_router.include_router(fee_router)
api_router.include_router(library_router)
api_router.include_router(exam_router)
api_router.include_router(course_router)
api_router.include_router(hostel_router)
api_router.include_router(placement_router)
api_router.include_router(certificate_router)
api_router.include_router(notification_router)
api_router.include_router(gamification_router)
api_router.include_router(chatbot_router)
api_router.include_router(system_router)
