"""
API module - FastAPI routers and endpoint definitions.

One router per portal domain (auth, users, fees, library, exams, hostel,
placements, notifications, gamification, chatbot, system), combined in
app.api.routes.api_router.

Usage:
    from app.api.routes import api_router
    app.include_router(api_router, prefix="/api")
"""
