from fastapi import APIRouter
from app.api.v1.endpoints import challenges

# Create main API router
api_router = APIRouter(
    redirect_slashes=False
)  # Disable redirects to preserve Authorization header

# Include all endpoint routers
api_router.include_router(challenges.router, prefix="/challenges", tags=["Challenges"])
