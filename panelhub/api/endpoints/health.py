from fastapi import APIRouter
from sqlalchemy import text
import time
from typing import Dict, Any

from panelhub.database import connection
from panelhub.services.supabase_auth_service import supabase_auth_service

router = APIRouter()


@router.get("/health", response_model=Dict[str, Any])
async def health_check():
    """
    System health check endpoint
    Returns overall health status and component diagnostics
    """
    start_time = time.time()
    health_data = {
        "status": "healthy",
        "timestamp": int(time.time()),
        "version": "1.0.0",
        "components": {}
    }

    try:
        async with connection.get_session() as session:
            await session.execute(text("SELECT 1"))
        health_data["components"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful"
        }
    except Exception as e:
        health_data["status"] = "unhealthy"
        health_data["components"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}"
        }

    auth_health = await supabase_auth_service.health_check()
    health_data["components"]["auth"] = auth_health
    if auth_health["status"] != "healthy" and health_data["status"] == "healthy":
        health_data["status"] = "degraded"

    health_data["response_time_ms"] = round((time.time() - start_time) * 1000, 2)
    return health_data
