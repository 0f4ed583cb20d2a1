"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime
from app.config import get_settings
from app import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "features": {
            "order_sync_scheduler": settings.enable_order_sync_scheduler,
            "carrier_configured": bool(settings.melhor_envio_token),
            "carrier_sandbox": settings.melhor_envio_sandbox,
        },
        "timestamp": datetime.utcnow().isoformat()
    }
