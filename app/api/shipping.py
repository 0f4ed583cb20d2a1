"""
Public shipment tracking
"""
from fastapi import APIRouter, Depends, HTTPException

from app.api.returns import _http_error
from app.connectors.melhor_envio_connector import (
    MelhorEnvioConnector,
    get_melhor_envio_connector,
    normalize_tracking,
)

router = APIRouter(prefix="/shipping", tags=["shipping"])


def get_carrier() -> MelhorEnvioConnector:
    try:
        return get_melhor_envio_connector()
    except Exception as e:
        raise _http_error(e, "Building carrier client")


@router.get("/track/{code}")
async def track_shipment(code: str, carrier: MelhorEnvioConnector = Depends(get_carrier)):
    """Carrier tracking for a tracking code or carrier order id."""
    code = code.strip()
    if not code:
        raise HTTPException(status_code=400, detail={"error": "Tracking code is required", "details": None})

    try:
        tracking = await carrier.track_shipment(code)
    except Exception as e:
        raise _http_error(e, f"Tracking {code}")

    if tracking is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "No tracking found for this code", "details": None},
        )
    return {"success": True, "tracking": normalize_tracking(tracking)}
