"""
Return (reverse logistics) endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.auth import Principal, _require_admin, _require_authenticated
from app.models.base import get_db
from app.services.errors import FulfillmentError
from app.services.return_label_service import ReturnLabelService
from app.services.return_review_service import ReturnReviewService
from app.utils.logger import log

router = APIRouter(tags=["returns"])


# ── Schemas ──────────────────────────────────────────────

class ReturnActionRequest(BaseModel):
    order_id: int


class RejectReturnRequest(BaseModel):
    order_id: int
    reason: str


class CancelLabelRequest(BaseModel):
    order_id: int
    reason: Optional[str] = None


class RequestReturnBody(BaseModel):
    reason: Optional[str] = None


# ── Dependencies ─────────────────────────────────────────

def get_return_label_service(db: Session = Depends(get_db)) -> ReturnLabelService:
    return ReturnLabelService(db)


def get_return_review_service(db: Session = Depends(get_db)) -> ReturnReviewService:
    return ReturnReviewService(db)


def _http_error(e: Exception, action: str) -> HTTPException:
    if isinstance(e, FulfillmentError):
        if e.status_code >= 500:
            log.error(f"{action} failed: {e.message}")
        else:
            log.warning(f"{action} rejected: {e.message}")
        return HTTPException(
            status_code=e.status_code,
            detail={"error": e.message, "details": e.details},
        )
    log.error(f"{action} error: {str(e)}")
    return HTTPException(status_code=500, detail={"error": "Internal server error", "details": None})


# ── Admin ────────────────────────────────────────────────

@router.post("/admin/returns/approve")
async def approve_return(
    body: ReturnActionRequest,
    admin: Principal = Depends(_require_admin),
    service: ReturnReviewService = Depends(get_return_review_service),
):
    """Approve a customer's return request."""
    try:
        return service.approve(body.order_id)
    except Exception as e:
        raise _http_error(e, f"Approving return for order #{body.order_id}")


@router.post("/admin/returns/reject")
async def reject_return(
    body: RejectReturnRequest,
    admin: Principal = Depends(_require_admin),
    service: ReturnReviewService = Depends(get_return_review_service),
):
    """Reject a return request with a reason."""
    try:
        return service.reject(body.order_id, body.reason)
    except Exception as e:
        raise _http_error(e, f"Rejecting return for order #{body.order_id}")


@router.post("/admin/returns/generate-label")
async def generate_return_label(
    body: ReturnActionRequest,
    admin: Principal = Depends(_require_admin),
    service: ReturnLabelService = Depends(get_return_label_service),
):
    """
    Buy the reverse shipping label at Melhor Envio for an approved return.

    Moves the order to return_label_generated and returns the new shipment,
    label URL and tracking code.
    """
    try:
        result = await service.generate(body.order_id)
        return result.to_dict()
    except Exception as e:
        raise _http_error(e, f"Generating return label for order #{body.order_id}")


@router.post("/admin/returns/cancel-label")
async def cancel_return_label(
    body: CancelLabelRequest,
    admin: Principal = Depends(_require_admin),
    service: ReturnLabelService = Depends(get_return_label_service),
):
    """Void an unposted return label; the order goes back to return_approved."""
    try:
        return await service.cancel_label(body.order_id, body.reason)
    except Exception as e:
        raise _http_error(e, f"Cancelling return label for order #{body.order_id}")


# ── Customer ─────────────────────────────────────────────

@router.post("/orders/{order_id}/request-return")
async def request_return(
    order_id: int,
    body: RequestReturnBody,
    user: Principal = Depends(_require_authenticated),
    service: ReturnReviewService = Depends(get_return_review_service),
):
    """Ask for a return of a delivered order (owner only; admins may act for any order)."""
    try:
        return service.request(order_id, None if user.is_admin else user.id, body.reason)
    except Exception as e:
        raise _http_error(e, f"Requesting return for order #{order_id}")


@router.get("/orders/{order_id}/return-label")
async def get_return_label(
    order_id: int,
    user: Principal = Depends(_require_authenticated),
    service: ReturnLabelService = Depends(get_return_label_service),
):
    """Return label link for the order owner (admins may read any order)."""
    try:
        return await service.get_label(order_id, user_id=None if user.is_admin else user.id)
    except Exception as e:
        raise _http_error(e, f"Fetching return label for order #{order_id}")
