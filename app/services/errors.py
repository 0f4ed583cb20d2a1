"""
Fulfillment error taxonomy.

Every error carries an HTTP-ish ``status_code`` so routers can classify
precondition failures, upstream (carrier) failures and missing records
without inspecting the message.
"""
from typing import Any, List, Optional


class FulfillmentError(Exception):
    """Base class for errors surfaced to callers of the fulfillment services."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class CarrierApiError(FulfillmentError):
    """Network, HTTP or payload failure talking to the carrier."""

    status_code = 502

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        super().__init__(message, details=response_body)
        self.http_status = status_code
        self.response_body = response_body


class CarrierConfigError(FulfillmentError):
    """Carrier client cannot be built (missing token)."""

    status_code = 500


class PreconditionError(FulfillmentError):
    """Business rule violated before any external call was made."""

    status_code = 400


class MissingDataError(PreconditionError):
    """A required related record is absent (e.g. the order's address)."""


class NoShippingOptionError(FulfillmentError):
    """Every carrier quote for the route came back with an error."""

    status_code = 400

    def __init__(self, message: str, quote_errors: List[str]):
        super().__init__(message, details=quote_errors)
        self.quote_errors = quote_errors


class OrderNotFoundError(FulfillmentError):
    status_code = 404


class AccessDeniedError(FulfillmentError):
    """Caller is authenticated but the order belongs to someone else."""

    status_code = 403
