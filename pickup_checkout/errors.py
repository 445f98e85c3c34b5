"""
Checkout Error Taxonomy
=======================

Every failure the checkout core reports to a caller is a ``CheckoutError``.
Each subclass carries:

- ``status_code``: HTTP status the API layer answers with
- ``code``: stable machine-readable identifier
- ``client_message``: the sentence shown to the buyer or operator

Services raise these; routes let them propagate and the exception handler
registered in ``main.py`` renders them as::

    {"error": "<code>", "message": "<client_message>", "detail": "<detail>"}

``detail`` is free-form context for logs and operators (ids, counts).
"""

from typing import Optional


class CheckoutError(Exception):
    """Base class for all domain errors raised by the checkout core."""

    status_code = 400
    code = "checkout_error"
    client_message = "The request could not be completed."

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(detail or self.client_message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.client_message,
            "detail": self.detail,
        }


class ValidationError(CheckoutError):
    status_code = 400
    code = "validation_error"
    client_message = "Some of the submitted information is missing or invalid."


class NotFoundError(CheckoutError):
    status_code = 404
    code = "not_found"
    client_message = "The requested item could not be found."


class ConflictError(CheckoutError):
    status_code = 409
    code = "conflict"
    client_message = "The request conflicts with the current state."


class WindowFullError(ConflictError):
    code = "window_full"
    client_message = "This time slot is full, please choose another."

    def __init__(self, window_id: int, detail: Optional[str] = None):
        self.window_id = window_id
        super().__init__(detail or f"Pickup window {window_id} has no free capacity")


class OutOfStockError(ConflictError):
    """Raised when there is not enough inventory to fulfill an item."""

    code = "out_of_stock"
    client_message = "One of the products is no longer available in the requested quantity."

    def __init__(self, product_name: str, requested: int, available: Optional[int]):
        self.product_name = product_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough inventory for {product_name}: requested {requested}, available {available}"
        )


class ReservationExpiredError(ConflictError):
    code = "reservation_expired"
    client_message = "Your time slot reservation expired, please try again."


class UnderflowError(CheckoutError):
    status_code = 409
    code = "reservation_underflow"
    client_message = "There is no reservation to release for this time slot."


class PersistenceError(CheckoutError):
    status_code = 503
    code = "persistence_error"
    client_message = "We could not save your order right now, please try again."


# --- Coupon errors ---

class CouponError(CheckoutError):
    status_code = 400
    code = "coupon_invalid"
    client_message = "Coupon code invalid or expired."


class CouponNotFoundError(CouponError):
    status_code = 404
    code = "coupon_not_found"
    client_message = "Coupon code not found."


class CouponInactiveError(CouponError):
    code = "coupon_inactive"
    client_message = "This coupon is no longer active."


class CouponNotYetValidError(CouponError):
    code = "coupon_not_yet_valid"
    client_message = "This coupon is not valid yet."


class CouponExpiredError(CouponError):
    code = "coupon_expired"
    client_message = "Coupon code invalid or expired."


class CouponUsageExceededError(CouponError):
    code = "coupon_usage_exceeded"
    client_message = "This coupon has reached its usage limit."
