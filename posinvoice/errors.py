# posinvoice/errors.py
from typing import Optional

# Domain errors. The API turns these into {"detail": ...} responses with the
# status code carried by each class.


class PosError(Exception):
    status_code = 400
    code = "pos_error"

    def __init__(self, context: Optional[str] = None, message: Optional[str] = None):
        self.context = context
        self.message = message or self.code
        super().__init__(self.detail)

    @property
    def detail(self) -> str:
        if self.context:
            return f"{self.code}:{self.context}"
        return self.code


class ValidationFailed(PosError):
    status_code = 400
    code = "invalid"


class InvalidUnit(ValidationFailed):
    code = "invalid_unit"


class InvalidQuantity(ValidationFailed):
    code = "invalid_quantity"


class WeightRequired(ValidationFailed):
    code = "weight_required"


class PriceRequired(ValidationFailed):
    code = "price_required"


class NotFound(PosError):
    status_code = 404
    code = "not_found"


class ProductNotFound(NotFound):
    code = "product_not_found"


class CustomerNotFound(NotFound):
    code = "customer_not_found"


class SaleNotFound(NotFound):
    code = "sale_not_found"


class LineNotFound(NotFound):
    code = "line_not_found"


class InsufficientStock(PosError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, product_id: str, requested: float = 0.0, available: float = 0.0):
        self.requested = requested
        self.available = available
        super().__init__(product_id, f"requested {requested:g}, available {available:g}")


class EmptyCart(PosError):
    status_code = 400
    code = "cart_empty"


class IdempotencyKeyRequired(PosError):
    status_code = 400
    code = "idempotency_key_required"


class Unauthorized(PosError):
    status_code = 401
    code = "unauthorized"


class StoreWriteFailed(PosError):
    status_code = 500
    code = "store_write_failed"
