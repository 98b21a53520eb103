"""
Domain errors raised by the purchase order services.

Every error carries the HTTP status code the API answers with, so routers can
let them propagate and the handler registered in ``main.py`` renders the
message verbatim.
"""


class PurchaseOrderError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(PurchaseOrderError):
    """Unknown order, supplier, product or variant."""
    status_code = 404


class ValidationError(PurchaseOrderError):
    """Input rejected before anything was written."""
    status_code = 400


class GuardError(PurchaseOrderError):
    """The action is not allowed in the order's current state."""
    status_code = 409


class ReconciliationError(PurchaseOrderError):
    """Stock and movement changes for a receipt could not be applied as a unit."""
    status_code = 500


class AmbiguousVariantError(ReconciliationError):
    status_code = 422


class UnresolvedVariantError(ReconciliationError):
    status_code = 422
