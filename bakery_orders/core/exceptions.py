"""
Custom exceptions for the bakery ordering backend.
Every domain error carries a stable error code and a kind so API clients can
branch on them without parsing messages.
"""

from typing import Any, Dict, Optional
from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ErrorKind:
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    STATE_VIOLATION = "state_violation"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"


class BaseCustomException(HTTPException):
    """Base class for all custom exceptions"""

    kind = ErrorKind.INTERNAL

    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.field = field
        self.details = details


# =============================================================================
# HTTP EXCEPTIONS
# =============================================================================

class NotFoundError(BaseCustomException):
    """Resource not found exception"""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, identifier: Any, error_code: str = "RESOURCE_NOT_FOUND"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} '{identifier}' not found",
            error_code=error_code
        )


class UnauthorizedError(BaseCustomException):
    """Unauthorized access exception"""

    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "Authentication required", error_code: str = "UNAUTHORIZED"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
            error_code=error_code,
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(BaseCustomException):
    """Forbidden access exception"""

    kind = ErrorKind.FORBIDDEN

    def __init__(self, message: str = "You do not have permission for this action"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=message,
            error_code="FORBIDDEN"
        )


class ConflictError(BaseCustomException):
    """Resource conflict exception"""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, error_code: str = "RESOURCE_CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=message,
            error_code=error_code
        )


class ValidationError(BaseCustomException):
    """Malformed or out-of-range input"""

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        field: str = None,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "VALIDATION_ERROR"
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
            error_code=error_code,
            field=field,
            details=details
        )


class StateViolationError(BaseCustomException):
    """Operation not allowed in the entity's current state"""

    kind = ErrorKind.STATE_VIOLATION

    def __init__(self, message: str, error_code: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=message,
            error_code=error_code
        )


class RateLimitExceededError(BaseCustomException):
    """Rate limit exceeded error"""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str = "Too many requests", retry_after: int = 60):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=message,
            error_code="RATE_LIMIT_EXCEEDED",
            headers={"Retry-After": str(retry_after)}
        )


# =============================================================================
# DOMAIN ERRORS
# =============================================================================

class BranchNotFoundError(NotFoundError):
    def __init__(self, branch_id: Any):
        super().__init__("Branch", branch_id, error_code="BRANCH_NOT_FOUND")


class BranchInactiveError(ConflictError):
    def __init__(self, branch_name: str):
        super().__init__(
            f"Branch {branch_name} is inactive and cannot create orders",
            error_code="BRANCH_INACTIVE"
        )


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_code: str):
        super().__init__("Product", product_code, error_code="PRODUCT_NOT_FOUND")


class ProductInactiveError(ConflictError):
    def __init__(self, product_code: str):
        super().__init__(f"Product is inactive: {product_code}", error_code="PRODUCT_INACTIVE")


class ProductExistsError(ConflictError):
    def __init__(self, product_code: str):
        super().__init__(f"Product code already exists: {product_code}", error_code="PRODUCT_EXISTS")


class ProductInUseError(ConflictError):
    def __init__(self, product_code: str):
        super().__init__(
            f"Product {product_code} is referenced by orders and cannot be deleted",
            error_code="PRODUCT_IN_USE"
        )


class OrderNumberExhaustedError(ConflictError):
    def __init__(self, attempts: int):
        super().__init__(
            f"Could not allocate a unique order number after {attempts} attempts",
            error_code="ORDER_NUMBER_EXHAUSTED"
        )


class OrderNotPendingError(StateViolationError):
    def __init__(self, order_no: str, current_status: str):
        super().__init__(
            f"Order {order_no} is already {current_status}",
            error_code="ORDER_NOT_PENDING"
        )


class OrderNotApprovedError(StateViolationError):
    def __init__(self, order_no: str, current_status: str):
        super().__init__(
            f"Order {order_no} cannot be delivered while {current_status}",
            error_code="ORDER_NOT_APPROVED"
        )


class BranchRequiredError(ValidationError):
    def __init__(self):
        super().__init__(
            "Current user is not linked to a branch",
            field="branchId",
            error_code="BRANCH_REQUIRED"
        )


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: Any):
        super().__init__("User", user_id, error_code="USER_NOT_FOUND")


class CenterNotFoundError(NotFoundError):
    def __init__(self, center_id: Any):
        super().__init__("Center", center_id, error_code="CENTER_NOT_FOUND")


class EmailInUseError(ConflictError):
    def __init__(self, email: str):
        super().__init__(f"Email is already in use: {email}", error_code="EMAIL_IN_USE")


class PhoneInUseError(ConflictError):
    def __init__(self, phone: str):
        super().__init__(f"Phone number is already in use: {phone}", error_code="PHONE_IN_USE")


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

def format_error_response(error: BaseCustomException) -> Dict[str, Any]:
    """Format error response for consistent API responses"""
    response = {
        "ok": False,
        "error": getattr(error, 'error_code', None) or "UNKNOWN_ERROR",
        "kind": getattr(error, 'kind', ErrorKind.INTERNAL),
        "message": error.detail,
    }

    if getattr(error, 'field', None):
        response["field"] = error.field

    if getattr(error, 'details', None):
        response["details"] = error.details

    return response


async def custom_exception_handler(request: Request, exc: BaseCustomException) -> JSONResponse:
    """Render domain errors with the shared error envelope"""
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(exc),
        headers=exc.headers
    )


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI body/query validation failures as VALIDATION_ERROR"""
    error = ValidationError(
        "Invalid request payload",
        details={"errors": [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]}
    )
    return JSONResponse(status_code=error.status_code, content=format_error_response(error))
