"""
Clinic back-office HTTP API.

Thin request layer over the service modules: authenticates the caller,
checks roles, validates request bodies and maps service exceptions to
HTTP responses. All business rules live in src.services.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.routes import inventory, prescriptions
from src.services.exceptions import (
    DatabaseError,
    DoctorNotFound,
    InsufficientStockError,
    InventoryItemNotFound,
    PatientNotFound,
    PrescriptionNotFound,
    SchemaNotProvisionedError,
    StockConflictError,
    ValidationError,
)
from src.utils.config import get_config

logger = logging.getLogger(__name__)


def _error(status_code: int, error, details=None) -> JSONResponse:
    body = {"error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


def _format_request_errors(exc: RequestValidationError) -> list:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())[1:])
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return messages


def register_exception_handlers(app: FastAPI) -> None:
    """Map service exceptions to status codes and the {"error": ...} body shape."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, "invalid_request", _format_request_errors(exc))

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, "invalid_request", exc.errors)

    @app.exception_handler(PatientNotFound)
    @app.exception_handler(DoctorNotFound)
    async def participant_handler(request: Request, exc):
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(InsufficientStockError)
    async def shortage_handler(request: Request, exc: InsufficientStockError):
        return _error(status.HTTP_400_BAD_REQUEST, "insufficient_stock", exc.to_list())

    @app.exception_handler(InventoryItemNotFound)
    async def item_not_found_handler(request: Request, exc: InventoryItemNotFound):
        return _error(status.HTTP_404_NOT_FOUND, "Item not found")

    @app.exception_handler(PrescriptionNotFound)
    async def prescription_not_found_handler(request: Request, exc: PrescriptionNotFound):
        return _error(status.HTTP_404_NOT_FOUND, "Prescription not found")

    @app.exception_handler(StockConflictError)
    async def conflict_handler(request: Request, exc: StockConflictError):
        return _error(
            status.HTTP_409_CONFLICT,
            "stock_conflict",
            {"item_id": exc.item_id, "expected": exc.expected, "actual": exc.actual},
        )

    @app.exception_handler(SchemaNotProvisionedError)
    async def schema_handler(request: Request, exc: SchemaNotProvisionedError):
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc.operator_message)

    @app.exception_handler(DatabaseError)
    async def database_handler(request: Request, exc: DatabaseError):
        # Never expose SQL or driver messages to clients
        logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An internal error occurred. Please try again later.",
        )


def create_app() -> FastAPI:
    """Build the FastAPI application with routers and exception handlers."""
    config = get_config()
    app = FastAPI(
        title=f"{config.app_name} API",
        description="Stock ledger and prescription issuance for clinic staff.",
        version=config.app_version,
    )
    register_exception_handlers(app)

    app.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
    app.include_router(prescriptions.router, prefix="/prescriptions", tags=["prescriptions"])

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app
