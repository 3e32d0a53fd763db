"""
Main FastAPI application entry point for Identity Reconciliation System
This file sets up the FastAPI application with proper configuration,
middleware, error handling and the /identify endpoint. It serves as the
entry point for both local development and AWS Lambda deployment.
"""

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from datetime import datetime, timezone

from schemas.identify import IdentifyRequest, IdentifyResponse, ErrorResponse
from services.errors import InvalidRequest, StoreError
from services.identity_service import IdentityService, identity_service
from config import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Process start, reported as uptime by /health
STARTED_AT = datetime.now(timezone.utc)

# Create FastAPI application instance
app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    debug=settings.DEBUG
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def get_identity_service() -> IdentityService:
    """Dependency providing the identity service"""
    return identity_service


# Exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request body validation errors"""
    logger.warning(f"Validation error for {request.url}: {exc}")

    error_details = []
    for error in exc.errors():
        error_details.append({
            "field": " -> ".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    error_response = ErrorResponse(
        error="ValidationError",
        message="Request validation failed",
        details={"errors": error_details}
    )

    return JSONResponse(
        status_code=400,
        content=error_response.model_dump()
    )


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    """Handle identify requests rejected by the identity service"""
    logger.warning(f"Invalid identify request for {request.url}: {exc.message}")

    error_response = ErrorResponse(
        error="InvalidRequest",
        message=exc.message,
        details={"field": exc.field} if exc.field else None
    )

    return JSONResponse(
        status_code=400,
        content=error_response.model_dump()
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    """Handle contact store failures without exposing the cause"""
    logger.error(f"Store error for {request.url}: {exc.message} (cause: {exc.__cause__!r})")

    error_response = ErrorResponse(
        error="DatabaseError",
        message="Database is currently unavailable. Please try again later."
    )

    return JSONResponse(
        status_code=503,
        content=error_response.model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors"""
    logger.error(f"Unexpected error for {request.url}: {exc}", exc_info=exc)

    error_response = ErrorResponse(
        error="InternalServerError",
        message="An unexpected error occurred"
    )

    return JSONResponse(
        status_code=500,
        content=error_response.model_dump()
    )


@app.get("/")
async def root():
    """
    Root endpoint that returns basic API information
    """
    return {
        "message": "Identity Reconciliation API is running",
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check(service: IdentityService = Depends(get_identity_service)):
    """
    Health check endpoint for monitoring and load balancer health checks
    """
    now = datetime.now(timezone.utc)
    db_status = "unknown"
    db_error = None
    try:
        if await service.db_manager.test_connection():
            db_status = "connected"
        else:
            db_status = "disconnected"
    except Exception as e:
        db_status = "error"
        db_error = str(e)[:100]

    response = {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": settings.API_VERSION,
        "timestamp": now.isoformat(),
        "uptime": round((now - STARTED_AT).total_seconds(), 3),
        "lambda": settings.is_lambda_environment(),
        "database": {
            "status": db_status,
            "dialect": service.db_manager.dialect_name
        }
    }

    if db_error:
        response["database"]["error"] = db_error

    return response


@app.post("/identify", response_model=IdentifyResponse)
async def identify_endpoint(
    request: IdentifyRequest,
    service: IdentityService = Depends(get_identity_service)
):
    """
    Main identity reconciliation endpoint

    Links customer identities based on email and/or phone number.
    Returns consolidated contact information including all linked emails,
    phone numbers, and secondary contact IDs.

    **Examples:**
    - New customer: Creates primary contact
    - Existing email + new phone: Creates secondary contact
    - Email of one customer + phone of another: Links them (older remains primary)
    """
    logger.info(f"Processing identify request: email={request.email}, phone={request.phoneNumber}")

    response = await service.identify_contact(request)

    logger.info(f"Successfully processed request. Primary contact ID: {response.contact.primaryContactId}")

    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1
    )
