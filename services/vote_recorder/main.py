"""
FastAPI application for recording destination votes.

Each voter may vote once per destination. The duplicate check and the tally
increment run in one Firestore transaction.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from vote_recorder.config import Settings, settings
from vote_recorder.errors import (
    InternalError,
    InvalidRequest,
    MethodNotAllowed,
    StoreUnavailable,
    VoteRecorderError,
)
from vote_recorder.models import (
    AlreadyVotedResponse,
    ErrorResponse,
    HealthResponse,
    MAX_ID_BYTES,
    TallyResponse,
    VoteRecordedResponse,
    VoteRequest,
    receipt_id,
    validate_document_id,
)
from vote_recorder.store import FirestoreVoteStore

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Prometheus metrics
votes_recorded = Counter(
    "votes_recorded_total",
    "Total number of vote requests by outcome",
    ["outcome"]
)
vote_errors = Counter(
    "vote_errors_total",
    "Total number of vote recording errors",
    ["error_type"]
)
request_duration = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status"]
)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the vote store unless one was injected."""
    app_settings: Settings = app.state.settings
    logger.info(f"Starting {app_settings.SERVICE_NAME} service...")

    if app.state.store is None:
        try:
            app.state.store = FirestoreVoteStore.from_settings(app_settings)
            logger.info(f"{app_settings.SERVICE_NAME} started successfully")
        except StoreUnavailable as e:
            # Keep serving so every store-backed request reports the failure
            logger.error(f"{app_settings.SERVICE_NAME} started without a vote store: {e}")

    yield

    logger.info(f"Shutting down {app_settings.SERVICE_NAME} service...")


def get_store(request: Request) -> FirestoreVoteStore:
    """Return the injected vote store or fail with StoreUnavailable."""
    store = request.app.state.store
    if store is None:
        raise StoreUnavailable()
    return store


async def vote_recorder_error_handler(request: Request, exc: VoteRecorderError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message).model_dump()
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed or incomplete request bodies as InvalidRequest."""
    errors = exc.errors()
    vote_errors.labels(error_type="validation_error").inc()

    if any(error["type"] == "json_invalid" for error in errors):
        error = InvalidRequest("Malformed JSON body")
    elif any(error["type"] == "missing" for error in errors):
        error = InvalidRequest()
    else:
        error = InvalidRequest(_first_validation_message(errors))

    logger.warning(f"Rejected vote request: {error.message}")
    return await vote_recorder_error_handler(request, error)


def _first_validation_message(errors: list) -> str:
    for error in errors:
        cause = (error.get("ctx") or {}).get("error")
        if isinstance(cause, (ValueError, str)):
            return str(cause)
    return "Invalid request body"


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render routing errors such as 404 and 405 in the JSON error format."""
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        error = MethodNotAllowed()
    else:
        error = VoteRecorderError(str(exc.detail))
        error.status_code = exc.status_code

    response = await vote_recorder_error_handler(request, error)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def prometheus_middleware(request: Request, call_next):
    """Middleware to track request duration."""
    start = time.perf_counter()
    response = await call_next(request)

    request_duration.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).observe(time.perf_counter() - start)

    return response


async def record_vote(
    request: Request,
    vote: VoteRequest,
    store: FirestoreVoteStore = Depends(get_store)
):
    """
    Record a vote for a destination.

    - **destinationId**: Destination identifier
    - **voterId**: Voter identifier

    A repeat vote is not an error: it returns ``success: false`` with the
    unchanged count.
    """
    if len(receipt_id(vote.voterId, vote.destinationId).encode("utf-8")) > MAX_ID_BYTES:
        raise InvalidRequest("destinationId or voterId is too long")

    try:
        outcome = await store.record_vote(vote.destinationId, vote.voterId)

    except VoteRecorderError:
        raise
    except Exception as e:
        vote_errors.labels(error_type="transaction_error").inc()
        logger.error(f"Voting error for destination {vote.destinationId}: {e}")
        raise InternalError() from e

    if outcome.already_voted:
        votes_recorded.labels(outcome="already_voted").inc()
        return AlreadyVotedResponse(currentCount=outcome.count)

    votes_recorded.labels(outcome="recorded").inc()
    return VoteRecordedResponse(
        message=f"Vote recorded for {outcome.destination_id}",
        newCount=outcome.count
    )


async def get_tally(destination_id: str, store: FirestoreVoteStore = Depends(get_store)) -> TallyResponse:
    """
    Get the vote tally for a destination.

    Destinations without votes report a count of 0.
    """
    try:
        validate_document_id(destination_id)
    except ValueError as e:
        raise InvalidRequest(str(e)) from e

    try:
        count = await store.get_tally(destination_id)
    except Exception as e:
        vote_errors.labels(error_type="read_error").inc()
        logger.error(f"Error getting tally for destination {destination_id}: {e}")
        raise InternalError("Internal server error") from e

    return TallyResponse(destinationId=destination_id, voteCount=count)


async def health_check(request: Request) -> JSONResponse:
    """
    Check health of the service and the Firestore connection.

    Returns overall health status and the store status.
    """
    store: Optional[FirestoreVoteStore] = request.app.state.store

    if store is None:
        services = {"firestore": "unavailable"}
    else:
        healthy = await store.check_health()
        services = {"firestore": "connected" if healthy else "disconnected"}

    all_healthy = services["firestore"] == "connected"
    response = HealthResponse(
        status="healthy" if all_healthy else "unhealthy",
        services=services,
        timestamp=datetime.utcnow()
    )

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json")
    )


async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def build_router(app_settings: Settings, limiter: Limiter) -> APIRouter:
    """Routes served under ``/api/{API_VERSION}``, rate limited per settings."""
    router = APIRouter()

    router.add_api_route(
        "/record-vote",
        limiter.limit(app_settings.RATE_LIMIT)(record_vote),
        methods=["POST"],
        response_model=VoteRecordedResponse | AlreadyVotedResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Missing or invalid fields"},
            405: {"model": ErrorResponse, "description": "Method not allowed"},
            429: {"description": "Rate limit exceeded"},
            500: {"model": ErrorResponse, "description": "Store unavailable or transaction failure"}
        }
    )
    router.add_api_route(
        "/tallies/{destination_id}",
        get_tally,
        methods=["GET"],
        response_model=TallyResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Invalid destination identifier"},
            500: {"model": ErrorResponse, "description": "Internal server error"}
        }
    )
    router.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        response_model=HealthResponse,
        responses={
            503: {"model": HealthResponse, "description": "Service unhealthy"}
        }
    )

    return router


def create_app(app_settings: Settings = settings, store: Optional[FirestoreVoteStore] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        app_settings: Settings for routes, rate limits and the store
        store: Vote store to use instead of building one at startup
    """
    app = FastAPI(
        title="Vote Recorder API",
        description="API for recording one vote per voter and destination",
        version=app_settings.API_VERSION,
        lifespan=lifespan
    )
    app.state.settings = app_settings
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=app_settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=app_settings.CORS_ALLOW_METHODS,
        allow_headers=app_settings.CORS_ALLOW_HEADERS,
    )
    app.middleware("http")(prometheus_middleware)

    # Rate limiter
    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(VoteRecorderError, vote_recorder_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    api_prefix = f"/api/{app_settings.API_VERSION}"
    app.include_router(build_router(app_settings, limiter), prefix=api_prefix)
    app.add_api_route("/metrics", metrics, methods=["GET"], include_in_schema=False)

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "service": app_settings.SERVICE_NAME,
            "version": app_settings.API_VERSION,
            "status": "running",
            "endpoints": {
                "record_vote": f"{api_prefix}/record-vote",
                "get_tally": f"{api_prefix}/tallies/{{destination_id}}",
                "health": f"{api_prefix}/health",
                "metrics": "/metrics"
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vote_recorder.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
