"""
FastAPI application exposing the booking and conversions HTTP surface.

Domain errors map onto status codes; every error body carries an ``error`` field.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..bootstrap import ServiceContainer, build_services
from ..config import AppConfig
from ..domain.exceptions import (
    AuthenticationError,
    BookingBridgeError,
    BookingError,
    BookingNotFoundError,
    InvalidRequestError,
    SlotConflictError,
    UpstreamError,
)
from ..domain.models import BookingRequest
from ..services.conversions import RequestContext
from .schemas import (
    AvailabilityQuery,
    BatchEventsRequest,
    BookingSessionRequest,
    ConversionEventRequest,
)

logger = logging.getLogger(__name__)

CONVERSIONS_PREFIX = "/api/conversions"


def _services(request: Request) -> ServiceContainer:
    return request.app.state.services


def _request_context(request: Request) -> RequestContext:
    return RequestContext(
        client_ip_address=request.client.host if request.client else None,
        client_user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _conversion_error(status_code: int, error: str, details: object) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "details": details},
    )


conversions_router = APIRouter(prefix=CONVERSIONS_PREFIX)


@conversions_router.post("/event")
def send_conversion_event(payload: ConversionEventRequest, request: Request):
    conversions = _services(request).conversions
    try:
        record = conversions.send_event(
            payload.event_name,
            _request_context(request),
            user_data=payload.user_data_dict(),
            custom_data=payload.custom_data_dict(),
        )
    except BookingBridgeError as exc:
        return _conversion_error(500, "Failed to send conversion event", str(exc))
    return {
        "success": True,
        "message": "Conversion event sent successfully",
        "event_id": record.id,
        "facebook_response": record.response,
    }


@conversions_router.post("/batch")
def send_batch_events(payload: BatchEventsRequest, request: Request):
    conversions = _services(request).conversions
    events = [event.model_dump(exclude_none=True) for event in payload.events]
    try:
        response = conversions.send_batch(events, _request_context(request))
    except BookingBridgeError as exc:
        logger.error("Error sending batch events: %s", exc)
        return _conversion_error(500, "Failed to send batch events", str(exc))
    return {
        "success": True,
        "message": f"Successfully sent {len(events)} events",
        "facebook_response": response,
    }


@conversions_router.get("/status")
def get_event_status(request: Request, limit: int = 20):
    return {"success": True, "stats": _services(request).conversions.get_status(limit)}


@conversions_router.post("/test")
def send_test_event(request: Request):
    try:
        result = _services(request).conversions.send_test_event(_request_context(request))
    except BookingBridgeError as exc:
        logger.error("Error in test endpoint: %s", exc)
        return _conversion_error(500, "Test failed", str(exc))
    return {"success": True, "message": "Test event sent successfully", **result}


def create_app(config: AppConfig, services: Optional[ServiceContainer] = None) -> FastAPI:
    app = FastAPI(title="Booking Bridge API")
    app.state.config = config
    app.state.services = services or build_services(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {
                "field": ".".join(str(part) for part in error["loc"] if part != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        if request.url.path.startswith(CONVERSIONS_PREFIX):
            return _conversion_error(400, "Validation failed", details)
        return JSONResponse(
            status_code=400,
            content={"error": "Missing or invalid fields", "details": details},
        )

    @app.exception_handler(InvalidRequestError)
    async def invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(AuthenticationError)
    async def authentication_error(request: Request, exc: AuthenticationError) -> JSONResponse:
        return _error(500, str(exc))

    @app.exception_handler(SlotConflictError)
    async def slot_conflict(request: Request, exc: SlotConflictError) -> JSONResponse:
        return _error(409, str(exc))

    @app.exception_handler(BookingError)
    async def booking_error(request: Request, exc: BookingError) -> JSONResponse:
        return _error(500, str(exc))

    @app.exception_handler(BookingNotFoundError)
    async def booking_not_found(request: Request, exc: BookingNotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(UpstreamError)
    async def upstream_error(request: Request, exc: UpstreamError) -> JSONResponse:
        logger.error("Upstream failure on %s: %s", request.url.path, exc)
        return _error(500, f"Upstream request failed: {exc}")

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=exc)
        return _error(500, "Internal server error")

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/config.json")
    def public_config(request: Request) -> dict:
        return request.app.state.config.public_view()

    @app.post("/api/available-slots")
    def available_slots(query: AvailabilityQuery, request: Request) -> dict:
        logger.info("Availability request: %s", query.model_dump())
        slots = _services(request).availability.find_available_slots(
            start_date=query.start_date,
            end_date=query.end_date,
            service_id=query.service_id,
        )
        return {"result": [slot.to_dict() for slot in slots]}

    @app.post("/api/book-session")
    def book_session(payload: BookingSessionRequest, request: Request) -> dict:
        result = _services(request).booking.book(
            BookingRequest(
                start_time=payload.start_time,
                service_id=payload.service_id,
                unit_id=payload.unit_id,
                client_name=payload.client_name,
                client_email=payload.client_email,
                client_phone=payload.client_phone,
                client_notes=payload.client_notes or "",
            )
        )
        return result.to_dict()

    @app.get("/api/booking-status/{booking_id}")
    def booking_status(booking_id: str, request: Request) -> dict:
        booking = _services(request).lookups.get_booking_status(booking_id)
        return {"success": True, "booking": booking}

    @app.get("/api/check-all-bookings")
    def check_all_bookings(
        request: Request,
        date_from: Optional[str] = Query(None, alias="from"),
        date_to: Optional[str] = Query(None, alias="to"),
    ):
        if not date_from or not date_to:
            return _error(400, "Missing required parameters: from, to")
        bookings = _services(request).lookups.list_bookings(date_from, date_to)
        return {"success": True, "bookings": bookings}

    @app.get("/api/debug-availability-check")
    def debug_availability_check(
        request: Request,
        date: Optional[str] = None,
        unit_id: Optional[int] = None,
        service_id: Optional[int] = None,
    ):
        if not date or unit_id is None or service_id is None:
            return _error(400, "Missing required parameters: date, unit_id, service_id")
        debug_info = _services(request).availability.debug_availability(
            date=date,
            unit_id=unit_id,
            service_id=service_id,
        )
        return {"success": True, "debug_info": debug_info}

    @app.get("/api/debug-booking-params")
    def debug_booking_params(
        request: Request,
        start_time: Optional[str] = None,
        service_id: Optional[int] = None,
        unit_id: Optional[int] = None,
    ):
        if not start_time or service_id is None or unit_id is None:
            return _error(400, "Missing required parameters: start_time, service_id, unit_id")
        debug_info = _services(request).lookups.debug_booking_params(start_time, service_id, unit_id)
        return {"success": True, "debug_info": debug_info}

    app.include_router(conversions_router)
    return app
