"""
API routes for the consultation booking backend.
Provides endpoints for:
- Health checks
- Scheduled and emergency bookings
- Booking lifecycle commands and call sessions
- Availability, queues and live booking/queue streams
- Professional presence and dashboard stats
"""

import json
import logging
from typing import Type, TypeVar

from aiohttp import web
from pydantic import BaseModel, ValidationError

from ..exceptions import BookingError, Unauthorized
from ..services import BookingService, Subscription
from ..utils.helpers import utc_now
from .schemas import (
    AvailabilityRequest,
    CreateBookingRequest,
    CreateEmergencyRequest,
    OnlineRequest,
    ReasonRequest,
)

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"

RequestModel = TypeVar("RequestModel", bound=BaseModel)


def create_app(booking_service: BookingService, reconciler=None) -> web.Application:
    """
    Create the aiohttp application with routes.

    Args:
        booking_service: BookingService instance
        reconciler: Optional ReconciliationScheduler started and stopped with the app

    Returns:
        Configured aiohttp Application
    """
    app = web.Application(middlewares=[cors_middleware, error_middleware])

    # Store services in app
    app["bookings"] = booking_service
    app["reconciler"] = reconciler

    # Add routes
    app.router.add_get("/health", health_check)

    app.router.add_post("/api/bookings", create_booking)
    app.router.add_post("/api/bookings/emergency", create_emergency)
    app.router.add_get("/api/bookings/{booking_id}", get_booking)
    app.router.add_get("/api/bookings/{booking_id}/stream", stream_booking)
    app.router.add_post("/api/bookings/{booking_id}/confirm", confirm_booking)
    app.router.add_post("/api/bookings/{booking_id}/reject", reject_booking)
    app.router.add_post("/api/bookings/{booking_id}/cancel", cancel_booking)
    app.router.add_post("/api/bookings/{booking_id}/initiate-call", initiate_call)
    app.router.add_post("/api/bookings/{booking_id}/join-call", join_call)
    app.router.add_post("/api/bookings/{booking_id}/complete", complete_booking)
    app.router.add_post("/api/bookings/{booking_id}/reject-during-call", reject_during_call)
    app.router.add_post("/api/bookings/{booking_id}/rate", mark_rated)

    app.router.add_get("/api/patients/{patient_id}/bookings", get_patient_bookings)

    app.router.add_get("/api/professionals/{professional_id}/slots", get_available_slots)
    app.router.add_get("/api/professionals/{professional_id}/queue", get_queue)
    app.router.add_get("/api/professionals/{professional_id}/queue/stream", stream_queue)
    app.router.add_get("/api/professionals/{professional_id}/bookings", get_professional_bookings)
    app.router.add_get("/api/professionals/{professional_id}/stats", get_professional_stats)
    app.router.add_put("/api/professionals/{professional_id}/online", set_online)
    app.router.add_put("/api/professionals/{professional_id}/availability", update_availability)

    app.on_startup.append(_start_background)
    app.on_shutdown.append(_close_streams)
    app.on_cleanup.append(_stop_background)

    return app


# ==================== Lifecycle ====================

async def _start_background(app: web.Application) -> None:
    if app["reconciler"] is not None:
        app["reconciler"].start()


async def _close_streams(app: web.Application) -> None:
    app["bookings"].feed.close_all()


async def _stop_background(app: web.Application) -> None:
    if app["reconciler"] is not None:
        await app["reconciler"].stop()
    await app["bookings"].close()


# ==================== Middleware ====================

def _cors_headers(request: web.Request) -> dict:
    return {
        "Access-Control-Allow-Origin": request.headers.get("Origin", "*"),
        "Access-Control-Allow-Methods": "GET, POST, PUT, OPTIONS",
        "Access-Control-Allow-Headers": f"Content-Type, Authorization, {USER_HEADER}",
        "Access-Control-Allow-Credentials": "true",
    }


@web.middleware
async def cors_middleware(request: web.Request, handler):
    """Handle CORS for frontend requests."""
    # Handle preflight
    if request.method == "OPTIONS":
        response = web.Response()
    else:
        try:
            response = await handler(request)
        except web.HTTPException as e:
            response = e

    # Streams already sent their headers
    if not response.prepared:
        response.headers.update(_cors_headers(request))

    return response


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Map domain and validation errors to JSON responses."""
    try:
        return await handler(request)
    except BookingError as e:
        logger.info(f"{request.method} {request.path} -> {e.status_code} {e.code}")
        return web.json_response(e.to_dict(), status=e.status_code)
    except ValidationError as e:
        return web.json_response(
            {"error": "invalid_request", "message": "Invalid request body", "details": json.loads(e.json(include_url=False))},
            status=400,
        )
    except ValueError as e:
        return web.json_response({"error": "invalid_request", "message": str(e)}, status=400)


# ==================== Helpers ====================

def _user_id(request: web.Request) -> str:
    user_id = request.headers.get(USER_HEADER)
    if not user_id:
        raise web.HTTPUnauthorized(
            text=json.dumps({"error": "unauthenticated", "message": f"{USER_HEADER} header required"}),
            content_type="application/json",
        )
    return user_id


def _require_self(request: web.Request, owner_id: str) -> str:
    user_id = _user_id(request)
    if user_id != owner_id:
        raise Unauthorized("You can only access your own resources")
    return user_id


async def _parse(request: web.Request, model: Type[RequestModel]) -> RequestModel:
    """Validate the JSON body against a request model; an empty body is {}."""
    data = {}
    if request.body_exists:
        try:
            data = await request.json()
        except json.JSONDecodeError:
            raise ValueError("Request body must be valid JSON") from None
    return model.model_validate(data)


def _required_query(request: web.Request, name: str) -> str:
    value = request.query.get(name)
    if not value:
        raise ValueError(f"Query parameter '{name}' is required")
    return value


def _booking_json(booking) -> dict:
    return booking.model_dump(mode="json")


async def _stream(request: web.Request, subscription: Subscription) -> web.StreamResponse:
    """Relay subscription snapshots as server-sent events until either side closes."""
    response = web.StreamResponse(headers={
        "Content-Type": "text/event-stream",
        "Cache-Control": "no-cache",
        **_cors_headers(request),
    })
    await response.prepare(request)

    async with subscription:
        try:
            async for snapshot in subscription:
                if isinstance(snapshot, list):
                    payload = [_booking_json(b) for b in snapshot]
                else:
                    payload = _booking_json(snapshot)
                await response.write(f"data: {json.dumps(payload)}\n\n".encode("utf-8"))
        except ConnectionResetError:
            logger.debug(f"Stream client went away: {request.path}")

    return response


# ==================== Health ====================

async def health_check(request: web.Request) -> web.Response:
    """Health check endpoint."""
    return web.json_response({
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": "careline-scheduler",
    })


# ==================== Bookings ====================

async def create_booking(request: web.Request) -> web.Response:
    """
    Request a scheduled consultation as the calling patient.

    Request body:
    {
        "professional_id": "pro-1",
        "date": "2026-03-02",
        "time": "09:30",
        "medium": "video",
        "reason": "optional",
        "patient_name": "optional"
    }
    """
    patient_id = _user_id(request)
    body = await _parse(request, CreateBookingRequest)
    booking = await request.app["bookings"].create_booking(
        professional_id=body.professional_id,
        patient_id=patient_id,
        date=body.date,
        time=body.time,
        medium=body.medium,
        reason=body.reason,
        patient_name=body.patient_name,
    )
    return web.json_response(_booking_json(booking), status=201)


async def create_emergency(request: web.Request) -> web.Response:
    """Request an emergency consultation as the calling patient."""
    patient_id = _user_id(request)
    body = await _parse(request, CreateEmergencyRequest)
    booking = await request.app["bookings"].create_emergency(
        professional_id=body.professional_id,
        patient_id=patient_id,
        reason=body.reason,
        patient_name=body.patient_name,
    )
    return web.json_response(_booking_json(booking), status=201)


async def get_booking(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    booking = await request.app["bookings"].get_booking(request.match_info["booking_id"])
    if not booking.involves(user_id):
        raise Unauthorized("You are not a party to this booking")
    return web.json_response(_booking_json(booking))


async def stream_booking(request: web.Request) -> web.StreamResponse:
    """Server-sent events with the booking's latest state."""
    user_id = _user_id(request)
    service = request.app["bookings"]
    booking_id = request.match_info["booking_id"]

    booking = await service.get_booking(booking_id)
    if not booking.involves(user_id):
        raise Unauthorized("You are not a party to this booking")

    subscription = await service.watch_booking(booking_id)
    return await _stream(request, subscription)


async def confirm_booking(request: web.Request) -> web.Response:
    booking = await request.app["bookings"].confirm(
        request.match_info["booking_id"], _user_id(request)
    )
    return web.json_response(_booking_json(booking))


async def reject_booking(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    body = await _parse(request, ReasonRequest)
    booking = await request.app["bookings"].reject(
        request.match_info["booking_id"], user_id, body.reason
    )
    return web.json_response(_booking_json(booking))


async def cancel_booking(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    body = await _parse(request, ReasonRequest)
    booking = await request.app["bookings"].cancel(
        request.match_info["booking_id"], user_id, body.reason
    )
    return web.json_response(_booking_json(booking))


async def initiate_call(request: web.Request) -> web.Response:
    """Start the call as the booking's professional."""
    booking = await request.app["bookings"].initiate_call(
        request.match_info["booking_id"], _user_id(request)
    )
    return web.json_response(_booking_json(booking))


async def join_call(request: web.Request) -> web.Response:
    """Join the call as the booking's patient; returns the session token."""
    handle = await request.app["bookings"].join_call(
        request.match_info["booking_id"], _user_id(request)
    )
    return web.json_response(handle.model_dump())


async def complete_booking(request: web.Request) -> web.Response:
    booking = await request.app["bookings"].complete(
        request.match_info["booking_id"], _user_id(request)
    )
    return web.json_response(_booking_json(booking))


async def reject_during_call(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    body = await _parse(request, ReasonRequest)
    booking = await request.app["bookings"].reject_during_call(
        request.match_info["booking_id"], user_id, body.reason
    )
    return web.json_response(_booking_json(booking))


async def mark_rated(request: web.Request) -> web.Response:
    booking = await request.app["bookings"].mark_rated(
        request.match_info["booking_id"], _user_id(request)
    )
    return web.json_response(_booking_json(booking))


async def get_patient_bookings(request: web.Request) -> web.Response:
    patient_id = _require_self(request, request.match_info["patient_id"])
    bookings = await request.app["bookings"].get_patient_bookings(patient_id)
    return web.json_response({"bookings": [_booking_json(b) for b in bookings]})


# ==================== Professionals ====================

async def get_available_slots(request: web.Request) -> web.Response:
    """
    Get bookable time labels for a date.

    Query params:
    - date: YYYY-MM-DD (required)
    """
    professional_id = request.match_info["professional_id"]
    date = _required_query(request, "date")
    slots = await request.app["bookings"].get_available_slots(professional_id, date)
    return web.json_response({
        "professional_id": professional_id,
        "date": date,
        "slots": [slot.model_dump() for slot in slots],
    })


async def get_queue(request: web.Request) -> web.Response:
    professional_id = _require_self(request, request.match_info["professional_id"])
    date = _required_query(request, "date")
    queue = await request.app["bookings"].get_queue(professional_id, date)
    return web.json_response({
        "professional_id": professional_id,
        "date": date,
        "queue": [_booking_json(b) for b in queue],
    })


async def stream_queue(request: web.Request) -> web.StreamResponse:
    """Server-sent events with the professional's queue for a date."""
    professional_id = _require_self(request, request.match_info["professional_id"])
    date = _required_query(request, "date")
    subscription = await request.app["bookings"].watch_queue(professional_id, date)
    return await _stream(request, subscription)


async def get_professional_bookings(request: web.Request) -> web.Response:
    professional_id = _require_self(request, request.match_info["professional_id"])
    bookings = await request.app["bookings"].get_professional_bookings(professional_id)
    return web.json_response({"bookings": [_booking_json(b) for b in bookings]})


async def get_professional_stats(request: web.Request) -> web.Response:
    professional_id = _require_self(request, request.match_info["professional_id"])
    stats = await request.app["bookings"].get_professional_stats(professional_id)
    return web.json_response(stats.model_dump())


async def set_online(request: web.Request) -> web.Response:
    professional_id = _require_self(request, request.match_info["professional_id"])
    body = await _parse(request, OnlineRequest)
    professional = await request.app["bookings"].set_online(professional_id, body.is_online)
    return web.json_response(professional.model_dump(mode="json"))


async def update_availability(request: web.Request) -> web.Response:
    professional_id = _require_self(request, request.match_info["professional_id"])
    body = await _parse(request, AvailabilityRequest)
    professional = await request.app["bookings"].update_availability(professional_id, body.availability)
    return web.json_response(professional.model_dump(mode="json"))
