"""HTTP routes: session state, point editing, mode, time and view settings."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from src.editing.errors import ErrorKind, InvalidValue
from src.session import AnnotationSession, Outcome

_STATUS_CODES = {
    ErrorKind.NOT_FOUND.value: 404,
    ErrorKind.TIMESTAMP_ORDER.value: 409,
    ErrorKind.TIMESTAMP_CONFLICT.value: 409,
    ErrorKind.NO_ACTIVE_COURSE.value: 409,
    ErrorKind.MODE_DENIED.value: 403,
    ErrorKind.INSUFFICIENT_POINTS.value: 422,
    ErrorKind.INVALID_VALUE.value: 422,
    ErrorKind.BUSY.value: 423,
    ErrorKind.REMOTE_FAILURE.value: 502,
}


def _as_bool(value) -> bool:
    return value in (True, "true", "1", "on", 1)


def _as_int(value, name: str) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        raise InvalidValue(f"{name} must be a number") from None


async def _read_json(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def create_router(session: AnnotationSession) -> APIRouter:
    router = APIRouter()

    def respond(outcome: Outcome) -> JSONResponse:
        body = outcome.to_dict()
        body["session"] = session.snapshot()
        status = 200 if outcome.ok else _STATUS_CODES.get(outcome.kind, 400)
        return JSONResponse(body, status_code=status)

    def invalid(exc: InvalidValue) -> JSONResponse:
        return respond(Outcome.from_error(exc))

    @router.get("/api/session")
    async def api_session():
        return respond(Outcome.success())

    # --- REST API: points ---

    @router.post("/api/points")
    async def api_add_point(request: Request):
        body = await _read_json(request)
        return respond(session.click_map(body.get("lat"), body.get("lon")))

    @router.patch("/api/points/{point_id}")
    async def api_edit_point(point_id: str, request: Request):
        body = await _read_json(request)
        return respond(session.edit_point(
            point_id,
            altitude=body.get("altitude"),
            timestamp=body.get("timestamp"),
        ))

    @router.post("/api/points/{point_id}/drag")
    async def api_drag_point(point_id: str, request: Request):
        body = await _read_json(request)
        return respond(session.drag_point(point_id, body.get("lat"), body.get("lon")))

    @router.delete("/api/points/{point_id}")
    async def api_request_delete(point_id: str):
        return respond(session.request_delete(point_id))

    @router.post("/api/points/delete/confirm")
    async def api_confirm_delete():
        return respond(session.confirm_delete())

    @router.post("/api/points/delete/cancel")
    async def api_cancel_delete():
        return respond(session.cancel_delete())

    @router.post("/api/points/{point_id}/jump")
    async def api_jump(point_id: str):
        return respond(session.jump_to_point(point_id))

    @router.post("/api/highlight")
    async def api_highlight(request: Request):
        body = await _read_json(request)
        return respond(session.hover_point(body.get("point_id")))

    # --- REST API: mode, selection, primary action ---

    @router.post("/api/mode")
    async def api_mode(request: Request):
        body = await _read_json(request)
        return respond(await session.set_mode(body.get("mode", "")))

    @router.post("/api/selection")
    async def api_selection(request: Request):
        body = await _read_json(request)
        outcome = Outcome.success()
        if "object_type" in body:
            outcome = session.set_object_type(body["object_type"])
        if outcome.ok and "noise_level" in body:
            outcome = session.set_noise_level(body["noise_level"])
        return respond(outcome)

    @router.post("/api/save")
    async def api_save():
        return respond(await session.primary_action())

    # --- REST API: time cursor ---

    @router.post("/api/time")
    async def api_set_time(request: Request):
        body = await _read_json(request)
        if "timestamp" in body:
            return respond(session.set_time(body["timestamp"]))
        try:
            return respond(session.set_time_of_day(
                _as_int(body.get("hour"), "hour"),
                _as_int(body.get("minute"), "minute"),
                _as_int(body.get("second", 0), "second"),
                _as_int(body.get("millisecond", 0), "millisecond"),
            ))
        except InvalidValue as exc:
            return invalid(exc)

    @router.post("/api/time/step")
    async def api_step_time(request: Request):
        body = await _read_json(request)
        try:
            direction = _as_int(body.get("direction", 1), "direction")
        except InvalidValue as exc:
            return invalid(exc)
        return respond(session.step_time(direction))

    @router.post("/api/time/jump")
    async def api_jump_time():
        return respond(session.jump_time())

    @router.post("/api/time/settings")
    async def api_time_settings(request: Request):
        body = await _read_json(request)
        auto_advance = _as_bool(body["auto_advance"]) if "auto_advance" in body else None
        outcome = session.configure_time(
            unit=body.get("unit"),
            amount=body.get("amount"),
            auto_advance=auto_advance,
        )
        if outcome.ok:
            cursor = session.cursor
            session.persist_config_values({
                "increment_unit": cursor.unit.value,
                "increment_amount": cursor.amount,
                "auto_advance": cursor.auto_advance,
            })
        return respond(outcome)

    # --- REST API: view settings ---

    @router.post("/api/view/settings")
    async def api_view_settings(request: Request):
        body = await _read_json(request)
        persist = {}
        outcome = Outcome.success()
        if "auto_zoom" in body:
            outcome = session.set_auto_zoom(_as_bool(body["auto_zoom"]))
            persist["auto_zoom"] = session.viewport.auto_zoom_enabled
        if "jump_to_point" in body:
            outcome = session.set_jump_to_point(_as_bool(body["jump_to_point"]))
            persist["jump_to_point"] = session.viewport.jump_enabled
        if persist:
            session.persist_config_values(persist)
        return respond(outcome)

    # --- REST API: export & statistics ---

    @router.post("/api/export")
    async def api_export():
        return respond(await session.export_data())

    @router.get("/api/testing-stats")
    async def api_testing_stats():
        return respond(await session.testing_stats())

    return router
