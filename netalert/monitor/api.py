"""HTTP API for dashboards — incident listing, acknowledgement and clearing.

Runs as an ``aiohttp`` web server alongside the engine.
Exposes:
- ``GET  /api/incidents``            → open incidents (``?closed=1`` adds recent closed)
- ``GET  /api/incidents/{id}``       → one incident
- ``POST /api/incidents/{id}/ack``   → acknowledge, body ``{"actor": "alice"}``
- ``POST /api/incidents/{id}/clear`` → close an acknowledged incident
- ``GET  /api/stats``                → engine counters
- ``GET  /api/audit``                → notification delivery audit log
"""

from __future__ import annotations

import base64
import hmac
from typing import Any

from aiohttp import web

from netalert.core.exceptions import IncidentNotFoundError, InvalidTransitionError
from netalert.engine.pipeline import AlertEngine

ENGINE_KEY = web.AppKey("engine", AlertEngine)
AUTH_KEY = web.AppKey("auth", tuple)


def _check_basic_auth(request: web.Request, username: str, password: str) -> bool:
    """Validate HTTP Basic Auth credentials."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Basic "):
        return False
    try:
        decoded = base64.b64decode(auth_header[6:]).decode("utf-8")
        req_user, req_pass = decoded.split(":", 1)
    except (ValueError, UnicodeDecodeError):
        return False
    user_ok = hmac.compare_digest(req_user, username)
    pass_ok = hmac.compare_digest(req_pass, password)
    return user_ok and pass_ok


@web.middleware
async def _auth_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Require HTTP Basic Auth on all routes when credentials are configured."""
    username, password = request.app[AUTH_KEY]
    if username and password:
        if not _check_basic_auth(request, username, password):
            return web.Response(
                status=401,
                text="Unauthorized",
                headers={"WWW-Authenticate": 'Basic realm="netalert"'},
            )
    return await handler(request)


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def _handle_list(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    include_closed = request.query.get("closed", "") in ("1", "true", "yes")
    incidents = engine.snapshot(include_closed=include_closed)
    return web.json_response([inc.model_dump(mode="json") for inc in incidents])


async def _handle_get(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    try:
        incident = engine.get_incident(request.match_info["incident_id"])
    except IncidentNotFoundError:
        return _error(404, "incident not found")
    return web.json_response(incident.model_dump(mode="json"))


async def _actor(request: web.Request) -> str | None:
    if not request.can_read_body:
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    actor = body.get("actor") if isinstance(body, dict) else None
    return actor if isinstance(actor, str) and actor.strip() else None


async def _handle_ack(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    actor = await _actor(request)
    if actor is None:
        return _error(400, "actor is required")
    try:
        incident = await engine.acknowledge(request.match_info["incident_id"], actor)
    except IncidentNotFoundError:
        return _error(404, "incident not found")
    except InvalidTransitionError as exc:
        return _error(409, str(exc))
    return web.json_response(incident.model_dump(mode="json"))


async def _handle_clear(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    actor = await _actor(request) or "api"
    try:
        incident = await engine.clear(request.match_info["incident_id"], actor)
    except IncidentNotFoundError:
        return _error(404, "incident not found")
    except InvalidTransitionError as exc:
        return _error(409, str(exc))
    return web.json_response(incident.model_dump(mode="json"))


async def _handle_stats(request: web.Request) -> web.Response:
    return web.json_response(request.app[ENGINE_KEY].stats())


async def _handle_audit(request: web.Request) -> web.Response:
    records = request.app[ENGINE_KEY].dispatcher.audit
    return web.json_response([r.model_dump(mode="json") for r in records])


def create_api_app(
    engine: AlertEngine,
    username: str | None = None,
    password: str | None = None,
) -> web.Application:
    """Create the aiohttp web application."""
    app = web.Application(middlewares=[_auth_middleware])
    app[ENGINE_KEY] = engine
    app[AUTH_KEY] = (username, password)
    app.router.add_get("/api/incidents", _handle_list)
    app.router.add_get("/api/incidents/{incident_id}", _handle_get)
    app.router.add_post("/api/incidents/{incident_id}/ack", _handle_ack)
    app.router.add_post("/api/incidents/{incident_id}/clear", _handle_clear)
    app.router.add_get("/api/stats", _handle_stats)
    app.router.add_get("/api/audit", _handle_audit)
    return app


async def start_api(
    engine: AlertEngine,
    host: str = "127.0.0.1",
    port: int = 8088,
    username: str | None = None,
    password: str | None = None,
) -> web.AppRunner:
    """Start the API server. Returns the runner for cleanup."""
    app = create_api_app(engine, username=username, password=password)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    return runner
