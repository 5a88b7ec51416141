"""HTTP surface of the collector: heartbeat ingestion and status queries."""

import asyncio
import hmac
import json
from typing import Awaitable, Callable

from aiohttp import web

from clustermon.server.reconciler import StatusReconciler
from clustermon.server.registry import HostStatusRegistry
from clustermon.shared.errors import AuthError, ValidationError
from clustermon.shared.logger import get_logger

REGISTRY_KEY = web.AppKey("registry", HostStatusRegistry)
RECONCILER_KEY = web.AppKey("reconciler", StatusReconciler)
RECONCILER_TASK_KEY = web.AppKey("reconciler_task", asyncio.Task)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

logger = get_logger("http")


def _extract_bearer_token(request: web.Request) -> str | None:
    auth_header = request.headers.get("Authorization", "").strip()
    if auth_header[:7].lower() != "bearer ":
        return None
    return auth_header[7:].strip()


def require_auth(shared_secret: str, handler: Handler) -> Handler:
    """Wrap ``handler`` so it only runs for requests bearing the shared secret."""
    expected = shared_secret.encode()

    async def wrapped(request: web.Request) -> web.StreamResponse:
        token = _extract_bearer_token(request)
        if token is None or not hmac.compare_digest(token.encode(), expected):
            raise AuthError("Invalid or missing Authorization header")
        return await handler(request)

    return wrapped


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except AuthError as e:
        return web.json_response({"error": str(e)}, status=401)
    except ValidationError as e:
        return web.json_response({"error": str(e)}, status=e.status)


async def parse_ping_body(request: web.Request) -> str:
    """Return the identifier carried by a ping request.

    Raises:
        ValidationError: 415 for a non-JSON content type, 400 for a body
            without a non-empty string ``identifier``.
    """
    if request.content_type != "application/json":
        raise ValidationError("Content-Type must be application/json", status=415)

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"Invalid JSON body: {e}") from e

    if not isinstance(body, dict):
        raise ValidationError("Body must be a JSON object")

    identifier = body.get("identifier")
    if not isinstance(identifier, str) or not identifier.strip():
        raise ValidationError("identifier is required")
    return identifier


async def handle_ping(request: web.Request) -> web.Response:
    identifier = await parse_ping_body(request)
    await request.app[REGISTRY_KEY].upsert_heartbeat(identifier)
    logger.debug("Heartbeat received", extra={"log_data": {"identifier": identifier}})
    return web.json_response({})


async def get_statuses(request: web.Request) -> web.Response:
    snapshot = request.app[REGISTRY_KEY].snapshot()
    return web.json_response({identifier: record.to_dict() for identifier, record in snapshot.items()})


async def _start_reconciler(app: web.Application):
    app[RECONCILER_TASK_KEY] = asyncio.create_task(app[RECONCILER_KEY].run())


async def _stop_reconciler(app: web.Application):
    app[RECONCILER_KEY].stop()
    task = app.get(RECONCILER_TASK_KEY)
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


def create_app(
    registry: HostStatusRegistry,
    shared_secret: str,
    reconciler: StatusReconciler | None = None,
) -> web.Application:
    """Build the collector application.

    When ``reconciler`` is given it runs as a background task for the
    lifetime of the application.
    """
    app = web.Application(middlewares=[error_middleware])
    app[REGISTRY_KEY] = registry

    app.router.add_get("/statuses", get_statuses)
    app.router.add_post("/ping", require_auth(shared_secret, handle_ping))

    if reconciler is not None:
        app[RECONCILER_KEY] = reconciler
        app.on_startup.append(_start_reconciler)
        app.on_cleanup.append(_stop_reconciler)

    return app
