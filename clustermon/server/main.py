"""Collector server assembly."""

from aiohttp import web

from clustermon.server.app import create_app
from clustermon.server.provider import InstatusProvider, StatusProvider, resolve_page_id
from clustermon.server.reconciler import StatusReconciler
from clustermon.server.registry import HostStatusRegistry
from clustermon.shared.config import ServerConfig
from clustermon.shared.logger import get_logger

logger = get_logger("server")


async def build_server(config: ServerConfig, provider: StatusProvider | None = None) -> web.Application:
    """Resolve the target page and wire registry, reconciler and HTTP app.

    Raises:
        StartupError: If the target status page cannot be found.
    """
    if provider is None:
        provider = InstatusProvider(
            api_key=config.instatus_key,
            base_url=config.instatus_api_url,
            timeout=config.request_timeout,
        )

    try:
        page_id = await resolve_page_id(provider, config.target_subdomain)
    except Exception:
        await provider.aclose()
        raise

    registry = HostStatusRegistry()
    reconciler = StatusReconciler(
        registry=registry,
        provider=provider,
        page_id=page_id,
        unhealthy_time=config.unhealthy_time,
        update_frequency=config.update_frequency,
        create_components=config.create_components,
        call_timeout=config.request_timeout,
    )

    app = create_app(registry, config.shared_secret, reconciler=reconciler)

    async def close_provider(app: web.Application):
        await provider.aclose()

    app.on_cleanup.append(close_provider)
    logger.info(
        "Collector ready",
        extra={"log_data": {"page_id": page_id, "listen_address": config.listen_address}},
    )
    return app
