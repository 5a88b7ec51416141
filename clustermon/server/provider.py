"""Status page provider adapter.

The reconciler only needs a handful of operations from the status page
service. ``StatusProvider`` names them; ``InstatusProvider`` implements them
against the Instatus REST API.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from clustermon.shared.errors import ProviderError, StartupError
from clustermon.shared.logger import get_logger

OPERATIONAL = "OPERATIONAL"
MAJOROUTAGE = "MAJOROUTAGE"
UNDERMAINTENANCE = "UNDERMAINTENANCE"

logger = get_logger("provider")


@dataclass
class Page:
    id: str
    subdomain: str
    name: str = ""


@dataclass
class Component:
    id: str
    name: str
    status: str


class StatusProvider(ABC):
    """Operations the collector consumes from a status page service.

    Every method raises ``ProviderError`` when the remote call fails.
    """

    @abstractmethod
    async def list_pages(self) -> list[Page]:
        ...

    @abstractmethod
    async def list_components(self, page_id: str) -> list[Component]:
        ...

    @abstractmethod
    async def get_component(self, page_id: str, component_id: str) -> Component:
        ...

    @abstractmethod
    async def update_component(self, page_id: str, component_id: str, status: str) -> None:
        ...

    @abstractmethod
    async def create_component(self, page_id: str, name: str, status: str) -> Component:
        ...

    async def aclose(self) -> None:
        """Release any network resources held by the provider."""


class InstatusProvider(StatusProvider):
    """Instatus REST API client."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.instatus.com",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
        )

    async def list_pages(self) -> list[Page]:
        data = await self._request("GET", "/v2/pages")
        return [
            Page(id=item["id"], subdomain=item.get("subdomain", ""), name=item.get("name", ""))
            for item in self._expect_list(data)
            if isinstance(item, dict) and "id" in item
        ]

    async def list_components(self, page_id: str) -> list[Component]:
        data = await self._request("GET", f"/v1/{page_id}/components")
        return [self._component(item) for item in self._expect_list(data)]

    async def get_component(self, page_id: str, component_id: str) -> Component:
        data = await self._request("GET", f"/v1/{page_id}/components/{component_id}")
        return self._component(data)

    async def update_component(self, page_id: str, component_id: str, status: str) -> None:
        await self._request(
            "PUT",
            f"/v1/{page_id}/components/{component_id}",
            json={"status": status},
        )

    async def create_component(self, page_id: str, name: str, status: str) -> Component:
        data = await self._request(
            "POST",
            f"/v1/{page_id}/components",
            json={"name": name, "status": status, "showUptime": True},
        )
        return self._component(data)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, json: dict | None = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
            response.raise_for_status()
            if not response.content:
                return None
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{method} {path} returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{method} {path} failed: {e!r}") from e
        except ValueError as e:
            raise ProviderError(f"{method} {path} returned invalid JSON") from e

    @staticmethod
    def _expect_list(data: Any) -> list[dict]:
        if not isinstance(data, list):
            raise ProviderError(f"Expected a list, got {type(data).__name__}")
        return data

    @staticmethod
    def _component(item: Any) -> Component:
        if not isinstance(item, dict) or "id" not in item:
            raise ProviderError("Malformed component in response")
        return Component(id=item["id"], name=item.get("name", ""), status=item.get("status", ""))


async def resolve_page_id(provider: StatusProvider, subdomain: str) -> str:
    """Find the id of the status page published under ``subdomain``.

    Raises:
        StartupError: If pages cannot be listed or none matches.
    """
    try:
        pages = await provider.list_pages()
    except ProviderError as e:
        raise StartupError(f"Error listing pages: {e}") from e

    for page in pages:
        if page.subdomain == subdomain:
            logger.debug(
                "Found target subdomain",
                extra={"log_data": {"subdomain": subdomain, "page_id": page.id, "page_name": page.name}},
            )
            return page.id

    raise StartupError(f"Target subdomain not found: {subdomain}")
