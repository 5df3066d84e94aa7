"""
External Enrichment Module

Optional auxiliary lookups (account status, order data, ...) added to a
turn when the caller enables API queries. Lookups are resolved either by
an in-process async handler registered under a name, or by POSTing JSON
to ``<api_url>/<name>``.

Every failure surfaces as EnrichmentFailure, which the orchestrator
treats as an empty result.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from support_mediator.exceptions import EnrichmentFailure

logger = logging.getLogger(__name__)

EnrichmentHandler = Callable[[Dict[str, Any]], Awaitable[List[Any]]]


class EnrichmentClient:
    """
    Named enrichment lookups.

    Example:
        client = EnrichmentClient(api_url="https://internal/api")
        client.register("orders", lookup_orders)
        results = await client.query("orders", {"query": "where is my order?"})
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            api_url: Base URL of the enrichment HTTP API (optional)
            timeout: HTTP timeout in seconds
            http_client: Optional pre-built httpx.AsyncClient
        """
        self.api_url = api_url.rstrip("/") if api_url else None
        self.timeout = timeout
        self._http_client = http_client
        self._handlers: Dict[str, EnrichmentHandler] = {}

    def register(self, name: str, handler: EnrichmentHandler) -> None:
        """Register an in-process handler for ``name``."""
        self._handlers[name] = handler
        logger.info(f"Registered enrichment handler '{name}'")

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def query(self, name: str, payload: Dict[str, Any]) -> List[Any]:
        """
        Run the enrichment lookup ``name``.

        Returns:
            List of results

        Raises:
            EnrichmentFailure: unknown name, transport/HTTP error or bad response
        """
        logger.info(f"Calling enrichment API: {name}")

        handler = self._handlers.get(name)
        if handler is not None:
            try:
                results = await handler(payload)
            except Exception as e:
                raise EnrichmentFailure(f"Enrichment handler '{name}' failed: {e}") from e
            return list(results or [])

        if not self.api_url:
            raise EnrichmentFailure(f"No enrichment handler or API URL for '{name}'")

        return await self._query_http(name, payload)

    async def _query_http(self, name: str, payload: Dict[str, Any]) -> List[Any]:
        url = f"{self.api_url}/{name}"
        try:
            response = await self._get_http_client().post(url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise EnrichmentFailure(
                f"Enrichment API '{name}' returned {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise EnrichmentFailure(f"Enrichment API '{name}' request failed: {e}") from e
        except ValueError as e:
            raise EnrichmentFailure(f"Enrichment API '{name}' returned invalid JSON") from e

        if isinstance(body, dict):
            body = body.get("results")
        if not isinstance(body, list):
            raise EnrichmentFailure(f"Enrichment API '{name}' returned no result list")
        return body

    async def aclose(self) -> None:
        """Close the underlying HTTP client, if one was created."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
