"""Client for the market-data MCP server.

The server is spawned over stdio (``MCP_SERVER_COMMAND MCP_SERVER_PATH``) or
reached over HTTP (``MCP_HTTP_URL``). Pool, search and token-price lookups fall
back to the public GeckoTerminal API when the server is unreachable. If the
server cannot be started at all the service runs in limited mode.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
import time
from collections import OrderedDict
from contextlib import AsyncExitStack
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from mcp import ClientSession, StdioServerParameters, types
from mcp.client.stdio import stdio_client

from core.config import Settings, get_settings
from core.market_data.networks import (
    DEFAULT_NETWORK,
    extract_network_from_message,
    normalize_network_name,
)

logger = logging.getLogger(__name__)

GECKOTERMINAL_API_BASE = "https://api.geckoterminal.com/api/v2"
GECKOTERMINAL_HEADERS = {
    "Accept": "application/json;version=20230302",
    "User-Agent": "duckchain-assistant/1.0",
}

CLIENT_NAME = "duckchain-assistant"
CLIENT_VERSION = "1.0.0"
CONNECT_TIMEOUT = 15.0
CACHE_TTL = 60.0

RECOMMENDATION_CRITERIA = (
    "safe",
    "growth",
    "stable",
    "balanced",
    "high_risk_high_reward",
    "new_tokens",
    "trendy_tokens",
)
DEFAULT_RECOMMENDATION_COUNT = 3
MAX_RECOMMENDATION_COUNT = 5

LIMITED_MODE_NETWORKS = [{"id": "sei-network", "name": "Sei Network"}]

# Tools that can be served straight from GeckoTerminal
GECKO_TOOLS = frozenset({"get_network_pools", "search_pools", "get_token_prices"})

# Token-search query used in the network pipeline
_NETWORK_SEARCH_QUERIES = {"sei-evm": "SEI", "duckchain": "DUCK"}


class MarketDataError(Exception):
    """A market-data tool call failed."""


@dataclass
class ToolResult:
    """Text returned by a tool, plus the decoded JSON when the transport had it."""

    text: str
    raw: Any = None


# -----------------------------------------------------------------------------
# Cache
# -----------------------------------------------------------------------------


class TTLCache:
    """Size-bounded mapping whose entries expire after ``ttl`` seconds."""

    def __init__(self, max_size: int, ttl: float = CACHE_TTL) -> None:
        self.max_size = max_size
        self.ttl = ttl
        self._data: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if time.monotonic() - stored_at >= self.ttl:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = (time.monotonic(), value)
            self._data.move_to_end(key)
            while len(self._data) > self.max_size:
                self._data.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


# -----------------------------------------------------------------------------
# Text helpers
# -----------------------------------------------------------------------------


def parse_networks_from_text(text: str) -> list[dict[str, str]]:
    """Parse ``- id: Name`` lines from the ``get_networks`` tool output."""
    networks = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped.startswith("- "):
            continue
        entry_id, sep, name = stripped[2:].partition(": ")
        if sep and entry_id.strip() and name.strip():
            networks.append({"id": entry_id.strip(), "name": name.strip()})
    return networks


def format_pools(pools: list[dict[str, Any]]) -> str:
    lines = ["Pools:", ""]
    for pool in pools:
        attrs = pool.get("attributes", {})
        lines.append(f"{attrs.get('name')} ({attrs.get('address')})")
        lines.append(f"  Reserve: ${attrs.get('reserve_in_usd') or 'N/A'}")
        volume = (attrs.get("volume_usd") or {}).get("h24")
        if volume:
            lines.append(f"  24h Volume: ${volume}")
        lines.append("")
    return "\n".join(lines) + "\n"


def format_search_results(query: str, pools: list[dict[str, Any]]) -> str:
    lines = [f'Search results for "{query}":', ""]
    for pool in pools:
        attrs = pool.get("attributes", {})
        network = ((pool.get("relationships") or {}).get("network") or {}).get("data") or {}
        lines.append(f"{attrs.get('name')} ({attrs.get('address')})")
        lines.append(f"  Network: {network.get('id', 'Unknown')}")
        lines.append(f"  Reserve: ${attrs.get('reserve_in_usd') or 'N/A'}")
        lines.append("")
    return "\n".join(lines) + "\n"


def format_token_prices(prices: dict[str, Any]) -> str:
    lines = ["Token Prices:", ""]
    lines.extend(f"{address}: ${price}" for address, price in prices.items())
    return "\n".join(lines) + "\n"


def limit_pool_blocks(text: str, limit: int | None) -> str:
    """Keep the header and the first ``limit`` pool blocks of a pools listing."""
    if not limit or limit <= 0:
        return text
    header, _, body = text.partition("\n\n")
    blocks = [block for block in body.split("\n\n") if block.strip()]
    return header + "\n\n" + "\n\n".join(blocks[:limit]) + "\n"


def format_market_data_for_llm(context: dict[str, Any]) -> str:
    """Render a market context (see ``get_market_context_for_llm``) as markdown."""
    parts = [
        "# Real-time Market Data Context\n\n",
        f"**Network:** {context.get('network')}\n",
        f"**Last Updated:** {context.get('timestamp')}\n\n",
    ]
    data = context.get("data") or {}
    pools = data.get("topPools")
    if pools and pools.get("success"):
        parts.append(f"## Top Pools\n{pools.get('data')}\n\n")
    recommendations = data.get("tokenRecommendations")
    if recommendations and recommendations.get("success"):
        rec_data = recommendations.get("data")
        if not isinstance(rec_data, str):
            rec_data = json.dumps(rec_data, indent=2)
        parts.append(f"## Token Recommendations\n{rec_data}\n\n")
    parts.append("---\n")
    parts.append("*This market data is provided via MCP (Model Context Protocol) and is updated in real-time.*\n")
    return "".join(parts)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# -----------------------------------------------------------------------------
# Service
# -----------------------------------------------------------------------------


class MCPMarketDataService:
    """Market data for LLM prompts and the REST surface.

    Call ``initialize()`` once before use and ``close()`` on shutdown.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        cache_ttl: float = CACHE_TTL,
    ) -> None:
        settings = settings or get_settings()
        self.mode = settings.mcp_mode
        self.server_command = settings.mcp_server_command
        self.server_path = settings.mcp_server_path
        self.http_base_url = settings.mcp_http_url.rstrip("/")

        self.connected = False
        self.use_http_mode = False
        self.network_id = DEFAULT_NETWORK
        self.supported_networks: list[dict[str, Any]] = []

        self._session: ClientSession | None = None
        self._exit_stack: AsyncExitStack | None = None
        self._http = http_client
        self._owns_http = http_client is None

        self.network_cache = TTLCache(100, cache_ttl)
        self.pool_cache = TTLCache(500, cache_ttl)
        self.price_cache = TTLCache(1000, cache_ttl)
        self.recommendation_cache = TTLCache(50, cache_ttl)

    # -- connection ---------------------------------------------------------

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(10.0))
        return self._http

    def _server_parameters(self) -> StdioServerParameters:
        env = {k: v for k, v in os.environ.items() if k != "PORT"}
        env.update({"NODE_ENV": "production", "MCP_STDIO_MODE": "true"})
        path = Path(self.server_path)
        return StdioServerParameters(
            command=self.server_command,
            args=[str(path)],
            env=env,
            cwd=str(path.parent),
        )

    async def _connect_stdio(self) -> None:
        if not self.server_path:
            raise MarketDataError("MCP_SERVER_PATH is not configured")
        if not Path(self.server_path).exists():
            raise MarketDataError(f"MCP server file not found at: {self.server_path}")

        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(self._server_parameters()))
            session = await stack.enter_async_context(
                ClientSession(
                    read,
                    write,
                    client_info=types.Implementation(name=CLIENT_NAME, version=CLIENT_VERSION),
                )
            )
            await asyncio.wait_for(session.initialize(), CONNECT_TIMEOUT)
        except BaseException:
            await stack.aclose()
            raise
        self._exit_stack = stack
        self._session = session

    async def _connect_http(self) -> None:
        response = await self._get_http().get(f"{self.http_base_url}/api/health")
        response.raise_for_status()

    async def initialize(self) -> None:
        """Connect to the server and load the network list.

        Any failure leaves the service in limited mode; it never raises.
        """
        try:
            if self.mode == "http":
                await self._connect_http()
                self.use_http_mode = True
            else:
                await self._connect_stdio()
                self.use_http_mode = False
            self.connected = True
            logger.info("Connected to MCP market data server (%s)", "http" if self.use_http_mode else "stdio")
            await self.load_supported_networks()
        except Exception as e:
            logger.warning("MCP market data server unavailable, running in limited mode: %s", e)
            self.connected = False
            self.use_http_mode = False
            self.supported_networks = list(LIMITED_MODE_NETWORKS)

    async def load_supported_networks(self) -> None:
        try:
            result = await self.call_tool("get_networks", {})
        except MarketDataError as e:
            logger.error("Failed to load supported networks: %s", e)
            return
        if isinstance(result.raw, list):
            self.supported_networks = result.raw
        else:
            self.supported_networks = parse_networks_from_text(result.text)
        logger.info("Loaded %d supported networks", len(self.supported_networks))

    async def close(self) -> None:
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._exit_stack = None
            self._session = None
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
        self.connected = False

    # -- tool calls ---------------------------------------------------------

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        """Invoke a server tool.

        Raises:
            MarketDataError: If not connected or the tool fails
        """
        if not self.connected:
            raise MarketDataError("MCP client is not connected")
        arguments = arguments or {}
        logger.debug("Calling MCP tool %s with %s", name, arguments)
        try:
            if self.use_http_mode:
                return await self._call_http(name, arguments)
            if self._session is None:
                raise MarketDataError("MCP session is not open")
            result = await self._session.call_tool(name, arguments)
        except MarketDataError:
            raise
        except Exception as e:
            raise MarketDataError(f"Tool call failed: {e}") from e

        text = "\n".join(item.text for item in result.content if getattr(item, "type", None) == "text")
        if result.isError:
            raise MarketDataError(f"Tool call failed: {text or name}")
        return ToolResult(text=text)

    async def _call_http(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        client = self._get_http()
        if name == "get_networks":
            response = await client.get(f"{self.http_base_url}/api/networks")
        elif name == "recommend_tokens":
            response = await client.post(f"{self.http_base_url}/api/recommend-tokens", json=arguments)
        elif name in GECKO_TOOLS:
            return await self.call_gecko_terminal(name, arguments)
        else:
            response = await client.post(f"{self.http_base_url}/api/tools/{name}", json=arguments)

        if response.status_code >= 400:
            raise MarketDataError(f"HTTP API call failed: HTTP {response.status_code}")
        data = response.json()
        text = data if isinstance(data, str) else json.dumps(data, indent=2)
        return ToolResult(text=text, raw=data)

    async def call_gecko_terminal(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Serve a pool/search/price tool directly from GeckoTerminal."""
        client = self._get_http()
        try:
            if name == "get_network_pools":
                network = arguments["network"]
                response = await client.get(
                    f"{GECKOTERMINAL_API_BASE}/networks/{network}/pools",
                    params={"page": arguments.get("page", 1), "include": "base_token,quote_token,dex"},
                    headers=GECKOTERMINAL_HEADERS,
                )
                response.raise_for_status()
                return ToolResult(text=format_pools(response.json().get("data", [])))

            if name == "search_pools":
                query = arguments["query"]
                params = {"query": query, "include": "base_token,quote_token,dex"}
                if arguments.get("network"):
                    params["network"] = arguments["network"]
                response = await client.get(
                    f"{GECKOTERMINAL_API_BASE}/search/pools", params=params, headers=GECKOTERMINAL_HEADERS
                )
                response.raise_for_status()
                return ToolResult(text=format_search_results(query, response.json().get("data", [])))

            if name == "get_token_prices":
                network = arguments["network"]
                addresses = ",".join(arguments["token_addresses"])
                response = await client.get(
                    f"{GECKOTERMINAL_API_BASE}/simple/networks/{network}/token_price/{addresses}",
                    params={"include_24hr_vol": "true", "include_24hr_price_change": "true"},
                    headers=GECKOTERMINAL_HEADERS,
                )
                response.raise_for_status()
                data = response.json().get("data") or {}
                if isinstance(data, list):
                    data = data[0] if data else {}
                prices = (data.get("attributes") or {}).get("token_prices") or {}
                return ToolResult(text=format_token_prices(prices), raw=prices)
        except httpx.HTTPError as e:
            raise MarketDataError(f"GeckoTerminal request failed for {name}: {e}") from e

        raise MarketDataError(f"Unknown tool for direct GeckoTerminal call: {name}")

    async def _fetch(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """``call_tool`` with a GeckoTerminal fallback for the tools it can serve."""
        try:
            return await self.call_tool(name, arguments)
        except MarketDataError as e:
            if name not in GECKO_TOOLS or self.use_http_mode:
                raise
            logger.warning("MCP tool %s failed (%s), querying GeckoTerminal directly", name, e)
            return await self.call_gecko_terminal(name, arguments)

    # -- networks -----------------------------------------------------------

    def normalize_network_name(self, user_input: str | None) -> str:
        return normalize_network_name(user_input, self.supported_networks, default=self.network_id)

    @staticmethod
    def extract_network_from_message(message: str | None) -> str | None:
        return extract_network_from_message(message)

    async def get_supported_networks(self) -> dict[str, Any]:
        cached = self.network_cache.get("all_networks")
        if cached is not None:
            return cached
        try:
            result = await self.call_tool("get_networks", {})
        except MarketDataError as e:
            return {"success": False, "error": str(e), "data": self.supported_networks}

        networks = result.raw if isinstance(result.raw, list) else parse_networks_from_text(result.text)
        if networks:
            self.supported_networks = networks
        response = {"success": True, "data": self.supported_networks, "raw": result.text}
        self.network_cache.set("all_networks", response)
        return response

    # -- pools / prices -----------------------------------------------------

    async def get_top_pools(
        self, network: str | None = None, page: int = 1, limit: int | None = None
    ) -> dict[str, Any]:
        network_id = self.normalize_network_name(network) if network else self.network_id
        cache_key = f"{network_id}_pools_{page}"
        cached = self.pool_cache.get(cache_key)
        if cached is None:
            try:
                result = await self._fetch("get_network_pools", {"network": network_id, "page": page})
            except MarketDataError as e:
                logger.error("Failed to fetch pools for %s: %s", network_id, e)
                return {"success": False, "error": str(e), "network": network_id, "data": None, "page": page}
            cached = {"success": True, "network": network_id, "data": result.text, "page": page}
            self.pool_cache.set(cache_key, cached)
        if limit:
            return {**cached, "data": limit_pool_blocks(cached["data"], limit)}
        return cached

    async def get_pool_data(self, pool_address: str, network: str | None = None) -> dict[str, Any]:
        network_id = network or self.network_id
        cache_key = f"pool_{network_id}_{pool_address}"
        cached = self.pool_cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            result = await self.call_tool("get_pool_data", {"network": network_id, "pool_address": pool_address})
        except MarketDataError as e:
            return {"success": False, "error": str(e), "network": network_id, "poolAddress": pool_address, "data": None}
        response = {"success": True, "network": network_id, "poolAddress": pool_address, "data": result.text}
        self.pool_cache.set(cache_key, response)
        return response

    async def get_token_prices(self, token_addresses: list[str], network: str | None = None) -> dict[str, Any]:
        network_id = network or self.network_id
        cache_key = f"prices_{network_id}_{','.join(token_addresses)}"
        cached = self.price_cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            result = await self._fetch(
                "get_token_prices", {"network": network_id, "token_addresses": token_addresses}
            )
        except MarketDataError as e:
            return {"success": False, "error": str(e), "network": network_id, "tokens": token_addresses, "data": None}
        response = {"success": True, "network": network_id, "tokens": token_addresses, "data": result.text}
        self.price_cache.set(cache_key, response)
        return response

    async def search_pools(self, query: str, network: str | None = None) -> dict[str, Any]:
        arguments: dict[str, Any] = {"query": query}
        if network:
            arguments["network"] = network
        try:
            result = await self._fetch("search_pools", arguments)
        except MarketDataError as e:
            return {"success": False, "error": str(e), "query": query, "network": network, "data": None}
        return {"success": True, "query": query, "network": network, "data": result.text}

    # -- recommendations ----------------------------------------------------

    async def get_token_recommendations(
        self,
        criteria: str = "balanced",
        count: int = DEFAULT_RECOMMENDATION_COUNT,
        network: str | None = None,
    ) -> dict[str, Any]:
        if criteria not in RECOMMENDATION_CRITERIA:
            logger.warning("Unknown recommendation criteria %r, using balanced", criteria)
            criteria = "balanced"
        count = max(1, min(int(count), MAX_RECOMMENDATION_COUNT))
        network_id = self.normalize_network_name(network) if network else self.network_id

        cache_key = f"{network_id}_{criteria}_{count}"
        cached = self.recommendation_cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            result = await self.call_tool(
                "recommend_tokens", {"network": network_id, "criteria": criteria, "count": count}
            )
        except MarketDataError as e:
            return {"success": False, "error": str(e), "network": network_id, "criteria": criteria, "data": None}

        response = {
            "success": True,
            "network": network_id,
            "criteria": criteria,
            "count": count,
            "data": result.raw if result.raw is not None else result.text,
        }
        self.recommendation_cache.set(cache_key, response)
        return response

    # -- LLM context --------------------------------------------------------

    async def get_network_pipeline(
        self,
        *,
        criteria: str = "balanced",
        count: int = MAX_RECOMMENDATION_COUNT,
        include_token_search: bool = True,
        network_name: str | None = None,
        user_message: str | None = None,
    ) -> dict[str, Any]:
        """Networks -> pools -> recommendations -> token search for one network.

        The token search step may fail without failing the pipeline.
        """
        target = network_name or extract_network_from_message(user_message) or self.network_id
        network_id = self.normalize_network_name(target)

        pipeline: dict[str, Any] = {
            "timestamp": _now(),
            "steps": [],
            "success": False,
            "data": {},
            "errors": [],
            "targetNetwork": network_id,
        }

        try:
            networks_result = await self.call_tool("get_networks", {})
            if isinstance(networks_result.raw, list):
                networks = networks_result.raw
            else:
                networks = parse_networks_from_text(networks_result.text)
            lowered = network_id.lower()
            network = next(
                (
                    n
                    for n in networks
                    if n.get("id") == network_id
                    or lowered in str(n.get("id", "")).lower()
                    or lowered in str(n.get("name", "")).lower()
                ),
                None,
            )
            step: dict[str, Any] = {"step": 1, "name": "Find Target Network", "status": "success"}
            if network is None:
                network = {"id": network_id, "name": f"{network_id[:1].upper()}{network_id[1:]} Network"}
                step["note"] = "Network not found in API list, using normalized name"
            step["data"] = network
            pipeline["steps"].append(step)

            pools = await self._fetch("get_network_pools", {"network": network["id"], "page": 1})
            pipeline["steps"].append(
                {"step": 2, "name": f"Get {network_id.upper()} Pools", "status": "success", "data": pools.text}
            )

            recommendations = await self.call_tool(
                "recommend_tokens",
                {"network": network["id"], "criteria": criteria, "count": min(count, MAX_RECOMMENDATION_COUNT)},
            )
            pipeline["steps"].append(
                {"step": 3, "name": "AI Token Recommendations", "status": "success", "data": recommendations.text}
            )

            token_data = None
            if include_token_search:
                query = _NETWORK_SEARCH_QUERIES.get(network_id, network_id.upper())
                try:
                    search = await self._fetch("search_pools", {"query": query, "network": network["id"]})
                    token_data = search.text
                    pipeline["steps"].append(
                        {"step": 4, "name": f"{query} Token Search", "status": "success", "data": token_data}
                    )
                except MarketDataError as e:
                    logger.warning("%s token search failed: %s", query, e)
                    pipeline["steps"].append(
                        {"step": 4, "name": f"{query} Token Search", "status": "failed", "error": str(e)}
                    )

            pipeline["data"] = {
                "network": network,
                "pools": pools.text,
                "recommendations": recommendations.text,
                "tokenData": token_data,
            }
            pipeline["success"] = True
        except MarketDataError as e:
            logger.error("Network pipeline failed for %s: %s", network_id, e)
            pipeline["errors"].append(str(e))
        return pipeline

    async def get_market_context_for_llm(
        self,
        *,
        include_top_pools: bool = True,
        include_token_recommendations: bool = True,
        network: str | None = None,
        recommendation_criteria: str = "balanced",
    ) -> dict[str, Any]:
        network_id = self.normalize_network_name(network) if network else self.network_id
        context: dict[str, Any] = {"timestamp": _now(), "network": network_id, "data": {}}
        if include_top_pools:
            context["data"]["topPools"] = await self.get_top_pools(network_id, 1)
        if include_token_recommendations:
            context["data"]["tokenRecommendations"] = await self.get_token_recommendations(
                recommendation_criteria, MAX_RECOMMENDATION_COUNT, network_id
            )
        context["success"] = True
        return context

    format_market_data_for_llm = staticmethod(format_market_data_for_llm)

    def get_status(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "mode": "HTTP" if self.use_http_mode else "stdio",
            "networkId": self.network_id,
            "supportedNetworksCount": len(self.supported_networks),
            "httpBaseUrl": self.http_base_url if self.use_http_mode else None,
            "cacheSize": {
                "networks": len(self.network_cache),
                "pools": len(self.pool_cache),
                "prices": len(self.price_cache),
                "recommendations": len(self.recommendation_cache),
            },
        }

    def clear_cache(self) -> None:
        for cache in (self.network_cache, self.pool_cache, self.price_cache, self.recommendation_cache):
            cache.clear()
