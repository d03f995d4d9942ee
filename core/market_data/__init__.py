"""Market data: MCP server client, GeckoTerminal fallback and CoinGecko prices."""

from core.market_data.mcp_client import (
    MarketDataError,
    MCPMarketDataService,
    TTLCache,
    ToolResult,
    format_market_data_for_llm,
    parse_networks_from_text,
)
from core.market_data.networks import (
    DEFAULT_NETWORK,
    NETWORK_MAPPINGS,
    extract_network_from_message,
    normalize_network_name,
)
from core.market_data.prices import PriceFeed, static_market_data

__all__ = [
    "DEFAULT_NETWORK",
    "MCPMarketDataService",
    "MarketDataError",
    "NETWORK_MAPPINGS",
    "PriceFeed",
    "TTLCache",
    "ToolResult",
    "extract_network_from_message",
    "format_market_data_for_llm",
    "normalize_network_name",
    "parse_networks_from_text",
    "static_market_data",
]
