"""Core building blocks of the DuckChain assistant.

- ai: chat-completion provider, prompt registry and task router
- intent: message classification, argument extraction and validation
- registry: contact book and token list
- market_data: MCP pool data, network names and CoinGecko prices
- chain: DuckChain RPC client, agent wallets, portfolio, transfers and swaps
- routing: prompt router and validated message processing
- health: dependency health checks
"""
