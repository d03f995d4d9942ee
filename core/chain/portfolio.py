"""Wallet balances, USD valuation and portfolio analytics on DuckChain."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from core.chain.client import ChainClient, ChainError, format_units
from core.chain.config import TOKENS, get_chain_token
from core.chain.wallets import AgentWalletStore
from core.config import get_settings
from core.market_data.prices import PriceFeed

logger = logging.getLogger(__name__)

PORTFOLIO_SYMBOLS = ["TON", "DUCK", "WTON", "USDT"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _usd_value(balance_formatted: str, price: float) -> float:
    try:
        return float(balance_formatted) * (price or 0)
    except (TypeError, ValueError):
        return 0.0


# -----------------------------------------------------------------------------
# Analytics
# -----------------------------------------------------------------------------


def get_largest_holding(portfolio: dict[str, Any]) -> dict[str, Any]:
    holdings = [{**portfolio["nativeBalance"], "type": "native"}]
    holdings.extend({**token, "type": "token"} for token in portfolio["tokenBalances"])
    largest = holdings[0]
    for holding in holdings[1:]:
        if holding.get("usdValue", 0) > largest.get("usdValue", 0):
            largest = holding
    return largest


def calculate_diversification(portfolio: dict[str, Any]) -> dict[str, Any]:
    """Herfindahl concentration of USD value across holdings."""
    total = portfolio.get("totalUsdValue") or 0
    if total == 0:
        return {"herfindahlIndex": 0, "isWellDiversified": False, "dominantAsset": None}

    holdings = [portfolio["nativeBalance"], *portfolio["tokenBalances"]]
    shares = [(h.get("symbol"), h.get("usdValue", 0) / total) for h in holdings]
    herfindahl = sum(share * share for _, share in shares)
    dominant = next((symbol for symbol, share in shares if share > 0.5), None)
    return {
        "herfindahlIndex": herfindahl,
        "isWellDiversified": herfindahl < 0.25,
        "dominantAsset": dominant,
    }


def calculate_daily_gain_loss(portfolio: dict[str, Any]) -> float:
    """USD change over 24h implied by each holding's price change."""
    price_data = portfolio.get("priceData") or {}
    total = 0.0
    for holding in [portfolio["nativeBalance"], *portfolio["tokenBalances"]]:
        change = (price_data.get(holding.get("symbol")) or {}).get("priceChange24h")
        if holding.get("usdValue", 0) > 0 and change:
            total += change / 100 * holding["usdValue"]
    return total


# -----------------------------------------------------------------------------
# Balances
# -----------------------------------------------------------------------------


class PortfolioService:
    """Balances for an address, valued with the CoinGecko price feed."""

    def __init__(self, chain: ChainClient | None = None, price_feed: PriceFeed | None = None) -> None:
        self.chain = chain or ChainClient()
        self.price_feed = price_feed or PriceFeed()

    def get_native_balance(self, address: str) -> dict[str, Any]:
        wei = self.chain.get_native_balance(address)
        return {
            "balance": str(wei),
            "balanceFormatted": format_units(wei, 18),
            "blockNumber": self.chain.block_number(),
            "network": "duckchain",
        }

    def get_token_balances(self, address: str) -> list[dict[str, Any]]:
        """ERC-20 balances for every configured token; failures become zero rows."""
        balances = []
        for token in TOKENS.values():
            if token.is_native:
                continue
            try:
                raw = self.chain.get_erc20_balance(token.address, address)
                balances.append(
                    {
                        "symbol": token.symbol,
                        "name": token.name,
                        "contractAddress": token.address,
                        "balance": str(raw),
                        "balanceFormatted": format_units(raw, token.decimals),
                        "decimals": token.decimals,
                        "isERC20": True,
                    }
                )
            except ChainError as e:
                logger.warning("Could not fetch %s balance: %s", token.symbol, e)
                balances.append(
                    {
                        "symbol": token.symbol,
                        "name": token.name,
                        "contractAddress": token.address,
                        "balance": "0",
                        "balanceFormatted": "0",
                        "decimals": token.decimals,
                        "isERC20": True,
                        "error": str(e),
                    }
                )
        return balances

    def get_prices(self, symbols: list[str]) -> dict[str, dict[str, Any]]:
        market = self.price_feed.fetch_market_data(symbols)
        tokens = market.get("tokens", {})
        prices = {}
        for symbol in symbols:
            quote = tokens.get(symbol.upper())
            if quote:
                prices[symbol] = {
                    "symbol": symbol,
                    "price": quote.get("price", 0),
                    "priceChange24h": quote.get("change24h", 0),
                    "source": quote.get("source", market.get("source")),
                    "timestamp": _now(),
                }
            else:
                prices[symbol] = {
                    "symbol": symbol,
                    "price": 0,
                    "priceChange24h": 0,
                    "source": "unavailable",
                    "timestamp": _now(),
                }
        return prices

    def get_portfolio_balance(self, address: str) -> dict[str, Any]:
        """Native and token balances with USD values.

        Raises:
            ChainError: If the native balance cannot be read
        """
        native = self.get_native_balance(address)
        tokens = self.get_token_balances(address)
        prices = self.get_prices(PORTFOLIO_SYMBOLS)

        ton_price = prices["TON"]["price"]
        portfolio: dict[str, Any] = {
            "address": address,
            "timestamp": _now(),
            "nativeBalance": {
                "symbol": "TON",
                "balance": native["balance"],
                "balanceFormatted": native["balanceFormatted"],
                "usdPrice": ton_price,
                "usdValue": _usd_value(native["balanceFormatted"], ton_price),
            },
            "tokenBalances": [],
            "totalUsdValue": 0.0,
            "priceData": prices,
        }
        for token in tokens:
            price = (prices.get(token["symbol"]) or {}).get("price", 0)
            portfolio["tokenBalances"].append(
                {
                    **token,
                    "usdPrice": price,
                    "usdValue": _usd_value(token["balanceFormatted"], price),
                    "error": token.get("error"),
                }
            )
        portfolio["totalUsdValue"] = portfolio["nativeBalance"]["usdValue"] + sum(
            t["usdValue"] for t in portfolio["tokenBalances"]
        )
        logger.info("Portfolio for %s valued at $%.2f", address, portfolio["totalUsdValue"])
        return portfolio

    def get_token_balance(self, address: str, symbol: str) -> dict[str, Any]:
        """Balance of one token.

        Raises:
            ValueError: If the token is not configured
            ChainError: If the balance cannot be read
        """
        token = get_chain_token(symbol)
        price = self.get_prices([token.symbol])[token.symbol]["price"]
        if token.is_native:
            native = self.get_native_balance(address)
            return {
                "symbol": "TON",
                "balance": native["balance"],
                "balanceFormatted": native["balanceFormatted"],
                "usdPrice": price,
                "usdValue": _usd_value(native["balanceFormatted"], price),
                "timestamp": _now(),
            }

        raw = self.chain.get_erc20_balance(token.address, address)
        formatted = format_units(raw, token.decimals)
        return {
            "symbol": token.symbol,
            "name": token.name,
            "contractAddress": token.address,
            "balance": str(raw),
            "balanceFormatted": formatted,
            "decimals": token.decimals,
            "usdPrice": price,
            "usdValue": _usd_value(formatted, price),
            "timestamp": _now(),
            "isERC20": True,
        }

    def get_portfolio_summary(self, address: str) -> dict[str, Any]:
        portfolio = self.get_portfolio_balance(address)
        native_held = 1 if portfolio["nativeBalance"]["balance"] != "0" else 0
        return {
            **portfolio,
            "analytics": {
                "tokenCount": len(portfolio["tokenBalances"]) + native_held,
                "largestHolding": get_largest_holding(portfolio),
                "diversification": calculate_diversification(portfolio),
                "totalGainLoss24h": calculate_daily_gain_loss(portfolio),
            },
        }


# -----------------------------------------------------------------------------
# Chat-facing controller
# -----------------------------------------------------------------------------


def create_balance_summary(portfolio: dict[str, Any]) -> str:
    total = portfolio.get("totalUsdValue") or 0
    if total == 0:
        return "📭 Your wallet appears to be empty. No TON or tokens found."

    native = portfolio["nativeBalance"]
    lines = ["💰 **Your Portfolio Balance**", "", f"**Total Value:** ${total:.2f}", ""]
    if float(native.get("balanceFormatted") or 0) > 0:
        line = f"🪙 **TON:** {native['balanceFormatted']} TON"
        if native.get("usdValue", 0) > 0:
            line += f" (${native['usdValue']:.2f})"
        lines.append(line)

    held = [t for t in portfolio.get("tokenBalances", []) if float(t.get("balanceFormatted") or 0) > 0]
    if held:
        lines.extend(["", "**Token Holdings:**"])
        for token in held:
            line = f"• **{token['symbol']}:** {token['balanceFormatted']}"
            if token.get("usdValue", 0) > 0:
                line += f" (${token['usdValue']:.2f})"
            lines.append(line)
    return "\n".join(lines) + "\n"


def create_token_balance_summary(token_balance: dict[str, Any]) -> str:
    symbol = token_balance["symbol"]
    if float(token_balance.get("balanceFormatted") or 0) == 0:
        return f"📭 You don't have any {symbol} tokens in your wallet."

    lines = [f"💎 **Your {symbol} Balance**", "", f"**Amount:** {token_balance['balanceFormatted']} {symbol}"]
    price = token_balance.get("usdPrice") or 0
    if price > 0:
        lines.append(f"**Current Price:** ${price:.4f}")
        lines.append(f"**USD Value:** ${token_balance.get('usdValue', 0):.2f}")
    return "\n".join(lines) + "\n"


def create_analytics_summary(summary: dict[str, Any]) -> str:
    analytics = summary["analytics"]
    total = summary.get("totalUsdValue") or 0
    lines = [
        "📈 **Portfolio Analytics**",
        "",
        f"**Total Value:** ${total:.2f}",
        f"**Holdings Count:** {analytics['tokenCount']} assets",
        "",
    ]
    largest = analytics.get("largestHolding") or {}
    if largest.get("usdValue", 0) > 0 and total:
        lines.append(f"**Largest Holding:** {largest.get('symbol')} ({largest['usdValue'] / total * 100:.1f}%)")
    diversification = analytics.get("diversification")
    if diversification:
        status = "Well diversified 🎯" if diversification.get("isWellDiversified") else "Consider diversifying 📊"
        lines.append(f"**Diversification:** {status}")
    change = analytics.get("totalGainLoss24h")
    if change is not None:
        sign = "+" if change >= 0 else ""
        emoji = "📈" if change >= 0 else "📉"
        lines.append(f"**24h Change:** {sign}${change:.2f} {emoji}")
    return "\n".join(lines) + "\n"


class PortfolioController:
    """Answers portfolio-information intents for a user's agent wallet."""

    def __init__(
        self,
        portfolio: PortfolioService | None = None,
        wallets: AgentWalletStore | None = None,
        default_wallet: str | None = None,
    ) -> None:
        self.portfolio = portfolio or PortfolioService()
        self.wallets = wallets
        self.default_wallet = default_wallet or get_settings().default_wallet

    def get_user_wallet_address(self, user_id: str | None) -> str:
        if self.wallets is not None and user_id:
            wallet = self.wallets.get_for_user(user_id)
            if wallet is not None:
                return wallet.address
        logger.info("No agent wallet for user %s, using default wallet", user_id)
        return self.default_wallet

    def get_complete_balance(self, address: str) -> dict[str, Any]:
        portfolio = self.portfolio.get_portfolio_balance(address)
        return {**portfolio, "formattedSummary": create_balance_summary(portfolio)}

    def get_specific_token_balance(self, address: str, symbol: str) -> dict[str, Any]:
        token_balance = self.portfolio.get_token_balance(address, symbol)
        return {"tokenBalance": token_balance, "formattedSummary": create_token_balance_summary(token_balance)}

    def get_portfolio_summary(self, address: str) -> dict[str, Any]:
        summary = self.portfolio.get_portfolio_summary(address)
        return {**summary, "formattedSummary": create_analytics_summary(summary)}

    def process_portfolio_request(self, intent: dict[str, Any], user_id: str | None) -> dict[str, Any]:
        """Dispatch on the classification subtype and format for the client."""
        subtype = (intent.get("classification") or {}).get("actionSubtype")
        resolved = (intent.get("validation") or {}).get("resolved") or {}
        try:
            address = self.get_user_wallet_address(user_id)
            if subtype == "token-balance" and resolved.get("token"):
                data = self.get_specific_token_balance(address, resolved["token"])
            elif subtype == "portfolio-summary":
                data = self.get_portfolio_summary(address)
            else:
                data = self.get_complete_balance(address)
        except (ChainError, ValueError) as e:
            logger.error("Portfolio request failed for user %s: %s", user_id, e)
            return {
                "success": False,
                "type": "portfolio-information",
                "error": str(e),
                "data": {
                    "message": f"I'm having trouble accessing your portfolio right now. {e}",
                    "portfolioData": None,
                },
            }
        return self.format_portfolio_response(data, subtype, intent)

    @staticmethod
    def format_portfolio_response(data: dict[str, Any], subtype: str | None, intent: dict[str, Any]) -> dict[str, Any]:
        timestamp = _now()
        return {
            "success": True,
            "type": "portfolio-information",
            "subtype": subtype,
            "data": {
                "message": data.get("formattedSummary") or "Portfolio information retrieved successfully.",
                "portfolioData": {**data, "requestType": subtype, "timestamp": timestamp},
                "intent": {**intent, "processed": True, "timestamp": timestamp},
            },
            "timestamp": timestamp,
        }
