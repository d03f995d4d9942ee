"""Token swaps through the DuckChain iZiSwap router."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from web3 import Web3

from core.chain.client import RPC_ERRORS, ChainClient, ChainError, format_units, parse_units
from core.chain.config import (
    APPROVE_GAS_LIMIT,
    FEE_TIERS,
    MAX_UINT256,
    NATIVE,
    SWAP_DEADLINE_SECONDS,
    SWAP_GAS_LIMIT,
    SWAP_GAS_PRICE_GWEI,
    SWAP_ROUTER_ABI,
    SWAP_ROUTER_ADDRESS,
    TOKENS,
    get_token_address,
)
from core.chain.wallets import AgentWallet, AgentWalletStore
from core.market_data.prices import PriceFeed

logger = logging.getLogger(__name__)

# Used when the price feed has no quote for one side of the pair
FALLBACK_RATES: dict[tuple[str, str], float] = {
    ("WTON", "DUCK"): 1000.0,
    ("TON", "DUCK"): 1000.0,
    ("DUCK", "WTON"): 0.001,
    ("DUCK", "TON"): 0.001,
}


def encode_path(tokens: list[str], fees: list[int]) -> str:
    """Router path bytes: token0 + 3-byte fee + token1.

    Raises:
        ValueError: For anything but a single hop
    """
    if len(tokens) != 2 or len(fees) != 1:
        raise ValueError("Only single-hop swaps supported currently")
    token0 = tokens[0].lower().removeprefix("0x")
    token1 = tokens[1].lower().removeprefix("0x")
    return "0x" + token0 + format(fees[0], "06x") + token1


def _path_address(address: str) -> str:
    # The router wraps native TON, so paths go through WTON.
    return TOKENS["WTON"].address if address == NATIVE else address


class SwapService:
    def __init__(
        self,
        chain: ChainClient | None = None,
        wallets: AgentWalletStore | None = None,
        price_feed: PriceFeed | None = None,
    ) -> None:
        self.chain = chain or ChainClient()
        self.wallets = wallets or AgentWalletStore()
        self.price_feed = price_feed or PriceFeed()

    # -- reads --------------------------------------------------------------

    def get_token_info(self, token: str) -> dict[str, Any]:
        """Token metadata from the local table, or from the contract for raw addresses."""
        address = get_token_address(token)
        for known in TOKENS.values():
            if (known.address or NATIVE).lower() == address.lower():
                return {"symbol": known.symbol, "name": known.name, "decimals": known.decimals, "address": address}
        return self.chain.get_token_info(address)

    def get_token_balance(self, wallet_address: str, token: str) -> dict[str, Any]:
        info = self.get_token_info(token)
        if info["address"] == NATIVE:
            raw = self.chain.get_native_balance(wallet_address)
        else:
            raw = self.chain.get_erc20_balance(info["address"], wallet_address)
        return {"balance": format_units(raw, info["decimals"]), "decimals": info["decimals"], "symbol": info["symbol"]}

    def exchange_rate(self, from_symbol: str, to_symbol: str) -> float:
        market = self.price_feed.fetch_market_data([from_symbol, to_symbol])["tokens"]
        from_price = (market.get(from_symbol) or {}).get("price") or 0
        to_price = (market.get(to_symbol) or {}).get("price") or 0
        if from_price > 0 and to_price > 0:
            return from_price / to_price
        return FALLBACK_RATES.get((from_symbol, to_symbol), 1.0)

    def get_swap_quote(self, from_token: str, to_token: str, amount_in: Any, slippage: float = 0.5) -> dict[str, Any]:
        """Estimated output for swapping ``amount_in`` of ``from_token``.

        Raises:
            ValueError: If the tokens are identical or unsupported
        """
        from_address = get_token_address(from_token)
        to_address = get_token_address(to_token)
        if from_address.lower() == to_address.lower():
            raise ValueError("Cannot swap identical tokens")

        from_info = self.get_token_info(from_token)
        to_info = self.get_token_info(to_token)
        estimated = float(amount_in) * self.exchange_rate(from_info["symbol"], to_info["symbol"])
        minimum = estimated * (1 - slippage / 100)

        return {
            "fromToken": {**from_info, "amount": str(amount_in)},
            "toToken": {**to_info, "estimatedAmount": str(estimated)},
            "route": [from_address, to_address],
            "fees": [FEE_TIERS["MEDIUM"]],
            "priceImpact": "0.1",
            "minimumOutput": str(minimum),
            "slippage": str(slippage),
            "gasEstimate": str(SWAP_GAS_LIMIT),
        }

    def check_allowance(self, token: str, owner: str, amount: Any, spender: str = SWAP_ROUTER_ADDRESS) -> dict[str, Any]:
        info = self.get_token_info(token)
        if info["address"] == NATIVE:
            return {"needsApproval": False, "currentAllowance": "unlimited"}
        allowance = self.chain.get_allowance(info["address"], owner, spender)
        required = parse_units(amount, info["decimals"])
        return {
            "needsApproval": allowance < required,
            "currentAllowance": format_units(allowance, info["decimals"]),
            "requiredAmount": str(amount),
        }

    # -- writes -------------------------------------------------------------

    def _require_wallet(self, user_id: str) -> AgentWallet:
        wallet = self.wallets.get_for_user(user_id)
        if wallet is None:
            raise ChainError("No active DuckChain agent found for user")
        return wallet

    def approve_token(self, user_id: str, token: str, amount: Any = None) -> dict[str, Any]:
        """Approve the router to spend ``amount`` (default unlimited) of ``token``."""
        try:
            wallet = self._require_wallet(user_id)
            info = self.get_token_info(token)
            if info["address"] == NATIVE:
                raise ValueError("Native TON does not need approval")
            account = self.chain.account(self.wallets.private_key_for(wallet))
            value = parse_units(amount, info["decimals"]) if amount else MAX_UINT256
            tx = self.chain.erc20(info["address"]).functions.approve(
                Web3.to_checksum_address(SWAP_ROUTER_ADDRESS), value
            ).build_transaction(
                {
                    "from": account.address,
                    "chainId": self.chain.chain_id,
                    "gas": APPROVE_GAS_LIMIT,
                    "gasPrice": Web3.to_wei(SWAP_GAS_PRICE_GWEI, "gwei"),
                }
            )
            tx_hash = self.chain.send_transaction(account, tx)
            self.chain.wait_for_receipt(tx_hash)
        except (ChainError, *RPC_ERRORS) as e:
            logger.error("Token approval failed: %s", e)
            return {"success": False, "error": str(e)}
        return {"success": True, "transactionHash": tx_hash, "approvedAmount": str(amount) if amount else "unlimited"}

    def execute_swap(
        self,
        user_id: str,
        from_token: str,
        to_token: str,
        amount: Any,
        slippage: float = 0.5,
    ) -> dict[str, Any]:
        """Swap from the user's agent wallet.

        A reverted transaction still returns its hash with
        ``transactionStatus == 'reverted'``.

        Raises:
            ValueError: If the tokens are identical or unsupported
        """
        quote = self.get_swap_quote(from_token, to_token, amount, slippage)
        from_info, to_info = quote["fromToken"], quote["toToken"]

        try:
            wallet = self._require_wallet(user_id)
            balance = self.get_token_balance(wallet.address, from_token)
            if float(balance["balance"]) < float(amount):
                raise ChainError(
                    f"Insufficient {from_info['symbol']} balance. Available: {balance['balance']}, Required: {amount}"
                )

            if from_info["address"] != NATIVE:
                allowance = self.check_allowance(from_token, wallet.address, amount)
                if allowance["needsApproval"]:
                    approval = self.approve_token(user_id, from_token)
                    if not approval["success"]:
                        raise ChainError(f"Approval failed: {approval['error']}")

            account = self.chain.account(self.wallets.private_key_for(wallet))
            amount_wei = parse_units(amount, from_info["decimals"])
            min_out = parse_units(quote["minimumOutput"], to_info["decimals"])
            path = encode_path(
                [_path_address(from_info["address"]), _path_address(to_info["address"])],
                [FEE_TIERS["MEDIUM"]],
            )
            params = (
                bytes.fromhex(path[2:]),
                Web3.to_checksum_address(wallet.address),
                amount_wei,
                min_out,
                int(time.time()) + SWAP_DEADLINE_SECONDS,
            )
            router = self.chain.w3.eth.contract(
                address=Web3.to_checksum_address(SWAP_ROUTER_ADDRESS), abi=SWAP_ROUTER_ABI
            )
            tx = router.functions.swapAmount(params).build_transaction(
                {
                    "from": account.address,
                    "chainId": self.chain.chain_id,
                    "value": amount_wei if from_info["address"] == NATIVE else 0,
                    "gas": SWAP_GAS_LIMIT,
                    "gasPrice": Web3.to_wei(SWAP_GAS_PRICE_GWEI, "gwei"),
                }
            )
            tx_hash = self.chain.send_transaction(account, tx)
            logger.info("Swap transaction submitted: %s", tx_hash)
        except (ChainError, *RPC_ERRORS) as e:
            logger.error("Swap execution failed: %s", e)
            return {"success": False, "error": f"Swap failed: {e}", "status": "failed"}

        try:
            receipt = self.chain.wait_for_receipt(tx_hash)
            status = "success" if receipt["status"] == 1 else "reverted"
        except ChainError as e:
            logger.warning("Swap %s did not confirm: %s", tx_hash, e)
            receipt, status = {}, "reverted"

        balances = {}
        for token in (from_token, to_token):
            try:
                balances[token] = self.get_token_balance(wallet.address, token)["balance"]
            except ChainError as e:
                logger.warning("Could not refresh %s balance: %s", token, e)

        return {
            "success": True,
            "transactionHash": tx_hash,
            "transactionStatus": status,
            "swapDetails": {
                "fromToken": {"symbol": from_info["symbol"], "amount": str(amount), "address": from_info["address"]},
                "toToken": {"symbol": to_info["symbol"], "address": to_info["address"]},
                "slippage": slippage,
                "gasUsed": str(receipt.get("gasUsed")) if receipt.get("gasUsed") is not None else None,
                "blockNumber": str(receipt.get("blockNumber")) if receipt.get("blockNumber") is not None else None,
            },
            "balances": balances,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": "executed",
        }
