"""Thin web3 wrapper for DuckChain reads, signing and receipts."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import requests
from web3 import Web3
from web3.exceptions import Web3Exception

from core.chain.config import ERC20_ABI, NATIVE
from core.config import get_settings

logger = logging.getLogger(__name__)

RPC_ERRORS = (Web3Exception, requests.RequestException, ValueError)


class ChainError(Exception):
    """An RPC or contract call failed."""


def format_units(value: int, decimals: int) -> str:
    """Render an integer token amount as a plain decimal string."""
    amount = (Decimal(int(value)) / (Decimal(10) ** decimals)).normalize()
    return format(amount, "f")


def parse_units(amount: Any, decimals: int) -> int:
    """Convert a human amount (``"1.5"``, ``1.5``) into integer base units."""
    return int(Decimal(str(amount)) * (Decimal(10) ** decimals))


class ChainClient:
    """Read and write access to DuckChain over JSON-RPC."""

    def __init__(self, rpc_url: str | None = None, *, web3: Web3 | None = None, timeout: int = 10) -> None:
        settings = get_settings()
        self.rpc_url = rpc_url or settings.rpc_url
        self.chain_id = settings.chain_id
        self.w3 = web3 or Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": timeout}))

    @staticmethod
    def is_address(value: Any) -> bool:
        return isinstance(value, str) and Web3.is_address(value)

    @staticmethod
    def checksum(address: str) -> str:
        return Web3.to_checksum_address(address)

    def is_connected(self) -> bool:
        try:
            return bool(self.w3.is_connected())
        except RPC_ERRORS:
            return False

    def block_number(self) -> int:
        try:
            return int(self.w3.eth.block_number)
        except RPC_ERRORS as e:
            raise ChainError(f"Failed to read block number: {e}") from e

    def gas_price(self) -> int:
        try:
            return int(self.w3.eth.gas_price)
        except RPC_ERRORS as e:
            raise ChainError(f"Failed to read gas price: {e}") from e

    def erc20(self, token_address: str):
        return self.w3.eth.contract(address=self.checksum(token_address), abi=ERC20_ABI)

    def get_native_balance(self, address: str) -> int:
        try:
            return int(self.w3.eth.get_balance(self.checksum(address)))
        except RPC_ERRORS as e:
            raise ChainError(f"Failed to fetch TON balance: {e}") from e

    def get_erc20_balance(self, token_address: str, owner: str) -> int:
        try:
            return int(self.erc20(token_address).functions.balanceOf(self.checksum(owner)).call())
        except RPC_ERRORS as e:
            raise ChainError(f"Failed to fetch token balance: {e}") from e

    def get_token_info(self, token_address: str) -> dict[str, Any]:
        """Symbol, name and decimals read from the token contract."""
        if token_address == NATIVE:
            return {"symbol": "TON", "name": "Toncoin", "decimals": 18, "address": NATIVE}
        try:
            functions = self.erc20(token_address).functions
            return {
                "symbol": functions.symbol().call(),
                "name": functions.name().call(),
                "decimals": int(functions.decimals().call()),
                "address": token_address,
            }
        except RPC_ERRORS as e:
            raise ChainError(f"Failed to read token info for {token_address}: {e}") from e

    def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        try:
            contract = self.erc20(token_address)
            return int(contract.functions.allowance(self.checksum(owner), self.checksum(spender)).call())
        except RPC_ERRORS as e:
            raise ChainError(f"Failed to read allowance: {e}") from e

    # -- signing ------------------------------------------------------------

    def account(self, private_key: str):
        return self.w3.eth.account.from_key(private_key)

    def send_transaction(self, account, tx: dict[str, Any]) -> str:
        """Fill nonce and chain id, sign with ``account`` and broadcast.

        Returns the transaction hash as a 0x-prefixed hex string.
        """
        try:
            tx = {
                "chainId": self.chain_id,
                "nonce": self.w3.eth.get_transaction_count(account.address),
                **tx,
            }
            signed = account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except RPC_ERRORS as e:
            raise ChainError(f"Failed to submit transaction: {e}") from e
        return Web3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: str, timeout: int = 120) -> Any:
        try:
            return self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except RPC_ERRORS as e:
            raise ChainError(f"Failed waiting for receipt of {tx_hash}: {e}") from e
