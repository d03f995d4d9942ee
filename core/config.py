"""Runtime settings loaded from the environment (and an optional ``.env``)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

PACKAGE_ROOT = Path(__file__).resolve().parent
DATA_DIR = PACKAGE_ROOT / "registry" / "data"

DEFAULT_WALLET = "0x742d35Cc6634C0532925a3b8D8C16e4000000000"


@dataclass(frozen=True)
class Settings:
    """Connection and service settings.

    Credentials (``TOGETHER_API_KEY``, agent private keys) and
    ``database_url`` must never be logged.
    """

    together_api_key: str = ""
    together_base_url: str = "https://api.together.xyz"
    rpc_url: str = "https://rpc.duckchain.io"
    chain_id: int = 5545
    default_wallet: str = DEFAULT_WALLET
    database_url: str = "sqlite:///./assistant.db"
    mcp_mode: str = "stdio"
    mcp_server_command: str = "node"
    mcp_server_path: str = ""
    mcp_http_url: str = "http://localhost:3001"
    contacts_file: Path = DATA_DIR / "contacts.json"
    tokens_file: Path = DATA_DIR / "tokens.json"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        return cls(
            together_api_key=env.get("TOGETHER_API_KEY", ""),
            together_base_url=env.get("TOGETHER_BASE_URL", cls.together_base_url),
            rpc_url=env.get("DUCKCHAIN_RPC_URL", cls.rpc_url),
            chain_id=int(env.get("DUCKCHAIN_CHAIN_ID", cls.chain_id)),
            default_wallet=env.get("DEFAULT_DUCKCHAIN_WALLET", DEFAULT_WALLET),
            database_url=env.get("DATABASE_URL", cls.database_url),
            mcp_mode=env.get("MCP_MODE", cls.mcp_mode).lower(),
            mcp_server_command=env.get("MCP_SERVER_COMMAND", cls.mcp_server_command),
            mcp_server_path=env.get("MCP_SERVER_PATH", ""),
            mcp_http_url=env.get("MCP_HTTP_URL", cls.mcp_http_url),
            contacts_file=Path(env.get("CONTACTS_FILE", DATA_DIR / "contacts.json")),
            tokens_file=Path(env.get("TOKENS_FILE", DATA_DIR / "tokens.json")),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or initialize the settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
