"""Agent wallet table: which on-chain address signs for which user.

Private keys are never stored. Each row names the environment variable that
holds the agent's key; it is read only when a transaction is signed.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import create_engine, text

from core.chain.client import ChainError
from core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentWallet:
    agent_id: str
    user_id: str
    address: str
    private_key_env: str | None = None
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "userId": self.user_id,
            "address": self.address,
            "isActive": self.is_active,
        }


class AgentWalletStore:
    """SQLAlchemy-backed ``agent_wallets`` table."""

    def __init__(self, database_url: str | None = None) -> None:
        self._database_url = database_url or get_settings().database_url
        self._engine: Any | None = None
        self._schema_ready = False

    def _get_engine(self) -> Any:
        if self._engine is None:
            # Do not log the URL (it may contain secrets).
            self._engine = create_engine(self._database_url, echo=False, pool_pre_ping=True)
        return self._engine

    def init_schema(self) -> None:
        if self._schema_ready:
            return
        with self._get_engine().begin() as conn:
            conn.execute(
                text(
                    """
                    CREATE TABLE IF NOT EXISTS agent_wallets (
                        agent_id VARCHAR(64) PRIMARY KEY,
                        user_id VARCHAR(128) NOT NULL,
                        address VARCHAR(42) NOT NULL,
                        private_key_env VARCHAR(128),
                        is_active BOOLEAN NOT NULL DEFAULT TRUE,
                        created_at VARCHAR(40) NOT NULL
                    )
                    """
                )
            )
        self._schema_ready = True

    @staticmethod
    def _row_to_wallet(row: Any) -> AgentWallet:
        return AgentWallet(
            agent_id=row.agent_id,
            user_id=row.user_id,
            address=row.address,
            private_key_env=row.private_key_env,
            is_active=bool(row.is_active),
        )

    def register(
        self,
        agent_id: str,
        user_id: str,
        address: str,
        private_key_env: str | None = None,
    ) -> AgentWallet:
        """Insert or replace the wallet for ``agent_id``."""
        self.init_schema()
        params = {
            "agent_id": agent_id,
            "user_id": user_id,
            "address": address,
            "private_key_env": private_key_env,
            "is_active": True,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        with self._get_engine().begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO agent_wallets
                        (agent_id, user_id, address, private_key_env, is_active, created_at)
                    VALUES
                        (:agent_id, :user_id, :address, :private_key_env, :is_active, :created_at)
                    ON CONFLICT (agent_id) DO UPDATE SET
                        user_id = excluded.user_id,
                        address = excluded.address,
                        private_key_env = excluded.private_key_env,
                        is_active = excluded.is_active
                    """
                ),
                params,
            )
        logger.info("Registered agent wallet %s for user %s", agent_id, user_id)
        return AgentWallet(agent_id, user_id, address, private_key_env, True)

    def get_for_user(self, user_id: str) -> AgentWallet | None:
        """Most recently registered active wallet for a user."""
        self.init_schema()
        with self._get_engine().begin() as conn:
            row = conn.execute(
                text(
                    """
                    SELECT agent_id, user_id, address, private_key_env, is_active
                    FROM agent_wallets
                    WHERE user_id = :user_id AND is_active = :active
                    ORDER BY created_at DESC
                    LIMIT 1
                    """
                ),
                {"user_id": user_id, "active": True},
            ).fetchone()
        return None if row is None else self._row_to_wallet(row)

    def get_by_agent_id(self, agent_id: str) -> AgentWallet | None:
        self.init_schema()
        with self._get_engine().begin() as conn:
            row = conn.execute(
                text(
                    """
                    SELECT agent_id, user_id, address, private_key_env, is_active
                    FROM agent_wallets
                    WHERE agent_id = :agent_id
                    """
                ),
                {"agent_id": agent_id},
            ).fetchone()
        return None if row is None else self._row_to_wallet(row)

    def list_agents(self, user_id: str | None = None) -> list[AgentWallet]:
        self.init_schema()
        query = "SELECT agent_id, user_id, address, private_key_env, is_active FROM agent_wallets"
        params: dict[str, Any] = {}
        if user_id is not None:
            query += " WHERE user_id = :user_id"
            params["user_id"] = user_id
        query += " ORDER BY created_at"
        with self._get_engine().begin() as conn:
            rows = conn.execute(text(query), params).fetchall()
        return [self._row_to_wallet(row) for row in rows]

    def deactivate(self, agent_id: str) -> bool:
        self.init_schema()
        with self._get_engine().begin() as conn:
            result = conn.execute(
                text("UPDATE agent_wallets SET is_active = :active WHERE agent_id = :agent_id"),
                {"active": False, "agent_id": agent_id},
            )
        return result.rowcount > 0

    @staticmethod
    def private_key_for(wallet: AgentWallet) -> str:
        """Read the signing key for ``wallet`` from its environment variable.

        Raises:
            ChainError: If the wallet has no key configured
        """
        key = os.environ.get(wallet.private_key_env or "", "")
        if not key:
            raise ChainError(f"No signing key configured for agent {wallet.agent_id}")
        return key

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._schema_ready = False
