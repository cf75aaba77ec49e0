"""
Agent wallet lifecycle.

An agent is a throwaway key the master account approves to sign L1 actions
on its behalf. AgentManager generates and approves agents, hands out an
ExchangeClient per agent, and rotates an agent once it is older than the
configured TTL. Approving a new agent under an existing name replaces the
old one at the venue.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from eth_account import Account

from config.settings import AgentConfig

from .auth import StaticKeyProvider
from .clock import Clock, SYSTEM_CLOCK
from .exchange import ExchangeClient

logger = logging.getLogger(__name__)


@dataclass
class AgentWallet:
    """An approved agent key."""
    name: str
    private_key: str = field(repr=False)
    address: str
    created_at_ms: int

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.created_at_ms

    def is_expired(self, now_ms: int, ttl: float) -> bool:
        return self.age_ms(now_ms) >= ttl * 1000


class AgentManager:
    """
    Hands out agent-signed clients for a master account.

    Usage:
        manager = AgentManager(master_client, config.agents)
        client = await manager.client()   # approves an agent on first use
        await client.place_orders([...])  # signed by the agent key

    The master client must come from ExchangeClient.from_config() so agent
    clients share its transport, nonce registry and rate governor.
    """

    def __init__(
        self,
        master: ExchangeClient,
        config: Optional[AgentConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self._master = master
        self.config = config or AgentConfig()
        self._clock = clock or SYSTEM_CLOCK

        self._wallets: Dict[str, AgentWallet] = {}
        self._clients: Dict[str, ExchangeClient] = {}
        self._lock = asyncio.Lock()

    async def client(self, name: Optional[str] = None) -> ExchangeClient:
        """
        Client signing with the named agent, approving or rotating it first
        when it is missing or expired.

        Raises:
            ActionRejected: If the venue rejects the approval
        """
        name = name or self.config.name
        async with self._lock:
            wallet = self._wallets.get(name)
            if wallet is None or wallet.is_expired(self._clock.time_ms(), self.config.ttl):
                await self._approve(name)
            return self._clients[name]

    async def rotate(self, name: Optional[str] = None) -> AgentWallet:
        """Replace the named agent with a freshly approved key."""
        name = name or self.config.name
        async with self._lock:
            return await self._approve(name)

    async def _approve(self, name: str) -> AgentWallet:
        previous = self._wallets.get(name)

        private_key, outcome = await self._master.approve_agent_new(name)
        outcome.raise_for_status()

        wallet = AgentWallet(
            name=name,
            private_key=private_key,
            address=Account.from_key(private_key).address,
            created_at_ms=self._clock.time_ms(),
        )
        client = self._master.for_key(StaticKeyProvider(private_key))

        if previous is not None:
            await self._clients[name].close()
            logger.info(f"Rotated agent '{name}': {previous.address} -> {wallet.address}")
        else:
            logger.info(f"Approved agent '{name}' ({wallet.address})")

        self._wallets[name] = wallet
        self._clients[name] = client
        return wallet

    def get_agent(self, name: Optional[str] = None) -> Optional[AgentWallet]:
        return self._wallets.get(name or self.config.name)

    def active_agents(self) -> List[AgentWallet]:
        """Agents that have not yet reached their TTL."""
        now = self._clock.time_ms()
        return [w for w in self._wallets.values() if not w.is_expired(now, self.config.ttl)]

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
