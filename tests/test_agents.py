"""
Tests for agent approval and rotation.
"""

import pytest

from config.settings import AgentConfig, ClientConfig, DispatchConfig
from hl_transport.api.agents import AgentManager, AgentWallet
from hl_transport.api.auth import StaticKeyProvider
from hl_transport.api.errors import ActionRejected
from hl_transport.api.exchange import ExchangeClient

TEST_PRIVATE_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"


@pytest.fixture
def master(exchange_transport, clock):
    config = ClientConfig(dispatch=DispatchConfig(base_delay=0.0, jitter=False))
    return ExchangeClient.from_config(
        config, StaticKeyProvider(TEST_PRIVATE_KEY), transport=exchange_transport, clock=clock
    )


def approvals(transport):
    return [p["action"] for p in transport.payloads if p["action"]["type"] == "approveAgent"]


class TestAgentWallet:
    """Tests for AgentWallet."""

    def test_expiry(self):
        wallet = AgentWallet("bot", "0x" + "44" * 32, "0xabc", created_at_ms=1_000)

        assert not wallet.is_expired(60_999, ttl=60)
        assert wallet.is_expired(61_000, ttl=60)
        assert "44" * 32 not in repr(wallet)


class TestAgentManager:
    """Tests for AgentManager."""

    @pytest.mark.asyncio
    async def test_approves_once(self, master, exchange_transport, clock):
        manager = AgentManager(master, AgentConfig(name="bot", ttl=60), clock)
        exchange_transport.queue_ok()

        first = await manager.client()
        second = await manager.client()

        wallet = manager.get_agent()
        assert first is second
        assert first.address == wallet.address
        assert first.address != master.address
        (approval,) = approvals(exchange_transport)
        assert approval["agentAddress"] == wallet.address
        assert approval["agentName"] == "bot"
        assert manager.active_agents() == [wallet]

    @pytest.mark.asyncio
    async def test_rotates_after_ttl(self, master, exchange_transport, clock):
        manager = AgentManager(master, AgentConfig(name="bot", ttl=60), clock)
        exchange_transport.queue_ok()
        exchange_transport.queue_ok()

        before = await manager.client()
        clock.advance(30)
        assert await manager.client() is before
        clock.advance(30)
        assert manager.active_agents() == []
        after = await manager.client()

        assert after is not before
        first, second = approvals(exchange_transport)
        assert first["agentName"] == second["agentName"] == "bot"
        assert first["agentAddress"] != second["agentAddress"]
        assert manager.get_agent().created_at_ms == clock.time_ms()

    @pytest.mark.asyncio
    async def test_explicit_rotate(self, master, exchange_transport, clock):
        manager = AgentManager(master, clock=clock)
        exchange_transport.queue_ok()
        exchange_transport.queue_ok()

        await manager.client()
        old = manager.get_agent()
        new = await manager.rotate()

        assert new.address != old.address
        assert manager.get_agent() is new

    @pytest.mark.asyncio
    async def test_named_agents_independent(self, master, exchange_transport, clock):
        manager = AgentManager(master, clock=clock)
        exchange_transport.queue_ok()
        exchange_transport.queue_ok()

        maker = await manager.client("maker")
        taker = await manager.client("taker")

        assert maker.address != taker.address
        assert len(manager.active_agents()) == 2

    @pytest.mark.asyncio
    async def test_rejected_approval(self, master, exchange_transport, clock):
        manager = AgentManager(master, clock=clock)
        exchange_transport.queue(200, {"status": "err", "response": "Must deposit before performing actions."})

        with pytest.raises(ActionRejected):
            await manager.client()
        assert manager.get_agent() is None

    @pytest.mark.asyncio
    async def test_agent_signs_l1_actions(self, master, exchange_transport, clock):
        """Test that the agent client charges the agent key's nonce sequence."""
        manager = AgentManager(master, clock=clock)
        exchange_transport.queue_ok()
        exchange_transport.queue_ok()
        exchange_transport.queue_ok()

        agent = await manager.client()
        a = await agent.schedule_cancel()
        b = await master.schedule_cancel()

        assert a.request.action.action_type == "scheduleCancel"
        assert agent.dispatcher.sequencer is not master.dispatcher.sequencer
        assert a.nonce == clock.time_ms()
        assert b.nonce > a.nonce
