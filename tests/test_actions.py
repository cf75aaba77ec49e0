"""
Tests for the action model and builders.
"""

import json
from decimal import Decimal

import pytest

from hl_transport.api import actions
from hl_transport.api.actions import (
    Action,
    LimitOrder,
    OrderRequest,
    SigningDomain,
    TriggerOrder,
    float_to_usd_int,
    float_to_wire,
)
from hl_transport.api.rate_limiter import RequestClass

ADDRESS_A = "0x" + "AA" * 20
ADDRESS_B = "0x" + "11" * 20


class TestFloatToWire:
    """Tests for price/size formatting."""

    @pytest.mark.parametrize("value,expected", [
        (1234.5, "1234.5"),
        ("0.10", "0.1"),
        (65000, "65000"),
        (Decimal("0.00000001"), "0.00000001"),
        (0.0, "0"),
        (-2.5, "-2.5"),
    ])
    def test_formats(self, value, expected):
        assert float_to_wire(value) == expected

    def test_rounding_refused(self):
        """Test that more than 8 decimals is an error, not silent rounding."""
        with pytest.raises(ValueError, match="rounding"):
            float_to_wire("0.123456789")

    def test_usd_int(self):
        assert float_to_usd_int("1.5") == 1_500_000
        assert float_to_usd_int(-2) == -2_000_000

    def test_usd_int_rounding_refused(self):
        with pytest.raises(ValueError):
            float_to_usd_int("0.0000001")


class TestAction:
    """Tests for the Action value type."""

    def test_immutable(self):
        """Test that actions cannot be mutated after construction."""
        action = actions.noop()
        with pytest.raises(Exception):
            action.action_type = "other"
        with pytest.raises(TypeError):
            action.payload["x"] = 1

    def test_detached_from_caller_payload(self):
        """Test that later changes to the caller's dict do not leak in."""
        payload = {"cancels": [{"a": 0, "o": 1}]}
        action = actions.l1_action("cancel", payload)

        payload["cancels"].append({"a": 0, "o": 2})

        assert len(action.payload["cancels"]) == 1

    def test_domain_required(self):
        with pytest.raises(TypeError):
            Action(domain="l1", action_type="noop")

    def test_request_class(self):
        """Test that trading and account actions draw on different buckets."""
        assert actions.noop().request_class == RequestClass.TRADING
        assert actions.usd_send(ADDRESS_B, "1").request_class == RequestClass.ACCOUNT

    def test_l1_wire_type_first(self):
        wire = actions.update_leverage(2, 10, is_cross=False).l1_wire()
        assert wire == {"type": "updateLeverage", "asset": 2, "isCross": False, "leverage": 10}
        assert list(wire)[0] == "type"

    def test_invalid_vault(self):
        action = actions.cancel([(0, 1)], vault_address="0x1234")
        assert any("vault" in e for e in action.validate())


class TestOrderBuilders:
    """Tests for order-related builders."""

    def test_limit_order(self):
        action = actions.order([
            OrderRequest(asset=0, is_buy=True, limit_px=65000, sz=0.01, order_type=LimitOrder("Ioc")),
        ])
        assert action.domain == SigningDomain.L1
        assert action.payload["orders"][0]["t"] == {"limit": {"tif": "Ioc"}}
        assert action.payload["grouping"] == "na"

    def test_trigger_order(self):
        request = OrderRequest(
            asset=1, is_buy=False, limit_px=100, sz=1,
            order_type=TriggerOrder(trigger_px=99.5, is_market=True, tpsl="sl"),
            reduce_only=True,
        )
        wire = request.to_wire()
        assert wire["r"] is True
        assert wire["t"] == {"trigger": {"isMarket": True, "triggerPx": "99.5", "tpsl": "sl"}}

    def test_builder_fee(self):
        action = actions.order(
            [OrderRequest(asset=0, is_buy=True, limit_px=1, sz=1)],
            builder=(ADDRESS_A, 10),
        )
        assert action.payload["builder"] == {"b": ADDRESS_A.lower(), "f": 10}

    def test_bad_cloid(self):
        with pytest.raises(ValueError, match="cloid"):
            OrderRequest(asset=0, is_buy=True, limit_px=1, sz=1, cloid="abc").to_wire()

    @pytest.mark.parametrize("order_type,expected", [
        (LimitOrder("Alo"), True),
        (LimitOrder("Gtc"), False),
        (TriggerOrder(trigger_px=1, is_market=False, tpsl="tp"), False),
    ])
    def test_is_alo(self, order_type, expected):
        assert OrderRequest(asset=0, is_buy=True, limit_px=1, sz=1, order_type=order_type).is_alo is expected

    def test_bad_tif(self):
        with pytest.raises(ValueError):
            LimitOrder("Fok").to_wire()

    def test_cancel_by_cloid(self):
        cloid = "0x" + "0f" * 16
        action = actions.cancel_by_cloid([(4, cloid)])
        assert action.payload == {"cancels": [{"asset": 4, "cloid": cloid}]}

    def test_batch_modify(self):
        new = OrderRequest(asset=0, is_buy=True, limit_px=2, sz=3)
        action = actions.batch_modify([(7, new)])
        assert action.action_type == "batchModify"
        assert action.payload["modifies"][0]["oid"] == 7

    def test_schedule_cancel_clear(self):
        assert dict(actions.schedule_cancel().payload) == {}
        assert dict(actions.schedule_cancel(123).payload) == {"time": 123}

    def test_twap_order(self):
        twap = actions.twap_order(0, True, "1.5", minutes=30).payload["twap"]
        assert twap == {"a": 0, "b": True, "s": "1.5", "r": False, "m": 30, "t": False}


class TestOtherL1Builders:
    """Tests for account and validator L1 actions."""

    def test_vault_transfer_uses_usd_units(self):
        action = actions.vault_transfer(ADDRESS_B, True, "10")
        assert action.payload["usd"] == 10_000_000

    def test_isolated_margin(self):
        action = actions.update_isolated_margin(3, "-2.5")
        assert action.payload == {"asset": 3, "isBuy": True, "ntli": -2_500_000}

    def test_validator_actions(self):
        assert dict(actions.c_signer_jail_self().payload) == {"jailSelf": None}
        assert dict(actions.c_signer_unjail_self().payload) == {"unjailSelf": None}
        assert actions.c_validator_unregister().action_type == "CValidatorAction"

    def test_big_blocks(self):
        action = actions.use_big_blocks(True)
        assert action.l1_wire() == {"type": "evmUserModify", "usingBigBlocks": True}

    def test_spot_deploy_register_token(self):
        action = actions.spot_deploy_register_token("TEST", 2, 8, 1_000_000, "Test Token")
        register = action.payload["registerToken2"]
        assert action.action_type == "spotDeploy"
        assert register["spec"] == {"name": "TEST", "szDecimals": 2, "weiDecimals": 8}
        assert register["maxGas"] == 1_000_000

    def test_perp_deploy_register_asset(self):
        action = actions.perp_deploy_register_asset(
            "dex", None, "dex:COIN", 2, "10.0", 1, only_isolated=False,
        )
        register = action.payload["registerAsset"]
        assert action.action_type == "perpDeploy"
        assert register["assetRequest"]["coin"] == "dex:COIN"
        assert register["schema"] is None


    def test_sub_account_spot_transfer(self):
        action = actions.sub_account_spot_transfer(ADDRESS_A, False, "PURR:0xc4bf3f870c0e9465323c0b6ed28096c2", "12.5")
        assert action.payload == {
            "subAccountUser": ADDRESS_A.lower(),
            "isDeposit": False,
            "token": "PURR:0xc4bf3f870c0e9465323c0b6ed28096c2",
            "amount": "12.5",
        }

    def test_spot_deploy_steps(self):
        genesis = actions.spot_deploy_user_genesis(5, [(ADDRESS_A, "1000")], [(0, "7")])
        assert genesis.payload["userGenesis"] == {
            "token": 5,
            "userAndWei": [[ADDRESS_A.lower(), "1000"]],
            "existingTokenAndWei": [[0, "7"]],
        }
        assert actions.spot_deploy_freeze_user(5, ADDRESS_A, True).payload["freezeUser"]["user"] == ADDRESS_A.lower()
        assert dict(actions.spot_deploy_enable_quote_token(5).payload) == {"enableQuoteToken": {"token": 5}}
        assert actions.spot_deploy_genesis(5, "1000").payload["genesis"] == {"token": 5, "maxSupply": "1000"}
        assert actions.spot_deploy_genesis(5, "1000", no_hyperliquidity=True).payload["genesis"]["noHyperliquidity"] is True
        assert actions.spot_deploy_register_spot(5, 0).payload["registerSpot"] == {"tokens": [5, 0]}
        assert actions.spot_deploy_revoke_freeze_privilege(5).action_type == "spotDeploy"

    def test_register_hyperliquidity(self):
        body = actions.spot_deploy_register_hyperliquidity(9, 1.5, "100", 10).payload["registerHyperliquidity"]
        assert body == {"spot": 9, "startPx": "1.5", "orderSz": "100", "nOrders": 10}
        seeded = actions.spot_deploy_register_hyperliquidity(9, 1.5, "100", 10, n_seeded_levels=3)
        assert seeded.payload["registerHyperliquidity"]["nSeededLevels"] == 3

    def test_perp_deploy_set_oracle_sorted(self):
        action = actions.perp_deploy_set_oracle(
            "dex",
            {"dex:B": "2", "dex:A": "1"},
            [{"dex:B": "2.1", "dex:A": "1.1"}],
            {"dex:B": "2.2"},
        )
        oracle = action.payload["setOracle"]
        assert oracle["oraclePxs"] == [["dex:A", "1"], ["dex:B", "2"]]
        assert oracle["markPxs"] == [[["dex:A", "1.1"], ["dex:B", "2.1"]]]
        assert oracle["externalPerpPxs"] == [["dex:B", "2.2"]]

    def test_validator_profile(self):
        register = actions.c_validator_register(
            "1.2.3.4", "node", "desc", False, 100, ADDRESS_A, True, 10**8,
        ).payload["register"]
        assert register["profile"]["node_ip"] == {"Ip": "1.2.3.4"}
        assert register["profile"]["signer"] == ADDRESS_A.lower()
        assert register["initial_wei"] == 10**8

        change = actions.c_validator_change_profile(commission_bps=50).payload["changeProfile"]
        assert change["node_ip"] is None
        assert change["commission_bps"] == 50
        assert change["unjailed"] is False

    def test_agent_enable_dex_abstraction(self):
        action = actions.agent_enable_dex_abstraction()
        assert action.l1_wire() == {"type": "agentEnableDexAbstraction"}


class TestUserBuilders:
    """Tests for user-signed action builders."""

    def test_user_actions_validate(self):
        """Test that every builder yields a complete user action."""
        built = [
            actions.usd_send(ADDRESS_B, "1"),
            actions.spot_send(ADDRESS_B, "PURR:0x" + "00" * 16, "2"),
            actions.withdraw(ADDRESS_B, "3"),
            actions.usd_class_transfer("4", to_perp=False),
            actions.token_delegate(ADDRESS_B, 100),
            actions.approve_agent(ADDRESS_B, "bot"),
            actions.approve_builder_fee(ADDRESS_B, "0.001%"),
            actions.convert_to_multi_sig_user([ADDRESS_A, ADDRESS_B], 1),
        ]
        for action in built:
            assert action.domain == SigningDomain.USER
            assert action.validate() == [], action.action_type

    def test_withdraw_type(self):
        assert actions.withdraw(ADDRESS_B, "1").action_type == "withdraw3"

    def test_approve_agent_without_name(self):
        assert actions.approve_agent(ADDRESS_B).payload["agentName"] == ""

    def test_convert_to_multi_sig_sorts_signers(self):
        """Test that authorized users are lowercased and sorted."""
        action = actions.convert_to_multi_sig_user([ADDRESS_A, ADDRESS_B], 2)
        signers = json.loads(action.payload["signers"])

        assert signers["authorizedUsers"] == sorted([ADDRESS_A.lower(), ADDRESS_B.lower()])
        assert signers["threshold"] == 2

    def test_convert_to_multi_sig_threshold(self):
        with pytest.raises(ValueError, match="threshold"):
            actions.convert_to_multi_sig_user([ADDRESS_A], 2)


class TestMultiSigBuilder:
    """Tests for multi_sig()."""

    def test_addresses_lowercased(self):
        sig = {"r": "0x1", "s": "0x2", "v": 27}
        action = actions.multi_sig(ADDRESS_A, ADDRESS_A, actions.noop(), [sig], 5)

        assert action.domain == SigningDomain.MULTI_SIG
        assert action.multi_sig_user == ADDRESS_A.lower()
        assert action.nonce == 5
        assert action.validate() == []

    def test_signature_fields_checked(self):
        action = actions.multi_sig(ADDRESS_A, ADDRESS_A, actions.noop(), [{"r": "0x1"}], 5)
        assert any("r, s and v" in e for e in action.validate())
