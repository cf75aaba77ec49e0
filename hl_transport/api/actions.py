"""
Hyperliquid action model.

Every action carries exactly one signing domain, fixed at construction:
- L1: trading-engine actions (orders, cancels, leverage, TWAP, vault
  transfers, validator ops). Signed through a phantom agent over the
  msgpack hash of the action.
- USER: account-level actions (transfers, withdrawals, agent approval).
  Signed as EIP-712 typed data over the action's own fields.
- MULTI_SIG: an inner action plus co-signatures collected from the
  authorized users of a multi-sig account.

The builders below cover the common wire shapes. Anything else can be
expressed with l1_action() / user_action(); the signing and dispatch
machinery does not depend on the payload.

Usage:
    from hl_transport.api.actions import OrderRequest, LimitOrder, order

    action = order([
        OrderRequest(asset=0, is_buy=True, limit_px=65000.0, sz=0.01,
                     order_type=LimitOrder("Gtc")),
    ])
"""

import copy
import json
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .rate_limiter import RequestClass


class SigningDomain(Enum):
    """Signing domains an action can belong to."""
    L1 = "l1"
    USER = "user"
    MULTI_SIG = "multiSig"


# Fields the signer fills in on user-signed actions
CHAIN_FIELD = "hyperliquidChain"
SIGNATURE_CHAIN_FIELD = "signatureChainId"


@dataclass(frozen=True)
class UserSchema:
    """EIP-712 message layout of a user-signed action."""

    primary_type: str  # e.g. "UsdSend"
    fields: Tuple[Tuple[str, str], ...]  # (name, solidity type) in signing order
    nonce_field: str  # "time" or "nonce"

    @property
    def eip712_type(self) -> str:
        return f"HyperliquidTransaction:{self.primary_type}"

    def typed_fields(self) -> List[Dict[str, str]]:
        return [{"name": name, "type": type_} for name, type_ in self.fields]

    @property
    def field_names(self) -> List[str]:
        return [name for name, _ in self.fields]


@dataclass(frozen=True)
class Action:
    """
    Immutable, domain-tagged action.

    Construct through the builders in this module rather than directly.
    """

    domain: SigningDomain
    action_type: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    schema: Optional[UserSchema] = None
    vault_address: Optional[str] = None

    # MULTI_SIG only
    inner: Optional["Action"] = None
    multi_sig_user: Optional[str] = None
    outer_signer: Optional[str] = None
    signatures: Tuple[Mapping[str, Any], ...] = ()
    nonce: Optional[int] = None  # Fixed nonce the co-signers signed over

    def __post_init__(self):
        if not isinstance(self.domain, SigningDomain):
            raise TypeError(f"domain must be a SigningDomain, got {self.domain!r}")
        # Detach from the caller's containers
        object.__setattr__(
            self, "payload", MappingProxyType(copy.deepcopy(dict(self.payload)))
        )
        object.__setattr__(
            self, "signatures", tuple(dict(sig) for sig in self.signatures)
        )

    @property
    def request_class(self) -> RequestClass:
        """Rate-limit class this action is charged against."""
        if self.domain == SigningDomain.L1:
            return RequestClass.TRADING
        return RequestClass.ACCOUNT

    def l1_wire(self) -> Dict[str, Any]:
        """Wire form of an L1 action; "type" first, as the venue hashes it."""
        wire: Dict[str, Any] = {"type": self.action_type}
        wire.update(copy.deepcopy(dict(self.payload)))
        return wire

    def validate(self) -> List[str]:
        """
        Check the action is structurally complete for its domain.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if not self.action_type:
            errors.append("action_type is required")

        if self.domain == SigningDomain.L1:
            if self.schema is not None:
                errors.append("L1 actions do not carry a user schema")
            if self.vault_address is not None and not is_address(self.vault_address):
                errors.append(f"invalid vault address: {self.vault_address}")

        elif self.domain == SigningDomain.USER:
            if self.schema is None:
                errors.append(f"user action '{self.action_type}' has no schema")
            else:
                filled = {CHAIN_FIELD, self.schema.nonce_field}
                if self.schema.nonce_field not in self.schema.field_names:
                    errors.append(
                        f"nonce field '{self.schema.nonce_field}' missing from schema"
                    )
                for name in self.schema.field_names:
                    if name not in filled and name not in self.payload:
                        errors.append(
                            f"user action '{self.action_type}' missing field '{name}'"
                        )
            if self.vault_address is not None:
                errors.append("user actions cannot be sent on behalf of a vault")

        elif self.domain == SigningDomain.MULTI_SIG:
            if self.inner is None:
                errors.append("multi-sig action has no inner action")
            elif self.inner.domain == SigningDomain.MULTI_SIG:
                errors.append("multi-sig actions cannot be nested")
            else:
                errors.extend(f"inner: {e}" for e in self.inner.validate())
            if not self.multi_sig_user or not is_address(self.multi_sig_user):
                errors.append("multi-sig user address is required")
            if not self.outer_signer or not is_address(self.outer_signer):
                errors.append("outer signer address is required")
            if not self.signatures:
                errors.append("multi-sig action has no co-signatures")
            for i, sig in enumerate(self.signatures):
                if not {"r", "s", "v"} <= set(sig):
                    errors.append(f"signature {i} needs r, s and v")
            if self.nonce is None:
                errors.append("multi-sig action needs the nonce its co-signers signed")

        return errors


# ==========================================
# HELPERS
# ==========================================

def is_address(value: str) -> bool:
    """Check for a 0x-prefixed 20-byte hex address."""
    if not isinstance(value, str) or not value.startswith("0x") or len(value) != 42:
        return False
    try:
        int(value[2:], 16)
    except ValueError:
        return False
    return True


def float_to_wire(x: Union[float, int, Decimal, str]) -> str:
    """
    Format a price or size for the wire.

    At most 8 decimals, no trailing zeros, no exponent.

    Raises:
        ValueError: If the value cannot be represented without rounding
    """
    value = Decimal(str(x))
    rounded = value.quantize(Decimal("0.00000001"))
    if abs(rounded - value) >= Decimal("1e-12"):
        raise ValueError(f"float_to_wire causes rounding: {x}")
    if rounded == 0:
        return "0"
    return f"{rounded.normalize():f}"


def float_to_usd_int(x: Union[float, Decimal, str]) -> int:
    """Convert a USD amount to the venue's 6-decimal integer units."""
    scaled = Decimal(str(x)) * Decimal(1_000_000)
    if abs(scaled - scaled.to_integral_value()) >= Decimal("0.001"):
        raise ValueError(f"float_to_usd_int causes rounding: {x}")
    return int(scaled.to_integral_value())


def l1_action(
    action_type: str,
    payload: Optional[Mapping[str, Any]] = None,
    vault_address: Optional[str] = None,
) -> Action:
    """Build any L1 action from its wire type and fields."""
    return Action(
        domain=SigningDomain.L1,
        action_type=action_type,
        payload=payload or {},
        vault_address=vault_address,
    )


def user_action(
    action_type: str,
    schema: UserSchema,
    payload: Mapping[str, Any],
) -> Action:
    """Build any user-signed action from its wire type, schema and fields."""
    return Action(
        domain=SigningDomain.USER,
        action_type=action_type,
        payload=payload,
        schema=schema,
    )


# ==========================================
# ORDER TYPES
# ==========================================

@dataclass(frozen=True)
class LimitOrder:
    """Limit order time-in-force: Gtc, Ioc or Alo."""
    tif: str = "Gtc"

    def to_wire(self) -> Dict[str, Any]:
        if self.tif not in ("Gtc", "Ioc", "Alo"):
            raise ValueError(f"Unknown time in force: {self.tif}")
        return {"limit": {"tif": self.tif}}


@dataclass(frozen=True)
class TriggerOrder:
    """Stop-loss / take-profit trigger."""
    trigger_px: float
    is_market: bool = True
    tpsl: str = "sl"  # "tp" or "sl"

    def to_wire(self) -> Dict[str, Any]:
        if self.tpsl not in ("tp", "sl"):
            raise ValueError(f"tpsl must be 'tp' or 'sl', got {self.tpsl}")
        return {
            "trigger": {
                "isMarket": self.is_market,
                "triggerPx": float_to_wire(self.trigger_px),
                "tpsl": self.tpsl,
            }
        }


@dataclass(frozen=True)
class OrderRequest:
    """Single order in an order or modify action."""
    asset: int
    is_buy: bool
    limit_px: Union[float, Decimal, str]
    sz: Union[float, Decimal, str]
    order_type: Union[LimitOrder, TriggerOrder] = LimitOrder()
    reduce_only: bool = False
    cloid: Optional[str] = None  # 16-byte hex client order id

    @property
    def is_alo(self) -> bool:
        """Add-liquidity-only (post-only) limit order."""
        return isinstance(self.order_type, LimitOrder) and self.order_type.tif.lower() == "alo"

    def to_wire(self) -> Dict[str, Any]:
        wire = {
            "a": self.asset,
            "b": self.is_buy,
            "p": float_to_wire(self.limit_px),
            "s": float_to_wire(self.sz),
            "r": self.reduce_only,
            "t": self.order_type.to_wire(),
        }
        if self.cloid is not None:
            if not _is_cloid(self.cloid):
                raise ValueError(f"cloid must be 0x followed by 32 hex chars: {self.cloid}")
            wire["c"] = self.cloid
        return wire


def _is_cloid(value: str) -> bool:
    if not value.startswith("0x") or len(value) != 34:
        return False
    try:
        int(value[2:], 16)
    except ValueError:
        return False
    return True


# ==========================================
# L1 ACTIONS
# ==========================================

def order(
    orders: Sequence[OrderRequest],
    grouping: str = "na",
    builder: Optional[Tuple[str, int]] = None,
    vault_address: Optional[str] = None,
) -> Action:
    """
    Place one or more orders.

    Args:
        orders: Orders to place
        grouping: "na", "normalTpsl" or "positionTpsl"
        builder: Optional (builder address, fee in tenths of a basis point)
        vault_address: Trade on behalf of this vault / sub-account
    """
    payload: Dict[str, Any] = {
        "orders": [o.to_wire() for o in orders],
        "grouping": grouping,
    }
    if builder is not None:
        address, fee = builder
        payload["builder"] = {"b": address.lower(), "f": fee}
    return l1_action("order", payload, vault_address)


def cancel(
    cancels: Sequence[Tuple[int, int]],
    vault_address: Optional[str] = None,
) -> Action:
    """Cancel orders by (asset, oid)."""
    return l1_action(
        "cancel",
        {"cancels": [{"a": asset, "o": oid} for asset, oid in cancels]},
        vault_address,
    )


def cancel_by_cloid(
    cancels: Sequence[Tuple[int, str]],
    vault_address: Optional[str] = None,
) -> Action:
    """Cancel orders by (asset, client order id)."""
    return l1_action(
        "cancelByCloid",
        {"cancels": [{"asset": asset, "cloid": cloid} for asset, cloid in cancels]},
        vault_address,
    )


def modify(
    oid: Union[int, str],
    new_order: OrderRequest,
    vault_address: Optional[str] = None,
) -> Action:
    """Modify a resting order (oid may be an order id or a cloid)."""
    return l1_action("modify", {"oid": oid, "order": new_order.to_wire()}, vault_address)


def batch_modify(
    modifies: Sequence[Tuple[Union[int, str], OrderRequest]],
    vault_address: Optional[str] = None,
) -> Action:
    return l1_action(
        "batchModify",
        {"modifies": [{"oid": oid, "order": o.to_wire()} for oid, o in modifies]},
        vault_address,
    )


def update_leverage(
    asset: int,
    leverage: int,
    is_cross: bool = True,
    vault_address: Optional[str] = None,
) -> Action:
    return l1_action(
        "updateLeverage",
        {"asset": asset, "isCross": is_cross, "leverage": leverage},
        vault_address,
    )


def update_isolated_margin(
    asset: int,
    amount_usd: Union[float, Decimal, str],
    vault_address: Optional[str] = None,
) -> Action:
    """Add (positive) or remove (negative) isolated margin."""
    return l1_action(
        "updateIsolatedMargin",
        {"asset": asset, "isBuy": True, "ntli": float_to_usd_int(amount_usd)},
        vault_address,
    )


def schedule_cancel(
    time_ms: Optional[int] = None,
    vault_address: Optional[str] = None,
) -> Action:
    """Schedule a cancel-all at time_ms; None clears the schedule."""
    payload = {} if time_ms is None else {"time": time_ms}
    return l1_action("scheduleCancel", payload, vault_address)


def twap_order(
    asset: int,
    is_buy: bool,
    sz: Union[float, Decimal, str],
    minutes: int,
    reduce_only: bool = False,
    randomize: bool = False,
    vault_address: Optional[str] = None,
) -> Action:
    return l1_action(
        "twapOrder",
        {
            "twap": {
                "a": asset,
                "b": is_buy,
                "s": float_to_wire(sz),
                "r": reduce_only,
                "m": minutes,
                "t": randomize,
            }
        },
        vault_address,
    )


def twap_cancel(asset: int, twap_id: int, vault_address: Optional[str] = None) -> Action:
    return l1_action("twapCancel", {"a": asset, "t": twap_id}, vault_address)


def vault_transfer(vault: str, is_deposit: bool, usd: Union[float, Decimal, str]) -> Action:
    return l1_action(
        "vaultTransfer",
        {"vaultAddress": vault, "isDeposit": is_deposit, "usd": float_to_usd_int(usd)},
    )


def set_referrer(code: str) -> Action:
    return l1_action("setReferrer", {"code": code})


def create_sub_account(name: str) -> Action:
    return l1_action("createSubAccount", {"name": name})


def sub_account_transfer(
    sub_account_user: str,
    is_deposit: bool,
    usd: Union[float, Decimal, str],
) -> Action:
    return l1_action(
        "subAccountTransfer",
        {
            "subAccountUser": sub_account_user,
            "isDeposit": is_deposit,
            "usd": float_to_usd_int(usd),
        },
    )


def sub_account_spot_transfer(
    sub_account_user: str,
    is_deposit: bool,
    token: str,
    amount: Union[float, Decimal, str],
) -> Action:
    """Move a spot token between this account and a sub-account."""
    return l1_action(
        "subAccountSpotTransfer",
        {
            "subAccountUser": sub_account_user.lower(),
            "isDeposit": is_deposit,
            "token": token,
            "amount": str(amount),
        },
    )


def spot_deploy_register_token(
    token_name: str,
    sz_decimals: int,
    wei_decimals: int,
    max_gas: int,
    full_name: str,
) -> Action:
    """First step of a spot deployment: register the token in the gas auction."""
    return l1_action(
        "spotDeploy",
        {
            "registerToken2": {
                "spec": {"name": token_name, "szDecimals": sz_decimals, "weiDecimals": wei_decimals},
                "maxGas": max_gas,
                "fullName": full_name,
            }
        },
    )


def _spot_deploy(step: str, body: Mapping[str, Any]) -> Action:
    return l1_action("spotDeploy", {step: dict(body)})


def spot_deploy_user_genesis(
    token: int,
    user_and_wei: Sequence[Tuple[str, str]],
    existing_token_and_wei: Sequence[Tuple[int, str]] = (),
) -> Action:
    """Initial balances of a registered token, per user and per existing token."""
    return _spot_deploy(
        "userGenesis",
        {
            "token": token,
            "userAndWei": [[user.lower(), wei] for user, wei in user_and_wei],
            "existingTokenAndWei": [[t, wei] for t, wei in existing_token_and_wei],
        },
    )


def spot_deploy_freeze_user(token: int, user: str, freeze: bool) -> Action:
    return _spot_deploy("freezeUser", {"token": token, "user": user.lower(), "freeze": freeze})


def spot_deploy_enable_freeze_privilege(token: int) -> Action:
    return _spot_deploy("enableFreezePrivilege", {"token": token})


def spot_deploy_revoke_freeze_privilege(token: int) -> Action:
    return _spot_deploy("revokeFreezePrivilege", {"token": token})


def spot_deploy_enable_quote_token(token: int) -> Action:
    return _spot_deploy("enableQuoteToken", {"token": token})


def spot_deploy_genesis(token: int, max_supply: str, no_hyperliquidity: bool = False) -> Action:
    body: Dict[str, Any] = {"token": token, "maxSupply": max_supply}
    if no_hyperliquidity:
        body["noHyperliquidity"] = True
    return _spot_deploy("genesis", body)


def spot_deploy_register_spot(base_token: int, quote_token: int) -> Action:
    """Register the base/quote trading pair."""
    return _spot_deploy("registerSpot", {"tokens": [base_token, quote_token]})


def spot_deploy_register_hyperliquidity(
    spot: int,
    start_px: Union[float, Decimal, str],
    order_sz: Union[float, Decimal, str],
    n_orders: int,
    n_seeded_levels: Optional[int] = None,
) -> Action:
    """Seed the hyperliquidity strategy of a spot pair."""
    body: Dict[str, Any] = {
        "spot": spot,
        "startPx": str(start_px),
        "orderSz": str(order_sz),
        "nOrders": n_orders,
    }
    if n_seeded_levels is not None:
        body["nSeededLevels"] = n_seeded_levels
    return _spot_deploy("registerHyperliquidity", body)


def spot_deploy_set_deployer_trading_fee_share(token: int, share: str) -> Action:
    """Deployer's share of trading fees, e.g. "100%"."""
    return _spot_deploy("setDeployerTradingFeeShare", {"token": token, "share": share})


def perp_deploy_register_asset(
    dex: str,
    max_gas: Optional[int],
    coin: str,
    sz_decimals: int,
    oracle_px: str,
    margin_table_id: int,
    only_isolated: bool,
    schema: Optional[Mapping[str, Any]] = None,
) -> Action:
    """Register a perp asset on a builder-deployed dex."""
    return l1_action(
        "perpDeploy",
        {
            "registerAsset": {
                "maxGas": max_gas,
                "assetRequest": {
                    "coin": coin,
                    "szDecimals": sz_decimals,
                    "oraclePx": oracle_px,
                    "marginTableId": margin_table_id,
                    "onlyIsolated": only_isolated,
                },
                "dex": dex,
                "schema": dict(schema) if schema is not None else None,
            }
        },
    )


def perp_deploy_set_oracle(
    dex: str,
    oracle_pxs: Mapping[str, str],
    all_mark_pxs: Sequence[Mapping[str, str]],
    external_perp_pxs: Mapping[str, str],
) -> Action:
    """Publish oracle and mark prices for a builder-deployed dex (coins sorted)."""
    return l1_action(
        "perpDeploy",
        {
            "setOracle": {
                "dex": dex,
                "oraclePxs": sorted([coin, px] for coin, px in oracle_pxs.items()),
                "markPxs": [
                    sorted([coin, px] for coin, px in mark_pxs.items())
                    for mark_pxs in all_mark_pxs
                ],
                "externalPerpPxs": sorted(
                    [coin, px] for coin, px in external_perp_pxs.items()
                ),
            }
        },
    )


def c_signer_jail_self() -> Action:
    return l1_action("CSignerAction", {"jailSelf": None})


def c_signer_unjail_self() -> Action:
    return l1_action("CSignerAction", {"unjailSelf": None})


def c_validator_unregister() -> Action:
    return l1_action("CValidatorAction", {"unregister": None})


def c_validator_register(
    node_ip: str,
    name: str,
    description: str,
    delegations_disabled: bool,
    commission_bps: int,
    signer: str,
    unjailed: bool,
    initial_wei: int,
) -> Action:
    """Register a validator with its profile and self-delegation."""
    return l1_action(
        "CValidatorAction",
        {
            "register": {
                "profile": {
                    "node_ip": {"Ip": node_ip},
                    "name": name,
                    "description": description,
                    "delegations_disabled": delegations_disabled,
                    "commission_bps": commission_bps,
                    "signer": signer.lower(),
                },
                "unjailed": unjailed,
                "initial_wei": initial_wei,
            }
        },
    )


def c_validator_change_profile(
    node_ip: Optional[str] = None,
    name: Optional[str] = None,
    description: Optional[str] = None,
    unjailed: bool = False,
    disable_delegations: Optional[bool] = None,
    commission_bps: Optional[int] = None,
    signer: Optional[str] = None,
) -> Action:
    """Update a validator profile; None leaves a field unchanged."""
    return l1_action(
        "CValidatorAction",
        {
            "changeProfile": {
                "node_ip": {"Ip": node_ip} if node_ip is not None else None,
                "name": name,
                "description": description,
                "unjailed": unjailed,
                "disable_delegations": disable_delegations,
                "commission_bps": commission_bps,
                "signer": signer.lower() if signer is not None else None,
            }
        },
    )


def use_big_blocks(enable: bool) -> Action:
    return l1_action("evmUserModify", {"usingBigBlocks": enable})


def agent_enable_dex_abstraction() -> Action:
    """Let the signing agent use dex abstraction (collateral shared across dexes)."""
    return l1_action("agentEnableDexAbstraction")


def noop() -> Action:
    """Consume a nonce without side effects (e.g. to invalidate an in-flight one)."""
    return l1_action("noop")


# ==========================================
# USER-SIGNED ACTIONS
# ==========================================

USD_SEND = UserSchema(
    "UsdSend",
    (("hyperliquidChain", "string"), ("destination", "string"),
     ("amount", "string"), ("time", "uint64")),
    nonce_field="time",
)

SPOT_SEND = UserSchema(
    "SpotSend",
    (("hyperliquidChain", "string"), ("destination", "string"),
     ("token", "string"), ("amount", "string"), ("time", "uint64")),
    nonce_field="time",
)

WITHDRAW = UserSchema(
    "Withdraw",
    (("hyperliquidChain", "string"), ("destination", "string"),
     ("amount", "string"), ("time", "uint64")),
    nonce_field="time",
)

USD_CLASS_TRANSFER = UserSchema(
    "UsdClassTransfer",
    (("hyperliquidChain", "string"), ("amount", "string"),
     ("toPerp", "bool"), ("nonce", "uint64")),
    nonce_field="nonce",
)

TOKEN_DELEGATE = UserSchema(
    "TokenDelegate",
    (("hyperliquidChain", "string"), ("validator", "address"),
     ("wei", "uint64"), ("isUndelegate", "bool"), ("nonce", "uint64")),
    nonce_field="nonce",
)

APPROVE_AGENT = UserSchema(
    "ApproveAgent",
    (("hyperliquidChain", "string"), ("agentAddress", "address"),
     ("agentName", "string"), ("nonce", "uint64")),
    nonce_field="nonce",
)

APPROVE_BUILDER_FEE = UserSchema(
    "ApproveBuilderFee",
    (("hyperliquidChain", "string"), ("maxFeeRate", "string"),
     ("builder", "address"), ("nonce", "uint64")),
    nonce_field="nonce",
)

CONVERT_TO_MULTI_SIG_USER = UserSchema(
    "ConvertToMultiSigUser",
    (("hyperliquidChain", "string"), ("signers", "string"), ("nonce", "uint64")),
    nonce_field="nonce",
)

SEND_MULTI_SIG = UserSchema(
    "SendMultiSig",
    (("hyperliquidChain", "string"), ("multiSigActionHash", "bytes32"),
     ("nonce", "uint64")),
    nonce_field="nonce",
)


def usd_send(destination: str, amount: Union[float, Decimal, str]) -> Action:
    """Send USDC to another address on the venue."""
    return user_action(
        "usdSend", USD_SEND, {"destination": destination, "amount": str(amount)}
    )


def spot_send(destination: str, token: str, amount: Union[float, Decimal, str]) -> Action:
    """Send a spot token; token is "NAME:0x<token id>"."""
    return user_action(
        "spotSend",
        SPOT_SEND,
        {"destination": destination, "token": token, "amount": str(amount)},
    )


def withdraw(destination: str, amount: Union[float, Decimal, str]) -> Action:
    """Withdraw USDC to the bridge."""
    return user_action(
        "withdraw3", WITHDRAW, {"destination": destination, "amount": str(amount)}
    )


def usd_class_transfer(amount: Union[float, Decimal, str], to_perp: bool) -> Action:
    """Move USDC between the spot and perp balances."""
    return user_action(
        "usdClassTransfer",
        USD_CLASS_TRANSFER,
        {"amount": str(amount), "toPerp": to_perp},
    )


def token_delegate(validator: str, wei: int, is_undelegate: bool = False) -> Action:
    return user_action(
        "tokenDelegate",
        TOKEN_DELEGATE,
        {"validator": validator, "wei": wei, "isUndelegate": is_undelegate},
    )


def approve_agent(agent_address: str, agent_name: Optional[str] = None) -> Action:
    """Authorize an agent key to sign L1 actions for this account."""
    return user_action(
        "approveAgent",
        APPROVE_AGENT,
        {"agentAddress": agent_address, "agentName": agent_name or ""},
    )


def approve_builder_fee(builder: str, max_fee_rate: str) -> Action:
    """Allow a builder to charge up to max_fee_rate (e.g. "0.001%")."""
    return user_action(
        "approveBuilderFee",
        APPROVE_BUILDER_FEE,
        {"maxFeeRate": max_fee_rate, "builder": builder},
    )


def convert_to_multi_sig_user(authorized_users: Sequence[str], threshold: int) -> Action:
    """Turn this account into a multi-sig account; signers are sorted."""
    if threshold < 1 or threshold > len(authorized_users):
        raise ValueError("threshold must be between 1 and the number of signers")
    signers = {
        "authorizedUsers": sorted(user.lower() for user in authorized_users),
        "threshold": threshold,
    }
    return user_action(
        "convertToMultiSigUser",
        CONVERT_TO_MULTI_SIG_USER,
        {"signers": json.dumps(signers, separators=(",", ":"))},
    )


# ==========================================
# MULTI-SIG
# ==========================================

def multi_sig(
    multi_sig_user: str,
    outer_signer: str,
    inner: Action,
    signatures: Sequence[Mapping[str, Any]],
    nonce: int,
    vault_address: Optional[str] = None,
) -> Action:
    """
    Wrap an action with the co-signatures of a multi-sig account.

    Args:
        multi_sig_user: The multi-sig account
        outer_signer: Authorized user submitting the action (the local key)
        inner: Action to execute on behalf of the multi-sig account
        signatures: Co-signatures from ActionSigner.co_sign
        nonce: Nonce the co-signers signed over
        vault_address: Vault for L1 inner actions
    """
    return Action(
        domain=SigningDomain.MULTI_SIG,
        action_type="multiSig",
        inner=inner,
        multi_sig_user=multi_sig_user.lower(),
        outer_signer=outer_signer.lower(),
        signatures=tuple(signatures),
        nonce=nonce,
        vault_address=vault_address,
    )
