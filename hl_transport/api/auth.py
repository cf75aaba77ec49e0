"""
Hyperliquid action signing.

Implements EIP-712 signing for the venue's three signing domains:
- L1 actions: keccak(msgpack(action) + nonce + vault flag) becomes the
  connectionId of a phantom "Agent" message signed in the "Exchange"
  domain (chain id 1337). The agent source ("a" mainnet, "b" testnet)
  separates networks.
- User actions: the action itself is the typed message, primary type
  "HyperliquidTransaction:<Name>", signed in the
  "HyperliquidSignTransaction" domain with the signature chain id.
- Multi-sig actions: the outer signer signs a "SendMultiSig" envelope over
  the L1 hash of the multi-sig payload.

Key material is fetched from a KeyProvider on every signature and never
kept on the signer.

Usage:
    signer = ActionSigner(EnvKeyProvider(), NetworkConfig())
    request = signer.sign(action, nonce)
    session.post(url, data=request.body)
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol

import msgpack
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import keccak

from config.settings import NetworkConfig

from .actions import Action, SEND_MULTI_SIG, SigningDomain
from .errors import InvalidAction, SigningError

logger = logging.getLogger(__name__)

EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

AGENT_FIELDS = [
    {"name": "source", "type": "string"},
    {"name": "connectionId", "type": "bytes32"},
]

PRIVATE_KEY_ENV = "HL_PRIVATE_KEY"


# ==========================================
# KEY PROVIDERS
# ==========================================

class KeyProvider(Protocol):
    """Supplies the hex-encoded secp256k1 private key at sign time."""

    def get_private_key(self) -> str:
        ...


class StaticKeyProvider:
    """Key held in memory by the caller."""

    def __init__(self, private_key: str):
        if not private_key:
            raise ValueError("Private key is required")
        self._private_key = private_key

    def get_private_key(self) -> str:
        return self._private_key


class EnvKeyProvider:
    """
    Key read from an environment variable on every call.

    Expects:
        HL_PRIVATE_KEY: hex private key (0x-prefixed or bare)
    """

    def __init__(self, variable: str = PRIVATE_KEY_ENV):
        self._variable = variable

    def get_private_key(self) -> str:
        value = os.environ.get(self._variable, "")
        if not value:
            raise SigningError(f"{self._variable} environment variable required")
        return value


class FileKeyProvider:
    """
    Key read from a file on every call.

    File format:
        private_key=0x...

    Or JSON format:
        {"private_key": "0x..."}
    """

    def __init__(self, path: str):
        self._path = Path(path)

    def get_private_key(self) -> str:
        if not self._path.exists():
            raise SigningError(f"Key file not found: {self._path}")

        content = self._path.read_text().strip()

        # Try JSON first
        if content.startswith("{"):
            try:
                value = json.loads(content).get("private_key", "")
            except json.JSONDecodeError as e:
                raise SigningError(f"Key file {self._path} is not valid JSON") from e
            if not value:
                raise SigningError(f"Key file {self._path} has no private_key")
            return value

        # Parse key=value format
        for line in content.split("\n"):
            line = line.strip()
            if line.startswith("private_key="):
                return line.split("=", 1)[1].strip()

        raise SigningError(f"Key file {self._path} has no private_key")


# ==========================================
# SIGNED REQUEST
# ==========================================

@dataclass(frozen=True)
class SignedRequest:
    """
    Signed, nonce-bound exchange request.

    body holds the exact bytes POSTed to the exchange endpoint; retries
    resend it unchanged.
    """
    action: Action
    nonce: int
    signature: Mapping[str, Any]
    domain: SigningDomain
    body: bytes

    @property
    def payload(self) -> Dict[str, Any]:
        return json.loads(self.body)


def _format_signature(signed) -> Dict[str, Any]:
    return {"r": f"0x{signed.r:064x}", "s": f"0x{signed.s:064x}", "v": signed.v}


def _address_bytes(address: str) -> bytes:
    return bytes.fromhex(address[2:] if address.startswith("0x") else address)


def action_hash(action: Any, vault_address: Optional[str], nonce: int) -> bytes:
    """
    Hash an L1 action the way the venue does.

    Args:
        action: Wire action (msgpack-serializable)
        vault_address: Vault the action is sent for, if any
        nonce: Request nonce

    Returns:
        32-byte keccak digest
    """
    data = msgpack.packb(action)
    data += nonce.to_bytes(8, "big")
    if vault_address is None:
        data += b"\x00"
    else:
        data += b"\x01" + _address_bytes(vault_address)
    return keccak(data)


# ==========================================
# SIGNER
# ==========================================

class ActionSigner:
    """
    Signs actions for one key.

    sign() is a pure function of (action, nonce, key): it holds no
    mutable state and touches nothing global.
    """

    def __init__(
        self,
        key_provider: KeyProvider,
        network: Optional[NetworkConfig] = None,
    ):
        """
        Initialize signer.

        Args:
            key_provider: Source of the private key
            network: Signing domain parameters (mainnet by default)

        Raises:
            SigningError: If the key cannot be loaded
        """
        self._key_provider = key_provider
        self._network = network or NetworkConfig()
        self._address = self._load_account().address

    @property
    def address(self) -> str:
        """Checksummed address of the signing key."""
        return self._address

    @property
    def network(self) -> NetworkConfig:
        return self._network

    def _load_account(self):
        try:
            private_key = self._key_provider.get_private_key()
        except SigningError:
            raise
        except Exception as e:
            raise SigningError(f"Key provider failed: {e}") from e

        if not private_key:
            raise SigningError("Key provider returned no key material")

        try:
            return Account.from_key(private_key)
        except Exception as e:
            raise SigningError("Invalid private key material") from e

    # ==========================================
    # WIRE FORMS
    # ==========================================

    def wire_action(self, action: Action, nonce: int) -> Dict[str, Any]:
        """Exact JSON object sent as "action" for this (action, nonce)."""
        if action.domain == SigningDomain.L1:
            return action.l1_wire()

        if action.domain == SigningDomain.USER:
            wire: Dict[str, Any] = {
                "type": action.action_type,
                "signatureChainId": hex(self._network.signature_chain_id),
                "hyperliquidChain": self._network.chain_name,
            }
            wire.update(action.payload)
            wire[action.schema.nonce_field] = nonce
            return wire

        return {
            "type": action.action_type,
            "signatureChainId": hex(self._network.signature_chain_id),
            "signatures": [dict(sig) for sig in action.signatures],
            "payload": {
                "multiSigUser": action.multi_sig_user,
                "outerSigner": action.outer_signer,
                "action": self.wire_action(action.inner, nonce),
            },
        }

    # ==========================================
    # SIGNING
    # ==========================================

    def sign(self, action: Action, nonce: int) -> SignedRequest:
        """
        Sign an action with the given nonce.

        Args:
            action: Action to sign
            nonce: Nonce issued for this key

        Returns:
            SignedRequest with the encoded request body

        Raises:
            InvalidAction: If the action is incomplete for its domain
            SigningError: If key material is unavailable
        """
        errors = action.validate()
        if action.domain == SigningDomain.MULTI_SIG and not errors:
            if action.nonce != nonce:
                errors.append(
                    f"multi-sig action was co-signed for nonce {action.nonce}, not {nonce}"
                )
            if action.outer_signer != self._address.lower():
                errors.append("outer signer does not match the signing key")
        if errors:
            raise InvalidAction(errors)

        account = self._load_account()
        wire = self.wire_action(action, nonce)

        if action.domain == SigningDomain.L1:
            signature = self._sign_l1(account, wire, nonce, action.vault_address)
            vault_address = action.vault_address
        elif action.domain == SigningDomain.USER:
            signature = self._sign_user(
                account, wire, action.schema.typed_fields(), action.schema.eip712_type
            )
            vault_address = None
        else:
            signature = self._sign_multi_sig(account, wire, nonce, action.vault_address)
            vault_address = action.vault_address

        body = {
            "action": wire,
            "nonce": nonce,
            "signature": signature,
            "vaultAddress": vault_address,
        }

        logger.debug(f"Signed {action.domain.value} action {action.action_type} nonce={nonce}")

        return SignedRequest(
            action=action,
            nonce=nonce,
            signature=signature,
            domain=action.domain,
            body=json.dumps(body, separators=(",", ":")).encode("utf-8"),
        )

    def co_sign(
        self,
        inner: Action,
        nonce: int,
        multi_sig_user: str,
        outer_signer: str,
    ) -> Dict[str, Any]:
        """
        Produce this key's co-signature for a multi-sig action.

        Args:
            inner: Action the multi-sig account will execute
            nonce: Nonce the outer signer will submit with
            multi_sig_user: The multi-sig account
            outer_signer: Authorized user who will submit the action

        Returns:
            Signature dict {r, s, v} for the multi_sig() builder
        """
        errors = inner.validate()
        if inner.domain == SigningDomain.MULTI_SIG:
            errors.append("multi-sig actions cannot be nested")
        if errors:
            raise InvalidAction(errors)

        account = self._load_account()
        wire = self.wire_action(inner, nonce)

        if inner.domain == SigningDomain.L1:
            envelope = [multi_sig_user.lower(), outer_signer.lower(), wire]
            return self._sign_l1(account, envelope, nonce, inner.vault_address)

        fields = inner.schema.typed_fields()
        enriched = [
            fields[0],
            {"name": "payloadMultiSigUser", "type": "address"},
            {"name": "outerSigner", "type": "address"},
            *fields[1:],
        ]
        message = {
            "payloadMultiSigUser": multi_sig_user.lower(),
            "outerSigner": outer_signer.lower(),
            **wire,
        }
        return self._sign_user(account, message, enriched, inner.schema.eip712_type)

    def _sign_l1(self, account, wire: Any, nonce: int, vault_address: Optional[str]) -> Dict[str, Any]:
        connection_id = action_hash(wire, vault_address, nonce)
        data = {
            "domain": {
                "chainId": self._network.l1_chain_id,
                "name": "Exchange",
                "verifyingContract": self._network.verifying_contract,
                "version": "1",
            },
            "types": {
                "Agent": AGENT_FIELDS,
                "EIP712Domain": EIP712_DOMAIN_FIELDS,
            },
            "primaryType": "Agent",
            "message": {
                "source": self._network.agent_source,
                "connectionId": connection_id,
            },
        }
        return self._sign_typed_data(account, data)

    def _sign_user(
        self,
        account,
        message: Dict[str, Any],
        fields: List[Dict[str, str]],
        primary_type: str,
    ) -> Dict[str, Any]:
        data = {
            "domain": {
                "name": "HyperliquidSignTransaction",
                "version": "1",
                "chainId": self._network.signature_chain_id,
                "verifyingContract": self._network.verifying_contract,
            },
            "types": {
                primary_type: fields,
                "EIP712Domain": EIP712_DOMAIN_FIELDS,
            },
            "primaryType": primary_type,
            "message": message,
        }
        return self._sign_typed_data(account, data)

    def _sign_multi_sig(
        self,
        account,
        wire: Dict[str, Any],
        nonce: int,
        vault_address: Optional[str],
    ) -> Dict[str, Any]:
        untagged = {k: v for k, v in wire.items() if k != "type"}
        envelope = {
            "hyperliquidChain": self._network.chain_name,
            "multiSigActionHash": action_hash(untagged, vault_address, nonce),
            "nonce": nonce,
        }
        return self._sign_user(
            account, envelope, SEND_MULTI_SIG.typed_fields(), SEND_MULTI_SIG.eip712_type
        )

    @staticmethod
    def _sign_typed_data(account, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            signable = encode_typed_data(full_message=data)
            return _format_signature(account.sign_message(signable))
        except (ValueError, TypeError) as e:
            raise SigningError(f"Could not encode typed data: {e}") from e
