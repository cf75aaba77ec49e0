"""
Signed action dispatch.

Pipeline for every action:
    validate → rate admit → nonce → sign → window check → send → classify

Guarantees:
- The nonce is issued only once the per-key send lock is held, and the
  first send follows immediately: cancelling submit() before that point
  never burns a nonce.
- The send lock lives on the key's NonceSequencer and is held until the
  last retry, so requests for one key reach the transport in nonce order
  even across dispatchers. A request in backoff delays later requests for
  the same key.
- Transient failures (TransportError, VenueRateLimited) are retried with
  the identical request bytes; a retry never mints a new nonce.
- Venue rejections are returned as REJECTED outcomes and never retried.

Cancellation after the request has been handed to the transport is not
supported: the caller stops waiting, but the venue may still execute the
action. Reconcile with an info query (or a cloid) before resubmitting.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from config.settings import DispatchConfig

from .actions import Action
from .auth import ActionSigner, SignedRequest
from .errors import (
    ActionRejected,
    InvalidAction,
    RetryConfig,
    RetryStrategy,
    TransportError,
    VenueRateLimited,
    calculate_backoff,
)
from .nonce import NonceSequencer
from .rate_limiter import RateGovernor
from .transport import RequestTransport, TransportResponse

logger = logging.getLogger(__name__)


class OutcomeStatus(Enum):
    """Venue verdict on a submitted action."""
    OK = "ok"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ActionOutcome:
    """Result of ActionDispatcher.submit."""
    status: OutcomeStatus
    request: SignedRequest
    response: Any = None  # "response" member of the venue's reply
    reason: Any = None  # Rejection reason (REJECTED only)
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    @property
    def nonce(self) -> int:
        return self.request.nonce

    @property
    def statuses(self) -> List[Any]:
        """Per-item statuses of bulk actions (orders, cancels, modifies)."""
        if isinstance(self.response, dict):
            data = self.response.get("data")
            if isinstance(data, dict):
                return list(data.get("statuses", []))
        return []

    @property
    def errors(self) -> List[str]:
        """Item-level errors inside an otherwise accepted bulk action."""
        return [
            s["error"] for s in self.statuses
            if isinstance(s, dict) and "error" in s
        ]

    def raise_for_status(self) -> "ActionOutcome":
        """Raise ActionRejected if the venue rejected the action."""
        if self.status == OutcomeStatus.REJECTED:
            raise ActionRejected(self.reason, self.response)
        return self


def _is_rate_limit_message(reason: Any) -> bool:
    text = str(reason).lower()
    return "rate limit" in text or "too many requests" in text


def classify_response(response: TransportResponse, request: SignedRequest, attempts: int) -> ActionOutcome:
    """
    Map an exchange reply to an outcome.

    Raises:
        VenueRateLimited: The venue throttled the request
        TransportError: Server-side failure, safe to retry unchanged
    """
    payload = response.payload

    if response.status == 429:
        raise VenueRateLimited(f"Venue rate limit: {payload}")

    if response.status >= 500:
        raise TransportError(f"Server error {response.status}: {payload}")

    if response.status != 200:
        return ActionOutcome(
            OutcomeStatus.REJECTED, request, response=payload, reason=payload, attempts=attempts
        )

    if isinstance(payload, dict) and payload.get("status") == "ok":
        return ActionOutcome(
            OutcomeStatus.OK, request, response=payload.get("response"), attempts=attempts
        )

    if isinstance(payload, dict) and payload.get("status") == "err":
        reason = payload.get("response")
        if _is_rate_limit_message(reason):
            raise VenueRateLimited(f"Venue rate limit: {reason}")
        return ActionOutcome(
            OutcomeStatus.REJECTED, request, response=payload, reason=reason, attempts=attempts
        )

    return ActionOutcome(
        OutcomeStatus.REJECTED,
        request,
        response=payload,
        reason=f"Unexpected response: {payload!r}",
        attempts=attempts,
    )


class ActionDispatcher:
    """
    Submits actions for one signing key.

    Usage:
        dispatcher = ActionDispatcher(signer, sequencer, governor, transport)
        outcome = await dispatcher.submit(actions.cancel([(0, 123)]))
        outcome.raise_for_status()
    """

    def __init__(
        self,
        signer: ActionSigner,
        sequencer: NonceSequencer,
        governor: RateGovernor,
        transport: RequestTransport,
        config: Optional[DispatchConfig] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            signer: Signer for the key actions are sent with
            sequencer: Nonce sequencer owned by that key
            governor: Rate governor shared with other callers
            transport: Exchange endpoint transport
            config: Retry settings
        """
        config = config or DispatchConfig()
        self._signer = signer
        self._sequencer = sequencer
        self._governor = governor
        self._transport = transport
        self._retry = RetryConfig(
            max_retries=config.max_retries,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            exponential_base=config.exponential_base,
            jitter=config.jitter,
        )
    @property
    def signer(self) -> ActionSigner:
        return self._signer

    @property
    def sequencer(self) -> NonceSequencer:
        return self._sequencer

    def reserve_nonce(self) -> int:
        """
        Issue a nonce ahead of signing.

        Used for multi-sig rounds, where co-signers must sign over the nonce
        before the action is submitted.
        """
        return self._sequencer.next_nonce()

    async def submit(self, action: Action) -> ActionOutcome:
        """
        Sign and send an action.

        Args:
            action: Action to submit

        Returns:
            ActionOutcome (OK or REJECTED)

        Raises:
            InvalidAction: Action failed structural validation
            RateLimited: Local rate budget exhausted beyond the max wait
            NonceWindowExceeded: Nonce outside the acceptance window; retry later
            SigningError: Key material unavailable
            TransportError / VenueRateLimited: Retries exhausted

        Cancelling before the request is sent is clean. Cancelling after it
        was handed to the transport does not recall it; see module docs.
        """
        errors = action.validate()
        if errors:
            raise InvalidAction(errors)

        await self._governor.acquire(action.request_class)

        async with self._sequencer.send_lock:
            if action.nonce is not None:
                nonce = action.nonce
            else:
                nonce = self._sequencer.next_nonce()
            request = self._signer.sign(action, nonce)
            self._sequencer.check_window(request.nonce)
            return await self._send(request)

    async def _attempt(self, request: SignedRequest, attempt: int) -> ActionOutcome:
        response = await self._transport.post(request.body)
        outcome = classify_response(response, request, attempt)
        if outcome.ok:
            logger.info(
                f"Action {request.action.action_type} accepted "
                f"(nonce={request.nonce}, attempt={attempt})"
            )
        else:
            logger.warning(
                f"Action {request.action.action_type} rejected "
                f"(nonce={request.nonce}): {outcome.reason}"
            )
        return outcome

    async def _send(self, request: SignedRequest) -> ActionOutcome:
        """Send once, then resend the identical request bytes with backoff."""
        try:
            return await self._attempt(request, 1)
        except (TransportError, VenueRateLimited) as e:
            error = e

        for retry in range(self._retry.max_retries):
            backoff = calculate_backoff(retry, RetryStrategy.EXPONENTIAL_BACKOFF, self._retry)
            logger.warning(
                f"Retry {retry + 1}/{self._retry.max_retries} for "
                f"{request.action.action_type} nonce={request.nonce} "
                f"after {type(error).__name__}: {error}, waiting {backoff:.1f}s"
            )
            await asyncio.sleep(backoff)

            self._sequencer.check_window(request.nonce)
            try:
                return await self._attempt(request, retry + 2)
            except (TransportError, VenueRateLimited) as e:
                error = e

        logger.error(
            f"Giving up on {request.action.action_type} nonce={request.nonce} "
            f"after {self._retry.max_retries + 1} attempts"
        )
        raise error
