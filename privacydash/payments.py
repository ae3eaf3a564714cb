"""
Payment execution for a single request.

An attempt moves Idle -> Submitting -> AwaitingConfirmation -> Confirmed | Failed.
When the transfer was submitted but its confirmation could not be observed, the
attempt ends in Unknown and ConfirmationFailed is raised: the transfer may or may not
have landed, and the request stays PENDING until someone reconciles it.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Optional, Protocol

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from . import config
from .errors import ConfirmationFailed, RequestNotPayable, SubmissionFailed, UserRejected
from .schemas import PaymentRequest, RequestStatus
from .store import RequestStore

logger = logging.getLogger(__name__)


class AttemptState(str, Enum):
    IDLE = "IDLE"
    SUBMITTING = "SUBMITTING"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"


@dataclass
class BlockhashContext:
    blockhash: str
    last_valid_block_height: int


class Wallet(Protocol):
    def get_address(self) -> str:
        ...

    async def sign_message(self, message: bytes) -> bytes:
        ...

    async def send_transaction(self, transaction: Transaction) -> str:
        """Sign and submit; raise UserRejected or SubmissionFailed on refusal."""
        ...


class LedgerClient(Protocol):
    async def get_latest_blockhash(self) -> BlockhashContext:
        ...

    async def confirm_transaction(self, signature: str, blockhash_context: BlockhashContext, commitment: str) -> bool:
        """True once confirmed at the commitment level, False when the blockhash expired first."""
        ...


@dataclass
class PaymentAttempt:
    request_id: str
    payer: str
    state: AttemptState = AttemptState.IDLE
    signature: Optional[str] = None
    error: Optional[str] = None


def to_lamports(amount: float) -> int:
    """Convert SOL to lamports. Raises ValueError unless the result fits a u64 transfer."""
    lamports = Decimal(str(amount)) * config.LAMPORTS_PER_SOL
    if not lamports.is_finite():
        raise ValueError(f"amount {amount} is not a finite number")
    lamports = int(lamports.to_integral_value(rounding=ROUND_HALF_UP))
    if not 0 <= lamports <= config.MAX_LAMPORTS:
        raise ValueError(f"amount {amount} is outside the transferable range")
    return lamports


def build_transfer_instruction(payer: str, recipient: str, amount: float) -> Instruction:
    """Native SOL transfer of amount from payer to recipient. Raises ValueError for bad addresses."""
    return transfer(
        TransferParams(
            from_pubkey=Pubkey.from_string(payer),
            to_pubkey=Pubkey.from_string(recipient),
            lamports=to_lamports(amount),
        )
    )


def build_transfer_transaction(request: PaymentRequest, payer: str, blockhash: str) -> Transaction:
    instruction = build_transfer_instruction(payer, request.creator, request.amount)
    message = Message.new_with_blockhash([instruction], Pubkey.from_string(payer), Hash.from_string(blockhash))
    return Transaction.new_unsigned(message)


class PaymentExecutor:
    def __init__(
        self,
        store: RequestStore,
        commitment: str = config.COMMITMENT,
        confirm_timeout: float = config.CONFIRM_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.commitment = commitment
        self.confirm_timeout = confirm_timeout
        self.attempts: Dict[str, PaymentAttempt] = {}

    def _fail(self, attempt: PaymentAttempt, exc: Exception) -> Exception:
        attempt.state = AttemptState.FAILED
        attempt.error = str(exc)
        logger.info("Payment for %s failed: %s", attempt.request_id, exc)
        return exc

    async def _fetch_blockhash(self, rpc: LedgerClient) -> BlockhashContext:
        try:
            return await rpc.get_latest_blockhash()
        except Exception as exc:  # pylint: disable=broad-except
            raise SubmissionFailed(f"Could not fetch latest blockhash: {exc}") from exc

    async def _confirm(self, signature: str, context: BlockhashContext, rpc: LedgerClient, timeout: float) -> None:
        try:
            confirmed = await asyncio.wait_for(
                rpc.confirm_transaction(signature, context, self.commitment), timeout=timeout
            )
        except asyncio.TimeoutError as exc:
            raise ConfirmationFailed(signature, f"no confirmation within {timeout:g}s") from exc
        except Exception as exc:  # pylint: disable=broad-except
            raise ConfirmationFailed(signature, str(exc)) from exc
        if not confirmed:
            raise ConfirmationFailed(signature, "blockhash expired before confirmation")

    async def pay(
        self,
        request: PaymentRequest,
        payer_address: str,
        wallet: Wallet,
        rpc: LedgerClient,
        timeout: Optional[float] = None,
    ) -> str:
        """Transfer request.amount from payer_address to request.creator and mark the request paid."""
        timeout = self.confirm_timeout if timeout is None else timeout
        attempt = PaymentAttempt(request_id=request.id, payer=payer_address)
        self.attempts[request.id] = attempt

        if request.status != RequestStatus.PENDING:
            raise self._fail(attempt, RequestNotPayable(request.id, f"status is {request.status.value}"))
        if request.token_mint not in config.NATIVE_MINTS:
            raise self._fail(attempt, RequestNotPayable(request.id, f"unsupported asset {request.token_mint}"))

        attempt.state = AttemptState.SUBMITTING
        try:
            context = await self._fetch_blockhash(rpc)
        except SubmissionFailed as exc:
            raise self._fail(attempt, exc)
        try:
            transaction = build_transfer_transaction(request, payer_address, context.blockhash)
        except ValueError as exc:
            raise self._fail(attempt, RequestNotPayable(request.id, f"cannot build transfer: {exc}")) from exc

        try:
            signature = await wallet.send_transaction(transaction)
        except (UserRejected, SubmissionFailed) as exc:
            raise self._fail(attempt, exc)
        except Exception as exc:  # pylint: disable=broad-except
            raise self._fail(attempt, SubmissionFailed(str(exc))) from exc

        attempt.signature = signature
        attempt.state = AttemptState.AWAITING_CONFIRMATION
        logger.info("Payment for %s submitted as %s", request.id, signature)

        try:
            await self._confirm(signature, context, rpc, timeout)
        except ConfirmationFailed as exc:
            attempt.state = AttemptState.UNKNOWN
            attempt.error = str(exc)
            logger.warning("Payment for %s has unknown status: %s", request.id, exc)
            raise

        attempt.state = AttemptState.CONFIRMED
        self.store.mark_paid(request.id, signature, payer_address)
        # The stored record is authoritative once paid.
        del self.attempts[request.id]
        logger.info("Payment for %s confirmed", request.id)
        return signature

    async def reconcile(
        self,
        request_id: str,
        signature: str,
        payer_address: str,
        rpc: LedgerClient,
        timeout: Optional[float] = None,
    ) -> Optional[PaymentRequest]:
        """
        Manual follow-up for an Unknown attempt: re-check the signature on the ledger and
        mark the request paid only when it is confirmed. Returns None for an unknown id.
        """
        if self.store.get(request_id) is None:
            return None
        timeout = self.confirm_timeout if timeout is None else timeout
        context = await self._fetch_blockhash(rpc)
        await self._confirm(signature, context, rpc, timeout)
        return self.store.mark_paid(request_id, signature, payer_address)
