"""Escrow coordinator: sequences wallet primitives for booking transitions."""

import logging
import uuid

import httpx

from ..exceptions import EscrowFailed, InsufficientBalance
from ..models import Booking, PaymentStatus
from .wallet_service import WalletService

logger = logging.getLogger(__name__)


class EscrowCoordinator:
    """
    Applies hold / release / refund at most once per booking.

    The booking's payment_status is the gate: hold only moves pending to
    held, release and refund only act on held. Any other starting state is a
    no-op, which makes replayed transitions harmless.
    """

    def __init__(self, wallet: WalletService):
        self.wallet = wallet

    async def ensure_balance(self, patient_id: str, amount: int) -> None:
        """
        Raise InsufficientBalance unless the patient can cover amount.

        Raises:
            InsufficientBalance
            EscrowFailed: the wallet could not be reached
        """
        try:
            balance = await self.wallet.get_balance(patient_id)
        except httpx.HTTPError as e:
            raise EscrowFailed(f"Could not read balance: {e}") from e
        if balance < amount:
            logger.info(f"Patient {patient_id} balance {balance} below required {amount}")
            raise InsufficientBalance(
                f"Balance {balance} is below the required {amount}"
            )

    async def hold(self, booking: Booking) -> PaymentStatus:
        """
        Debit the patient and credit the professional's pending balance.

        Returns:
            The payment status to persist with the transition
        """
        if booking.payment_status != PaymentStatus.PENDING:
            logger.info(f"Hold skipped for booking {booking.id}: payment already {booking.payment_status.value}")
            return booking.payment_status
        if booking.fee == 0:
            return PaymentStatus.HELD

        memo = f"Consultation hold: {booking.to_summary()}"
        # A hold may be retried after a reversal, so its keys are per attempt
        attempt = uuid.uuid4().hex
        try:
            await self.wallet.hold(booking.patient_id, booking.fee, memo, f"{booking.id}:hold:{attempt}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 402:
                raise InsufficientBalance() from e
            raise EscrowFailed(f"Hold failed: {e}") from e
        except httpx.HTTPError as e:
            raise EscrowFailed(f"Hold failed: {e}") from e

        try:
            await self.wallet.credit_pending(booking.professional_id, booking.fee, memo, f"{booking.id}:credit:{attempt}")
        except httpx.HTTPError as e:
            logger.error(f"Pending credit failed for booking {booking.id}, reversing hold: {e}")
            await self.compensate_hold(booking, attempt)
            raise EscrowFailed(f"Pending credit failed: {e}") from e

        logger.info(f"Held {booking.fee} for booking {booking.id}")
        return PaymentStatus.HELD

    async def release(self, booking: Booking) -> PaymentStatus:
        """Release held funds to the professional."""
        if booking.payment_status == PaymentStatus.COMPLETED:
            return PaymentStatus.COMPLETED
        if booking.payment_status != PaymentStatus.HELD:
            raise EscrowFailed(
                f"Booking {booking.id} has no held payment (status {booking.payment_status.value})"
            )
        if booking.fee == 0:
            return PaymentStatus.COMPLETED

        try:
            await self.wallet.release(
                booking.professional_id,
                booking.patient_id,
                booking.fee,
                f"Consultation payment: {booking.to_summary()}",
                f"{booking.id}:release",
            )
        except httpx.HTTPError as e:
            raise EscrowFailed(f"Release failed: {e}") from e

        logger.info(f"Released {booking.fee} for booking {booking.id}")
        return PaymentStatus.COMPLETED

    async def refund(self, booking: Booking) -> PaymentStatus:
        """Refund held funds to the patient; no-op unless held."""
        if booking.payment_status != PaymentStatus.HELD:
            return booking.payment_status
        if booking.fee == 0:
            return PaymentStatus.REFUNDED

        # A refund may be reversed when its write is lost, so its keys are per attempt
        attempt = uuid.uuid4().hex
        try:
            await self._reverse(booking, f"Consultation refund: {booking.to_summary()}", f"{booking.id}:refund:{attempt}")
        except httpx.HTTPError as e:
            raise EscrowFailed(f"Refund failed: {e}") from e

        logger.info(f"Refunded {booking.fee} for booking {booking.id}")
        return PaymentStatus.REFUNDED

    async def compensate_hold(self, booking: Booking, attempt: str = "") -> None:
        """
        Undo a hold whose transition write did not land.

        Failures are logged for manual reconciliation; the caller is already
        raising.
        """
        if booking.fee == 0:
            return
        try:
            await self._reverse(booking, "Hold reversed", f"{booking.id}:reversal:{attempt or uuid.uuid4().hex}")
        except httpx.HTTPError as e:
            logger.error(f"Could not reverse hold for booking {booking.id}, manual reconciliation needed: {e}")

    async def compensate_refund(self, booking: Booking) -> bool:
        """
        Put back a hold whose refund went out but whose transition write did not land.

        Returns:
            False if the funds could not be held again
        """
        if booking.fee == 0:
            return True

        memo = f"Refund reversed: {booking.to_summary()}"
        attempt = uuid.uuid4().hex
        try:
            await self.wallet.hold(booking.patient_id, booking.fee, memo, f"{booking.id}:rehold:{attempt}")
            await self.wallet.credit_pending(booking.professional_id, booking.fee, memo, f"{booking.id}:recredit:{attempt}")
        except httpx.HTTPError as e:
            logger.critical(f"Could not restore hold for booking {booking.id} after a lost refund write: {e}")
            return False

        logger.info(f"Restored hold of {booking.fee} for booking {booking.id}")
        return True

    async def _reverse(self, booking: Booking, memo: str, idempotency_key: str) -> None:
        await self.wallet.refund(
            booking.professional_id,
            booking.patient_id,
            booking.fee,
            memo,
            idempotency_key,
        )
