import pytest

from careline.exceptions import EscrowFailed, InsufficientBalance
from careline.models import Booking, BookingStatus, PaymentStatus
from careline.services import EscrowCoordinator

from .fakes import FakeWallet


def _booking(payment_status=PaymentStatus.PENDING, fee=5000):
    return Booking(
        id="bk-1",
        professional_id="pro-1",
        patient_id="pat-1",
        date="2026-03-02",
        time="10:00",
        status=BookingStatus.PENDING_CONFIRMATION,
        fee=fee,
        payment_status=payment_status,
    )


@pytest.fixture
def wallet():
    return FakeWallet({"pat-1": 20000})


@pytest.fixture
def escrow(wallet):
    return EscrowCoordinator(wallet)


async def test_hold_debits_patient_and_credits_pending(escrow, wallet):
    status = await escrow.hold(_booking())

    assert status == PaymentStatus.HELD
    assert wallet.balances["pat-1"] == 15000
    assert wallet.pending["pro-1"] == 5000


async def test_hold_is_gated_by_payment_status(escrow, wallet):
    status = await escrow.hold(_booking(PaymentStatus.HELD))

    assert status == PaymentStatus.HELD
    assert wallet.operations == []


async def test_hold_maps_402_to_insufficient_balance(escrow, wallet):
    wallet.balances["pat-1"] = 100
    with pytest.raises(InsufficientBalance):
        await escrow.hold(_booking())


async def test_free_consultation_needs_no_wallet_calls(escrow, wallet):
    assert await escrow.hold(_booking(fee=0)) == PaymentStatus.HELD
    assert await escrow.release(_booking(PaymentStatus.HELD, fee=0)) == PaymentStatus.COMPLETED
    assert wallet.operations == []


async def test_release_requires_held_funds(escrow):
    with pytest.raises(EscrowFailed):
        await escrow.release(_booking(PaymentStatus.PENDING))


async def test_release_replay_is_noop(escrow, wallet):
    assert await escrow.release(_booking(PaymentStatus.COMPLETED)) == PaymentStatus.COMPLETED
    assert wallet.operations == []


async def test_refund_only_from_held(escrow, wallet):
    assert await escrow.refund(_booking(PaymentStatus.PENDING)) == PaymentStatus.PENDING
    assert await escrow.refund(_booking(PaymentStatus.REFUNDED)) == PaymentStatus.REFUNDED
    assert wallet.operations == []


async def test_refund_returns_held_funds(escrow, wallet):
    assert await escrow.refund(_booking(PaymentStatus.HELD)) == PaymentStatus.REFUNDED

    [(_, key)] = wallet.ops("refund")
    assert key.startswith("bk-1:refund:")
    assert wallet.balances["pat-1"] == 25000


async def test_compensate_refund_holds_funds_again(escrow, wallet):
    held = _booking(PaymentStatus.HELD)
    await escrow.refund(held)

    assert await escrow.compensate_refund(held) is True

    assert wallet.balances["pat-1"] == 20000
    assert wallet.pending["pro-1"] == 0
    assert len(wallet.ops("hold")) == 1
    assert len(wallet.ops("credit_pending")) == 1


async def test_compensate_refund_reports_failure(escrow, wallet):
    held = _booking(PaymentStatus.HELD)
    await escrow.refund(held)
    wallet.fail_on.add("hold")

    assert await escrow.compensate_refund(held) is False
    assert wallet.balances["pat-1"] == 25000


async def test_ensure_balance(escrow, wallet):
    await escrow.ensure_balance("pat-1", 20000)
    with pytest.raises(InsufficientBalance):
        await escrow.ensure_balance("pat-1", 20001)


async def test_ensure_balance_wallet_unreachable(escrow, wallet):
    wallet.fail_on.add("get_balance")
    with pytest.raises(EscrowFailed):
        await escrow.ensure_balance("pat-1", 100)
