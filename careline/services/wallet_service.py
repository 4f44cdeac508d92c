"""
Wallet ledger client.
Balances and transaction history live in the wallet service; this client
only issues the escrow primitives.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class WalletService:
    """
    HTTP client for the wallet/ledger service.

    Every mutating call carries an idempotency key so a retried request is
    applied at most once by the ledger.
    """

    def __init__(self, base_url: str, api_key: str, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize wallet client.

        Args:
            base_url: Wallet service base URL
            api_key: Service API key
            client: Pre-built client (tests pass one with a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=15.0,
        )

    async def get_balance(self, user_id: str) -> int:
        """Get a user's available (withdrawable) balance."""
        response = await self._client.get(f"/wallets/{user_id}")
        response.raise_for_status()
        return int(response.json().get("balance", 0))

    async def hold(self, patient_id: str, amount: int, memo: str, idempotency_key: str) -> None:
        """Debit the patient into escrow."""
        await self._post(
            f"/wallets/{patient_id}/debit",
            {"amount": amount, "memo": memo},
            idempotency_key,
        )

    async def credit_pending(self, professional_id: str, amount: int, memo: str, idempotency_key: str) -> None:
        """Credit the professional's pending (non-withdrawable) balance."""
        await self._post(
            f"/wallets/{professional_id}/pending",
            {"amount": amount, "memo": memo},
            idempotency_key,
        )

    async def release(self, professional_id: str, patient_id: str, amount: int, memo: str, idempotency_key: str) -> None:
        """Move the professional's pending funds to the available balance."""
        await self._post(
            "/escrow/release",
            {
                "professional_id": professional_id,
                "patient_id": patient_id,
                "amount": amount,
                "memo": memo,
            },
            idempotency_key,
        )

    async def refund(self, professional_id: str, patient_id: str, amount: int, memo: str, idempotency_key: str) -> None:
        """Reverse a hold: remove pending funds and credit the patient back."""
        await self._post(
            "/escrow/refund",
            {
                "professional_id": professional_id,
                "patient_id": patient_id,
                "amount": amount,
                "memo": memo,
            },
            idempotency_key,
        )

    async def _post(self, path: str, payload: dict, idempotency_key: str) -> None:
        try:
            response = await self._client.post(
                path,
                json=payload,
                headers={"Idempotency-Key": idempotency_key},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Wallet call {path} failed: {e}")
            raise

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
