import hashlib
import hmac
import logging
import secrets
import string
import time
from typing import Any, Dict, Optional

import httpx

from academy.core.config import settings
from academy.core.exceptions import PaymentProviderError

_REF_ALPHABET = string.ascii_lowercase + string.digits


class FlutterwaveService:
    """Client for Flutterwave mobile money, bank transfer and verification"""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.flutterwave_secret_key
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.flutterwave_webhook_secret
        self.base_url = (base_url or settings.flutterwave_base_url).rstrip('/')
        self.logger = logging.getLogger(__name__)

    def _headers(self) -> dict:
        return {
            'Authorization': f"Bearer {self.secret_key or ''}",
            'Content-Type': 'application/json',
        }

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.request(method, f"{self.base_url}{path}", headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise PaymentProviderError('flutterwave', f"Request to {path} failed: {e}")

        if response.status_code >= 400:
            raise PaymentProviderError(
                'flutterwave',
                f"API error {response.status_code} - {response.text}",
                status_code=response.status_code
            )
        return response.json()

    @staticmethod
    def generate_transaction_ref() -> str:
        """Unique merchant reference, e.g. TA_1718000000000_k3j9x0a1b2c3d"""
        timestamp = int(time.time() * 1000)
        random_part = ''.join(secrets.choice(_REF_ALPHABET) for _ in range(13))
        return f"TA_{timestamp}_{random_part}"

    async def initiate_mobile_money(
        self,
        tx_ref: str,
        amount: float,
        currency: str,
        email: str,
        phone_number: str,
        fullname: str,
        redirect_url: str,
        meta: Optional[dict] = None,
        country: str = "GH",
    ) -> Dict[str, Any]:
        self.logger.info(f"initiate_mobile_money: Entry - tx_ref: {tx_ref}, amount: {amount} {currency}")
        payload = {
            'tx_ref': tx_ref,
            'amount': amount,
            'currency': currency,
            'country': country,
            'email': email,
            'phone_number': phone_number,
            'fullname': fullname,
            'redirect_url': redirect_url,
            'meta': meta or {},
            'payment_type': 'mobile_money_ghana',
        }
        try:
            data = await self._request('POST', '/v3/charges', params={'type': 'mobile_money_ghana'}, json=payload)
            self.logger.info(f"initiate_mobile_money: Success - status: {data.get('status')}")
            return data
        except Exception as e:
            self.logger.error(f"initiate_mobile_money: Failure - {e}")
            raise

    async def initiate_bank_transfer(
        self,
        tx_ref: str,
        amount: float,
        currency: str,
        email: str,
        meta: Optional[dict] = None,
        expires_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        self.logger.info(f"initiate_bank_transfer: Entry - tx_ref: {tx_ref}, amount: {amount} {currency}")
        payload: Dict[str, Any] = {
            'tx_ref': tx_ref,
            'amount': amount,
            'currency': currency,
            'email': email,
            'meta': meta or {},
            'payment_type': 'bank_transfer',
        }
        if expires_seconds:
            payload['bank_transfer_options'] = {'expires': expires_seconds}
        try:
            data = await self._request('POST', '/v3/charges', params={'type': 'bank_transfer'}, json=payload)
            self.logger.info(f"initiate_bank_transfer: Success - status: {data.get('status')}")
            return data
        except Exception as e:
            self.logger.error(f"initiate_bank_transfer: Failure - {e}")
            raise

    async def verify_payment(self, transaction_id: str) -> Dict[str, Any]:
        self.logger.info(f"verify_payment: Entry - transaction: {transaction_id}")
        try:
            data = await self._request('GET', f'/v3/transactions/{transaction_id}/verify')
            self.logger.info(f"verify_payment: Success - status: {data.get('data', {}).get('status')}")
            return data
        except Exception as e:
            self.logger.error(f"verify_payment: Failure - {e}")
            raise

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """
        Check the verif-hash header (hex HMAC-SHA256 of the raw body).

        Without a configured webhook secret every delivery is accepted.
        """
        if not self.webhook_secret:
            return True
        if not signature:
            return False
        expected = hmac.new(self.webhook_secret.encode(), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature.strip().lower())
