import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import httpx

from academy.core.config import settings
from academy.core.exceptions import PaymentProviderError

CURRENCY_NAMES = {
    'btc': 'Bitcoin',
    'eth': 'Ethereum',
    'usdt': 'Tether',
    'usdc': 'USD Coin',
    'bnb': 'BNB',
    'ada': 'Cardano',
    'sol': 'Solana',
    'dot': 'Polkadot',
    'doge': 'Dogecoin',
    'ltc': 'Litecoin',
    'xrp': 'Ripple',
    'bch': 'Bitcoin Cash',
    'trx': 'TRON',
    'matic': 'Polygon',
}

# IPN statuses that settle the payment one way or the other
NOWPAYMENTS_SUCCESS_STATUSES = {'finished'}
NOWPAYMENTS_FAILED_STATUSES = {'failed'}
NOWPAYMENTS_EXPIRED_STATUSES = {'expired'}


class NowPaymentsService:
    """Client for the NOWPayments crypto payment API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        ipn_secret: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.nowpayments_api_key
        self.ipn_secret = ipn_secret if ipn_secret is not None else settings.nowpayments_ipn_secret
        self.base_url = (base_url or settings.nowpayments_base_url).rstrip('/')
        self.logger = logging.getLogger(__name__)

    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        headers = {
            'Content-Type': 'application/json',
            'x-api-key': self.api_key or '',
        }
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.request(method, f"{self.base_url}{endpoint}", headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise PaymentProviderError('nowpayments', f"Request to {endpoint} failed: {e}")

        if response.status_code >= 400:
            raise PaymentProviderError(
                'nowpayments',
                f"API error {response.status_code} - {response.text}",
                status_code=response.status_code
            )
        return response.json()

    async def get_available_currencies(self) -> list[dict]:
        self.logger.info("get_available_currencies: Entry")
        try:
            data = await self._request('GET', '/currencies')
            currencies = [
                {
                    'code': code.lower(),
                    'name': CURRENCY_NAMES.get(code.lower(), code.upper()),
                    'enabled': True,
                }
                for code in data.get('currencies', [])
            ]
            self.logger.info(f"get_available_currencies: Success - {len(currencies)} currencies")
            return currencies
        except Exception as e:
            self.logger.error(f"get_available_currencies: Failure - {e}")
            raise

    async def get_minimum_amount(self, currency_from: str, currency_to: str) -> dict:
        self.logger.info(f"get_minimum_amount: Entry - {currency_from} -> {currency_to}")
        try:
            data = await self._request(
                'GET', '/min-amount',
                params={'currency_from': currency_from.lower(), 'currency_to': currency_to.lower()}
            )
            self.logger.info(f"get_minimum_amount: Success - {data.get('min_amount')}")
            return data
        except Exception as e:
            self.logger.error(f"get_minimum_amount: Failure - {e}")
            raise

    async def get_estimate(self, amount: float, currency_from: str, currency_to: str) -> dict:
        self.logger.info(f"get_estimate: Entry - {amount} {currency_from} -> {currency_to}")
        try:
            data = await self._request(
                'GET', '/estimate',
                params={
                    'amount': amount,
                    'currency_from': currency_from.lower(),
                    'currency_to': currency_to.lower(),
                }
            )
            self.logger.info(f"get_estimate: Success - {data.get('estimated_amount')}")
            return data
        except Exception as e:
            self.logger.error(f"get_estimate: Failure - {e}")
            raise

    async def create_payment(
        self,
        price_amount: float,
        price_currency: str,
        pay_currency: str,
        order_id: str,
        order_description: Optional[str] = None,
        customer_email: Optional[str] = None,
        ipn_callback_url: Optional[str] = None,
    ) -> dict:
        """Create a crypto payment; ``order_id`` carries the subscription id back in the IPN"""
        self.logger.info(f"create_payment: Entry - order: {order_id}, {price_amount} {price_currency} in {pay_currency}")

        payload: Dict[str, Any] = {
            'price_amount': price_amount,
            'price_currency': price_currency.lower(),
            'pay_currency': pay_currency.lower(),
            'order_id': order_id,
        }
        if order_description:
            payload['order_description'] = order_description
        if customer_email:
            payload['customer_email'] = customer_email
        if ipn_callback_url:
            payload['ipn_callback_url'] = ipn_callback_url

        try:
            data = await self._request('POST', '/payment', json=payload)
            self.logger.info(f"create_payment: Success - payment: {data.get('payment_id')}")
            return data
        except Exception as e:
            self.logger.error(f"create_payment: Failure - {e}")
            raise

    async def get_payment_status(self, payment_id: str) -> dict:
        self.logger.info(f"get_payment_status: Entry - payment: {payment_id}")
        try:
            data = await self._request('GET', f'/payment/{payment_id}')
            self.logger.info(f"get_payment_status: Success - {data.get('payment_status')}")
            return data
        except Exception as e:
            self.logger.error(f"get_payment_status: Failure - {e}")
            raise

    def sign(self, body: bytes) -> str:
        return hmac.new((self.ipn_secret or '').encode(), body, hashlib.sha512).hexdigest()

    def verify_ipn_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """Check the x-nowpayments-sig header: hex HMAC-SHA512 of the raw body"""
        if not signature or not self.ipn_secret:
            return False
        return hmac.compare_digest(self.sign(body), signature.strip().lower())
