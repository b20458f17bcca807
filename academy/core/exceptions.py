class WebhookSignatureError(Exception):
    """Raised when an inbound webhook fails signature verification"""


class PaymentProviderError(Exception):
    """Raised when a payment provider rejects a request or is unreachable"""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")
