"""
Error types shared by the confirmation engine and the API layer.

Each error carries the HTTP status the API maps it to, so routes can simply
let them propagate to the global exception handler.
"""


class CryptoPayError(Exception):
    status_code = 500


class UnsupportedChain(CryptoPayError):
    status_code = 400

    def __init__(self, chain_id: int):
        self.chain_id = chain_id
        super().__init__(f"Unsupported chain: {chain_id}")


class ChainMismatch(CryptoPayError):
    status_code = 400

    def __init__(self, payment_intent_id: str, expected: int, submitted: int):
        self.payment_intent_id = payment_intent_id
        self.expected = expected
        self.submitted = submitted
        super().__init__(
            f"Payment intent {payment_intent_id} is payable on chain {expected}, "
            f"not {submitted}"
        )


class PaymentIntentNotFound(CryptoPayError):
    status_code = 404

    def __init__(self, payment_intent_id: str):
        self.payment_intent_id = payment_intent_id
        super().__init__(f"Payment intent {payment_intent_id} not found")


class PaymentIntentTerminal(CryptoPayError):
    status_code = 409

    def __init__(self, payment_intent_id: str, status: str):
        self.payment_intent_id = payment_intent_id
        self.status = status
        super().__init__(
            f"Payment intent {payment_intent_id} is already {status}"
        )


class ButtonNotFound(CryptoPayError):
    status_code = 404

    def __init__(self, button_id: str):
        self.button_id = button_id
        super().__init__("Button not found or inactive")


class PullTransactionNotFound(CryptoPayError):
    status_code = 404

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__("Transaction not found")


class CustomerProfileNotFound(CryptoPayError):
    status_code = 404

    def __init__(self, crypto_id: str):
        self.crypto_id = crypto_id
        super().__init__("User not found")


class WebhookConfigurationError(CryptoPayError):
    """No webhook secret is available for a merchant that has a webhook URL."""
