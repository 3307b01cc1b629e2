"""
Payment Request Mailer

Emails a pull-flow payer the link where they approve a payment request.
Sending is best effort: the transaction already exists when this runs, so
every failure is logged and reported as False, never raised.
"""

import smtplib
from decimal import Decimal
from email.message import EmailMessage

import structlog

from core.logging import BusinessEvents
from core.settings import Settings

log = structlog.get_logger(__name__)

SUBJECT = "Payment Request - CryptoPay"


def build_pay_url(base_url: str, transaction_id: int) -> str:
    return f"{base_url.rstrip('/')}/pay/{transaction_id}"


def build_payment_request(
    sender: str, recipient: str, amount_usd: Decimal, pay_url: str
) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = SUBJECT
    message["From"] = sender
    message["To"] = recipient
    message.set_content(
        f"You have a payment request for ${amount_usd}.\n\n"
        f"Review and pay it here: {pay_url}\n"
    )
    message.add_alternative(
        f"""\
<html>
  <body>
    <h2>Payment Request</h2>
    <p>You have a payment request for <strong>${amount_usd}</strong>.</p>
    <p><a href="{pay_url}">Review and pay</a></p>
  </body>
</html>
""",
        subtype="html",
    )
    return message


class PaymentRequestMailer:
    def __init__(self, settings: Settings):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.username = settings.SMTP_USERNAME
        self.password = settings.SMTP_PASSWORD
        self.timeout = settings.SMTP_TIMEOUT_SECONDS
        self.mail_from = settings.MAIL_FROM
        self.pay_url_base = settings.PAY_URL_BASE

    def send_payment_request(
        self, email: str, amount_usd: Decimal, transaction_id: int
    ) -> bool:
        """
        Send one payment request email.

        Returns:
            True when the SMTP server accepted the message, False when sending
            is disabled or failed.
        """
        try:
            return self._send(email, amount_usd, transaction_id)
        except Exception as e:
            log.error(
                BusinessEvents.PAYMENT_REQUEST_FAILED,
                transaction_id=transaction_id,
                error=str(e),
            )
            return False

    def _send(self, email: str, amount_usd: Decimal, transaction_id: int) -> bool:
        if not self.host:
            log.info(
                BusinessEvents.PAYMENT_REQUEST_SKIPPED,
                transaction_id=transaction_id,
                reason="smtp_not_configured",
            )
            return False

        message = build_payment_request(
            self.mail_from,
            email,
            amount_usd,
            build_pay_url(self.pay_url_base, transaction_id),
        )

        try:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as smtp:
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            log.error(
                BusinessEvents.PAYMENT_REQUEST_FAILED,
                transaction_id=transaction_id,
                host=self.host,
                error=str(e),
            )
            return False

        log.info(BusinessEvents.PAYMENT_REQUEST_SENT, transaction_id=transaction_id)
        return True
