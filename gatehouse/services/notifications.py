"""Out-of-band delivery of one-time codes."""
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from gatehouse.config import Settings, get_settings
from gatehouse.logging import get_logger
from gatehouse.models.auth import OTPPurpose
from gatehouse.models.user import TwoFactorMethod, User
from gatehouse.services.errors import ValidationError

logger = get_logger(__name__)

_SUBJECTS = {
    OTPPurpose.TWO_FACTOR: "Your sign-in code",
    OTPPurpose.PASSWORD_RESET: "Reset your password",
    OTPPurpose.EMAIL_VERIFICATION: "Verify your email address",
}


class OTPSender(Protocol):
    def send_otp(self, destination: str, code: str, purpose: OTPPurpose) -> bool:
        ...


class EmailOTPSender:
    """Send codes over SMTP.

    Requires settings:
    - SMTP_HOST
    - SMTP_PORT (default 587)
    - SMTP_USER
    - SMTP_PASSWORD
    - SMTP_FROM_EMAIL
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def send_otp(self, destination: str, code: str, purpose: OTPPurpose) -> bool:
        if not self.settings.smtp_host:
            logger.info("smtp_not_configured", purpose=purpose.value)
            return False

        minutes = self.settings.otp_expire_minutes
        msg = MIMEMultipart("alternative")
        msg["Subject"] = _SUBJECTS[purpose]
        msg["From"] = self.settings.smtp_from_email
        msg["To"] = destination
        msg.attach(MIMEText(f"Your code is {code}. It expires in {minutes} minutes.", "plain"))
        msg.attach(MIMEText(
            f"<p>Your code is <strong>{code}</strong>.</p><p>It expires in {minutes} minutes.</p>",
            "html",
        ))

        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port) as server:
                server.starttls()
                if self.settings.smtp_user and self.settings.smtp_password:
                    server.login(self.settings.smtp_user, self.settings.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.error("otp_email_failed", purpose=purpose.value, exc_info=True)
            return False
        return True


class OTPDispatcher:
    """Route a code to the sender registered for a delivery channel."""

    def __init__(self, senders: dict[TwoFactorMethod, OTPSender]):
        self.senders = senders

    def supports(self, method: TwoFactorMethod) -> bool:
        return method in self.senders

    def dispatch(self, user: User, method: TwoFactorMethod, code: str, purpose: OTPPurpose) -> bool:
        sender = self.senders.get(method)
        if sender is None:
            raise ValidationError(f"No sender configured for {method.value}")

        destination = user.email if method is TwoFactorMethod.EMAIL else user.phone_number
        if not destination:
            raise ValidationError(f"No {method.value} destination on file")

        delivered = sender.send_otp(destination, code, purpose)
        logger.info("otp_dispatched", user_id=user.id, method=method.value, purpose=purpose.value, delivered=delivered)
        return delivered


def default_dispatcher(settings: Settings | None = None) -> OTPDispatcher:
    """Email only; SMS requires registering a sender."""
    return OTPDispatcher({TwoFactorMethod.EMAIL: EmailOTPSender(settings)})
