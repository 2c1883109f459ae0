"""Email service - transactional and campaign email via Resend"""
import logging
from html import escape
from typing import Optional

import resend

from newsdesk.core.config import settings
from newsdesk.core.exceptions import MailDeliveryError
from newsdesk.services.template_renderer import RenderConfig, preference_url, unsubscribe_url

logger = logging.getLogger(__name__)

VERIFICATION_SUBJECTS = {
    "id": "Konfirmasi Langganan Newsletter Polinema Mengajar",
    "en": "Confirm Your Polinema Mengajar Newsletter Subscription",
}
WELCOME_SUBJECTS = {
    "id": "Selamat Datang di Newsletter Polinema Mengajar",
    "en": "Welcome to Polinema Mengajar Newsletter",
}


def validate_email_config() -> tuple[bool, str]:
    """
    Validate email service configuration.

    Returns:
        tuple: (is_valid, error_message)
    """
    if not settings.RESEND_API_KEY:
        return False, "RESEND_API_KEY is not set in environment variables"
    if not settings.RESEND_FROM_EMAIL:
        return False, "RESEND_FROM_EMAIL is not set in environment variables"
    return True, ""


def _response_id(response) -> Optional[str]:
    # Resend returns a dict in current SDKs and an object in older ones
    if isinstance(response, dict):
        return response.get("id")
    return getattr(response, "id", None)


def send_email(to: str, subject: str, html: str) -> str:
    """
    Send one email through the Resend API.

    Args:
        to: Recipient email address
        subject: Email subject
        html: HTML email content

    Returns:
        str: Provider message id

    Raises:
        MailDeliveryError: API key missing, provider error, or no message id returned
    """
    if not settings.RESEND_API_KEY:
        raise MailDeliveryError("RESEND_API_KEY is not set")

    resend.api_key = settings.RESEND_API_KEY
    try:
        response = resend.Emails.send({
            "from": settings.RESEND_FROM_EMAIL,
            "to": to,
            "subject": subject,
            "html": html,
        })
    except Exception as exc:
        raise MailDeliveryError(f"Resend rejected email to {to}: {exc}") from exc

    email_id = _response_id(response)
    if not email_id:
        raise MailDeliveryError(f"Email send returned invalid response: {response!r}")

    logger.debug(f"Email sent to {to} (id: {email_id})")
    return email_id


def _localized(subjects: dict, locale: Optional[str]) -> str:
    return subjects.get(locale or "id", subjects["id"])


def send_verification_email(subscriber, config: Optional[RenderConfig] = None) -> bool:
    """
    Send the double opt-in confirmation email.

    Returns:
        bool: True on success, False on failure
    """
    config = config or RenderConfig.from_settings()
    verify_url = f"{config.base_url}/newsletter/verify?token={subscriber.token}"
    name = escape(subscriber.name or "Subscriber")

    if subscriber.locale == "en":
        html = f"""
        <p>Hi {name},</p>
        <p>Please confirm your subscription to the {escape(settings.BRAND_NAME)} newsletter.</p>
        <p><a href="{verify_url}">Confirm subscription</a></p>
        <p>If you did not subscribe, you can ignore this email.</p>
        """
    else:
        html = f"""
        <p>Halo {name},</p>
        <p>Silakan konfirmasi langganan newsletter {escape(settings.BRAND_NAME)} Anda.</p>
        <p><a href="{verify_url}">Konfirmasi langganan</a></p>
        <p>Jika Anda tidak merasa berlangganan, abaikan email ini.</p>
        """

    try:
        send_email(subscriber.email, _localized(VERIFICATION_SUBJECTS, subscriber.locale), html)
        return True
    except MailDeliveryError as exc:
        logger.error(f"Failed to send verification email to {subscriber.email}: {exc}")
        return False


def send_welcome_email(subscriber, config: Optional[RenderConfig] = None) -> bool:
    """
    Send the welcome email after a subscriber confirms.

    Returns:
        bool: True on success, False on failure
    """
    config = config or RenderConfig.from_settings()
    manage_url = preference_url(config, subscriber.token)
    leave_url = unsubscribe_url(config, subscriber.email)
    name = escape(subscriber.name or "Subscriber")

    if subscriber.locale == "en":
        html = f"""
        <p>Hi {name},</p>
        <p>Thanks for confirming. You will now receive news and articles from {escape(settings.BRAND_NAME)}.</p>
        <p><a href="{manage_url}">Manage your topics</a> &middot; <a href="{leave_url}">Unsubscribe</a></p>
        """
    else:
        html = f"""
        <p>Halo {name},</p>
        <p>Terima kasih telah berlangganan. Anda akan menerima berita dan artikel terbaru dari {escape(settings.BRAND_NAME)}.</p>
        <p><a href="{manage_url}">Atur topik</a> &middot; <a href="{leave_url}">Berhenti berlangganan</a></p>
        """

    try:
        send_email(subscriber.email, _localized(WELCOME_SUBJECTS, subscriber.locale), html)
        return True
    except MailDeliveryError as exc:
        logger.error(f"Failed to send welcome email to {subscriber.email}: {exc}")
        return False
