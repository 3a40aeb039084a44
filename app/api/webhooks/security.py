"""Twilio webhook signature verification."""
import logging
from typing import Mapping

from fastapi import Request
from twilio.request_validator import RequestValidator

from app.core.config import Settings
from app.core.errors import CallHandlerError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Twilio-Signature"


class InvalidSignatureError(CallHandlerError):
    """The webhook is not signed by the configured Twilio account."""

    status_code = 403
    public_message = "Invalid webhook signature"


def get_signed_url(request: Request, app_settings: Settings) -> str:
    """
    Get the URL Twilio signed.

    Behind a proxy the request URL differs from the public one, so BASE_URL
    takes precedence when it is configured.
    """
    if not app_settings.base_url:
        return str(request.url)
    url = f"{app_settings.base_url.rstrip('/')}{request.url.path}"
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return url


def verify_twilio_signature(
    request: Request, fields: Mapping[str, str], app_settings: Settings
) -> None:
    """
    Check the X-Twilio-Signature header when verification is enabled.

    Raises:
        InvalidSignatureError: If the signature is missing or doesn't match
    """
    if not app_settings.verify_twilio_signature:
        return

    signature = request.headers.get(SIGNATURE_HEADER, "")
    if not signature:
        raise InvalidSignatureError(f"No {SIGNATURE_HEADER} header on {request.url.path}")

    url = get_signed_url(request, app_settings)
    validator = RequestValidator(app_settings.twilio_auth_token)
    if not validator.validate(url, dict(fields), signature):
        raise InvalidSignatureError(f"Signature mismatch for {url}")

    logger.debug(f"[WEBHOOK SECURITY] Valid Twilio signature for URL: {url}")
