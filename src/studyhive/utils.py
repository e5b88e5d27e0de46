"""
utils.py

Utility functions for the StudyHive backend.
Includes the SendGrid email sender, the email templates, the Redis rate limiter
and the response envelope helper.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import redis.asyncio as redis
from fastapi.encoders import jsonable_encoder
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from .settings import settings

logger = logging.getLogger(__name__)

PRODUCT_NAME = "StudyHive"


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def envelope(message: str, data: Any = None) -> dict:
    """Success body shared by every endpoint: {success, message, data}."""
    return {"success": True, "message": message, "data": jsonable_encoder(data, by_alias=True)}


def send_email(
    to: str,
    subject: str,
    body: str,
    is_html: bool = False,
) -> bool:
    """
    Send email using SendGrid API.

    Never raises: callers run it as a background task and account flows must not
    fail because the mail provider is down.

    Args:
        to: Recipient email address
        subject: Email subject
        body: Email body (plain text or HTML)
        is_html: True if body is HTML, False for plain text

    Returns:
        bool: True if email sent successfully, False otherwise
    """
    if not settings.email_api_key:
        logger.error("SendGrid API key missing in configuration")
        return False

    if not settings.email_sender:
        logger.error("Email sender address missing in configuration")
        return False

    try:
        message = Mail(
            from_email=settings.email_sender,
            to_emails=to,
            subject=subject
        )

        if is_html:
            message.add_content(body, "text/html")
        else:
            message.add_content(body, "text/plain")

        sg = SendGridAPIClient(api_key=settings.email_api_key)
        response = sg.send(message)

        if 200 <= response.status_code < 300:
            return True

        logger.error("SendGrid error %s while mailing %s", response.status_code, to)
        return False

    except Exception as e:
        logger.error(f"SendGrid exception: {str(e)}")
        return False


def _action_email(name: str, intro: str, instructions: str, button_text: str, color: str, link: str, outro: str) -> str:
    return f"""
    <html>
      <body style="font-family: Arial, sans-serif;">
        <p>Hi {name},</p>
        <p>{intro}</p>
        <p>{instructions}</p>
        <p>
          <a href="{link}" style="background:{color};color:#ffffff;padding:10px 18px;text-decoration:none;border-radius:4px;">
            {button_text}
          </a>
        </p>
        <p>{outro}</p>
        <p>The {PRODUCT_NAME} Team</p>
      </body>
    </html>
    """


def email_verification_content(name: str, verification_url: str) -> str:
    return _action_email(
        name,
        f"Welcome to {PRODUCT_NAME}! We're excited to have you on board.",
        "To activate your account, please verify your email by clicking the button below:",
        "Verify Email",
        "#22BC66",
        verification_url,
        "This verification link will expire soon for security reasons. "
        "If you did not create an account, you can safely ignore this email.",
    )


def forgot_password_content(name: str, reset_url: str) -> str:
    return _action_email(
        name,
        "We received a request to reset your password.",
        "Click the button below to set a new password:",
        "Reset Password",
        "#FF6136",
        reset_url,
        "If you did not request a password reset, no further action is required. "
        "For security, this reset link will expire shortly.",
    )


# Async Redis-based rate limiter utility
_redis_clients: dict = {}


def get_redis_client(redis_url: Optional[str] = None):
    """One pooled client per URL, shared by every request."""
    url = redis_url or settings.redis_url
    client = _redis_clients.get(url)
    if client is None:
        client = redis.from_url(url, decode_responses=True)
        _redis_clients[url] = client
    return client


async def close_redis_clients() -> None:
    while _redis_clients:
        _, client = _redis_clients.popitem()
        await client.aclose()


async def check_and_increment_rate_limit(key: str, limit: int, period: int, redis_url: str) -> bool:
    """
    Returns True if the request is allowed, False if rate limited.
    Increments the fixed-window counter for the given key in Redis, with expiry.
    """
    r = get_redis_client(redis_url)
    bucket = f"rate_limit:{key}"
    count = await r.incr(bucket)
    if count == 1:
        await r.expire(bucket, period)
    if count > limit:
        return False
    return True
