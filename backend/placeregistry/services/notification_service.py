"""
Place Registry Backend — Notification Service
===============================================

What:  E-mails admins when a new place awaits review, and owners when
       moderation changes their place's status.
How:   smtplib in a worker thread (so the event loop is not blocked), retried
       with tenacity on transient SMTP/network errors.
Who:   Called by PlaceService, always through attempt(): a failed
       notification never fails the create or the moderation.

Set SMTP_HOST, SMTP_USER, SMTP_PASSWORD and NOTIFY_ADMIN_EMAIL in .env.
Without SMTP_HOST, notifications are logged and skipped.
"""

import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from typing import Optional

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from placeregistry.config import settings

logger = logging.getLogger(__name__)


def _from_address() -> str:
    if settings.notify_from.strip():
        return settings.notify_from.strip()
    if settings.smtp_user.strip():
        return f"Place Registry <{settings.smtp_user.strip()}>"
    return "Place Registry <noreply@localhost>"


class Notifier:
    """Sends plain-text e-mails about place records."""

    @property
    def enabled(self) -> bool:
        return bool(settings.smtp_host.strip())

    def _send_sync(self, to_email: str, subject: str, body: str) -> None:
        @retry(
            stop=stop_after_attempt(settings.notify_retry_attempts),
            wait=wait_exponential_jitter(initial=1, max=8),
            retry=retry_if_exception_type((smtplib.SMTPException, OSError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _deliver() -> None:
            msg = MIMEText(body, "plain", "utf-8")
            msg["Subject"] = subject
            msg["From"] = _from_address()
            msg["To"] = to_email
            with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout) as server:
                server.starttls()
                if settings.smtp_user:
                    server.login(settings.smtp_user, settings.smtp_password)
                server.sendmail(msg["From"], [to_email], msg.as_string())

        _deliver()

    async def send(self, to_email: str, subject: str, body: str) -> bool:
        """
        Send one e-mail. Returns False when skipped (no SMTP or no recipient).
        Raises the last SMTP/OS error once retries are exhausted.
        """
        to_email = (to_email or "").strip()
        if not self.enabled or not to_email:
            logger.debug("E-mail skipped (smtp configured=%s): %s", self.enabled, subject)
            return False
        await asyncio.to_thread(self._send_sync, to_email, subject, body)
        logger.info("E-mail sent to %s: %s", to_email, subject)
        return True

    async def notify_new_place(self, place, actor_id: Optional[str]) -> bool:
        """Tell the admins a place was created; PENDING ones wait for their review."""
        if place.status == "PENDING":
            subject = f"New place awaiting review: {place.name}"
            intro = "A new place was submitted and needs validation."
        else:
            subject = f"New place created: {place.name}"
            intro = f"A new place was created with status {place.status}."
        body = "\n".join([
            intro,
            "",
            f"Place: {place.name} ({place.slug})",
            f"Submitted by: {actor_id or 'unknown'}",
            "",
            f"Review it at {settings.public_base_url.rstrip('/')}/dashboard/admin/places",
        ])
        logger.info("New place %s (%s), status %s", place.slug, place.id, place.status)
        return await self.send(settings.notify_admin_email, subject, body)

    async def notify_status_change(self, place, owner_email: Optional[str]) -> bool:
        """Tell the owner about a moderation decision on their place."""
        subject = f"Your place \"{place.name}\" is now {place.status.lower()}"
        body = "\n".join([
            f"The status of your place \"{place.name}\" changed to {place.status}.",
            "",
            f"{settings.public_base_url.rstrip('/')}/places/{place.slug}",
        ])
        return await self.send(owner_email or "", subject, body)


notifier = Notifier()
