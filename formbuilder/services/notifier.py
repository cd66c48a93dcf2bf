"""
E-mail notifications.

Messages are rendered from ``formbuilder/templates/email`` with Jinja2 and
sent with aiosmtplib. Notifications run after the request transaction has
committed (FastAPI ``BackgroundTasks``); a failed send is logged and never
reaches the caller.
"""

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Dict, Optional

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..core import config

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


def render(template_name: str, data: Dict[str, Any]) -> str:
    return _env.get_template(f"{template_name}.html").render(**data)


class Notifier:
    """Async SMTP sender"""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        start_tls: Optional[bool] = None,
    ):
        self.host = host if host is not None else config.SMTP_HOST
        self.port = port if port is not None else config.SMTP_PORT
        self.username = username if username is not None else config.SMTP_USER
        self.password = password if password is not None else config.SMTP_PASSWORD
        self.sender = sender if sender is not None else config.SMTP_FROM
        self.start_tls = start_tls if start_tls is not None else config.SMTP_START_TLS

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    async def send(self, to: str, subject: str, body: str) -> bool:
        """Send one HTML message. Returns False when it was skipped or failed."""
        if not self.is_configured:
            logger.info("SMTP not configured, skipping mail to %s: %s", to, subject)
            return False

        message = MIMEMultipart("alternative")
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.attach(MIMEText(body, "html"))

        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.start_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("Failed to send mail to %s (%s): %s", to, subject, e)
            return False

        logger.info("Mail sent to %s: %s", to, subject)
        return True

    async def notify_submission(
        self,
        form_title: str,
        form_id: int,
        response_id: int,
        respondent_email: Optional[str],
        response_token: Optional[str],
        owner_email: Optional[str],
        notify_owner: bool = True,
    ) -> None:
        """
        Confirmation to the respondent and an alert to the owner, sent
        independently. Both require a respondent address.
        """
        if not respondent_email:
            return

        edit_link = (
            f"{config.APP_DOMAIN_NAME}/api/v1/forms/{form_id}/responses/"
            f"{response_id}/token?token={response_token}"
        )
        await self.send(
            respondent_email,
            f"Your response to {form_title}",
            render(
                "respondent_submission_confirmation",
                {"form_title": form_title, "response_link": edit_link},
            ),
        )

        if notify_owner and owner_email:
            await self.send(
                owner_email,
                f"New response for {form_title}",
                render(
                    "owner_new_response_notification",
                    {
                        "form_title": form_title,
                        "respondent_email": respondent_email,
                        "responses_link": f"{config.APP_DOMAIN_NAME}/api/v1/forms/{form_id}/responses",
                    },
                ),
            )

    async def notify_invitation(
        self,
        email: str,
        form_title: str,
        role: str,
        temporary_password: Optional[str] = None,
    ) -> None:
        await self.send(
            email,
            f"You have been invited to {form_title}",
            render(
                "invitation",
                {
                    "email": email,
                    "form_title": form_title,
                    "role": role,
                    "temporary_password": temporary_password,
                    "login_link": f"{config.APP_DOMAIN_NAME}/api/v1/users/login",
                },
            ),
        )


_notifier = Notifier()


def get_notifier() -> Notifier:
    return _notifier
