"""Outgoing email."""

import logging
from html import escape

from fastapi import BackgroundTasks
from fastapi_mail import FastMail, MessageSchema
from fastapi_mail.errors import ConnectionErrors

from .core import get_mail_config

logger = logging.getLogger(__name__)


def send_contact_reply(
    background_tasks: BackgroundTasks, email: str, name: str, subject: str, response: str
):
    """Schedule sending of an admin's reply to a contact message."""
    background_tasks.add_task(send_contact_reply_task, email, name, subject, response)


def build_contact_reply(email: str, name: str, subject: str, response: str) -> MessageSchema:
    """
    Build the reply message for a contact submission.

    The sender name and reply text are HTML-escaped before they are placed
    in the body.

    Args:
        email (str): Recipient email address.
        name (str): Recipient name.
        subject (str): Subject of the original message.
        response (str): Reply text.

    Returns:
        MessageSchema: Message ready for :class:`FastMail`.
    """
    return MessageSchema(
        subject=f"Re: {subject}",
        recipients=[email],
        body=f"""
        <html>
          <body>
            <p>Hello {escape(name)},</p>
            <p>{escape(response)}</p>
            <p>Bunyoro Music</p>
          </body>
        </html>
        """,
        subtype="html",
    )


async def send_contact_reply_task(email: str, name: str, subject: str, response: str):
    """Send a contact reply; delivery failures are logged, the reply is already stored."""
    message = build_contact_reply(email, name, subject, response)
    fm = FastMail(get_mail_config())
    try:
        await fm.send_message(message)
    except ConnectionErrors as exc:
        logger.error("Could not send contact reply to %s: %s", email, exc)
