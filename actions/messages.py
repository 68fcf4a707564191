"""
actions/messages.py -- The contact form's server action.

send_message() validates, relays exactly one email to the site owner, then
persists exactly one Message. The order matters: a message that could not be
delivered is not stored, so the table only holds messages the owner received.
Success requires both steps.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from actions.schemas import MessageInput
from core.mailer import Mailer, MailerError, render_contact_email
from core.results import ActionResult, first_error
from messages.models import Message
from messages.store import MessageStore

logger = logging.getLogger("gatehouse.actions")


def send_message(store: MessageStore, mailer: Mailer, form: Mapping[str, Any]) -> ActionResult:
    try:
        data = MessageInput.model_validate(dict(form))
    except ValidationError as exc:
        return ActionResult.fail(first_error(exc))

    try:
        mailer.send(
            mailer.sender,
            f"New message from {data.name}",
            render_contact_email(data.name, data.email, data.message),
        )
        store.create_message(Message(name=data.name, email=data.email, message=data.message))
    except (MailerError, SQLAlchemyError):
        logger.exception("[send_message] failed")
        return ActionResult.fail("Failed to send message")

    return ActionResult.ok()
