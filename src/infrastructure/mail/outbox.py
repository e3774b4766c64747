from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from sqlalchemy.orm import Session

from infrastructure.persistence.tables import OutboundMessage

logger = logging.getLogger(__name__)


class Mailer(ABC):
    @abstractmethod
    def send(self, tenant_id: str, to_email: str, subject: str, html: str) -> str:
        """Queue a message and return its id."""
        raise NotImplementedError


class OutboxMailer(Mailer):
    """Writes messages to the outbound_messages table; a relay delivers them.

    The row joins the caller's session so it commits with the tool call that produced it.
    """

    def __init__(self, session: Session):
        self._session = session

    def send(self, tenant_id: str, to_email: str, subject: str, html: str) -> str:
        message = OutboundMessage(tenant_id=tenant_id, to_email=to_email, subject=subject, body_html=html, status="queued")
        self._session.add(message)
        self._session.flush()
        logger.info("OutboxMailer queued message_id=%s tenant_id=%s html_chars=%d", message.id, tenant_id, len(html))
        return message.id
