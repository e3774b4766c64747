from __future__ import annotations

import logging
from typing import Mapping

from sqlalchemy.orm import Session, sessionmaker

from domain.errors import ScopeResolutionError, UnauthenticatedError
from infrastructure.persistence.tables import Profile

logger = logging.getLogger(__name__)

ACTOR_HEADER = "x-actor-id"


class HeaderIdentityResolver:
    """Reads the actor id an upstream auth proxy puts on the request."""

    def __init__(self, header: str = ACTOR_HEADER):
        self._header = header.lower()

    def current_actor(self, headers: Mapping[str, str]) -> str:
        actor_id = (headers.get(self._header) or "").strip()
        if not actor_id:
            raise UnauthenticatedError("Unauthorized")
        return actor_id


class TenantResolver:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def resolve(self, actor_id: str) -> str:
        with self._session_factory() as session:
            profile = session.get(Profile, actor_id)
            tenant_id = profile.tenant_id if profile is not None else None
        if not tenant_id:
            logger.info("TenantResolver no tenant actor_id=%s", actor_id)
            raise ScopeResolutionError("Unable to resolve shop for this account.")
        return tenant_id
