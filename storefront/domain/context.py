# storefront/domain/context.py
from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class ActorContext:
    """Who is calling: a signed-in user, an anonymous session, or both."""

    user_id: uuid.UUID | None = None
    session_id: str | None = None
    locale: str = "en"

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None and not self.session_id

    @property
    def performed_by(self) -> str | None:
        if self.user_id:
            return str(self.user_id)
        if self.session_id:
            return f"session:{self.session_id}"
        return None


SYSTEM_ACTOR = ActorContext(session_id="system")
