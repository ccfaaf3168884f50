"""Per-client application context.

Holds what the dashboard used to keep in ambient globals (signed-in user,
sidebar collapse state). A context exists only between sign-in and sign-out;
after sign-out the token no longer resolves and the object is cleared.
"""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from smartflow_server.schemas.entities import UserRow

_log = logging.getLogger(__name__)


@dataclass
class AppContext:
    user: Optional[UserRow] = None
    sidebar_collapsed: bool = False
    signed_in_at: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return self.user is not None

    def populate(self, user: UserRow) -> None:
        self.user = user
        self.signed_in_at = datetime.now(timezone.utc)

    def clear(self) -> None:
        self.user = None
        self.sidebar_collapsed = False
        self.signed_in_at = None


class ContextRegistry:
    """Token -> ``AppContext`` map with explicit sign-in/sign-out lifecycle."""

    def __init__(self) -> None:
        self._contexts: Dict[str, AppContext] = {}
        self._lock = threading.Lock()

    def sign_in(self, user: UserRow) -> tuple[str, AppContext]:
        token = secrets.token_urlsafe(24)
        ctx = AppContext()
        ctx.populate(user)
        with self._lock:
            self._contexts[token] = ctx
        _log.info("context opened user=%s", user.id)
        return token, ctx

    def get(self, token: str | None) -> AppContext | None:
        if not token:
            return None
        with self._lock:
            return self._contexts.get(token)

    def sign_out(self, token: str | None) -> bool:
        if not token:
            return False
        with self._lock:
            ctx = self._contexts.pop(token, None)
        if ctx is None:
            return False
        user_id = ctx.user.id if ctx.user else None
        ctx.clear()
        _log.info("context closed user=%s", user_id)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)
