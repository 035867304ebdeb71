"""Explicit holder for the signed-in identity.

The identity provider calls ``login`` from its sign-in callback and ``logout``
from its sign-out callback; every other component only reads.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from shared.auth.models import Identity

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()


class AuthError(Exception):
    """Raised when an operation needs a signed-in identity and there is none."""


class AuthContext:
    def __init__(self, identity: Identity | None = None) -> None:
        self._identity = identity
        self._listeners: list[Callable[[Identity | None], None]] = []

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    def require(self) -> Identity:
        if self._identity is None:
            raise AuthError("Please sign in first")
        return self._identity

    def login(self, identity: Identity) -> None:
        changed = self._identity != identity
        self._identity = identity
        logger.info("signed in", uid=identity.uid)
        if changed:
            self._notify()

    def logout(self) -> None:
        if self._identity is None:
            return
        logger.info("signed out", uid=self._identity.uid)
        self._identity = None
        self._notify()

    def add_listener(self, listener: Callable[[Identity | None], None]) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._identity)
