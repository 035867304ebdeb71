"""Identity context shared by the session protocol, the client layer and the server."""

from shared.auth.context import AuthContext, AuthError
from shared.auth.models import Identity

__all__ = [
    "AuthContext",
    "AuthError",
    "Identity",
]
