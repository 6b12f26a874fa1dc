"""
Exceptions raised inside the matching core.

None of these are fatal to the app: store failures fall back to the
embedded-token transport and decode failures resolve to "no session".
"""


class SoulMatchError(Exception):
    """Base exception for the matching core."""
    pass


class StoreUnavailableError(SoulMatchError):
    """Raised when the remote session store cannot be reached or errors."""
    pass


class TokenDecodeError(SoulMatchError):
    """Raised when a link token cannot be turned back into a session payload."""
    pass
