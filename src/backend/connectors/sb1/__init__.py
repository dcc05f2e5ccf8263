"""SpareBank 1 connector (network + auth lives here; payload adapters live in src/backend/adapters/sb1)."""

from .auth import SB1AuthError
from .client import SB1HttpError, SB1Session
from .config import SB1Config, get_sb1_config

__all__ = ["SB1AuthError", "SB1Config", "SB1HttpError", "SB1Session", "get_sb1_config"]
