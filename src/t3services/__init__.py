"""Client library for the T3/SmartCare speech services.

Structure:
- t3services/client.py: SmartCare async client (login, search, account, ...)
- t3services/auth.py: T3Auth handshake primitives and immutable auth state
- t3services/touchmap.py: Touchmap snapshot building and the action cache
- t3services/models.py: Pydantic wire models (AuthToken, Action, ...)
- t3services/config.py: Settings via pydantic-settings
- t3services/errors.py: Exception hierarchy
- t3services/lib/: Protocol-agnostic utilities (headers, metrics, singleflight)
- t3services/cli/: typer command-line interface
"""

from t3services.auth import AuthState, HandshakeState, create_token
from t3services.client import SmartCare
from t3services.config import Endpoints, T3Settings, load_settings
from t3services.errors import (
    AuthenticationError,
    PreconditionError,
    ProtocolError,
    T3Error,
    ValidationError,
)
from t3services.models import (
    Action,
    AuthToken,
    MenuItem,
    SearchHit,
    SearchResult,
    TouchmapSnapshot,
)
from t3services.touchmap import TouchmapCache
from t3services.version import CLIENT_VERSION

__version__ = CLIENT_VERSION

__all__ = [
    # Client
    "SmartCare",
    # Auth
    "AuthState",
    "HandshakeState",
    "create_token",
    # Config
    "Endpoints",
    "T3Settings",
    "load_settings",
    # Errors
    "AuthenticationError",
    "PreconditionError",
    "ProtocolError",
    "T3Error",
    "ValidationError",
    # Models
    "Action",
    "AuthToken",
    "MenuItem",
    "SearchHit",
    "SearchResult",
    "TouchmapSnapshot",
    # Touchmap
    "TouchmapCache",
]
