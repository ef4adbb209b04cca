"""Session lifecycle: refresh issuance, rotation engine and the session façade."""

from .dto import ActiveSessionOut, AuthTokenConfig, LoginIn, LogoutIn, RefreshIn, SessionOut
from .rotation import PresentedState, RotationEngine, RotationOutcome
from .service import SessionService

__all__ = [
    "ActiveSessionOut",
    "AuthTokenConfig",
    "LoginIn",
    "LogoutIn",
    "PresentedState",
    "RefreshIn",
    "RotationEngine",
    "RotationOutcome",
    "SessionOut",
    "SessionService",
]
