"""
Session models read by the administration client.

Sessions are created and persisted elsewhere (keychain, login commands);
this package only reads their fields.
"""

import time
from enum import Enum
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

# Sessions within this many seconds of expiry are treated as expired.
SESSION_EXPIRY_BUFFER = 120


class AuthenticationMethod(str, Enum):
    TOKEN = "TOKEN"
    CERT = "CERT"
    MFA = "MFA"
    PORTAL_ELEVATION = "PORTAL_ELEVATION"


class AdminSession(BaseModel):
    """Elevated credential scoped to server administration."""
    environment: str = "default"
    admin_token: str = Field(..., min_length=1)
    server_admin_url: str = Field(..., description="e.g. https://gis.example.com/arcgis/admin")
    portal_token: Optional[str] = None
    portal: Optional[str] = None
    username: Optional[str] = None
    elevation_expires: float = Field(..., description="Epoch seconds")
    privileges: List[str] = Field(default_factory=list)
    authentication_method: AuthenticationMethod = AuthenticationMethod.TOKEN

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now > self.elevation_expires - SESSION_EXPIRY_BUFFER


class PortalSession(BaseModel):
    """Ordinary portal user session, used to request federated tokens."""
    portal: str = Field(..., description="Portal sharing REST URL")
    token: str = Field(..., min_length=1)
    username: Optional[str] = None
    expires: Optional[float] = None


class SessionStore(Protocol):
    def get_admin_session(self, environment: Optional[str] = None) -> Optional[AdminSession]:
        ...

    def get_portal_session(self, environment: Optional[str] = None) -> Optional[PortalSession]:
        ...


class InMemorySessionStore:
    """Process-local session lookup keyed by environment name."""

    def __init__(self, default_environment: str = "default"):
        self.default_environment = default_environment
        self._admin: Dict[str, AdminSession] = {}
        self._portal: Dict[str, PortalSession] = {}

    def add_admin_session(self, session: AdminSession) -> None:
        self._admin[session.environment] = session

    def add_portal_session(self, session: PortalSession, environment: Optional[str] = None) -> None:
        self._portal[environment or self.default_environment] = session

    def get_admin_session(self, environment: Optional[str] = None) -> Optional[AdminSession]:
        session = self._admin.get(environment or self.default_environment)
        if session is None or session.is_expired():
            return None
        return session

    def get_portal_session(self, environment: Optional[str] = None) -> Optional[PortalSession]:
        return self._portal.get(environment or self.default_environment)
