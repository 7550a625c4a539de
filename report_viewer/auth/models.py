from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SessionUser:
    """Identity held in the session (from a CRM contact or OIDC claims)."""

    provider: str  # crm|oidc
    id: str
    first_name: str = "Member"
    last_name: str = ""
    email: str = "Not provided"
    phone: str = "Not provided"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class SessionData:
    """Everything stored in the session cookie. Empty means anonymous."""

    user: Optional[SessionUser] = None
    # Pending OIDC login (awaiting callback)
    code_verifier: Optional[str] = None
    state: Optional[str] = None
    nonce: Optional[str] = None
    next_path: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.user is None and not (self.code_verifier or self.state or self.nonce or self.next_path)

    def clear_pending_login(self) -> None:
        self.code_verifier = None
        self.state = None
        self.nonce = None
        self.next_path = None
