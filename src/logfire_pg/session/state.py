"""Per-connection session state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4

from pydantic import SecretStr

# The connection password, used as the upstream bearer token. SecretStr keeps it
# out of reprs and log lines.
Credential = SecretStr


@dataclass(frozen=True)
class AuthenticatedSession:
    """State of a connection that passed authentication.

    Only the Gatekeeper creates these, so holding one means the credential was
    accepted upstream. Queries can only be run against an AuthenticatedSession.
    """

    username: str
    credential: Credential = field(repr=False)
    database: str | None = None
    application_name: str | None = None
    remote_address: str | None = None
    id: UUID = field(default_factory=uuid4)
    authenticated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __str__(self) -> str:
        return f"{self.username}@{self.remote_address or 'unknown'}"
