from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class User:
    id: str
    email: str
    password_digest: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
