from __future__ import annotations

import uuid
from dataclasses import dataclass

from cardflow.core.errors import AuthorizationError

# Fixed actor id recorded on everything the entropy sweep does
SYSTEM_ACTOR_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

ADMIN_ROLES = frozenset({"admin", "owner", "system"})


@dataclass(frozen=True)
class RequestContext:
    """Pre-validated caller identity, resolved by the access-control layer."""

    tenant_id: uuid.UUID
    actor_id: uuid.UUID
    role: str = "member"

    @classmethod
    def system(cls, tenant_id: uuid.UUID) -> RequestContext:
        return cls(tenant_id=tenant_id, actor_id=SYSTEM_ACTOR_ID, role="system")

    @property
    def is_system(self) -> bool:
        return self.actor_id == SYSTEM_ACTOR_ID

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def require_admin(self) -> None:
        if not self.is_admin:
            raise AuthorizationError(f"Role '{self.role}' may not change tenant configuration")
