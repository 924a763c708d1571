from __future__ import annotations

import uuid

from fastapi import Header, HTTPException

from cardflow.core.context import RequestContext


def _parse_uuid(value: str, header: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{header} must be a UUID") from None


async def get_context(
    x_tenant_id: str = Header(...),
    x_actor_id: str = Header(...),
    x_actor_role: str = Header("member"),
) -> RequestContext:
    """Build the caller context from headers set by the upstream auth gateway.

    The gateway has already authenticated the caller; nothing is verified here.
    """
    return RequestContext(
        tenant_id=_parse_uuid(x_tenant_id, "X-Tenant-Id"),
        actor_id=_parse_uuid(x_actor_id, "X-Actor-Id"),
        role=x_actor_role,
    )
