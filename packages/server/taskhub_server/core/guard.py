"""
Authorization Guard.

``authorize`` is a pure decision: resolve membership, consult the
Role-Permission Table, return Allow or Deny(reason). ``require`` wraps it for
services, logging the denial and raising ``AccessDenied``.

Every mutating operation calls one of these with the acting principal's id
before it writes anything.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub_server.core.errors import AccessDenied
from taskhub_server.core.membership import ResourcePath, Resolution, resolve
from taskhub_shared.schemas.common import Action, DenyReason

log = structlog.get_logger()

_DENY_MESSAGES = {
    DenyReason.NOT_A_MEMBER: "You are not a member of this organization",
    DenyReason.BANNED: "Your access to this resource has been revoked",
    DenyReason.INSUFFICIENT_ROLE: "Your role does not allow this action",
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None
    resolution: Optional[Resolution] = None

    @classmethod
    def allow(cls, resolution: Resolution) -> "Decision":
        return cls(allowed=True, resolution=resolution)

    @classmethod
    def deny(cls, reason: DenyReason, resolution: Optional[Resolution] = None) -> "Decision":
        return cls(allowed=False, reason=reason, resolution=resolution)

    def __bool__(self) -> bool:
        return self.allowed


def decide(resolution: Optional[Resolution], action: Action) -> Decision:
    """Decision for an already-resolved membership."""
    if resolution is None:
        return Decision.deny(DenyReason.NOT_A_MEMBER)
    if resolution.banned:
        return Decision.deny(DenyReason.BANNED, resolution)
    if action not in resolution.permissions:
        return Decision.deny(DenyReason.INSUFFICIENT_ROLE, resolution)
    return Decision.allow(resolution)


async def authorize(
    session: AsyncSession,
    principal_id: uuid.UUID,
    path: ResourcePath,
    action: Action,
) -> Decision:
    """Decide whether a principal may perform an action on a resource path.

    Raises ResourceNotFound if the path does not exist.
    """
    resolution = await resolve(session, principal_id, path)
    return decide(resolution, action)


async def require(
    session: AsyncSession,
    principal_id: uuid.UUID,
    path: ResourcePath,
    action: Action,
) -> Resolution:
    """Authorize or raise AccessDenied. Returns the caller's resolution."""
    decision = await authorize(session, principal_id, path, action)
    if not decision:
        log.warning(
            "authz.denied",
            principal_id=str(principal_id),
            path=str(path),
            action=action.value,
            reason=decision.reason.value,
        )
        raise AccessDenied(decision.reason, _DENY_MESSAGES[decision.reason])
    return decision.resolution
