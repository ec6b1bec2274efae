"""
Place Registry Backend — Request Identity
===========================================

What:  Resolves who is calling: an Actor (id + role) or nobody.
How:   The auth gateway in front of this service authenticates the session
       and forwards the result as X-Actor-Id / X-Actor-Role headers.
Who:   Route handlers depend on get_current_actor (mutations) or
       get_optional_actor (public reads).
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from placeregistry.config import settings
from placeregistry.exceptions import AuthenticationError


@dataclass(frozen=True)
class Actor:
    actor_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        """Admin-equivalent roles moderate, skip forced re-review and act for any owner."""
        return self.role.lower() in settings.admin_roles_set

    def owns(self, place) -> bool:
        return place.owner_id is not None and place.owner_id == self.actor_id


async def get_optional_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Optional[Actor]:
    if not x_actor_id or not x_actor_id.strip():
        return None
    return Actor(actor_id=x_actor_id.strip(), role=(x_actor_role or "user").strip() or "user")


async def get_current_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    actor = await get_optional_actor(x_actor_id, x_actor_role)
    if actor is None:
        raise AuthenticationError()
    return actor
