"""
Ownership guard shared by every owned resource kind.

Articles, products, comments and notifications all expose ``user_id``;
the guard only ever looks at that attribute, never at the concrete type.
Callers must confirm the resource exists before asking, so that "absent"
(404) and "not yours" (403) stay distinct.
"""
from typing import Protocol

from pandamarket.errors import ForbiddenError


class Owned(Protocol):
    user_id: int


def authorize_mutation(resource: Owned, requester_id: int) -> bool:
    return resource.user_id == requester_id


def ensure_owner(resource: Owned, requester_id: int) -> None:
    if not authorize_mutation(resource, requester_id):
        raise ForbiddenError("You do not have permission to modify this resource")
