# Overview: Caller identity capability and table access rules.

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import ForbiddenError


@dataclass(frozen=True)
class UserContext:
    """
    Pre-validated caller identity supplied by the auth layer in front of this service.

    table_access lists table ids the caller was explicitly granted (e.g. via an API token).
    """
    user_id: str | None
    email: str
    is_admin: bool = False
    table_access: frozenset[int] = field(default_factory=frozenset)

    @property
    def actor(self) -> str:
        return self.email or self.user_id or "anonymous"


ANONYMOUS = UserContext(user_id=None, email="anonymous")


def is_owner(user: UserContext | None, table) -> bool:
    if user is None:
        return False
    return user.is_admin or (bool(user.email) and table.created_by == user.email)


def can_read_table(user: UserContext | None, table) -> bool:
    if table.is_public:
        return True
    if user is None:
        return False
    return is_owner(user, table) or table.id in user.table_access


def ensure_owner(user: UserContext | None, table, action: str = "modify this table") -> None:
    if not is_owner(user, table):
        raise ForbiddenError(f"Only the table owner can {action}")


def ensure_readable(user: UserContext | None, table) -> None:
    if not can_read_table(user, table):
        raise ForbiddenError("You do not have access to this table")
