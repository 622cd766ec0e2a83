"""Identity attached to metadata operations."""

from dataclasses import dataclass

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class UserInfo:
    """Role of the caller of a metadata operation."""

    role: str


ADMIN_USER = UserInfo(role=ADMIN_ROLE)
