"""Error taxonomy for catalog operations.

Every failure leaving the catalog engine is a ``CatalogError`` carrying a
stable ``code`` and an HTTP-style ``status`` so the API layer and the CLI
can report it without inspecting the exception type.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError


@dataclass(eq=False)
class CatalogError(Exception):
    """Stable error contract used by the API and CLI responses."""

    code: str
    message: str
    status: int = 400
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "error": self.message,
            "status": self.status,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class StoreFailure(CatalogError):
    """A statement or script failed inside a catalog transaction."""

    def __init__(
        self,
        message: str,
        *,
        phase: str,
        status: int = 500,
        code: str = "postgres-error",
        sqlstate: Optional[str] = None,
        statement: Optional[str] = None,
    ) -> None:
        details: Dict[str, Any] = {"phase": phase}
        if sqlstate:
            details["sqlstate"] = sqlstate
        if statement:
            details["statement"] = statement
        super().__init__(code=code, message=message, status=status, details=details)
        self.phase = phase

    @classmethod
    def from_exception(cls, exc: BaseException, phase: str) -> "StoreFailure":
        """Classify a driver or SQLAlchemy exception raised during ``phase``."""
        orig = getattr(exc, "orig", None) or exc
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        statement = getattr(exc, "statement", None)
        if isinstance(exc, IntegrityError) or (sqlstate or "").startswith("23"):
            return cls(
                f"{phase}: constraint violation: {orig}",
                phase=phase,
                status=400,
                code="constraint-violation",
                sqlstate=sqlstate,
                statement=statement,
            )
        return cls(
            f"{phase}: postgres query error: {orig}",
            phase=phase,
            sqlstate=sqlstate,
            statement=statement,
        )


class CatalogUninitialized(CatalogError):
    """The version table is missing or holds no row."""

    def __init__(self, message: str = "catalog is not initialised") -> None:
        super().__init__(code="not-initialised", message=message, status=500)


class UnsupportedVersion(CatalogError):
    """Recorded catalog version has no migration path to the target."""

    def __init__(self, version: str) -> None:
        super().__init__(
            code="not-supported",
            message=f"migrate: unsupported version : {version}",
            status=400,
            details={"version": version},
        )
        self.version = version


class InvalidJSON(CatalogError):
    def __init__(self, message: str = "invalid json") -> None:
        super().__init__(code="invalid-json", message=message, status=400)


class DecodeError(CatalogError):
    """Payload is JSON but not a known admin query shape."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            code="parse-failed",
            message=message,
            status=400,
            details=details or {},
        )


class Inconsistent(CatalogError):
    """Catalog state that cannot arise without a bug or manual tampering."""

    def __init__(self, message: str) -> None:
        super().__init__(code="unexpected", message=message, status=500)


class MetadataError(CatalogError):
    """A metadata action was rejected against the current schema cache."""

    def __init__(self, code: str, message: str, status: int = 400) -> None:
        super().__init__(code=code, message=message, status=status)
