"""Catalog version labels and the static migration path table.

Versions are opaque labels compared by identity. Their total order is the
declaration order of ``CatalogVersion``; a migration step may only move
forward in that order, so every path built from the registered steps is
finite and unique.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Tuple

from sqlalchemy.ext.asyncio import AsyncConnection

from catalog_server.catalog.errors import UnsupportedVersion


class CatalogVersion(str, Enum):
    """Known catalog versions, oldest first."""

    V0_8 = "0.8"
    V1 = "1"
    V1_1 = "1.1"

    @classmethod
    def parse(cls, label: str) -> "CatalogVersion":
        """Map a recorded label onto a known version or raise ``UnsupportedVersion``."""
        for version in cls:
            if version.value == label:
                return version
        raise UnsupportedVersion(label)

    @property
    def rank(self) -> int:
        return list(CatalogVersion).index(self)


DEFAULT_CATALOG_VERSION = CatalogVersion.V1_1

# shape built by the bundled initialise.sql
INITIALISE_VERSION = CatalogVersion.V1_1


@dataclass(frozen=True)
class VersionRecord:
    """The single row of ``hdb_catalog.hdb_version``."""

    version: CatalogVersion
    upgraded_on: datetime


@dataclass(frozen=True)
class MigrationStep:
    """One atomic ``source -> target`` transformation of the catalog."""

    source: CatalogVersion
    target: CatalogVersion
    apply: Callable[[AsyncConnection], Awaitable[None]]

    def __post_init__(self) -> None:
        if self.target.rank <= self.source.rank:
            raise ValueError(
                f"migration step must move forward: {self.source.value} -> {self.target.value}"
            )

    @property
    def name(self) -> str:
        return f"{self.source.value} -> {self.target.value}"


def plan_migration(
    steps: Iterable[MigrationStep],
    start: CatalogVersion,
    target: CatalogVersion,
) -> List[MigrationStep]:
    """Return the ordered steps leading from ``start`` to ``target``.

    Raises:
        UnsupportedVersion: If no chain of registered steps reaches ``target``.
    """
    by_source: Dict[CatalogVersion, MigrationStep] = {}
    for step in steps:
        if step.source in by_source:
            raise ValueError(f"duplicate migration step from version {step.source.value}")
        by_source[step.source] = step

    path: List[MigrationStep] = []
    version = start
    while version != target:
        step = by_source.get(version)
        if step is None or step.target.rank > target.rank:
            raise UnsupportedVersion(start.value)
        path.append(step)
        version = step.target
    return path


def build_path_table(
    steps: Iterable[MigrationStep],
    target: CatalogVersion,
) -> Dict[CatalogVersion, Tuple[MigrationStep, ...]]:
    """Map every version that can reach ``target`` to its ordered step path.

    ``target`` itself maps to an empty path. Versions with no path are
    absent from the table.
    """
    steps = list(steps)
    table: Dict[CatalogVersion, Tuple[MigrationStep, ...]] = {}
    for version in CatalogVersion:
        if version.rank > target.rank:
            continue
        try:
            table[version] = tuple(plan_migration(steps, version, target))
        except UnsupportedVersion:
            continue
    return table
