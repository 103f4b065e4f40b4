"""Domain models for guild progress persistence.

This module defines the value exchanged between the service layer and the
storage backends, plus the record shape persisted by the document store.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

KEY_PREFIX = "guildProgress_"

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


def guild_progress_key(guild_id: str) -> str:
    """Derive the storage key for a guild.

    Args:
        guild_id: Guild identifier.

    Returns:
        The storage key, e.g. ``guildProgress_g1``.
    """
    return f"{KEY_PREFIX}{guild_id}"


def _require_str(data: Mapping[str, Any], name: str) -> str:
    value = data.get(name, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {type(value).__name__}")
    return value


def _require_objectives(data: Mapping[str, Any]) -> dict[str, int]:
    raw = data.get("objectives")
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"objectives must be an object, got {type(raw).__name__}")

    objectives: dict[str, int] = {}
    for name, progress in raw.items():
        if not isinstance(name, str):
            raise ValueError(f"objective name must be a string, got {type(name).__name__}")
        # bool is an int subclass; JSON true/false is not a progress value
        if isinstance(progress, bool) or not isinstance(progress, int):
            raise ValueError(
                f"objective {name!r} must be an integer, got {type(progress).__name__}"
            )
        if not INT32_MIN <= progress <= INT32_MAX:
            raise ValueError(f"objective {name!r} value {progress} is out of int32 range")
        objectives[name] = progress
    return objectives


@dataclass(frozen=True, slots=True)
class GuildProgress:
    """A guild's set of named objective counters.

    Instances are frozen but not hashable, since ``objectives`` is a dict.

    Attributes:
        namespace: Tenant/environment the record belongs to.
        guild_id: Guild identifier, used to derive the storage key.
        objectives: Objective name to int32 progress. May be empty.
    """

    namespace: str
    guild_id: str
    objectives: dict[str, int] = field(default_factory=dict)

    __hash__ = None  # type: ignore[assignment]

    @property
    def key(self) -> str:
        """Storage key derived from ``guild_id``."""
        return guild_progress_key(self.guild_id)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-compatible representation."""
        return {
            "namespace": self.namespace,
            "guild_id": self.guild_id,
            "objectives": dict(self.objectives),
        }

    @classmethod
    def from_dict(cls, data: Any) -> GuildProgress:
        """Validate a loosely-typed structure into a GuildProgress.

        Fields that are absent decode to their empty value, since empty fields
        are omitted by the protobuf JSON marshaller that wrote older records.

        Args:
            data: A mapping, typically the result of ``json.loads``.

        Returns:
            The typed value.

        Raises:
            ValueError: If the structure is not an object, or a field has the
                wrong type, or an objective is outside the int32 range.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"guild progress must be an object, got {type(data).__name__}")
        return cls(
            namespace=_require_str(data, "namespace"),
            guild_id=_require_str(data, "guild_id"),
            objectives=_require_objectives(data),
        )


@dataclass(frozen=True, slots=True)
class GuildProgressDocument:
    """Record persisted by the document store.

    Attributes:
        namespace: Tenant/environment, part of the unique compound key.
        key: Derived storage key, part of the unique compound key.
        guild_id: Guild identifier, denormalized from the value.
        objectives: Objective name to int32 progress.
        created_at: Set on first insert, never changed afterwards.
        updated_at: Set on every write.
    """

    namespace: str
    key: str
    guild_id: str
    objectives: dict[str, int]
    created_at: datetime
    updated_at: datetime

    __hash__ = None  # type: ignore[assignment]

    def to_progress(self) -> GuildProgress:
        """Drop the storage-only fields."""
        return GuildProgress(
            namespace=self.namespace,
            guild_id=self.guild_id,
            objectives=dict(self.objectives),
        )
