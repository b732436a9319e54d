"""Error types raised while rendering or updating a topology diagram."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .connections import ConnectionRole
    from .topology import Direction


class NocDiagramError(ValueError):
    """Structured error with a stable code for CLI mapping."""

    code = "E_NOCDIAGRAM"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ConnectionLookupError(NocDiagramError):
    """A connection was requested that the geometry pass never registered.

    This points at a desync between the connection index and the code
    reading it, not at bad input.
    """

    code = "E_CONNECTION_LOOKUP"

    def __init__(
        self,
        core_id: int,
        direction: "Direction",
        role: "ConnectionRole",
        reason: str = "was never registered",
    ) -> None:
        super().__init__(
            f"connection ({role.value}) for core {core_id} towards {direction.value} {reason}"
        )
        self.core_id = core_id
        self.direction = direction
        self.role = role


class TopologyMismatchError(NocDiagramError):
    """Topology data references something the geometry never built."""

    code = "E_TOPOLOGY_MISMATCH"

    def __init__(
        self,
        message: str,
        *,
        core_id: Optional[int] = None,
        direction: Optional["Direction"] = None,
        task_id: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.core_id = core_id
        self.direction = direction
        self.task_id = task_id


class ConfigurationShapeError(NocDiagramError):
    """A configuration slot received a variant it cannot render."""

    code = "E_CONFIGURATION_SHAPE"

    def __init__(self, key: str, message: str, *, expected: Optional[str] = None) -> None:
        super().__init__(f'configuration key "{key}": {message}')
        self.key = key
        self.expected = expected


__all__ = [
    "NocDiagramError",
    "ConnectionLookupError",
    "TopologyMismatchError",
    "ConfigurationShapeError",
]
