"""Shared fixtures for the unit tests."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, Optional

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from nocdiagram.connections import classify_position
from nocdiagram.settings import BaseConfiguration, ProcessedBaseConfiguration
from nocdiagram.text import TextMeasurer
from nocdiagram.topology import (
    DIRECTIONS,
    BorderEntry,
    Channel,
    Core,
    Direction,
    Router,
    RoutingEntry,
    Task,
    Topology,
)

DEFAULT_BASE = ProcessedBaseConfiguration.from_base(BaseConfiguration())


class FixedWidthMeasurer(TextMeasurer):
    """Ten pixels per character, whatever fonts the machine has."""

    def measure(self, text: str, size: float) -> int:
        return len(text) * 10


MEASURER = FixedWidthMeasurer()


def _facing(core_id: int, rows: int, columns: int):
    row, column = divmod(core_id, columns)
    return classify_position(row, column, rows, columns)[1]


def grid_topology(
    rows: int,
    columns: int,
    *,
    bandwidth: int = 100,
    load: int = 0,
    allocations: Optional[Dict[int, int]] = None,
    tasks: Optional[Dict[int, int]] = None,
    borders: Optional[Dict[int, Dict[Direction, BorderEntry]]] = None,
    sources: Optional[Dict[int, int]] = None,
    routing: Optional[Dict[str, Dict[int, RoutingEntry]]] = None,
    core_attributes: Optional[Dict[int, Dict[str, str]]] = None,
    channel_attributes: Optional[Dict[int, Dict[Direction, Dict[str, str]]]] = None,
    boundary_channels: bool = True,
) -> Topology:
    """Grid with every direction of every core wired.

    With ``boundary_channels=False`` only links between neighbours are wired.
    """
    allocations = allocations or {}
    core_attributes = core_attributes or {}
    channel_attributes = channel_attributes or {}
    cores = []
    for core_id in range(rows * columns):
        channels = {
            direction: Channel(
                direction,
                bandwidth,
                load,
                channel_attributes.get(core_id, {}).get(direction, {}),
            )
            for direction in DIRECTIONS
            if boundary_channels or direction not in _facing(core_id, rows, columns)
        }
        cores.append(
            Core(
                id=core_id,
                attributes=core_attributes.get(core_id, {}),
                router=Router({}),
                channels=channels,
                allocated_task=allocations.get(core_id),
            )
        )
    return Topology(
        rows=rows,
        columns=columns,
        cores=cores,
        tasks={task_id: Task(task_id, cost) for task_id, cost in (tasks or {}).items()},
        borders=borders,
        sources=sources or {},
        routing=routing or {},
    )
