"""Enumerations for TSCH network simulation.

This module defines enumerations used throughout the network simulator.
"""

from enum import Enum
from typing import Optional

from tsch_sim.core.exceptions import ConfigurationError


class _NamedEnum(Enum):
    """Enum that can be parsed from its value or its member name."""

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        for member in cls:
            if value == member.value or value == member.name:
                return member
        choices = "/".join(str(m.value) for m in cls)
        raise ConfigurationError(f"unknown {cls.__name__} {value!r}; select one of: {choices}")


class LayoutType(_NamedEnum):
    """Enum for the node positioning layouts.

    Attributes:
        POINT: A single node surrounded by a ring of nodes (star).
        LINE: Nodes on a straight line.
        GRID: Row-major grid with link-quality derived spacing.
        DENSE_GRID: Fixed-spacing grid with wraparound column cycling.
        MESH: Random mesh with a target average degree (logistic-loss model).
        DENSE_MESH: Random mesh with per-node degree bounds (unit-disk model).
    """

    POINT = "Point"
    LINE = "Line"
    GRID = "Grid"
    DENSE_GRID = "DenseGrid"
    MESH = "Mesh"
    DENSE_MESH = "DenseMesh"

    @property
    def uses_unit_disk(self) -> bool:
        return self in (LayoutType.DENSE_GRID, LayoutType.DENSE_MESH)


class LinkModelType(_NamedEnum):
    """Enum for the radio link models."""

    LOGISTIC_LOSS = "LogisticLoss"
    UDGM = "UDGM"
    FIXED = "Fixed"


class SlotDecision(Enum):
    """Per-slot decision taken by a node in the schedule phase."""

    IDLE = 0
    TX = 1
    RX = 2


class SchedulingAlgorithm(_NamedEnum):
    """Enum for the TSCH scheduling algorithms."""

    NONE = "None"
    MINIMAL = "6tischMin"
    ORCHESTRA = "Orchestra"
    LEAF_AND_FORWARDER = "LeafAndForwarder"


class RoutingAlgorithm(_NamedEnum):
    """Enum for the routing protocols."""

    NULL = "NullRouting"
    RPL = "RPL"
    LEAF_AND_FORWARDER = "LeafAndForwarderRouting"


class RunSpeed(Enum):
    """Enum for the interactive simulation speed modes.

    Attributes:
        UNLIMITED: Run as fast as possible, yielding once per wall-clock second.
        PERCENT_10: 10% of real time.
        PERCENT_100: Real time.
        PERCENT_1000: 10 times faster than real time.
        STEP_SINGLE: Advance exactly one slot.
        STEP_NEXT_ACTIVE: Advance until a slot with a transmission.
    """

    UNLIMITED = "unlimited"
    PERCENT_10 = "10%"
    PERCENT_100 = "100%"
    PERCENT_1000 = "1000%"
    STEP_SINGLE = "step"
    STEP_NEXT_ACTIVE = "step-active"

    @property
    def wallclock_per_simulated_second(self) -> Optional[float]:
        """Wall-clock seconds per simulated second, or None if not paced."""
        return {
            RunSpeed.PERCENT_10: 10.0,
            RunSpeed.PERCENT_100: 1.0,
            RunSpeed.PERCENT_1000: 0.1,
        }.get(self)


class ControllerState(Enum):
    """States of the interactive pacing controller."""

    STOPPED = "stopped"
    RUNNING = "running"
    INTERRUPTED = "interrupted"
    RESET_REQUESTED = "reset-requested"
