"""Exceptions raised by the simulation core."""

from typing import Optional


class SimulationError(Exception):
    """Base class for all simulation errors."""


class ConfigurationError(SimulationError, ValueError):
    """Raised when the simulation configuration is invalid."""


class TopologyError(SimulationError):
    """Raised when a node layout cannot be produced."""


class InfeasibleDegreeError(TopologyError):
    """Raised when the requested average degree cannot be realized."""

    def __init__(self, num_nodes: int, degrees: float, reason: str):
        self.num_nodes = num_nodes
        self.degrees = degrees
        super().__init__(
            f"impossible to generate a mesh network with {num_nodes} nodes "
            f"and {degrees} degrees: {reason}"
        )


class ConvergenceError(TopologyError):
    """Raised when a layout repair loop exceeds its iteration ceiling."""

    def __init__(self, layout: str, iterations: int, degrees: Optional[float]):
        self.layout = layout
        self.iterations = iterations
        self.degrees = degrees
        super().__init__(
            f"{layout} layout did not converge after {iterations} iterations "
            f"(last average degree {degrees})"
        )


class DuplicateNodeError(SimulationError, KeyError):
    """Raised when a node ID is registered twice."""


class DuplicateLinkError(SimulationError, KeyError):
    """Raised when a (from, to) link is registered twice."""


class UnknownNodeError(SimulationError, KeyError):
    """Raised when a node ID is not present in the network."""


class UnknownLinkError(SimulationError, KeyError):
    """Raised when a (from, to) link is not present in the network."""
