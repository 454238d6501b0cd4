"""Mobility model interface.

Mobility models move nodes between slots. After changing the position of a
node they are expected to call `Network.update_node_links` for it.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tsch_sim.core.network import Network


class MobilityModel(ABC):
    """Abstract base class for mobility models."""

    @abstractmethod
    def update_positions(self, network: "Network") -> None:
        """Reposition the nodes of `network` for the current slot."""
