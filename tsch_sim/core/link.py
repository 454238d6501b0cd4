"""Link class for TSCH network simulation.

This module defines the Link class, which represents a directed radio link
between two nodes in the simulated network.
"""

from typing import Any, Dict, Optional, Tuple, TYPE_CHECKING

from tsch_sim.config import LinkModelConfig
from tsch_sim.core.link_model import LinkModel, create_model

if TYPE_CHECKING:
    from tsch_sim.core.node import Node
    from tsch_sim.utils.rng import SimulationRNG


class Link:
    """Represents a directed radio link between nodes.

    Attributes:
        from_node: Source node.
        to_node: Destination node.
        model: Link quality model used to evaluate the link.
        connection: Connection parameters the link was created from.
        success_rate: Current packet reception success rate.
        rssi: Current RSSI in dBm.
        is_active: Whether the link is usable (success rate above zero).
    """

    def __init__(
        self,
        from_node: "Node",
        to_node: "Node",
        model: LinkModel,
        connection: Optional[Dict[str, Any]] = None,
    ):
        """Initialize a link and evaluate its quality.

        Args:
            from_node: Source node.
            to_node: Destination node.
            model: Link quality model.
            connection: Connection parameters (default: none).
        """
        self.from_node = from_node
        self.to_node = to_node
        self.model = model
        self.connection = dict(connection or {})
        self.success_rate = 0.0
        self.rssi = model.config.rx_sensitivity_dbm
        self.is_active = False
        self._success_rate_sum = 0.0
        self._num_evaluations = 0
        self._position_key: Optional[Tuple[float, float, float, float]] = None
        self.update()

    @property
    def key(self) -> Tuple[Any, Any]:
        return (self.from_node.id, self.to_node.id)

    def update(self) -> None:
        """Re-evaluate the link quality for the current node positions."""
        position_key = (
            self.from_node.pos_x,
            self.from_node.pos_y,
            self.to_node.pos_x,
            self.to_node.pos_y,
        )
        if position_key != self._position_key:
            # the running average covers a single geometry
            self._position_key = position_key
            self._success_rate_sum = 0.0
            self._num_evaluations = 0
        success_rate, rssi = self.model.success_rate(self.from_node, self.to_node)
        self.success_rate = float(success_rate)
        self.rssi = float(rssi)
        self.is_active = self.success_rate > 0.0
        self._success_rate_sum += self.success_rate
        self._num_evaluations += 1

    def get_average_success_rate(self) -> float:
        """Return the average success rate since the last position change."""
        if not self._num_evaluations:
            return self.success_rate
        return self._success_rate_sum / self._num_evaluations

    def sample_success(self, rng: "SimulationRNG") -> bool:
        """Draw whether a single transmission over this link is received."""
        return rng.random() < self.success_rate

    def __repr__(self) -> str:
        """Return string representation of the link.

        Returns:
            String representation of the link.
        """
        state = "active" if self.is_active else "potential"
        return f"Link({self.from_node.id}->{self.to_node.id}, {self.success_rate:.3f}, {state})"


def create_link(
    from_node: "Node",
    to_node: "Node",
    connection: Optional[Dict[str, Any]],
    link_config: LinkModelConfig,
) -> Link:
    """Create a link using the model selected by the connection parameters.

    Args:
        from_node: Source node.
        to_node: Destination node.
        connection: Connection parameters (LINK_MODEL, LINK_QUALITY, RSSI).
        link_config: Link model parameters.

    Returns:
        The created, evaluated Link object.
    """
    return Link(from_node, to_node, create_model(link_config, connection), connection)
