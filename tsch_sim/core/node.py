"""Node class for TSCH network simulation.

This module defines the Node class, which represents a radio node in the
simulated network, and the NodeMac interface through which the per-node MAC
layer takes part in each time slot.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from tsch_sim.config import DEFAULT_HOPPING_SEQUENCE, NodeTypeConfig
from tsch_sim.core.enums import SlotDecision
from tsch_sim.utils.metrics import NodeStats

if TYPE_CHECKING:
    from tsch_sim.core.link import Link
    from tsch_sim.core.network import Network
    from tsch_sim.core.slot_engine import SlotStatus, TransmissionLogEntry


class NodeMac(ABC):
    """Abstract base class for the per-node MAC layer.

    The slot engine calls the methods in phase order; every node sees the same
    `schedule_status` list, indexed by `Node.index`.
    """

    def initialize(self, node: "Node") -> None:
        """Prepare the MAC for a new run."""

    @abstractmethod
    def schedule(self, node: "Node", schedule_status: List["SlotStatus"]) -> SlotDecision:
        """
        Decide what the node does in the current slot.

        Args:
            node: The node that owns this MAC.
            schedule_status: Per-node slot status records, indexed by node index.

        Returns:
            The slot decision of the node.
        """

    @abstractmethod
    def commit_tx(
        self,
        node: "Node",
        receivers: List["Node"],
        schedule_status: List["SlotStatus"],
        transmissions: List["TransmissionLogEntry"],
    ) -> None:
        """Transmit: append candidate receivers and log the transmission."""

    @abstractmethod
    def commit_rx(self, node: "Node", subslot: int, schedule_status: List["SlotStatus"]) -> None:
        """Resolve reception for one sub-slot channel sample."""

    @abstractmethod
    def commit_ack(self, node: "Node", schedule_status: List["SlotStatus"]) -> None:
        """Resolve the acknowledgment outcome of a transmission."""

    @abstractmethod
    def aggregate_stats(self, node: "Node") -> NodeStats:
        """Return the statistics counters of the node."""


class IdleMac(NodeMac):
    """A MAC that never transmits; used when no MAC implementation is supplied."""

    def __init__(self) -> None:
        self.stats = NodeStats()

    def initialize(self, node: "Node") -> None:
        self.stats = NodeStats()

    def schedule(self, node, schedule_status):
        return SlotDecision.IDLE

    def commit_tx(self, node, receivers, schedule_status, transmissions):
        pass

    def commit_rx(self, node, subslot, schedule_status):
        pass

    def commit_ack(self, node, schedule_status):
        pass

    def aggregate_stats(self, node):
        self.stats.num_links = len(node.links)
        return self.stats


class Node:
    """Represents a radio node in the network.

    Attributes:
        id: Unique identifier for the node.
        index: Creation rank, used to index per-slot status records.
        pos_x: X coordinate in meters.
        pos_y: Y coordinate in meters.
        config: Configuration of the node type.
        network: The network that owns the node.
        links: Active outgoing links keyed by destination ID.
        potential_links: Inactive outgoing links keyed by destination ID.
        mac: The per-node MAC layer.
        hopping_sequence: Physical channels used for channel hopping.
    """

    def __init__(
        self,
        node_id: Any,
        index: int,
        type_config: NodeTypeConfig,
        network: Optional["Network"] = None,
        mac: Optional[NodeMac] = None,
        hopping_sequence: Optional[List[int]] = None,
    ) -> None:
        """Initialize a network node.

        Args:
            node_id: Unique identifier for the node.
            index: Creation rank of the node.
            type_config: Configuration of the node type.
            network: The network that owns the node.
            mac: The MAC layer (default: a MAC that never transmits).
            hopping_sequence: Channel hopping sequence (default: the type's or the global one).
        """
        self.id = node_id
        self.index = index
        self.config = type_config
        self.network = network
        self.pos_x = 0.0
        self.pos_y = 0.0
        self.links: Dict[Any, "Link"] = {}
        self.potential_links: Dict[Any, "Link"] = {}
        self.mac: NodeMac = mac if mac is not None else IdleMac()
        self.hopping_sequence = list(
            type_config.hopping_sequence or hopping_sequence or DEFAULT_HOPPING_SEQUENCE
        )

    def get_channel(self, asn: int, channel_offset: int) -> int:
        """Map a channel offset to the physical channel used in slot `asn`.

        Args:
            asn: Absolute slot number.
            channel_offset: Channel offset of the scheduled cell.

        Returns:
            The physical channel.
        """
        return self.hopping_sequence[(asn + channel_offset) % len(self.hopping_sequence)]

    def initialize(self) -> None:
        self.mac.initialize(self)

    def schedule(self, schedule_status: List["SlotStatus"]) -> SlotDecision:
        return self.mac.schedule(self, schedule_status)

    def commit_tx(self, receivers, schedule_status, transmissions) -> None:
        self.mac.commit_tx(self, receivers, schedule_status, transmissions)

    def commit_rx(self, subslot: int, schedule_status: List["SlotStatus"]) -> None:
        self.mac.commit_rx(self, subslot, schedule_status)

    def commit_ack(self, schedule_status: List["SlotStatus"]) -> None:
        self.mac.commit_ack(self, schedule_status)

    def aggregate_stats(self) -> NodeStats:
        return self.mac.aggregate_stats(self)

    def __repr__(self) -> str:
        """Return string representation of the node.

        Returns:
            String representation of the node.
        """
        return f"Node({self.id})"
