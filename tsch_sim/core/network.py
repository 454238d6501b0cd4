"""Network container for TSCH network simulation.

This module defines the Network class, which owns the nodes, the directed
links between them and the protocol handler table.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import networkx as nx

from tsch_sim.config import NodeTypeConfig
from tsch_sim.core.exceptions import (
    DuplicateLinkError,
    DuplicateNodeError,
    SimulationError,
    UnknownLinkError,
    UnknownNodeError,
)
from tsch_sim.core.link import Link
from tsch_sim.core.mobility import MobilityModel
from tsch_sim.core.node import Node, NodeMac
from tsch_sim.core.slot_engine import SlotResult, execute_slot
from tsch_sim.utils.metrics import StatsAggregator

logger = logging.getLogger(__name__)


class Network:
    """A TSCH network.

    Attributes:
        nodes: Node objects keyed by node ID, in creation order.
        links: Link objects keyed by (from ID, to ID) tuple.
        protocol_handlers: Handlers keyed by (protocol, message type) tuple.
        mobility_model: Optional mobility model applied at the start of each slot.
        hopping_sequence: Default channel hopping sequence of new nodes.
        stats: Aggregator holding the totals of the last statistics aggregation.
    """

    def __init__(self, hopping_sequence: Optional[List[int]] = None) -> None:
        self.nodes: Dict[Any, Node] = {}
        self.links: Dict[Tuple[Any, Any], Link] = {}
        self.protocol_handlers: Dict[Tuple[Any, Any], Callable[..., Any]] = {}
        self.mobility_model: Optional[MobilityModel] = None
        self.hopping_sequence = hopping_sequence
        self.stats = StatsAggregator()

    def add_node(
        self, node_id: Any, type_config: NodeTypeConfig, mac: Optional[NodeMac] = None
    ) -> Node:
        """Add a node to the network.

        Args:
            node_id: Unique identifier for the node.
            type_config: Configuration of the node type.
            mac: MAC layer of the node (default: an idle MAC).

        Returns:
            The created Node object.

        Raises:
            DuplicateNodeError: If a node with this ID already exists.
        """
        if node_id in self.nodes:
            raise DuplicateNodeError(f"node with ID {node_id} already present")
        node = Node(
            node_id,
            len(self.nodes),
            type_config,
            network=self,
            mac=mac,
            hopping_sequence=self.hopping_sequence,
        )
        self.nodes[node_id] = node
        return node

    def get_node(self, node_id: Any) -> Node:
        node = self.nodes.get(node_id)
        if node is None:
            raise UnknownNodeError(f"unknown node ID {node_id}")
        return node

    def find_node(self, node_id: Any) -> Optional[Node]:
        return self.nodes.get(node_id)

    def add_link(self, link: Link) -> Link:
        """Register a link and attach it to its origin node.

        Args:
            link: The link to add.

        Returns:
            The added link.

        Raises:
            DuplicateLinkError: If a link with the same (from, to) key exists.
        """
        key = link.key
        if key in self.links:
            raise DuplicateLinkError(f"link from {key[0]} to {key[1]} already present")
        self.links[key] = link
        if link.is_active:
            link.from_node.links[link.to_node.id] = link
        else:
            link.from_node.potential_links[link.to_node.id] = link
        return link

    def get_link(self, from_id: Any, to_id: Any) -> Link:
        link = self.links.get((from_id, to_id))
        if link is None:
            raise UnknownLinkError(f"unknown link from {from_id} to {to_id}")
        return link

    def find_link(self, from_id: Any, to_id: Any) -> Optional[Link]:
        return self.links.get((from_id, to_id))

    @staticmethod
    def _promote(link: Link) -> None:
        node = link.from_node
        node.links[link.to_node.id] = node.potential_links.pop(link.to_node.id)

    def update_node_links(self, node: Node) -> List[Link]:
        """Re-evaluate the potential links of a node after a position change.

        Links that become active move to the active collection of their origin;
        the reverse link, if still potential, is promoted as well.

        Args:
            node: The node whose position has changed.

        Returns:
            The links that were activated by the update.
        """
        activated: List[Link] = []
        for link in list(node.potential_links.values()):
            link.update()
            if link.is_active:
                activated.append(link)
        for link in activated:
            self._promote(link)
            reverse = link.to_node.potential_links.get(link.from_node.id)
            if reverse is not None:
                self._promote(reverse)
        return activated

    def check_link_invariant(self) -> None:
        """Verify that every link is in exactly one collection of its origin.

        Raises:
            SimulationError: If a link is in both collections or in neither.
        """
        for (from_id, to_id), link in self.links.items():
            node = link.from_node
            in_active = node.links.get(to_id) is link
            in_potential = node.potential_links.get(to_id) is link
            if in_active == in_potential:
                where = "both" if in_active else "neither"
                raise SimulationError(
                    f"link from {from_id} to {to_id} is in {where} link collections"
                )

    def set_protocol_handler(self, protocol: Any, msg_type: Any, callback: Callable[..., Any]) -> None:
        self.protocol_handlers[(protocol, msg_type)] = callback

    def get_protocol_handler(self, protocol: Any, msg_type: Any) -> Optional[Callable[..., Any]]:
        return self.protocol_handlers.get((protocol, msg_type))

    def to_graph(self) -> nx.DiGraph:
        """Build a directed graph of the nodes and their active links."""
        graph = nx.DiGraph()
        for node_id, node in self.nodes.items():
            graph.add_node(node_id, pos=(node.pos_x, node.pos_y))
        for node in self.nodes.values():
            for to_id, link in node.links.items():
                graph.add_edge(node.id, to_id, success_rate=link.success_rate)
        return graph

    def step(self, asn: int, num_subslots: int = 1) -> SlotResult:
        """Execute a single time slot; see `execute_slot`."""
        return execute_slot(self, asn, num_subslots)

    def aggregate_stats(self, run_id: Any = 0, elapsed_sec: float = 0.0) -> Dict[str, Dict[str, Any]]:
        """Aggregate the node statistics into a document keyed by `run_id`."""
        return self.stats.aggregate(self, run_id, elapsed_sec)

    def __repr__(self) -> str:
        return f"Network({len(self.nodes)} nodes, {len(self.links)} links)"
