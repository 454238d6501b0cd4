"""TSCH simulation lifecycle.

This module builds a simulation from its configuration (network, nodes,
positions, links, scheduler, routing and mobility), runs it slot by slot on a
SimPy clock, and exposes status snapshots and manual position updates. All
state of a run lives in an explicit SimulationContext.
"""

import logging
import math
import os
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional

import networkx as nx
import simpy

from tsch_sim.config import NodeTypeConfig, SimulationConfig
from tsch_sim.core.enums import LayoutType, LinkModelType
from tsch_sim.core.link import create_link
from tsch_sim.core.mobility import MobilityModel
from tsch_sim.core.network import Network
from tsch_sim.core.node import Node, NodeMac
from tsch_sim.core.routing_algorithms import Router, router_factory
from tsch_sim.core.scheduling_algorithms import Scheduler, scheduler_factory
from tsch_sim.core.slot_engine import SlotResult
from tsch_sim.core.topology import TopologyGenerator
from tsch_sim.utils.metrics import save_stats_to_json
from tsch_sim.utils.rng import SimulationRNG

logger = logging.getLogger(__name__)

PERIODIC_TIMER_SEC = 60

# deal with rounding errors of the end time
END_TIME_EPSILON_SEC = 0.000001

SlotCallback = Callable[["SimulationContext"], None]
MacFactory = Callable[[Node, "SimulationContext"], NodeMac]


class Timeline:
    """Absolute slot number and the simulated time derived from it."""

    def __init__(self, slot_duration_us: int) -> None:
        self.slot_duration_us = slot_duration_us
        self.asn = 0

    @property
    def seconds(self) -> float:
        return self.asn * self.slot_duration_us / 1000000.0

    @property
    def next_seconds(self) -> float:
        return (self.asn + 1) * self.slot_duration_us / 1000000.0

    def step(self) -> int:
        self.asn += 1
        return self.asn


class SimulationContext:
    """Everything a single simulation run owns.

    Attributes:
        config: Configuration the run was built from.
        rng: The shared sequential random number generator.
        network: The simulated network.
        scheduler: Scheduling algorithm.
        router: Routing protocol.
        env: SimPy environment; one time unit is one slot.
        timeline: Current ASN and simulated seconds.
        callbacks: Hooks keyed by ASN, run before the network step of that slot.
        last_result: Result of the most recent slot.
        is_started: Whether the nodes have been initialized for the run.
    """

    def __init__(
        self,
        config: SimulationConfig,
        rng: SimulationRNG,
        network: Network,
        scheduler: Scheduler,
        router: Router,
    ) -> None:
        self.config = config
        self.rng = rng
        self.network = network
        self.scheduler = scheduler
        self.router = router
        self.env = simpy.Environment()
        self.timeline = Timeline(config.mac_slot_duration_us)
        self.callbacks: Dict[int, List[SlotCallback]] = defaultdict(list)
        self.last_result: Optional[SlotResult] = None
        self.is_started = False
        self.env.process(self._slot_loop())
        self.env.process(self._periodic_bookkeeping())

    def register_callback(self, asn: int, callback: SlotCallback) -> None:
        """Run `callback(context)` at slot `asn`, before the network step.

        Args:
            asn: Absolute slot number.
            callback: Function called with this context.
        """
        self.callbacks[asn].append(callback)

    def _execute_slot(self) -> None:
        asn = self.timeline.step()
        for callback in self.callbacks.get(asn, ()):
            callback(self)
        self.last_result = self.network.step(asn, self.config.mac_max_subslots)

    def _slot_loop(self):
        while True:
            yield self.env.timeout(1)
            self._execute_slot()

    def _periodic_bookkeeping(self):
        period_slots = max(1, round(PERIODIC_TIMER_SEC / self.config.slot_duration_sec))
        while True:
            yield self.env.timeout(period_slots)
            seconds = self.env.now * self.config.slot_duration_sec
            progress = 100 * seconds / self.config.simulation_duration_sec
            logger.info("%d seconds, progress %.2f%%", math.trunc(seconds), progress)
            self.router.periodic_process(PERIODIC_TIMER_SEC, seconds)
            self.scheduler.periodic_process(PERIODIC_TIMER_SEC, seconds)

    def advance(self) -> SlotResult:
        """Execute exactly one slot.

        Returns:
            The result of the executed slot.
        """
        target = self.timeline.asn + 1
        while self.timeline.asn < target:
            self.env.step()
        return self.last_result

    def has_ended(self) -> bool:
        end_time_sec = self.config.simulation_duration_sec + END_TIME_EPSILON_SEC
        return self.timeline.next_seconds > end_time_sec

    def start(self) -> None:
        """Initialize all nodes for the run."""
        logger.info("starting simulation main loop...")
        self.is_started = True
        for node in self.network.nodes.values():
            node.initialize()

    def finish(self) -> Dict[str, Dict[str, Any]]:
        """Aggregate the statistics and save them if configured.

        Returns:
            The statistics document, keyed by run ID.
        """
        logger.info("ending simulation at %.3f seconds", self.timeline.seconds)
        stats = self.network.aggregate_stats(self.config.run_id, self.timeline.seconds)
        if self.config.save_results:
            is_child = self.config.run_id != 0
            filename = f"stats_{self.config.run_id}.json" if is_child else "stats.json"
            save_stats_to_json(stats, os.path.join(self.config.results_dir, filename))
        return stats

    def status(self, is_running: bool = False) -> Dict[str, Any]:
        return get_status(self, is_running)


def _coordinate(value: Any, node_id: Any, axis: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        result = math.nan
    if math.isnan(result):
        logger.warning("node %s: invalid position %s coordinate=%r specified", node_id, axis, value)
        return 0.0
    return result


def parse_position(network: Network, position: Dict[str, Any]) -> Optional[Node]:
    """Apply a manual position override.

    Args:
        network: The network.
        position: Dictionary with keys ID and optionally X and Y.

    Returns:
        The repositioned node, or None if the ID is unknown.
    """
    node_id = position.get("ID")
    node = network.find_node(node_id)
    if node is None:
        logger.warning("position specified for unknown node ID=%s", node_id)
        return None
    if "X" in position:
        node.pos_x = _coordinate(position["X"], node_id, "X")
    if "Y" in position:
        node.pos_y = _coordinate(position["Y"], node_id, "Y")
    logger.info("node %s: X=%s, Y=%s", node_id, node.pos_x, node.pos_y)
    return node


def _create_nodes(
    context: SimulationContext, mac_factory: Optional[MacFactory]
) -> Dict[str, List[Any]]:
    config = context.config
    network = context.network
    type_ids: Dict[str, List[Any]] = {}

    def add(node_id: Any, type_config: NodeTypeConfig) -> None:
        node = network.add_node(node_id, type_config)
        if mac_factory is not None:
            node.mac = mac_factory(node, context)
        type_ids[type_config.name].append(node_id)

    previous_id = 0
    for node_type in config.node_types:
        if not node_type.is_valid():
            logger.warning("invalid node type %r", node_type.name)
            continue
        logger.info("creating %d %r nodes...", node_type.count, node_type.name)
        type_ids.setdefault(node_type.name, [])
        node_id = node_type.start_id if node_type.start_id is not None else previous_id + 1
        for _ in range(node_type.count):
            previous_id = node_id
            add(node_id, node_type)
            node_id += 1

    if not type_ids:
        # automatically created nodes with IDs 1..N
        default_type = NodeTypeConfig(name="node", count=config.num_nodes)
        type_ids[default_type.name] = []
        for node_id in range(1, config.num_nodes + 1):
            add(node_id, default_type)
    return type_ids


def _set_positions(context: SimulationContext) -> None:
    config = context.config
    network = context.network
    positions_set_manually = False
    for node_type in config.node_types:
        if node_type.is_valid() and node_type.positions:
            positions_set_manually = True
            for position in node_type.positions:
                parse_position(network, position)
    if config.positions:
        positions_set_manually = True
        for position in config.positions:
            parse_position(network, position)
    if positions_set_manually:
        return

    placements = TopologyGenerator(config, context.rng).generate(len(network.nodes))
    for node, placement in zip(network.nodes.values(), placements):
        node.pos_x = placement.pos_x
        node.pos_y = placement.pos_y
        logger.debug("node %s: set position x=%.2f y=%.2f", node.id, node.pos_x, node.pos_y)


def _connect_all(network: Network, from_ids: Iterable[Any], to_ids: List[Any],
                 connection: Dict[str, Any], config: SimulationConfig) -> None:
    for from_id in from_ids:
        for to_id in to_ids:
            if from_id != to_id:
                network.add_link(create_link(
                    network.get_node(from_id), network.get_node(to_id), connection, config.link_model
                ))


def _connect_grid_neighbors(network: Network, config: SimulationConfig) -> None:
    nodes = list(network.nodes.values())
    per_row = math.ceil(math.sqrt(len(nodes)))
    connection = {"LINK_MODEL": LinkModelType.UDGM.value}
    for i, node in enumerate(nodes):
        right = i + 1 if (i + 1) % per_row else None
        down = i + per_row
        for j in (right, down):
            if j is None or j >= len(nodes):
                continue
            other = nodes[j]
            for a, b in ((node, other), (other, node)):
                if network.find_link(a.id, b.id) is None:
                    network.add_link(create_link(a, b, connection, config.link_model))


def _set_connections(context: SimulationContext, type_ids: Dict[str, List[Any]]) -> None:
    config = context.config
    network = context.network
    connections_set_manually = False
    types_with_connections_out = set()
    types_with_connections_in = set()

    for node_type in config.node_types:
        if not node_type.is_valid() or not node_type.connections:
            continue
        connections_set_manually = True
        types_with_connections_out.add(node_type.name)
        for connection in node_type.connections:
            to_type = connection.get("NODE_TYPE", connection.get("TO_NODE_TYPE"))
            if to_type not in type_ids:
                logger.warning("ignoring connections with unknown node type %r", to_type)
                continue
            types_with_connections_in.add(to_type)
            _connect_all(network, type_ids[node_type.name], type_ids[to_type], connection, config)

    for connection in config.connections:
        connections_set_manually = True
        node_type = connection.get("NODE_TYPE")
        from_type = connection.get("FROM_NODE_TYPE")
        to_type = connection.get("TO_NODE_TYPE")
        if node_type is not None or from_type is not None or to_type is not None:
            if "FROM_ID" in connection or "TO_ID" in connection:
                logger.warning("ignoring TO_ID/FROM_ID in connection configuration as *NODE_TYPE is specified")
            if node_type is not None:
                from_type = to_type = node_type
            if from_type not in type_ids:
                logger.warning("ignoring connections from unknown node type %r", from_type)
                continue
            types_with_connections_out.add(from_type)
            if to_type not in type_ids:
                logger.warning("ignoring connections to unknown node type %r", to_type)
                continue
            types_with_connections_in.add(to_type)
            _connect_all(network, type_ids[from_type], type_ids[to_type], connection, config)
            continue

        from_id = connection.get("FROM_ID")
        to_id = connection.get("TO_ID")
        if network.find_node(to_id) is None:
            logger.warning("ignoring connection to node %s: no such node", to_id)
        elif network.find_node(from_id) is None:
            logger.warning("ignoring connection from node %s: no such node", from_id)
        elif from_id == to_id:
            logger.warning("ignoring connection from node %s to itself", from_id)
        else:
            network.add_link(create_link(
                network.get_node(from_id), network.get_node(to_id), connection, config.link_model
            ))

    if config.layout is LayoutType.DENSE_GRID and config.dense_grid_neighbor_links:
        connections_set_manually = True
        types_with_connections_out.update(type_ids)
        types_with_connections_in.update(type_ids)
        _connect_grid_neighbors(network, config)

    if connections_set_manually:
        for type_name in type_ids:
            if type_name not in types_with_connections_out and type_name not in types_with_connections_in:
                logger.warning("no connections defined for node type %r", type_name)
            elif type_name not in types_with_connections_out:
                logger.warning("no outgoing connections defined for node type %r", type_name)
            elif type_name not in types_with_connections_in:
                logger.warning("no incoming connections defined for node type %r", type_name)
        return

    # no manual connections: connect all pairs using the layout's link model
    model = LinkModelType.UDGM if config.layout.uses_unit_disk else LinkModelType.LOGISTIC_LOSS
    connection = {"LINK_MODEL": model.value}
    logger.info("link model: %r", model.value)
    nodes = list(network.nodes.values())
    for i, n1 in enumerate(nodes):
        for n2 in nodes[i + 1:]:
            network.add_link(create_link(n1, n2, connection, config.link_model))
            network.add_link(create_link(n2, n1, connection, config.link_model))


def construct_simulation(
    config: SimulationConfig,
    mac_factory: Optional[MacFactory] = None,
    scheduler: Optional[Scheduler] = None,
    router: Optional[Router] = None,
    mobility_model: Optional[MobilityModel] = None,
) -> SimulationContext:
    """Build a simulation from its configuration.

    Args:
        config: Simulation configuration.
        mac_factory: Creates the MAC of each node (default: idle MACs).
        scheduler: Scheduler (default: the configured variant).
        router: Router (default: the configured variant).
        mobility_model: Optional mobility model.

    Returns:
        The simulation context, at ASN 0.

    Raises:
        ConfigurationError: If the configuration is invalid.
        TopologyError: If the node positions cannot be generated.
    """
    config.validate()
    logger.info("initializing %s seconds long simulation...", config.simulation_duration_sec)

    logger.debug("initializing the RNG with seed %s", config.seed)
    rng = SimulationRNG(config.seed)
    network = Network(config.hopping_sequence)

    router = router if router is not None else router_factory(config.routing_algorithm)
    router.initialize(network)
    network.mobility_model = mobility_model
    scheduler = scheduler if scheduler is not None else scheduler_factory(config.scheduling_algorithm)
    scheduler.initialize()

    context = SimulationContext(config, rng, network, scheduler, router)
    type_ids = _create_nodes(context, mac_factory)
    _set_positions(context)
    _set_connections(context, type_ids)

    for node in network.nodes.values():
        if not node.links:
            logger.warning("node %s of type %r has no valid connections", node.id, node.config.name)
        logger.debug("node %s: %d links", node.id, len(node.links))
    if network.nodes:
        components = nx.number_weakly_connected_components(network.to_graph())
        logger.info("%d nodes, %d links, %d connected components",
                    len(network.nodes), len(network.links), components)
    return context


def run_simulation(context: SimulationContext) -> Dict[str, Dict[str, Any]]:
    """Run a single simulation until the configured duration.

    Args:
        context: A freshly constructed simulation.

    Returns:
        The statistics document of the run.
    """
    context.start()
    while not context.has_ended():
        context.advance()
    return context.finish()


def run_single(config: SimulationConfig, **kwargs: Any) -> Dict[str, Dict[str, Any]]:
    """Construct and run a simulation; keyword arguments go to `construct_simulation`."""
    return run_simulation(construct_simulation(config, **kwargs))


def get_status(context: Optional[SimulationContext], is_running: bool = False) -> Dict[str, Any]:
    """Snapshot of the simulation: time, node positions and nonzero links.

    Args:
        context: The simulation, or None if none is constructed.
        is_running: Whether the simulation is currently running.

    Returns:
        A JSON-compatible status dictionary.
    """
    status: Dict[str, Any] = {
        "simulator": {
            "is_running": is_running,
            "asn": context.timeline.asn if context else 0,
            "seconds": context.timeline.seconds if context else 0,
        },
        "network": {"nodes": [], "links": {}},
    }
    if context is None:
        return status
    for node_id, node in context.network.nodes.items():
        status["network"]["nodes"].append({"id": node_id, "x": node.pos_x, "y": node.pos_y})
    for (from_id, to_id), link in context.network.links.items():
        success_rate = link.get_average_success_rate()
        if success_rate > 0.0:
            status["network"]["links"][f"{from_id}->{to_id}"] = success_rate
    return status


def update_node_positions(context: Optional[SimulationContext], positions: Iterable[Dict[str, Any]]) -> None:
    """Move nodes and re-evaluate their potential links.

    Args:
        context: The simulation.
        positions: Dictionaries with keys ID, X and Y.
    """
    if context is None:
        logger.warning("update positions: network not present")
        return
    network = context.network
    for position in positions:
        node = network.find_node(position.get("ID"))
        if node is None:
            logger.info("update positions: cannot find node by id=%s", position.get("ID"))
            continue
        node.pos_x = _coordinate(position.get("X", node.pos_x), node.id, "X")
        node.pos_y = _coordinate(position.get("Y", node.pos_y), node.id, "Y")
        network.update_node_links(node)
