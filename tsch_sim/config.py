"""Configuration for TSCH network simulation.

This module defines the configuration records consumed by the simulation core:
link model parameters, node types and the top-level simulation settings.
"""

import copy
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

from tsch_sim.core.enums import LayoutType, RoutingAlgorithm, SchedulingAlgorithm
from tsch_sim.core.exceptions import ConfigurationError

DEFAULT_HOPPING_SEQUENCE = [15, 25, 26, 20]


@dataclass
class LinkModelConfig:
    """Parameters of the radio link models.

    Attributes:
        tx_power_dbm: Transmit power in dBm.
        path_loss_exponent: Exponent of the log-distance path loss.
        rx_sensitivity_dbm: Sensitivity floor, the RSSI with no chance of reception.
        rssi_inflection_point_dbm: RSSI at which the success rate is 50%.
        transmit_range_m: Range beyond which the logistic-loss link is dead.
        udgm_transmit_range_m: Range of the unit-disk model.
        udgm_rx_success: Success rate of the unit-disk model inside its range.
        udgm_constant_loss: Whether the unit-disk success rate ignores distance.
    """

    tx_power_dbm: float = 0.0
    path_loss_exponent: float = 3.0
    rx_sensitivity_dbm: float = -100.0
    rssi_inflection_point_dbm: float = -90.0
    transmit_range_m: float = 100.0
    udgm_transmit_range_m: float = 50.0
    udgm_rx_success: float = 1.0
    udgm_constant_loss: bool = False


@dataclass
class NodeTypeConfig:
    """A group of nodes sharing the same configuration.

    Attributes:
        name: Name of the node type.
        count: Number of nodes of this type.
        start_id: ID of the first node; defaults to the previous ID plus one.
        positions: Manual positions, dicts with keys ID, X and Y.
        connections: Outgoing connections, dicts with TO_NODE_TYPE and link params.
        hopping_sequence: Channel hopping sequence override.
    """

    name: str = "node"
    count: int = 0
    start_id: Optional[int] = None
    positions: List[Dict[str, Any]] = field(default_factory=list)
    connections: List[Dict[str, Any]] = field(default_factory=list)
    hopping_sequence: Optional[List[int]] = None

    def is_valid(self) -> bool:
        return bool(self.name) and bool(self.count)


@dataclass
class SimulationConfig:
    """Top-level simulation configuration.

    Attributes:
        layout: Node positioning layout.
        num_nodes: Number of nodes when no node types are given.
        num_degrees: Target average degree of the Mesh layout (default sqrt(N)).
        area_radius: Initial area radius of the Mesh layout.
        link_quality_threshold: Minimal success rate counted as a usable link.
        dense_node_distance: Node spacing of the dense layouts in meters.
        dense_min_degree: Minimal average degree of the DenseMesh layout.
        dense_degree_cap: Maximal number of links per node in the DenseMesh layout.
        dense_grid_neighbor_links: Connect DenseGrid nodes to their grid neighbors only.
        topology_max_iterations: Ceiling on layout repair iterations.
        mac_slot_duration_us: Duration of a single time slot in microseconds.
        mac_max_subslots: Channel samples per slot in the receive phase.
        hopping_sequence: Physical channels indexed by (ASN + channel offset).
        simulation_duration_sec: Simulated duration in seconds.
        seed: Seed of the simulation random number generator.
        layout_seed: Independent seed for the random mesh layouts.
        run_id: Identifier under which statistics are reported.
        scheduling_algorithm: Scheduler variant.
        routing_algorithm: Routing protocol variant.
        positions: Global manual positions, dicts with keys ID, X and Y.
        connections: Global connections, by node ID or by node type.
        node_types: Node groups; if empty, `num_nodes` default nodes are created.
        save_results: Whether to write the statistics document on completion.
        results_dir: Directory for the statistics document.
        max_recent_slots: Number of recent slot results kept by the pacing controller.
    """

    layout: LayoutType = LayoutType.MESH
    num_nodes: int = 10
    num_degrees: Optional[float] = None
    area_radius: Optional[float] = None
    link_quality_threshold: float = 0.9
    dense_node_distance: float = 20.0
    dense_min_degree: float = 8.0
    dense_degree_cap: int = 15
    dense_grid_neighbor_links: bool = False
    topology_max_iterations: int = 100000
    link_model: LinkModelConfig = field(default_factory=LinkModelConfig)
    mac_slot_duration_us: int = 10000
    mac_max_subslots: int = 1
    hopping_sequence: List[int] = field(default_factory=lambda: list(DEFAULT_HOPPING_SEQUENCE))
    simulation_duration_sec: float = 60.0
    seed: int = 0
    layout_seed: Optional[int] = None
    run_id: int = 0
    scheduling_algorithm: SchedulingAlgorithm = SchedulingAlgorithm.NONE
    routing_algorithm: RoutingAlgorithm = RoutingAlgorithm.NULL
    positions: List[Dict[str, Any]] = field(default_factory=list)
    connections: List[Dict[str, Any]] = field(default_factory=list)
    node_types: List[NodeTypeConfig] = field(default_factory=list)
    save_results: bool = False
    results_dir: str = "results"
    max_recent_slots: int = 100

    def __post_init__(self):
        self.layout = LayoutType.parse(self.layout)
        self.scheduling_algorithm = SchedulingAlgorithm.parse(self.scheduling_algorithm)
        self.routing_algorithm = RoutingAlgorithm.parse(self.routing_algorithm)
        if isinstance(self.link_model, dict):
            self.link_model = LinkModelConfig(**self.link_model)
        self.node_types = [
            NodeTypeConfig(**nt) if isinstance(nt, dict) else nt for nt in self.node_types
        ]

    @property
    def slot_duration_sec(self) -> float:
        return self.mac_slot_duration_us / 1000000.0

    def validate(self) -> "SimulationConfig":
        """Check the configuration for values the core cannot work with.

        Returns:
            The configuration itself.

        Raises:
            ConfigurationError: If a value is out of range.
        """
        if self.mac_slot_duration_us <= 0:
            raise ConfigurationError("mac_slot_duration_us must be positive")
        if self.mac_max_subslots < 1:
            raise ConfigurationError("mac_max_subslots must be at least 1")
        if not self.hopping_sequence:
            raise ConfigurationError("hopping_sequence must not be empty")
        if self.simulation_duration_sec <= 0:
            raise ConfigurationError("simulation_duration_sec must be positive")
        if self.num_nodes < 0:
            raise ConfigurationError("num_nodes must not be negative")
        if not 0.0 < self.link_quality_threshold < 1.0:
            raise ConfigurationError("link_quality_threshold must be in (0, 1)")
        if self.topology_max_iterations < 1:
            raise ConfigurationError("topology_max_iterations must be at least 1")
        for name in ("transmit_range_m", "udgm_transmit_range_m", "path_loss_exponent"):
            if getattr(self.link_model, name) <= 0:
                raise ConfigurationError(f"link_model.{name} must be positive")
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationConfig":
        """Create a configuration from a (possibly nested) dictionary.

        Args:
            data: Field names mapped to values.

        Returns:
            The created configuration.

        Raises:
            ConfigurationError: If the dictionary has unknown keys.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"unknown configuration keys: {sorted(unknown)}")
        return cls(**copy.deepcopy(data))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary, suitable for structural comparison."""
        data = asdict(self)
        data["layout"] = self.layout.value
        data["scheduling_algorithm"] = self.scheduling_algorithm.value
        data["routing_algorithm"] = self.routing_algorithm.value
        return data
