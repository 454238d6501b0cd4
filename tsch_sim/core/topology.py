"""Network generator: node positions for different topologies.

Supported layouts: point (star), line, grid, dense grid, random mesh with a
target average degree (logistic-loss model) and dense random mesh with
per-node degree bounds (unit-disk model).
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import networkx as nx
import numpy as np

from tsch_sim.config import SimulationConfig
from tsch_sim.core.enums import LayoutType
from tsch_sim.core.exceptions import ConvergenceError, InfeasibleDegreeError
from tsch_sim.core.link_model import LinkModel, LogisticLossModel, UnitDiskModel
from tsch_sim.utils.rng import SimulationRNG

logger = logging.getLogger(__name__)

MIN_ALLOWED_DEGREES = 2


@dataclass
class Placement:
    """Position of a node; random layouts also keep its polar coordinates."""

    pos_x: float
    pos_y: float
    distance: float = 0.0
    angle: float = 0.0

    def move(self, distance: float) -> None:
        """Move along the current angle to `distance` from the origin."""
        self.pos_x = distance * math.sin(self.angle)
        self.pos_y = distance * math.cos(self.angle)
        self.distance = distance


def acceptance_band(degrees: float) -> Tuple[float, float]:
    """Relax the degree target a bit and accept values close to it."""
    return (
        min(degrees - 0.5, degrees * 0.95),
        max(degrees + 0.5, degrees * 1.05),
    )


class TopologyGenerator:
    """Generates node positions according to the configured layout.

    Attributes:
        config: Simulation configuration.
        rng: Shared simulation random number generator.
        model: Logistic-loss model used by the positioning threshold.
        unit_disk: Unit-disk model used by the dense layouts.
    """

    def __init__(self, config: SimulationConfig, rng: SimulationRNG) -> None:
        self.config = config
        self.rng = rng
        self.model = LogisticLossModel(config.link_model)
        self.unit_disk = UnitDiskModel(config.link_model)

    def generate(self, num_nodes: int) -> List[Placement]:
        """Generate `num_nodes` positions for the configured layout.

        Random layouts draw from their own seed if `layout_seed` is set; the
        shared generator is restored afterwards.

        Raises:
            InfeasibleDegreeError: If the mesh degree target cannot be met.
            ConvergenceError: If a random layout does not converge.
        """
        layout = self.config.layout
        if layout is LayoutType.POINT:
            return self.generate_star(num_nodes)
        if layout is LayoutType.LINE:
            return self.generate_line(num_nodes)
        if layout is LayoutType.GRID:
            return self.generate_grid(num_nodes)
        if layout is LayoutType.DENSE_GRID:
            return self.generate_dense_grid(num_nodes)
        with self.rng.reseeded(self.config.layout_seed):
            if layout is LayoutType.DENSE_MESH:
                return self.generate_dense_mesh(num_nodes)
            degrees = self.config.num_degrees
            if not degrees:
                # sqrt(N) by default
                degrees = math.sqrt(num_nodes)
            return self.generate_mesh(num_nodes, degrees, self.config.area_radius)

    def positioning_step(self) -> float:
        """Largest spacing at which a link still meets the quality threshold."""
        return self.model.distance_from_success_rate(self.config.link_quality_threshold)

    def generate_star(self, num_nodes: int) -> List[Placement]:
        logger.info("generating a star network with %d nodes", num_nodes)
        if not num_nodes:
            return []
        radius = self.positioning_step()
        nodes = [Placement(radius, radius)]
        for i in range(1, num_nodes):
            angle = math.pi * 2 * i / (num_nodes - 1)
            nodes.append(
                Placement(radius * (1 + math.cos(angle)), radius * (1 + math.sin(angle)))
            )
        return nodes

    def generate_line(self, num_nodes: int) -> List[Placement]:
        logger.info("generating a line network with %d nodes", num_nodes)
        step = self.positioning_step()
        return [Placement(i * step, 0.0) for i in range(num_nodes)]

    def generate_grid(self, num_nodes: int) -> List[Placement]:
        logger.info("generating a grid network with %d nodes", num_nodes)
        if not num_nodes:
            return []
        step = self.positioning_step()
        per_row = math.ceil(math.sqrt(num_nodes))
        nodes = []
        for i in range(num_nodes):
            row = i // per_row
            column = i - row * per_row
            nodes.append(Placement(column * step, row * step))
        return nodes

    def generate_dense_grid(self, num_nodes: int) -> List[Placement]:
        """Fixed-spacing grid growing rightwards and downwards (negative y)."""
        logger.info("generating a dense grid network with %d nodes", num_nodes)
        if not num_nodes:
            return []
        spacing = float(self.config.dense_node_distance)
        per_row = math.ceil(math.sqrt(num_nodes))
        nodes = []
        column = 0
        row = 0
        for _ in range(num_nodes):
            nodes.append(Placement(column * spacing, -row * spacing if row else 0.0))
            column = (column + 1) % per_row
            if column == 0:
                row = (row + 1) % per_row
        return nodes

    def initialize_random(self, num_nodes: int, area_radius: float) -> List[Placement]:
        """Place nodes at uniformly random polar coordinates within `area_radius`."""
        nodes = []
        for _ in range(num_nodes):
            distance = self.rng.random() * area_radius
            angle = self.rng.random() * math.pi * 2
            node = Placement(0.0, 0.0, distance, angle)
            node.move(distance)
            nodes.append(node)
        return nodes

    def _pair_success(
        self, nodes: List[Placement], model: LinkModel
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        first, second = np.triu_indices(len(nodes), k=1)
        xs = np.array([n.pos_x for n in nodes], dtype=float)
        ys = np.array([n.pos_y for n in nodes], dtype=float)
        distances = np.hypot(xs[first] - xs[second], ys[first] - ys[second])
        success_rate, _ = model.success_rate_at(distances)
        return first, second, np.asarray(success_rate)

    def link_graph(
        self, nodes: List[Placement], model: Optional[LinkModel] = None, min_success: Optional[float] = None
    ) -> nx.Graph:
        """Undirected graph of node pairs whose success rate reaches `min_success`.

        Args:
            nodes: The node positions.
            model: Link model (default: the logistic-loss model).
            min_success: Minimal success rate (default: the positioning threshold).
                A value of 0 keeps every pair with a nonzero success rate.
        """
        model = model or self.model
        if min_success is None:
            min_success = self.config.link_quality_threshold
        graph = nx.Graph()
        graph.add_nodes_from(range(len(nodes)))
        if len(nodes) < 2:
            return graph
        first, second, success_rate = self._pair_success(nodes, model)
        mask = success_rate > 0.0 if min_success <= 0.0 else success_rate >= min_success
        graph.add_edges_from(zip(first[mask].tolist(), second[mask].tolist()))
        return graph

    def average_degree(self, nodes: List[Placement], model: Optional[LinkModel] = None,
                       min_success: Optional[float] = None) -> float:
        if not nodes:
            return 0.0
        graph = self.link_graph(nodes, model, min_success)
        return 2 * graph.number_of_edges() / len(nodes)

    def degree_report(self, nodes: List[Placement]) -> Dict[str, float]:
        """Summary of the good-link degrees of a layout."""
        graph = self.link_graph(nodes)
        degrees = [d for _, d in graph.degree()]
        return {
            "average_degree": 2 * graph.number_of_edges() / len(nodes) if nodes else 0.0,
            "min_degree": min(degrees, default=0),
            "max_degree": max(degrees, default=0),
            "num_disconnected": sum(1 for d in degrees if d == 0),
            "num_components": nx.number_connected_components(graph) if nodes else 0,
        }

    def increase_degree(self, nodes: List[Placement]) -> None:
        """Move the furthest node to a random distance within its current distance."""
        furthest = max(range(len(nodes)), key=lambda j: nodes[j].distance)
        nodes[furthest].move(self.rng.random() * nodes[furthest].distance)

    def decrease_degree(self, nodes: List[Placement], area_radius: float) -> float:
        """Grow the area by 10% and move the nearest node outwards into it.

        Returns:
            The new area radius.
        """
        area_radius *= 1.1
        nearest = min(range(len(nodes)), key=lambda j: nodes[j].distance)
        nearest_distance = nodes[nearest].distance
        nodes[nearest].move(nearest_distance + self.rng.random() * (area_radius - nearest_distance))
        return area_radius

    def generate_mesh(
        self, num_nodes: int, degrees: float, area_radius: Optional[float] = None
    ) -> List[Placement]:
        """Generate a random mesh network with a simple algorithm.

        Random positions are initialized from the network size and the expected
        number of links; while the average degree is outside the acceptance band,
        single nodes are moved closer together or further apart.

        Args:
            num_nodes: Number of nodes.
            degrees: Target average degree.
            area_radius: Initial area radius (default: derived from range and target).

        Returns:
            The node positions; an empty list for zero nodes, whatever the
            degree target.

        Raises:
            InfeasibleDegreeError: If the target is below 2 or above N-1.
            ConvergenceError: If the band is not reached within the iteration ceiling.
        """
        logger.info("generating a mesh network with %d nodes and %s degrees", num_nodes, degrees)
        if not num_nodes:
            return []
        if degrees < MIN_ALLOWED_DEGREES:
            logger.error("mesh degree target %s is below %d", degrees, MIN_ALLOWED_DEGREES)
            raise InfeasibleDegreeError(num_nodes, degrees, "the network would be disconnected")
        # a node can have links to up to N-1 other nodes
        if degrees > num_nodes - 1:
            logger.error("mesh degree target %s is above %d", degrees, num_nodes - 1)
            raise InfeasibleDegreeError(num_nodes, degrees, "too many connections required")

        min_acceptable, max_acceptable = acceptance_band(degrees)
        if not area_radius:
            area_radius = math.trunc(
                self.config.link_model.transmit_range_m * math.sqrt(num_nodes) * 4 / degrees
            )

        nodes = self.initialize_random(num_nodes, area_radius)
        current = self.average_degree(nodes)
        iterations = 0
        while not min_acceptable <= current <= max_acceptable:
            if iterations >= self.config.topology_max_iterations:
                logger.error("mesh generation did not converge")
                raise ConvergenceError(LayoutType.MESH.value, iterations, current)
            iterations += 1
            if current < min_acceptable:
                self.increase_degree(nodes)
            else:
                area_radius = self.decrease_degree(nodes, area_radius)
            current = self.average_degree(nodes)

        logger.info("mesh generated after %d iterations, average degree %.2f", iterations, current)
        return nodes

    def _unit_disk_degrees(self, nodes: List[Placement]) -> Tuple[float, Dict[int, int]]:
        good = self.link_graph(nodes, self.unit_disk, self.config.link_model.udgm_rx_success)
        active = self.link_graph(nodes, self.unit_disk, 0.0)
        return 2 * good.number_of_edges() / len(nodes), dict(active.degree())

    def _pull_in(self, node: Placement) -> None:
        node.move(0.9 * node.distance)

    def _push_out(self, node: Placement, area_radius: float) -> None:
        distance = 1.1 * node.distance
        if distance >= area_radius:
            distance = area_radius - 1
        node.move(distance)

    def generate_dense_mesh(self, num_nodes: int) -> List[Placement]:
        """Generate a random mesh with per-node degree bounds (unit-disk links).

        Every iteration applies the first repair that is needed: disconnected
        nodes are pulled in; otherwise over-connected nodes are pushed out;
        otherwise the furthest node is moved inwards to raise the density.

        Raises:
            ConvergenceError: If the constraints are not met within the iteration ceiling.
        """
        logger.info("generating a dense mesh network with %d nodes", num_nodes)
        if not num_nodes:
            return []
        cap = self.config.dense_degree_cap
        min_degrees = self.config.dense_min_degree
        if min_degrees > min(num_nodes - 1, cap):
            logger.error("dense mesh degree target %s cannot be met", min_degrees)
            raise InfeasibleDegreeError(num_nodes, min_degrees, "too many connections required")
        area_radius = num_nodes * self.config.dense_node_distance

        nodes = self.initialize_random(num_nodes, area_radius)
        iterations = 0
        while True:
            degrees, per_node = self._unit_disk_degrees(nodes)
            disconnected = [i for i, d in per_node.items() if d == 0]
            out_of_bounds = [i for i, d in per_node.items() if d > cap or d < 0]
            logger.debug(
                "degree %.2f, %d disconnected, %d over the cap",
                degrees, len(disconnected), len(out_of_bounds),
            )
            if degrees >= min_degrees and not disconnected and not out_of_bounds:
                break
            if iterations >= self.config.topology_max_iterations:
                logger.error("dense mesh generation did not converge")
                raise ConvergenceError(LayoutType.DENSE_MESH.value, iterations, degrees)
            iterations += 1
            if disconnected:
                for i in disconnected:
                    self._pull_in(nodes[i])
            elif out_of_bounds:
                for i in out_of_bounds:
                    if per_node[i] > cap:
                        self._push_out(nodes[i], area_radius)
                    else:
                        self._pull_in(nodes[i])
            else:
                self.increase_degree(nodes)

        logger.info("dense mesh generated after %d iterations, average degree %.2f", iterations, degrees)
        return nodes
