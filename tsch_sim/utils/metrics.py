"""Metrics utilities for TSCH network simulation.

This module merges the per-node statistics counters into network-wide totals,
derives the delivery and acknowledgment ratios, checks the packet balance and
saves the resulting statistics document.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from tsch_sim.core.network import Network

logger = logging.getLogger(__name__)

BALANCED = "BALANCED"
NOT_BALANCED = "NOT BALANCED"

# join times add up only while every node has joined
_JOIN_TIME_FIELDS = ("tsch_join_time_sec", "routing_join_time_sec")


@dataclass
class NodeStats:
    """Statistics counters of a single node.

    Attributes:
        app_num_tx: Application packets generated.
        app_num_endpoint_rx: Application packets received at their destination.
        app_num_lost: Application packets lost.
        app_num_queued: Application packets still queued at the end of the run.
        app_latencies: End-to-end latencies of received packets in seconds.
        charge_uc: Consumed charge in microcoulombs.
        charge_joined_uc: Consumed charge while joined, in microcoulombs.
        num_links: Number of active outgoing links.
    """

    # end-to-end
    app_num_tx: int = 0
    app_num_endpoint_rx: int = 0
    app_num_lost: int = 0
    app_num_queued: int = 0
    app_num_queue_drops: int = 0
    app_num_tx_limit_drops: int = 0
    app_num_routing_drops: int = 0
    app_num_scheduling_drops: int = 0
    app_num_other_drops: int = 0
    app_latencies: List[float] = field(default_factory=list)
    # TSCH protocol
    tsch_eb_tx: int = 0
    tsch_eb_rx: int = 0
    tsch_keepalive_tx: int = 0
    tsch_keepalive_rx: int = 0
    tsch_join_time_sec: Optional[float] = 0.0
    tsch_num_parent_changes: int = 0
    # link layer
    mac_tx: int = 0
    mac_tx_unicast: int = 0
    mac_acked: int = 0
    mac_rx: int = 0
    mac_rx_error: int = 0
    mac_rx_collision: int = 0
    mac_ack_error: int = 0
    # link layer, for the parent neighbor
    mac_parent_tx_unicast: int = 0
    mac_parent_acked: int = 0
    mac_parent_rx: int = 0
    # slot usage
    slots_rx_idle: int = 0
    slots_rx_scanning: int = 0
    slots_rx_packet: int = 0
    slots_rx_packet_tx_ack: int = 0
    slots_tx_packet: int = 0
    slots_tx_packet_rx_ack: int = 0
    # routing
    routing_num_tx: int = 0
    routing_num_rx: int = 0
    routing_join_time_sec: Optional[float] = 0.0
    routing_num_parent_changes: int = 0
    # energy
    charge_uc: float = 0.0
    charge_joined_uc: float = 0.0
    num_links: int = 0

    def add(self, other: "NodeStats") -> None:
        """Add the counters of `other` to this record."""
        for f in fields(self):
            mine = getattr(self, f.name)
            theirs = getattr(other, f.name)
            if f.name == "app_latencies":
                mine.extend(theirs)
            elif f.name in _JOIN_TIME_FIELDS:
                if mine is not None:
                    setattr(self, f.name, None if theirs is None else mine + theirs)
            else:
                setattr(self, f.name, mine + theirs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def div_safe(numerator: float, denominator: float) -> float:
    """Divide, returning 0 instead of failing on a zero denominator."""
    return numerator / denominator if denominator else 0.0


def delivery_ratio(received: int, lost: int) -> float:
    """End-to-end packet delivery ratio in percent."""
    total = received + lost
    return 100.0 * (1.0 - div_safe(lost, total)) if total else 0.0


def balance_status(totals: NodeStats) -> str:
    """Check that every sent packet is received, lost or still queued."""
    accounted = totals.app_num_endpoint_rx + totals.app_num_lost + totals.app_num_queued
    return BALANCED if totals.app_num_tx == accounted else NOT_BALANCED


def latency_summary(latencies: List[float]) -> Dict[str, Optional[float]]:
    if not latencies:
        return {"min": None, "mean": None, "max": None}
    values = np.asarray(latencies, dtype=float)
    return {
        "min": float(values.min()),
        "mean": float(values.mean()),
        "max": float(values.max()),
    }


class StatsAggregator:
    """Merges per-node statistics into a run statistics document.

    Attributes:
        totals: Network-wide totals of the last aggregation.
        latencies: Pooled latency samples of the last aggregation.
    """

    def __init__(self) -> None:
        self.totals = NodeStats()
        self.latencies: List[float] = []

    def aggregate(
        self, network: "Network", run_id: Any = 0, elapsed_sec: float = 0.0
    ) -> Dict[str, Dict[str, Any]]:
        """Aggregate the statistics of all nodes.

        Args:
            network: The network whose nodes are aggregated, in creation order.
            run_id: Identifier of the run; the document is nested under it.
            elapsed_sec: Simulated time, used for the mean current.

        Returns:
            Mapping from run ID to node ID to node record, plus "global-stats".
        """
        self.totals = NodeStats()
        stats: Dict[str, Any] = {}
        for node_id, node in network.nodes.items():
            node_stats = node.aggregate_stats()
            stats[str(node_id)] = node_stats.to_dict()
            self.totals.add(node_stats)
        self.latencies = list(self.totals.app_latencies)

        totals = self.totals
        pdr = delivery_ratio(totals.app_num_endpoint_rx, totals.app_num_lost)
        par = 100.0 * div_safe(totals.mac_parent_acked, totals.mac_parent_tx_unicast)
        latency = latency_summary(self.latencies)
        balance = balance_status(totals)

        stats["global-stats"] = {
            "app-packets-sent": [
                {"total": totals.app_num_tx, "name": "Number of application packets sent"}
            ],
            "app-packets-received": [
                {
                    "total": totals.app_num_endpoint_rx,
                    "name": "Number of application packets received",
                }
            ],
            "app-packets-lost": [
                {"total": totals.app_num_lost, "name": "Number of application packets lost"}
            ],
            "app-packets-queued": [
                {
                    "total": totals.app_num_queued,
                    "name": "Number of application packets still queued",
                }
            ],
            "app-packets-dropped": [
                {
                    "queue": totals.app_num_queue_drops,
                    "tx_limit": totals.app_num_tx_limit_drops,
                    "routing": totals.app_num_routing_drops,
                    "scheduling": totals.app_num_scheduling_drops,
                    "other": totals.app_num_other_drops,
                    "name": "Number of application packets dropped, by reason",
                }
            ],
            "packet-balance": [
                {
                    "value": balance,
                    "name": "Sent packets match received + lost + queued",
                }
            ],
            "e2e-delivery": [
                {"value": pdr, "name": "E2E delivery ratio", "unit": "%"},
                {"value": 100 - pdr, "name": "E2E loss ratio", "unit": "%"},
            ],
            "e2e-latency": [{"name": "E2E latency", "unit": "s", **latency}],
            "link-par": [
                {
                    "value": par,
                    "tx": totals.mac_parent_tx_unicast,
                    "acked": totals.mac_parent_acked,
                    "name": "Parent link acknowledgment ratio",
                    "unit": "%",
                }
            ],
            "current-consumed": [
                {
                    "name": "Current consumed",
                    "unit": "mA",
                    "mean": round(div_safe(totals.charge_uc, elapsed_sec) / 1000, 1),
                }
            ],
            "current-consumed-when-joined": [
                {
                    "name": "Current consumed",
                    "unit": "mA",
                    "mean": round(div_safe(totals.charge_joined_uc, elapsed_sec) / 1000, 1),
                }
            ],
            "mac": [
                {
                    "tx": totals.mac_tx,
                    "tx_unicast": totals.mac_tx_unicast,
                    "acked": totals.mac_acked,
                    "rx": totals.mac_rx,
                    "rx_error": totals.mac_rx_error,
                    "rx_collision": totals.mac_rx_collision,
                    "ack_error": totals.mac_ack_error,
                    "name": "Link layer counters",
                }
            ],
            "slots": [
                {
                    "rx_idle": totals.slots_rx_idle,
                    "rx_scanning": totals.slots_rx_scanning,
                    "rx_packet": totals.slots_rx_packet,
                    "rx_packet_tx_ack": totals.slots_rx_packet_tx_ack,
                    "tx_packet": totals.slots_tx_packet,
                    "tx_packet_rx_ack": totals.slots_tx_packet_rx_ack,
                    "name": "Slot usage",
                }
            ],
            "join": [
                {
                    "tsch_join_time_sec": totals.tsch_join_time_sec,
                    "tsch_num_parent_changes": totals.tsch_num_parent_changes,
                    "routing_join_time_sec": totals.routing_join_time_sec,
                    "routing_num_parent_changes": totals.routing_num_parent_changes,
                    "routing_num_tx": totals.routing_num_tx,
                    "routing_num_rx": totals.routing_num_rx,
                    "name": "Joining and routing",
                }
            ],
            "links": [{"total": totals.num_links, "name": "Number of active links"}],
        }

        logger.info(
            "packet stats: PDR=%.2f%% generated=%d received=%d lost=%d queued=%d %s "
            "(tx_limit/queue/routing/scheduling/other=%d/%d/%d/%d/%d)",
            pdr,
            totals.app_num_tx,
            totals.app_num_endpoint_rx,
            totals.app_num_lost,
            totals.app_num_queued,
            balance,
            totals.app_num_tx_limit_drops,
            totals.app_num_queue_drops,
            totals.app_num_routing_drops,
            totals.app_num_scheduling_drops,
            totals.app_num_other_drops,
        )
        logger.info(
            "link stats: links=%d PAR=%.2f%% tx=%d acked=%d collisions=%d",
            totals.num_links,
            par,
            totals.mac_parent_tx_unicast,
            totals.mac_parent_acked,
            totals.mac_rx_collision,
        )

        return {str(run_id): stats}


def merge_stats_documents(documents: Iterable[Dict[str, Dict[str, Any]]]) -> Dict[str, Dict[str, Any]]:
    """Merge statistics documents of several runs into one document.

    Args:
        documents: Documents keyed by run ID.

    Returns:
        A single document keyed by run ID.

    Raises:
        ValueError: If a run ID appears in more than one document.
    """
    merged: Dict[str, Dict[str, Any]] = {}
    for document in documents:
        for run_id, stats in document.items():
            if run_id in merged:
                raise ValueError(f"duplicate run ID {run_id!r} in statistics documents")
            merged[run_id] = stats
    return merged


def save_stats_to_json(stats: Dict[str, Any], filename: str = "results/stats.json") -> None:
    """Save a statistics document to a JSON file.

    Args:
        stats: Statistics document to save.
        filename: Output filename.
    """
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(filename, "w") as f:
        json.dump(stats, f, indent=2)
