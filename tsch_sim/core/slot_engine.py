"""Slot execution engine.

A time slot is executed in five phases over the whole node set: mobility,
schedule, commit-transmit, commit-receive and commit-acknowledge. A phase is
finished for every node before the next phase starts for any node, so all
transmissions of a slot are fixed before any receiver samples its channel.
Nodes are always processed in creation order.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from tsch_sim.core.enums import SlotDecision

if TYPE_CHECKING:
    from tsch_sim.core.network import Network
    from tsch_sim.core.node import Node


@dataclass
class SlotStatus:
    """Per-node status of a single slot.

    Attributes:
        asn: Absolute slot number of the slot.
        decision: What the node decided to do in the schedule phase.
        co: Channel offset of the scheduled cell, if any.
        ch: Physical channel resolved from the channel offset.
        details: Scratch space for the MAC layer.
    """

    asn: int = 0
    decision: SlotDecision = SlotDecision.IDLE
    co: Optional[int] = None
    ch: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TransmissionLogEntry:
    """A frame sent in the commit-transmit phase."""

    asn: int
    from_id: Any
    to_id: Any = None
    channel: Optional[int] = None
    packet_type: str = ""
    success: Optional[bool] = None


@dataclass
class SlotResult:
    """Outcome of a single slot.

    Attributes:
        asn: Absolute slot number of the slot.
        was_active_slot: True if at least one node transmitted.
        schedule_status: Per-node slot status records, indexed by node index.
        transmissions: Transmission log of the slot.
    """

    asn: int
    was_active_slot: bool
    schedule_status: List[SlotStatus]
    transmissions: List[TransmissionLogEntry]


def execute_slot(network: "Network", asn: int, num_subslots: int = 1) -> SlotResult:
    """Advance the network by exactly one time slot.

    Args:
        network: The network to advance.
        asn: Absolute slot number of this slot.
        num_subslots: Channel samples processed per receiver.

    Returns:
        The slot result.
    """
    if network.mobility_model is not None:
        network.mobility_model.update_positions(network)

    nodes = list(network.nodes.values())
    schedule_status = [SlotStatus(asn=asn) for _ in nodes]
    transmissions: List[TransmissionLogEntry] = []

    tx_nodes: List["Node"] = []
    for node in nodes:
        decision = node.schedule(schedule_status)
        status = schedule_status[node.index]
        if decision is not None:
            status.decision = decision
        if status.decision is SlotDecision.TX:
            tx_nodes.append(node)
        if status.co is not None:
            status.ch = node.get_channel(asn, status.co)

    rx_nodes: List["Node"] = []
    for node in tx_nodes:
        node.commit_tx(rx_nodes, schedule_status, transmissions)

    # the same receiver may be appended by several transmitters
    receivers = list({node.id: node for node in rx_nodes}.values())
    for node in receivers:
        for subslot in range(num_subslots):
            node.commit_rx(subslot, schedule_status)

    for node in tx_nodes:
        node.commit_ack(schedule_status)

    return SlotResult(
        asn=asn,
        was_active_slot=bool(tx_nodes),
        schedule_status=schedule_status,
        transmissions=transmissions,
    )
