import pytest

from tsch_sim.config import SimulationConfig
from tsch_sim.core.enums import LayoutType, SlotDecision
from tsch_sim.core.node import NodeMac
from tsch_sim.core.slot_engine import TransmissionLogEntry
from tsch_sim.utils.metrics import NodeStats


class ScriptedMac(NodeMac):
    """Transmits according to a script {asn: {"co": offset, "to": [ids]}}.

    Every phase call is appended to a log shared by all nodes.
    """

    def __init__(self, log, script=None):
        self.log = log
        self.script = script or {}
        self.stats = NodeStats()

    def initialize(self, node):
        self.log.append(("init", node.id))

    def schedule(self, node, schedule_status):
        status = schedule_status[node.index]
        self.log.append(("schedule", node.id))
        entry = self.script.get(status.asn)
        if entry is None:
            return SlotDecision.IDLE
        status.co = entry.get("co")
        return SlotDecision.TX

    def commit_tx(self, node, receivers, schedule_status, transmissions):
        status = schedule_status[node.index]
        self.log.append(("tx", node.id))
        for to_id in self.script[status.asn].get("to", []):
            receivers.append(node.network.get_node(to_id))
            transmissions.append(
                TransmissionLogEntry(status.asn, node.id, to_id, status.ch, "data")
            )
        self.stats.mac_tx += 1

    def commit_rx(self, node, subslot, schedule_status):
        self.log.append(("rx", node.id, subslot))
        self.stats.mac_rx += 1

    def commit_ack(self, node, schedule_status):
        self.log.append(("ack", node.id))

    def aggregate_stats(self, node):
        self.stats.num_links = len(node.links)
        return self.stats


@pytest.fixture
def mac_log():
    return []


@pytest.fixture
def scripted_macs(mac_log):
    """Build a mac_factory from per-node scripts."""

    def make(scripts=None):
        scripts = scripts or {}
        return lambda node, context: ScriptedMac(mac_log, scripts.get(node.id))

    return make


@pytest.fixture
def line_config():
    """Three nodes on a line, ten slots."""
    return SimulationConfig(
        layout=LayoutType.LINE,
        num_nodes=3,
        simulation_duration_sec=0.1,
        seed=1,
    )
