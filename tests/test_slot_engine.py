from tsch_sim.core.enums import SlotDecision
from tsch_sim.core.simulator import construct_simulation


def test_idle_slot(line_config):
    context = construct_simulation(line_config)
    result = context.network.step(1)
    assert result.asn == 1
    assert not result.was_active_slot
    assert result.transmissions == []
    assert [s.decision for s in result.schedule_status] == [SlotDecision.IDLE] * 3


def test_phase_order(line_config, scripted_macs, mac_log):
    scripts = {
        1: {5: {"co": 0, "to": [2]}},
        3: {5: {"co": 1, "to": [2, 1]}},
    }
    context = construct_simulation(line_config, mac_factory=scripted_macs(scripts))
    mac_log.clear()
    result = context.network.step(5, num_subslots=2)

    assert result.was_active_slot
    assert mac_log == [
        ("schedule", 1), ("schedule", 2), ("schedule", 3),
        ("tx", 1), ("tx", 3),
        # node 2 is received once even though two nodes sent to it
        ("rx", 2, 0), ("rx", 2, 1), ("rx", 1, 0), ("rx", 1, 1),
        ("ack", 1), ("ack", 3),
    ]
    assert [(t.from_id, t.to_id) for t in result.transmissions] == [(1, 2), (3, 2), (3, 1)]


def test_channel_resolution(line_config, scripted_macs):
    scripts = {1: {6: {"co": 3, "to": [2]}}}
    context = construct_simulation(line_config, mac_factory=scripted_macs(scripts))
    result = context.network.step(6)
    status = result.schedule_status[0]
    sequence = line_config.hopping_sequence
    assert status.decision is SlotDecision.TX
    assert status.ch == sequence[(6 + 3) % len(sequence)]
    assert result.transmissions[0].channel == status.ch
    assert result.schedule_status[1].ch is None


def test_order_is_reproducible(line_config, scripted_macs, mac_log):
    scripts = {2: {1: {"co": 0, "to": [1, 3]}}, 3: {2: {"co": 0, "to": [2]}}}
    logs = []
    for _ in range(2):
        mac_log.clear()
        context = construct_simulation(line_config, mac_factory=scripted_macs(scripts))
        context.start()
        for _ in range(3):
            context.advance()
        logs.append(list(mac_log))
    assert logs[0] == logs[1]


class _CountingMobility:
    def __init__(self):
        self.calls = 0

    def update_positions(self, network):
        self.calls += 1


def test_mobility_runs_first(line_config):
    mobility = _CountingMobility()
    context = construct_simulation(line_config, mobility_model=mobility)
    context.network.step(1)
    context.network.step(2)
    assert mobility.calls == 2
