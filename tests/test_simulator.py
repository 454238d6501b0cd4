import json
import logging

import pytest

from tsch_sim.config import NodeTypeConfig, SimulationConfig
from tsch_sim.core.enums import LayoutType, LinkModelType
from tsch_sim.core.exceptions import ConfigurationError
from tsch_sim.core.link_model import LogisticLossModel, UnitDiskModel
from tsch_sim.core.simulator import (
    construct_simulation,
    get_status,
    run_simulation,
    run_single,
    update_node_positions,
)


def test_default_nodes_and_pairwise_links(line_config):
    context = construct_simulation(line_config)
    network = context.network
    assert list(network.nodes) == [1, 2, 3]
    assert len(network.links) == 6
    assert all(isinstance(link.model, LogisticLossModel) for link in network.links.values())
    assert context.timeline.asn == 0


def test_dense_layouts_use_unit_disk_links():
    config = SimulationConfig(layout=LayoutType.DENSE_GRID, num_nodes=4)
    context = construct_simulation(config)
    assert all(isinstance(link.model, UnitDiskModel) for link in context.network.links.values())


def test_dense_grid_neighbor_links():
    config = SimulationConfig(
        layout=LayoutType.DENSE_GRID, num_nodes=4, dense_grid_neighbor_links=True
    )
    links = construct_simulation(config).network.links
    # 2x2 grid: no diagonal links
    assert set(links) == {(1, 2), (2, 1), (1, 3), (3, 1), (2, 4), (4, 2), (3, 4), (4, 3)}


def test_node_types_and_typed_connections():
    config = SimulationConfig(
        layout=LayoutType.LINE,
        node_types=[
            {"name": "root", "count": 1, "start_id": 100,
             "connections": [{"NODE_TYPE": "leaf", "LINK_MODEL": "Fixed", "LINK_QUALITY": 0.5}]},
            {"name": "leaf", "count": 2},
        ],
        connections=[{"FROM_NODE_TYPE": "leaf", "TO_NODE_TYPE": "root"}],
    )
    network = construct_simulation(config).network
    assert list(network.nodes) == [100, 101, 102]
    assert set(network.links) == {(100, 101), (100, 102), (101, 100), (102, 100)}
    assert network.get_link(100, 101).success_rate == 0.5


def test_connections_by_id(caplog):
    config = SimulationConfig(
        layout=LayoutType.LINE,
        num_nodes=3,
        connections=[
            {"FROM_ID": 1, "TO_ID": 2, "LINK_MODEL": "Fixed", "LINK_QUALITY": 0.8},
            {"FROM_ID": 1, "TO_ID": 1},
            {"FROM_ID": 1, "TO_ID": 9},
        ],
    )
    with caplog.at_level(logging.WARNING):
        network = construct_simulation(config).network
    assert set(network.links) == {(1, 2)}
    assert "itself" in caplog.text
    assert "no such node" in caplog.text
    assert "has no valid connections" in caplog.text


def test_manual_positions(caplog):
    config = SimulationConfig(
        layout=LayoutType.LINE,
        num_nodes=2,
        positions=[
            {"ID": 1, "X": 5, "Y": "north"},
            {"ID": 2, "X": "12.5", "Y": -3},
            {"ID": 7, "X": 1, "Y": 1},
        ],
    )
    with caplog.at_level(logging.WARNING):
        network = construct_simulation(config).network
    assert (network.get_node(1).pos_x, network.get_node(1).pos_y) == (5.0, 0.0)
    assert (network.get_node(2).pos_x, network.get_node(2).pos_y) == (12.5, -3.0)
    assert "invalid position Y" in caplog.text
    assert "unknown node ID=7" in caplog.text


def test_invalid_configuration():
    with pytest.raises(ConfigurationError):
        construct_simulation(SimulationConfig(mac_max_subslots=0))
    with pytest.raises(ConfigurationError):
        SimulationConfig.from_dict({"no_such_option": 1})


@pytest.mark.parametrize(
    "link_model",
    [
        {"transmit_range_m": 0.0},
        {"udgm_transmit_range_m": -5.0},
        {"path_loss_exponent": 0.0},
    ],
)
def test_invalid_link_model_parameters(link_model):
    with pytest.raises(ConfigurationError, match="link_model"):
        SimulationConfig(link_model=link_model).validate()


def test_run_simulation_counts_slots(line_config, scripted_macs, mac_log):
    context = construct_simulation(line_config, mac_factory=scripted_macs())
    stats = run_simulation(context)
    assert context.timeline.asn == 10
    assert mac_log.count(("schedule", 1)) == 10
    assert set(stats) == {"0"}
    assert stats["0"]["global-stats"]["links"][0]["total"] == 6


def test_callbacks_run_before_slot(line_config, scripted_macs, mac_log):
    context = construct_simulation(line_config, mac_factory=scripted_macs())
    context.register_callback(2, lambda ctx: mac_log.append(("callback", ctx.timeline.asn)))
    context.start()
    context.advance()
    context.advance()
    index = mac_log.index(("callback", 2))
    assert mac_log[index - 1] == ("schedule", 3)
    assert mac_log[index + 1] == ("schedule", 1)


def test_has_ended_at_duration(line_config):
    context = construct_simulation(line_config)
    for _ in range(9):
        context.advance()
    assert not context.has_ended()
    context.advance()
    assert context.has_ended()
    assert context.timeline.seconds == pytest.approx(0.1)


def test_periodic_bookkeeping(caplog):
    config = SimulationConfig(layout=LayoutType.LINE, num_nodes=2, mac_slot_duration_us=1000000,
                              simulation_duration_sec=120)
    with caplog.at_level(logging.INFO, logger="tsch_sim.core.simulator"):
        run_single(config)
    assert "progress" in caplog.text


def test_save_results(tmp_path):
    config = SimulationConfig(layout=LayoutType.LINE, num_nodes=2, simulation_duration_sec=0.05,
                              save_results=True, results_dir=str(tmp_path), run_id=4)
    run_single(config)
    document = json.loads((tmp_path / "stats_4.json").read_text())
    assert set(document) == {"4"}


def test_status_snapshot(line_config):
    context = construct_simulation(line_config)
    status = get_status(context, is_running=True)
    assert status["simulator"] == {"is_running": True, "asn": 0, "seconds": 0.0}
    assert [n["id"] for n in status["network"]["nodes"]] == [1, 2, 3]
    assert "1->2" in status["network"]["links"]
    assert get_status(None)["network"] == {"nodes": [], "links": {}}


def test_update_node_positions_activates_links(caplog):
    config = SimulationConfig(
        layout=LayoutType.DENSE_GRID, num_nodes=2, dense_node_distance=200.0
    )
    context = construct_simulation(config)
    network = context.network
    assert not network.get_link(1, 2).is_active

    with caplog.at_level(logging.INFO):
        update_node_positions(context, [{"ID": 2, "X": 10.0, "Y": 0.0}, {"ID": 5, "X": 0, "Y": 0}])
    assert network.get_link(1, 2) in network.get_node(1).links.values()
    assert network.get_link(2, 1) in network.get_node(2).links.values()
    assert "cannot find node by id=5" in caplog.text
    assert "2->1" in get_status(context)["network"]["links"]
