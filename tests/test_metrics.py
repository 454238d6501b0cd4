import json

import pytest

from tsch_sim.config import NodeTypeConfig
from tsch_sim.core.network import Network
from tsch_sim.core.node import IdleMac
from tsch_sim.utils.metrics import (
    BALANCED,
    NOT_BALANCED,
    NodeStats,
    StatsAggregator,
    delivery_ratio,
    div_safe,
    merge_stats_documents,
    save_stats_to_json,
)


def network_with_stats(*records):
    network = Network()
    for node_id, record in enumerate(records, start=1):
        mac = IdleMac()
        mac.stats = record
        network.add_node(node_id, NodeTypeConfig(), mac=mac)
    return network


def test_two_balanced_nodes():
    records = [
        NodeStats(app_num_tx=10, app_num_endpoint_rx=7, app_num_lost=2, app_num_queued=1,
                  app_latencies=[0.1, 0.3]),
        NodeStats(app_num_tx=10, app_num_endpoint_rx=7, app_num_lost=2, app_num_queued=1,
                  app_latencies=[0.2]),
    ]
    document = StatsAggregator().aggregate(network_with_stats(*records), run_id=3)
    stats = document["3"]
    global_stats = stats["global-stats"]

    assert set(stats) == {"1", "2", "global-stats"}
    assert global_stats["app-packets-sent"][0]["total"] == 20
    assert global_stats["app-packets-received"][0]["total"] == 14
    assert global_stats["app-packets-lost"][0]["total"] == 4
    assert global_stats["e2e-delivery"][0]["value"] == pytest.approx(77.78, abs=0.01)
    assert global_stats["packet-balance"][0]["value"] == BALANCED
    latency = global_stats["e2e-latency"][0]
    assert latency["min"] == pytest.approx(0.1)
    assert latency["max"] == pytest.approx(0.3)
    assert latency["mean"] == pytest.approx(0.2)


def test_unbalanced_totals_are_reported():
    network = network_with_stats(NodeStats(app_num_tx=5, app_num_endpoint_rx=3))
    global_stats = StatsAggregator().aggregate(network)["0"]["global-stats"]
    assert global_stats["packet-balance"][0]["value"] == NOT_BALANCED


def test_empty_network_guards_division():
    global_stats = StatsAggregator().aggregate(Network())["0"]["global-stats"]
    assert global_stats["e2e-delivery"][0]["value"] == 0.0
    assert global_stats["link-par"][0]["value"] == 0.0
    assert global_stats["current-consumed"][0]["mean"] == 0.0
    assert global_stats["e2e-latency"][0]["mean"] is None


def test_parent_ack_ratio_and_current():
    record = NodeStats(mac_parent_tx_unicast=8, mac_parent_acked=6, charge_uc=20000.0)
    global_stats = StatsAggregator().aggregate(network_with_stats(record), elapsed_sec=10.0)["0"]["global-stats"]
    assert global_stats["link-par"][0]["value"] == pytest.approx(75.0)
    assert global_stats["current-consumed"][0]["mean"] == pytest.approx(2.0)


def test_repeated_aggregation_does_not_accumulate():
    aggregator = StatsAggregator()
    network = network_with_stats(NodeStats(app_num_tx=4, app_num_endpoint_rx=4))
    aggregator.aggregate(network)
    aggregator.aggregate(network)
    assert aggregator.totals.app_num_tx == 4


def test_join_time_unset_if_any_node_not_joined():
    totals = NodeStats(tsch_join_time_sec=1.5)
    totals.add(NodeStats(tsch_join_time_sec=None))
    totals.add(NodeStats(tsch_join_time_sec=2.0))
    assert totals.tsch_join_time_sec is None


def test_ratios():
    assert div_safe(1, 0) == 0.0
    assert delivery_ratio(0, 0) == 0.0
    assert delivery_ratio(9, 1) == pytest.approx(90.0)


def test_merge_documents():
    merged = merge_stats_documents([{"0": {"a": 1}}, {"1": {"b": 2}}])
    assert merged == {"0": {"a": 1}, "1": {"b": 2}}
    with pytest.raises(ValueError):
        merge_stats_documents([{"0": {}}, {"0": {}}])


def test_save_stats(tmp_path):
    filename = tmp_path / "out" / "stats.json"
    save_stats_to_json({"0": {"global-stats": {}}}, str(filename))
    assert json.loads(filename.read_text()) == {"0": {"global-stats": {}}}
