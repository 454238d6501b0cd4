import pytest

from tsch_sim.config import LinkModelConfig, NodeTypeConfig
from tsch_sim.core.exceptions import (
    DuplicateLinkError,
    DuplicateNodeError,
    SimulationError,
    UnknownLinkError,
    UnknownNodeError,
)
from tsch_sim.core.link import create_link
from tsch_sim.core.network import Network

UDGM = {"LINK_MODEL": "UDGM"}


def make_network(positions):
    network = Network()
    node_type = NodeTypeConfig(name="node", count=len(positions))
    for node_id, (x, y) in positions.items():
        node = network.add_node(node_id, node_type)
        node.pos_x, node.pos_y = x, y
    return network


def connect(network, from_id, to_id, connection=UDGM):
    link = create_link(
        network.get_node(from_id), network.get_node(to_id), connection, LinkModelConfig()
    )
    return network.add_link(link)


def test_add_node_assigns_index():
    network = make_network({10: (0, 0), 4: (1, 1), 7: (2, 2)})
    assert [n.index for n in network.nodes.values()] == [0, 1, 2]
    assert list(network.nodes) == [10, 4, 7]


def test_duplicate_node_fails():
    network = make_network({1: (0, 0)})
    with pytest.raises(DuplicateNodeError):
        network.add_node(1, NodeTypeConfig())


def test_unknown_lookups():
    network = make_network({1: (0, 0)})
    assert network.find_node(2) is None
    assert network.find_link(1, 2) is None
    with pytest.raises(UnknownNodeError):
        network.get_node(2)
    with pytest.raises(UnknownLinkError):
        network.get_link(1, 2)
    # lookup failures are also key errors
    with pytest.raises(KeyError):
        network.get_node(2)


def test_links_go_to_active_or_potential_collection():
    network = make_network({1: (0, 0), 2: (10, 0), 3: (200, 0)})
    near = connect(network, 1, 2)
    far = connect(network, 1, 3)
    node = network.get_node(1)
    assert near.is_active and node.links == {2: near}
    assert not far.is_active and node.potential_links == {3: far}
    network.check_link_invariant()


def test_duplicate_link_fails():
    network = make_network({1: (0, 0), 2: (10, 0)})
    connect(network, 1, 2)
    with pytest.raises(DuplicateLinkError):
        connect(network, 1, 2)


def test_update_node_links_promotes_reverse_link():
    network = make_network({1: (0, 0), 2: (200, 0)})
    forward = connect(network, 1, 2)
    backward = connect(network, 2, 1)
    assert not forward.is_active and not backward.is_active

    node = network.get_node(1)
    node.pos_x = 180.0
    activated = network.update_node_links(node)

    assert activated == [forward]
    assert network.get_node(1).links == {2: forward}
    assert network.get_node(2).links == {1: backward}
    assert not network.get_node(2).potential_links
    network.check_link_invariant()


def test_link_invariant_violation_detected():
    network = make_network({1: (0, 0), 2: (10, 0)})
    link = connect(network, 1, 2)
    network.get_node(1).potential_links[2] = link
    with pytest.raises(SimulationError):
        network.check_link_invariant()


def test_protocol_handlers_use_tuple_key():
    network = make_network({})
    handler = object()
    network.set_protocol_handler(1, 2, handler)
    assert network.get_protocol_handler(1, 2) is handler
    assert network.get_protocol_handler(2, 1) is None


def test_to_graph_contains_active_links():
    network = make_network({1: (0, 0), 2: (10, 0), 3: (200, 0)})
    connect(network, 1, 2)
    connect(network, 1, 3)
    graph = network.to_graph()
    assert set(graph.nodes) == {1, 2, 3}
    assert list(graph.edges) == [(1, 2)]
    assert graph.edges[1, 2]["success_rate"] == pytest.approx(1.0)


def test_out_of_range_logistic_link_is_potential():
    network = make_network({1: (0, 0), 2: (10000, 0)})
    forward = connect(network, 1, 2, connection={})
    backward = connect(network, 2, 1, connection={})
    assert forward.success_rate == 0.0
    assert not forward.is_active
    assert network.get_node(1).potential_links == {2: forward}
    assert network.to_graph().number_of_edges() == 0

    node = network.get_node(2)
    node.pos_x = 30.0
    assert network.update_node_links(node) == [backward]
    assert network.get_node(1).links == {2: forward}
    assert network.get_node(2).links == {1: backward}
    network.check_link_invariant()
