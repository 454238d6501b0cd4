import numpy as np
import pytest

from tsch_sim.config import LinkModelConfig
from tsch_sim.core.link_model import (
    FixedQualityModel,
    LogisticLossModel,
    UnitDiskModel,
    create_model,
    get_distance,
)


class _Point:
    def __init__(self, x, y):
        self.pos_x = x
        self.pos_y = y


def test_success_rate_decreases_with_distance():
    model = LogisticLossModel(LinkModelConfig())
    distances = np.linspace(1.0, 99.0, 50)
    rates, _ = model.success_rate_at(distances)
    assert np.all(np.diff(rates) <= 0)


def test_success_rate_at_range_is_zero_chance():
    config = LinkModelConfig()
    model = LogisticLossModel(config)
    p, rssi = model.success_rate_at(config.transmit_range_m)
    assert rssi == config.rx_sensitivity_dbm
    assert p == 0.0
    far_p, _ = model.success_rate_at(np.array([50.0, 100.0, 10000.0]))
    assert far_p[0] > 0.0
    assert list(far_p[1:]) == [0.0, 0.0]


def test_distance_is_clamped():
    model = LogisticLossModel(LinkModelConfig())
    assert model.rssi_at(0.0) == model.rssi_at(0.01)


@pytest.mark.parametrize("distance", [20.0, 45.0, 70.0, 95.0])
def test_distance_from_success_rate_inverts(distance):
    model = LogisticLossModel(LinkModelConfig(tx_power_dbm=3.0))
    p, _ = model.success_rate_at(distance)
    assert model.distance_from_success_rate(p) == pytest.approx(distance, rel=1e-6)


def test_distance_from_rssi_below_floor_is_range():
    model = LogisticLossModel(LinkModelConfig())
    assert model.distance_from_rssi(-120.0) == 100.0


@pytest.mark.parametrize("p", [0.0, 1.0, -0.5])
def test_distance_from_success_rate_rejects_bounds(p):
    with pytest.raises(ValueError):
        LogisticLossModel(LinkModelConfig()).distance_from_success_rate(p)


def test_node_success_rate_uses_positions():
    model = LogisticLossModel(LinkModelConfig())
    a, b = _Point(0.0, 0.0), _Point(30.0, 40.0)
    assert model.distance(a, b) == pytest.approx(50.0)
    assert model.success_rate(a, b) == model.success_rate_at(50.0)
    assert get_distance(0, 0, 3, 4) == pytest.approx(5.0)


def test_unit_disk_model():
    config = LinkModelConfig(udgm_transmit_range_m=50.0, udgm_rx_success=0.5)
    model = UnitDiskModel(config)
    assert model.success_rate_at(60.0)[0] == 0.0
    assert model.success_rate_at(0.0) == (1.0, -10.0)
    p, rssi = model.success_rate_at(50.0)
    assert p == pytest.approx(0.5)
    assert rssi == pytest.approx(-95.0)

    constant = UnitDiskModel(LinkModelConfig(udgm_rx_success=0.7, udgm_constant_loss=True))
    assert constant.success_rate_at(10.0)[0] == pytest.approx(0.7)


def test_create_model_from_connection():
    config = LinkModelConfig()
    assert isinstance(create_model(config), LogisticLossModel)
    assert isinstance(create_model(config, {"LINK_MODEL": "UDGM"}), UnitDiskModel)
    fixed = create_model(config, {"LINK_MODEL": "Fixed", "LINK_QUALITY": 0.3, "RSSI": -80})
    assert isinstance(fixed, FixedQualityModel)
    assert fixed.success_rate(_Point(0, 0), _Point(500, 0)) == (0.3, -80)
