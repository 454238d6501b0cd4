"""Radio link quality models.

This module converts node distances into RSSI values and packet reception
success rates, and back. The logistic-loss model is used for positioning and
for the default links; the unit-disk (UDGM) model is a simpler threshold model
used by the dense layouts.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from tsch_sim.config import LinkModelConfig
from tsch_sim.core.enums import LinkModelType

Distance = Union[float, np.ndarray]

MIN_DISTANCE_M = 0.01

UDGM_RSSI_STRONG_DBM = -10.0
UDGM_RSSI_WEAK_DBM = -95.0


def get_distance(x1: float, y1: float, x2: float, y2: float) -> float:
    return float(np.hypot(x2 - x1, y2 - y1))


def get_node_distance(n1: Any, n2: Any) -> float:
    """Euclidean distance between two objects with `pos_x` and `pos_y`."""
    return get_distance(n1.pos_x, n1.pos_y, n2.pos_x, n2.pos_y)


def _scalar_or_array(value: np.ndarray, like: Distance) -> Distance:
    return float(value) if np.ndim(like) == 0 else value


class LinkModel(ABC):
    """Abstract base class for link quality models."""

    def __init__(self, config: LinkModelConfig) -> None:
        self.config = config

    def distance(self, n1: Any, n2: Any) -> float:
        return get_node_distance(n1, n2)

    @abstractmethod
    def success_rate_at(self, distance: Distance) -> Tuple[Distance, Distance]:
        """
        Compute the success rate and the RSSI at a given distance.

        Args:
            distance: Distance in meters, a scalar or a numpy array.

        Returns:
            The success rate in [0, 1] and the RSSI in dBm.
        """

    def success_rate(self, n1: Any, n2: Any) -> Tuple[float, float]:
        """Success rate and RSSI of a transmission from `n1` to `n2`."""
        return self.success_rate_at(self.distance(n1, n2))


class LogisticLossModel(LinkModel):
    """Log-distance path loss with a logistic (sigmoid) reception curve."""

    def rssi_at(self, distance: Distance) -> Distance:
        cfg = self.config
        d = np.maximum(np.asarray(distance, dtype=float), MIN_DISTANCE_M)
        # a zero-chance RSSI at and beyond the transmit range
        in_range = d < cfg.transmit_range_m
        relative = np.where(in_range, d, cfg.transmit_range_m) / cfg.transmit_range_m
        path_loss_dbm = -cfg.rx_sensitivity_dbm + 10 * cfg.path_loss_exponent * np.log10(relative)
        rssi = np.where(in_range, cfg.tx_power_dbm - path_loss_dbm, cfg.rx_sensitivity_dbm)
        return _scalar_or_array(rssi, distance)

    def rssi(self, n1: Any, n2: Any) -> float:
        return self.rssi_at(self.distance(n1, n2))

    def success_rate_at(self, distance: Distance) -> Tuple[Distance, Distance]:
        rssi = np.asarray(self.rssi_at(distance), dtype=float)
        d = np.maximum(np.asarray(distance, dtype=float), MIN_DISTANCE_M)
        in_range = d < self.config.transmit_range_m
        x = rssi - self.config.rssi_inflection_point_dbm
        # no chance of reception at and beyond the transmit range
        success_rate = np.where(in_range, np.clip(1.0 / (1.0 + np.exp(-x)), 0.0, 1.0), 0.0)
        return _scalar_or_array(success_rate, distance), _scalar_or_array(rssi, distance)

    def distance_from_rssi(self, rssi: float) -> float:
        """
        Inverse of `rssi_at`.

        Args:
            rssi: RSSI in dBm.

        Returns:
            The distance at which the RSSI is observed, at most the transmit range.
        """
        cfg = self.config
        if rssi <= cfg.rx_sensitivity_dbm:
            return cfg.transmit_range_m
        path_loss_dbm = cfg.tx_power_dbm - rssi
        noise_to_signal = path_loss_dbm + cfg.rx_sensitivity_dbm
        relative_distance = 10 ** (noise_to_signal / (10 * cfg.path_loss_exponent))
        return float(relative_distance * cfg.transmit_range_m)

    def distance_from_success_rate(self, success_rate: float) -> float:
        """
        Inverse of `success_rate_at`.

        Args:
            success_rate: Target success rate, strictly between 0 and 1.

        Returns:
            The distance at which the success rate is observed.

        Raises:
            ValueError: If the success rate is not in the open interval (0, 1).
        """
        if not 0.0 < success_rate < 1.0:
            raise ValueError(f"success rate must be in (0, 1), got {success_rate}")
        logit = np.log(success_rate / (1.0 - success_rate))
        return self.distance_from_rssi(float(logit) + self.config.rssi_inflection_point_dbm)


class UnitDiskModel(LinkModel):
    """Unit disk graph model: links exist only within the transmit range."""

    def success_rate_at(self, distance: Distance) -> Tuple[Distance, Distance]:
        cfg = self.config
        d = np.asarray(distance, dtype=float)
        relative = d / cfg.udgm_transmit_range_m
        in_range = relative <= 1.0
        if cfg.udgm_constant_loss:
            inside = np.full_like(relative, cfg.udgm_rx_success)
        else:
            inside = 1.0 - relative ** 2 * (1.0 - cfg.udgm_rx_success)
        success_rate = np.where(in_range, inside, 0.0)
        rssi = UDGM_RSSI_STRONG_DBM + np.minimum(relative, 1.0) * (
            UDGM_RSSI_WEAK_DBM - UDGM_RSSI_STRONG_DBM
        )
        return _scalar_or_array(success_rate, distance), _scalar_or_array(rssi, distance)


class FixedQualityModel(LinkModel):
    """A link whose quality does not depend on the distance."""

    def __init__(self, config: LinkModelConfig, success_rate: float, rssi: Optional[float] = None):
        super().__init__(config)
        self.fixed_success_rate = success_rate
        self.fixed_rssi = config.tx_power_dbm if rssi is None else rssi

    def success_rate_at(self, distance: Distance) -> Tuple[Distance, Distance]:
        if np.ndim(distance) == 0:
            return self.fixed_success_rate, self.fixed_rssi
        shape = np.shape(distance)
        return np.full(shape, self.fixed_success_rate), np.full(shape, self.fixed_rssi)


def create_model(config: LinkModelConfig, connection: Optional[Dict[str, Any]] = None) -> LinkModel:
    """Create the link model requested by a connection specification.

    Args:
        config: Link model parameters.
        connection: Connection parameters; LINK_MODEL selects the model, and
            LINK_QUALITY / RSSI configure a fixed-quality link.

    Returns:
        The link model.
    """
    connection = connection or {}
    kind = LinkModelType.parse(connection.get("LINK_MODEL", LinkModelType.LOGISTIC_LOSS))
    if kind is LinkModelType.UDGM:
        return UnitDiskModel(config)
    if kind is LinkModelType.FIXED:
        return FixedQualityModel(
            config, float(connection.get("LINK_QUALITY", 1.0)), connection.get("RSSI")
        )
    return LogisticLossModel(config)
