from abc import ABC, abstractmethod
from typing import Callable, Dict, TYPE_CHECKING

from tsch_sim.core.enums import RoutingAlgorithm
from tsch_sim.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from tsch_sim.core.network import Network


class Router(ABC):
    """Abstract base class for routing protocols."""

    def __init__(self) -> None:
        self.name = "Base Router"

    @abstractmethod
    def initialize(self, network: "Network") -> None:
        """
        Initialize the routing protocol, e.g. register protocol handlers.

        Args:
            network: The network the protocol runs in.
        """
        pass

    def periodic_process(self, period_sec: float, seconds: float) -> None:
        """Periodic route maintenance, called every `period_sec` simulated seconds."""
        pass

    def __repr__(self) -> str:
        return self.name


class NullRouter(Router):
    """Routing that only delivers to direct neighbors."""

    def __init__(self) -> None:
        super().__init__()
        self.name = "NullRouting"

    def initialize(self, network: "Network") -> None:
        pass


_ROUTERS: Dict[RoutingAlgorithm, Callable[[], Router]] = {
    RoutingAlgorithm.NULL: NullRouter,
}


def register_router(kind: RoutingAlgorithm, factory: Callable[[], Router]) -> None:
    """
    Register the implementation of a routing protocol variant.

    Args:
        kind: The routing protocol variant.
        factory: Callable creating the router.
    """
    _ROUTERS[RoutingAlgorithm.parse(kind)] = factory


def router_factory(kind) -> Router:
    """
    Create the router for a configured variant.

    Raises:
        ConfigurationError: If no implementation is registered for the variant.
    """
    kind = RoutingAlgorithm.parse(kind)
    if kind not in _ROUTERS:
        raise ConfigurationError(f"no router registered for {kind.value!r}")
    return _ROUTERS[kind]()
