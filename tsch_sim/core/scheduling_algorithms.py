from abc import ABC, abstractmethod
from typing import Callable, Dict

from tsch_sim.core.enums import SchedulingAlgorithm
from tsch_sim.core.exceptions import ConfigurationError


class Scheduler(ABC):
    """Abstract base class for TSCH scheduling algorithms"""

    def __init__(self):
        self.name = "Base Scheduler"

    @abstractmethod
    def initialize(self) -> None:
        """
        Set up the slotframe infrastructure before nodes are created
        """
        pass

    def periodic_process(self, period_sec: float, seconds: float) -> None:
        """
        Periodic housekeeping, called every `period_sec` simulated seconds

        Args:
            period_sec: Period of the call
            seconds: Current simulated time
        """
        pass

    def __repr__(self) -> str:
        return self.name


class NullScheduler(Scheduler):
    """Scheduler without any slotframes; the node MACs decide alone"""

    def __init__(self):
        super().__init__()
        self.name = "None"

    def initialize(self):
        pass


_SCHEDULERS: Dict[SchedulingAlgorithm, Callable[[], Scheduler]] = {
    SchedulingAlgorithm.NONE: NullScheduler,
}


def register_scheduler(kind: SchedulingAlgorithm, factory: Callable[[], Scheduler]) -> None:
    """
    Register the implementation of a scheduling algorithm variant

    Args:
        kind: The scheduling algorithm variant
        factory: Callable creating the scheduler
    """
    _SCHEDULERS[SchedulingAlgorithm.parse(kind)] = factory


def scheduler_factory(kind) -> Scheduler:
    """
    Create the scheduler for a configured variant

    Raises:
        ConfigurationError: If no implementation is registered for the variant
    """
    kind = SchedulingAlgorithm.parse(kind)
    if kind not in _SCHEDULERS:
        raise ConfigurationError(f"no scheduler registered for {kind.value!r}")
    return _SCHEDULERS[kind]()
