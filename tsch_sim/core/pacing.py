"""Interactive pacing of a TSCH simulation.

The pacing controller drives a simulation slot by slot from an asyncio task.
It can run as fast as possible, at a fixed multiple of real time, or one step
at a time, and it accepts start, stop, speed, interrupt and reset commands
between slots. Every suspension is bounded so commands are observed quickly.
"""

import asyncio
import dataclasses
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from tsch_sim.config import SimulationConfig
from tsch_sim.core.enums import ControllerState, RunSpeed
from tsch_sim.core.simulator import SimulationContext, construct_simulation, get_status
from tsch_sim.core.slot_engine import SlotResult

logger = logging.getLogger(__name__)

# wall-clock length of an unpaced burst before yielding to new commands
BURST_DURATION_SEC = 1.0
MIN_SLEEP_SEC = 0.001
MAX_SLEEP_SEC = 10.0

Builder = Callable[[SimulationConfig], SimulationContext]


class PacingController:
    """Cooperative driver of an interactive simulation.

    Attributes:
        config: The latest configuration; a change triggers a rebuild.
        speed: Current run speed.
        context: The simulation being driven.
        completed_runs: Statistics documents of the finished runs.
        recent_slots: Results of the most recent slots.
    """

    def __init__(
        self,
        config: SimulationConfig,
        builder: Builder = construct_simulation,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        poll_interval: float = 0.05,
    ) -> None:
        self.config = config
        self.builder = builder
        self.clock = clock
        self.sleep = sleep
        self.poll_interval = poll_interval
        self.speed = RunSpeed.UNLIMITED
        self.context: Optional[SimulationContext] = None
        self.completed_runs: List[Dict[str, Dict[str, Any]]] = []
        self.recent_slots: Deque[SlotResult] = deque(maxlen=config.max_recent_slots)

        self._state = ControllerState.STOPPED
        self._built_config: Optional[Dict[str, Any]] = None
        self._is_finished = False
        self._interrupt = False
        self._reset_requested = False
        self._speed_changed = False
        self._shutdown = False

    @property
    def state(self) -> ControllerState:
        if self._reset_requested:
            return ControllerState.RESET_REQUESTED
        return self._state

    def start(self, speed: Optional[RunSpeed] = None) -> None:
        if speed is not None:
            self.speed = speed
        self._interrupt = False
        self._state = ControllerState.RUNNING

    def stop(self) -> None:
        self.request_interrupt()

    def set_speed(self, speed: RunSpeed) -> None:
        """Change the speed; a running burst picks it up after the current slot."""
        if speed is not self.speed:
            self.speed = speed
            self._speed_changed = True

    def request_interrupt(self) -> None:
        self._interrupt = True
        if self._state is ControllerState.RUNNING:
            self._state = ControllerState.INTERRUPTED

    def request_reset(self, config: Optional[SimulationConfig] = None) -> None:
        """Finish the current run and rebuild from the latest configuration.

        Args:
            config: New configuration to rebuild from, if any.
        """
        if config is not None:
            self.config = config
        self._reset_requested = True
        self._interrupt = True

    def update_config(self, config: SimulationConfig) -> None:
        """Replace the configuration; the simulation is rebuilt when it differs."""
        self.config = config

    def shutdown(self) -> None:
        self._shutdown = True
        self._interrupt = True

    def status(self) -> Dict[str, Any]:
        status = get_status(self.context, self._state is ControllerState.RUNNING)
        status["controller"] = {
            "state": self.state.value,
            "speed": self.speed.value,
            "completed_runs": len(self.completed_runs),
        }
        return status

    def _config_changed(self) -> bool:
        return self.config.to_dict() != self._built_config

    def _next_run_config(self) -> SimulationConfig:
        # statistics of every run stay addressable under their own run ID
        used = {run_id for document in self.completed_runs for run_id in document}
        run_id = self.config.run_id
        while str(run_id) in used:
            run_id += 1
        if run_id == self.config.run_id:
            return self.config
        return dataclasses.replace(self.config, run_id=run_id)

    def _build(self) -> None:
        self._built_config = self.config.to_dict()
        config = self._next_run_config()
        logger.info("constructing simulation (run %s)", config.run_id)
        self.context = self.builder(config)
        self.recent_slots = deque(maxlen=self.config.max_recent_slots)
        self._is_finished = False

    def _finish_run(self) -> None:
        if self.context is None or self._is_finished or not self.context.is_started:
            return
        self.completed_runs.append(self.context.finish())
        self._is_finished = True

    def _reset(self, keep_state: bool = False) -> None:
        """Finish the current run and rebuild.

        Args:
            keep_state: Keep a pending start; used when the rebuild comes from
                a configuration change rather than an explicit reset request.
        """
        logger.info("resetting the simulation")
        self._finish_run()
        self._build()
        self._reset_requested = False
        self._interrupt = False
        if not keep_state:
            self._state = ControllerState.STOPPED

    def _should_yield(self) -> bool:
        return self._interrupt or self._reset_requested or self._shutdown or self._speed_changed

    async def _pause(self, seconds: float) -> None:
        """Sleep for up to `seconds`, in slices, until a command arrives."""
        end = self.clock() + seconds
        while not self._should_yield():
            remaining = end - self.clock()
            if remaining < MIN_SLEEP_SEC:
                return
            await self.sleep(min(remaining, self.poll_interval))

    async def _run_burst(self) -> None:
        context = self.context
        speed = self.speed
        self._speed_changed = False
        wallclock_start = self.clock()
        simulated_start = context.timeline.seconds
        coefficient = speed.wallclock_per_simulated_second

        while not context.has_ended() and not self._should_yield():
            result = context.advance()
            self.recent_slots.append(result)

            if speed is RunSpeed.STEP_SINGLE or (
                speed is RunSpeed.STEP_NEXT_ACTIVE and result.was_active_slot
            ):
                self._state = ControllerState.STOPPED
                return

            wallclock_elapsed = self.clock() - wallclock_start
            if coefficient is not None:
                simulated_elapsed = context.timeline.seconds - simulated_start
                deficit = coefficient * simulated_elapsed - wallclock_elapsed
                if deficit >= MIN_SLEEP_SEC:
                    await self._pause(min(deficit, MAX_SLEEP_SEC))
            elif wallclock_elapsed >= BURST_DURATION_SEC:
                return

    async def _wait_for_start(self) -> None:
        while self._state is not ControllerState.RUNNING and not self._shutdown:
            if self._state is ControllerState.INTERRUPTED:
                self._state = ControllerState.STOPPED
            if self._reset_requested:
                self._reset()
            elif self._config_changed():
                self._reset(keep_state=True)
            await self.sleep(self.poll_interval)

    async def run(self) -> None:
        """Drive the simulation until `shutdown()` is called."""
        self._build()
        while not self._shutdown:
            await self._wait_for_start()
            if self._shutdown:
                break
            if self._reset_requested:
                self._reset()
                continue
            if self._config_changed():
                self._reset(keep_state=True)
                continue

            context = self.context
            if not context.is_started:
                context.start()
            await self._run_burst()

            if self._reset_requested:
                self._reset()
                continue
            if context.has_ended():
                if not self._is_finished:
                    self._finish_run()
                    logger.info("simulation ended at ASN %d", context.timeline.asn)
                self._state = ControllerState.STOPPED
            if self._state is ControllerState.INTERRUPTED:
                self._state = ControllerState.STOPPED
            self._interrupt = False

            running_unpaced = (
                self._state is ControllerState.RUNNING and self.speed is RunSpeed.UNLIMITED
            )
            await self.sleep(0 if running_unpaced else self.poll_interval)

        self._finish_run()
        logger.info("pacing controller shut down")
