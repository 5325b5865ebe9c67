"""Thermal circuit breaker gating work on device temperature.

The breaker samples telemetry before admitting work. At or above the policy
threshold it opens, moves to cooling and re-samples every check interval
until the GPU is at or below the cooldown temperature, then closes and runs
the work. Missing telemetry is treated as over-threshold: protecting the
hardware takes priority over availability.

Waiting is cooperative (asyncio), so a hot device suspends only the tasks
guarding that device.

References:
    - Thermal circuit breaker with hysteresis (threshold > cooldown)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, TypeVar, Union

from edge_governor.domain.entities.telemetry import TelemetrySnapshot
from edge_governor.domain.entities.thermal import BreakerState, BreakerTransition, ThermalPolicy
from edge_governor.domain.exceptions import TelemetryUnavailableError, ThermalExceededError
from edge_governor.domain.value_objects.device_identifiers import DeviceId
from edge_governor.ports.outbound import TelemetrySourcePort

logger = logging.getLogger(__name__)

T = TypeVar("T")

Work = Callable[[], Union[Awaitable[T], T]]


class ThermalCircuitBreaker:
    """Per-device thermal gate."""

    def __init__(
        self,
        device_id: DeviceId,
        telemetry: TelemetrySourcePort,
        policy: Optional[ThermalPolicy] = None,
    ) -> None:
        """Initialize the breaker in the CLOSED state.

        Args:
            device_id: Device this breaker protects.
            telemetry: Source of hardware snapshots.
            policy: Thermal limits. Defaults to the conservative policy.
        """
        self._device_id = device_id
        self._telemetry = telemetry
        self._policy = policy or ThermalPolicy.conservative()
        self._state = BreakerState.CLOSED
        self._last_snapshot: Optional[TelemetrySnapshot] = None
        self._callbacks: list[Callable[[BreakerTransition], None]] = []
        # True while one task owns the cooldown loop; waiters block on _resumed.
        self._cooling_owner = False
        self._resumed = asyncio.Event()
        self._resumed.set()

    @property
    def device_id(self) -> DeviceId:
        return self._device_id

    @property
    def policy(self) -> ThermalPolicy:
        return self._policy

    @policy.setter
    def policy(self, policy: ThermalPolicy) -> None:
        self._policy = policy

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def is_open(self) -> bool:
        """True while work is paused (OPEN or COOLING)."""
        return self._state is not BreakerState.CLOSED

    @property
    def last_snapshot(self) -> Optional[TelemetrySnapshot]:
        return self._last_snapshot

    def register_transition_callback(self, callback: Callable[[BreakerTransition], None]) -> None:
        """Register callback to be called on every state change.

        Args:
            callback: Function that takes a BreakerTransition.
        """
        self._callbacks.append(callback)

    async def sample(self) -> TelemetrySnapshot:
        """Take a telemetry sample.

        Raises:
            TelemetryUnavailableError: If the device could not be sampled.
        """
        snapshot = await self._telemetry.sample_raw(self._device_id)
        self._last_snapshot = snapshot
        return snapshot

    async def check(self) -> TelemetrySnapshot:
        """Sample and fail fast if the device is too hot.

        Returns:
            The snapshot, when work would be admitted right now.

        Raises:
            ThermalExceededError: If the GPU is at or above threshold, or the
                breaker is still cooling.
            TelemetryUnavailableError: If the device could not be sampled.
        """
        snapshot = await self.sample()
        if snapshot.gpu_temp_c >= self._policy.threshold_c or self.is_open:
            raise ThermalExceededError(snapshot.gpu_temp_c, self._policy.threshold_c)
        return snapshot

    async def guard(self, work: Work[T]) -> T:
        """Run work once the device is cool enough.

        Over-threshold readings and telemetry failures are absorbed: the call
        waits for cooldown instead of raising.

        Args:
            work: Zero-argument callable returning a value or an awaitable.

        Returns:
            Whatever work returns.
        """
        await self._admit()
        result = work()
        if inspect.isawaitable(result):
            return await result
        return result

    async def _admit(self) -> None:
        while True:
            if self._cooling_owner:
                await self._resumed.wait()
                if self._state is BreakerState.CLOSED:
                    return
                # Owner was cancelled before closing; take over.
                continue

            try:
                await self.check()
                return
            except ThermalExceededError as e:
                reason = str(e)
                temperature: Optional[float] = e.current_c
            except TelemetryUnavailableError as e:
                reason = str(e)
                temperature = None

            if self._cooling_owner:
                continue
            await self._cool_down(temperature, reason)
            return

    async def _cool_down(self, temperature: Optional[float], reason: str) -> None:
        self._cooling_owner = True
        self._resumed = asyncio.Event()
        try:
            if self._state is BreakerState.CLOSED:
                self._transition(BreakerState.OPEN, temperature, reason)
                self._transition(BreakerState.COOLING, temperature, "waiting for cooldown")
                logger.warning(
                    f"Thermal circuit breaker OPEN on {self._device_id} - waiting for "
                    f"{self._policy.cooldown_c}°C ({reason})"
                )

            while True:
                await asyncio.sleep(self._policy.check_interval_seconds)
                try:
                    snapshot = await self.sample()
                except TelemetryUnavailableError as e:
                    logger.warning(f"Cooling {self._device_id}: {e}")
                    continue
                if snapshot.gpu_temp_c <= self._policy.cooldown_c:
                    temperature = snapshot.gpu_temp_c
                    break
                logger.debug(
                    f"Cooling {self._device_id}: {snapshot.gpu_temp_c}°C > {self._policy.cooldown_c}°C"
                )

            self._transition(BreakerState.CLOSED, temperature, "cooled down")
            logger.info(f"Thermal circuit breaker CLOSED on {self._device_id} at {temperature}°C")
        finally:
            self._cooling_owner = False
            self._resumed.set()

    def _transition(self, new_state: BreakerState, temperature: Optional[float], reason: str) -> None:
        previous = self._state
        self._state = new_state
        event = BreakerTransition(
            device_id=self._device_id,
            previous=previous,
            current=new_state,
            temperature_c=temperature,
            reason=reason,
        )
        for callback in self._callbacks:
            callback(event)
