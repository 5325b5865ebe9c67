"""Per-device memory budget with scoped allocation guards.

The budget is a ledger over a fixed unified-memory pool. Every
allocation-sized operation (model weights, KV cache, batch buffers) takes a
MemoryGuard from the budget and hands it back when done.

Invariant:
    0 <= allocated_mb <= total_mb - reserved_mb, at every observable instant
    and under concurrent callers.

The availability check and the reservation happen in one critical section,
so two callers can never both observe the same headroom. The section holds
no suspension point; it is safe to call from threads and from asyncio tasks.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from edge_governor.domain.exceptions import ConfigInvalidError, InsufficientMemoryError

logger = logging.getLogger(__name__)


class MemoryBudget:
    """Memory budget enforcer for one device."""

    def __init__(self, total_mb: int, reserved_mb: int = 2048) -> None:
        """Initialize the budget.

        Args:
            total_mb: Total device memory in MB.
            reserved_mb: Memory held back for the operating system in MB.

        Raises:
            ConfigInvalidError: If either value is negative or the reserve
                exceeds the total.
        """
        if total_mb < 0 or reserved_mb < 0:
            raise ConfigInvalidError(
                f"Memory budget values must be non-negative (total={total_mb}, reserved={reserved_mb})"
            )
        if reserved_mb > total_mb:
            raise ConfigInvalidError(
                f"reserved_mb ({reserved_mb}) exceeds total_mb ({total_mb})"
            )
        self._total_mb = total_mb
        self._reserved_mb = reserved_mb
        self._allocated_mb = 0
        self._lock = threading.Lock()
        self._active: dict[int, MemoryGuard] = {}
        self._next_guard_id = 0

    @classmethod
    def orin_nano_8gb(cls) -> MemoryBudget:
        """Budget for a Jetson Orin Nano 8GB."""
        return cls(8192, 2048)

    @classmethod
    def orin_nano_4gb(cls) -> MemoryBudget:
        """Budget for a Jetson Orin Nano 4GB."""
        return cls(4096, 1024)

    @property
    def total_mb(self) -> int:
        return self._total_mb

    @property
    def reserved_mb(self) -> int:
        return self._reserved_mb

    @property
    def usable_mb(self) -> int:
        """Total minus the system reserve."""
        return self._total_mb - self._reserved_mb

    @property
    def allocated_mb(self) -> int:
        return self._allocated_mb

    def available_mb(self) -> int:
        """Memory that can still be allocated."""
        return self.usable_mb - self._allocated_mb

    def can_allocate(self, size_mb: int) -> bool:
        """Check whether an allocation would currently fit.

        The answer may be stale by the time the caller acts on it; use
        ``try_allocate`` to reserve.
        """
        return 0 <= size_mb <= self.available_mb()

    def utilization_percent(self) -> float:
        """Allocated share of usable memory."""
        usable = self.usable_mb
        if usable == 0:
            return 0.0
        return self._allocated_mb / usable * 100.0

    def try_allocate(self, size_mb: int, label: str = "") -> MemoryGuard:
        """Reserve memory.

        Args:
            size_mb: Size to reserve in MB.
            label: What the memory is for (e.g., "weights", "kv_cache").

        Returns:
            Guard that owns the reservation.

        Raises:
            InsufficientMemoryError: If the reservation would exceed the budget.
            ValueError: If size_mb is negative.
        """
        if size_mb < 0:
            raise ValueError(f"size_mb must be non-negative, got {size_mb}")

        with self._lock:
            available = self.usable_mb - self._allocated_mb
            if size_mb > available:
                raise InsufficientMemoryError(
                    requested_mb=size_mb, available_mb=available, label=label
                )
            self._allocated_mb += size_mb
            guard_id = self._next_guard_id
            self._next_guard_id += 1
            guard = MemoryGuard(self, guard_id, size_mb, label)
            self._active[guard_id] = guard

        logger.debug(f"Allocated {size_mb}MB ({label or 'unlabelled'}), {available - size_mb}MB left")
        return guard

    def exchange(self, released: Iterable[MemoryGuard], size_mb: int, label: str = "") -> MemoryGuard:
        """Release guards and reserve a new one in a single step.

        Memory held by ``released`` never shows up as headroom to other
        callers; it moves straight into the new reservation. Guards that were
        already released contribute nothing.

        Args:
            released: Guards on this budget to give up.
            size_mb: Size of the replacement reservation in MB.
            label: What the memory is for.

        Returns:
            Guard that owns the replacement reservation.

        Raises:
            InsufficientMemoryError: If the replacement does not fit even after
                the release. No guard is released in that case.
            ValueError: If size_mb is negative or a guard belongs to another
                budget.
        """
        if size_mb < 0:
            raise ValueError(f"size_mb must be non-negative, got {size_mb}")
        guards = list(released)
        for guard in guards:
            if guard.budget is not self:
                raise ValueError(f"{guard!r} belongs to a different budget")

        with self._lock:
            held = {g.guard_id: g for g in guards if self._active.get(g.guard_id) is g}
            freed = sum(g.size_mb for g in held.values())
            available = self.usable_mb - self._allocated_mb + freed
            if size_mb > available:
                raise InsufficientMemoryError(
                    requested_mb=size_mb, available_mb=available, label=label
                )
            for guard_id, guard in held.items():
                del self._active[guard_id]
                guard._released = True
            self._allocated_mb += size_mb - freed
            guard_id = self._next_guard_id
            self._next_guard_id += 1
            replacement = MemoryGuard(self, guard_id, size_mb, label)
            self._active[guard_id] = replacement

        logger.debug(f"Exchanged {freed}MB for {size_mb}MB ({label or 'unlabelled'})")
        return replacement

    def active_guards(self) -> list[MemoryGuard]:
        """Snapshot of unreleased guards."""
        with self._lock:
            return list(self._active.values())

    def _release(self, guard: MemoryGuard) -> bool:
        with self._lock:
            if self._active.pop(guard.guard_id, None) is None:
                return False
            self._allocated_mb -= guard.size_mb
        logger.debug(f"Released {guard.size_mb}MB ({guard.label or 'unlabelled'})")
        return True

    def __repr__(self) -> str:
        return (
            f"MemoryBudget(total_mb={self._total_mb}, reserved_mb={self._reserved_mb}, "
            f"allocated_mb={self._allocated_mb})"
        )


class MemoryGuard:
    """Claim on a MemoryBudget, released exactly once.

    Use as a context manager to release on every exit path::

        with budget.try_allocate(4000, "weights"):
            load_weights()
    """

    def __init__(self, budget: MemoryBudget, guard_id: int, size_mb: int, label: str) -> None:
        self._budget = budget
        self.guard_id = guard_id
        self.size_mb = size_mb
        self.label = label
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def budget(self) -> MemoryBudget:
        return self._budget

    def release(self) -> bool:
        """Return the memory to the budget.

        Returns:
            True on the first release, False if already released.
        """
        released = self._budget._release(self)
        if released:
            self._released = True
        return released

    def __enter__(self) -> MemoryGuard:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"MemoryGuard(size_mb={self.size_mb}, label={self.label!r}, {state})"

