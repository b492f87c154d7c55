"""Sticky port allocation for deployed applications.

Once an application is given a port it keeps it across every later call.
Ports are never released automatically; the cursor of each range only
moves forward.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

from shipyard.deploy.state import StateStore
from shipyard.lib.errors import RangeExhaustedError, ValidationError
from shipyard.lib.logging_config import get_logger
from shipyard.models.config import PortRange
from shipyard.models.state import PortAllocations, RangeCursor

logger = get_logger(__name__)

DescriptorPorts = Callable[[], Iterable[tuple[str, int]]]


class PortAllocator:
    """Allocates ports from named ranges and records them in state/ports.json.

    Args:
        store: State store holding the ports document
        descriptor_ports: Callable returning (name, port) pairs for every app
            descriptor that pins a fixed port. When it raises, allocation
            falls back to the state-only view.
        ranges: Configured range bounds; overrides the bounds stored in the
            document while keeping its cursors.
    """

    def __init__(
        self,
        store: StateStore,
        descriptor_ports: DescriptorPorts | None = None,
        ranges: Mapping[str, PortRange] | None = None,
    ) -> None:
        self.store = store
        self.descriptor_ports = descriptor_ports
        self.ranges = dict(ranges) if ranges else {}

    def allocate(self, name: str, range_name: str = "standard") -> int:
        """Return the sticky port for ``name``, allocating one if needed.

        Raises:
            ValidationError: If ``range_name`` is not a known range
            RangeExhaustedError: If every port in the range is in use
        """
        with self.store.ports_transaction() as state:
            existing = state.allocations.get(name)
            if existing is not None:
                return existing

            cursor = self._cursor(state, range_name)
            used = state.used_ports() | self._pinned_ports(exclude=name)

            port = max(cursor.next, cursor.start)
            while port <= cursor.end and port in used:
                port += 1

            if port > cursor.end:
                # Raising inside the transaction skips the save
                raise RangeExhaustedError(range_name, cursor.start, cursor.end)

            state.allocations[name] = port
            state.ranges[range_name] = cursor.model_copy(update={"next": port + 1})

        logger.info(f"Allocated port {port} to {name} ({range_name} range)")
        return port

    def get(self, name: str) -> int | None:
        """Return the allocated port for ``name``, if any."""
        return self.store.load_ports().allocations.get(name)

    def list_allocations(self) -> dict[str, int]:
        """Return all sticky allocations sorted by port."""
        allocations = self.store.load_ports().allocations
        return dict(sorted(allocations.items(), key=lambda item: item[1]))

    def reserve(self, port: int) -> None:
        """Exclude a port from automatic allocation."""

        def _reserve(state: PortAllocations) -> None:
            if port not in state.reserved:
                state.reserved.append(port)
                state.reserved.sort()

        self.store.update_ports(_reserve)
        logger.info(f"Reserved port {port}")

    def set_engine_ports(self, engine: str, ports: list[int]) -> None:
        """Record the ports an engine binds itself."""

        def _register(state: PortAllocations) -> None:
            if ports:
                state.engine_managed[engine] = sorted(set(ports))
            else:
                state.engine_managed.pop(engine, None)

        self.store.update_ports(_register)
        logger.debug(f"Engine {engine} manages ports {ports}")

    def _cursor(self, state: PortAllocations, range_name: str) -> RangeCursor:
        configured = self.ranges.get(range_name)
        stored = state.ranges.get(range_name)

        if configured is None and stored is None:
            known = sorted(set(state.ranges) | set(self.ranges))
            raise ValidationError(
                "range",
                f"Unknown port range '{range_name}'",
                expected=", ".join(known),
                actual=range_name,
            )
        if configured is None:
            return stored
        if stored is None:
            return RangeCursor(
                start=configured.start, end=configured.end, next=configured.start
            )
        return RangeCursor(
            start=configured.start, end=configured.end, next=stored.next
        )

    def _pinned_ports(self, exclude: str) -> set[int]:
        if self.descriptor_ports is None:
            return set()
        try:
            return {
                port for owner, port in self.descriptor_ports() if owner != exclude
            }
        except Exception as e:
            logger.warning(
                f"Could not scan app descriptors for fixed ports, "
                f"using allocation state only: {e}"
            )
            return set()
