"""Coordinated shutdown of a long-lived server process.

    RUNNING --signal--> DRAINING --drained--> CLOSED        (exit status 0)
                                 --timeout--> FORCED_EXIT   (exit status 1)

On the first termination signal the controller flips to DRAINING, which the
admission layer reads to turn new requests away with "service restarting".
It then stops the transports from accepting connections, closes registered
long-lived connections (subscription sockets), waits for the transports to
finish their in-flight requests and drains every resource pool concurrently.
The whole sequence runs under one timeout that starts when DRAINING begins and
is never extended.
"""

import asyncio
import signal
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum
from typing import Any, Protocol

from gqlharbor import log
from gqlharbor.config import DEFAULT_SHUTDOWN_TIMEOUT

ConnectionCloser = Callable[[], Awaitable[None]]

HANDLED_SIGNALS: tuple[int, ...] = (signal.SIGTERM, signal.SIGINT)


class ShutdownState(str, Enum):
    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"
    FORCED_EXIT = "forced_exit"


class ResourcePoolHandle(Protocol):
    """A pool owned by a connector (database, message bus, ...).

    `drain_and_close` finishes in-flight work, refuses new work and closes the
    pool. It either completes or is abandoned when the shutdown timeout fires.
    """

    async def drain_and_close(self) -> None: ...


class TransportHandle(Protocol):
    def stop_accepting(self) -> None: ...

    async def wait_closed(self) -> None: ...


class ShutdownController:
    def __init__(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> None:
        if timeout <= 0:
            raise ValueError("Shutdown timeout must be positive")
        self.timeout = timeout
        self._state = ShutdownState.RUNNING
        self._pools: dict[str, ResourcePoolHandle] = {}
        self._transports: list[TransportHandle] = []
        self._connections: dict[int, ConnectionCloser] = {}
        self._next_connection_id = 0
        self._task: asyncio.Task[ShutdownState] | None = None
        self._finished = asyncio.Event()
        self._installed_signals: list[int] = []
        self.draining_started_at: float | None = None
        self.finished_at: float | None = None

    @property
    def state(self) -> ShutdownState:
        return self._state

    @property
    def is_gracefully_closing(self) -> bool:
        """True once a termination signal was received."""
        return self._state is not ShutdownState.RUNNING

    @property
    def exit_code(self) -> int | None:
        if self._state is ShutdownState.CLOSED:
            return 0
        if self._state is ShutdownState.FORCED_EXIT:
            return 1
        return None

    def register_pool(self, name: str, pool: ResourcePoolHandle) -> None:
        if name in self._pools:
            raise ValueError(f"Resource pool '{name}' is already registered")
        self._pools[name] = pool

    def register_transport(self, transport: TransportHandle) -> None:
        self._transports.append(transport)

    def register_connection(self, closer: ConnectionCloser) -> Callable[[], None]:
        """Register a long-lived connection; returns a callable that unregisters it."""
        connection_id = self._next_connection_id
        self._next_connection_id += 1
        self._connections[connection_id] = closer

        def unregister() -> None:
            self._connections.pop(connection_id, None)

        return unregister

    def signal(self, signum: int | None = None) -> None:
        """Start draining. Must be called from the event loop thread."""
        name = signal.Signals(signum).name if signum is not None else "shutdown request"
        if self._state is not ShutdownState.RUNNING:
            log.warning(f"Received {name} while {self._state.value}, ignoring")
            return

        loop = asyncio.get_running_loop()
        self._state = ShutdownState.DRAINING
        self.draining_started_at = loop.time()
        log.info(f"Received {name}, draining (timeout {self.timeout:g}s)")
        self._task = loop.create_task(self._shutdown())

    async def wait(self) -> ShutdownState:
        """Wait until the controller reaches CLOSED or FORCED_EXIT."""
        await self._finished.wait()
        return self._state

    def install_signal_handlers(
        self,
        loop: asyncio.AbstractEventLoop,
        signals: Iterable[int] = HANDLED_SIGNALS,
    ) -> None:
        """Route termination signals to `signal` until `remove_signal_handlers` is called."""
        for signum in signals:
            loop.add_signal_handler(signum, self.signal, signum)
            self._installed_signals.append(signum)

    def remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        while self._installed_signals:
            loop.remove_signal_handler(self._installed_signals.pop())

    async def _shutdown(self) -> ShutdownState:
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(self._drain(), timeout=self.timeout)
        except TimeoutError:
            self._state = ShutdownState.FORCED_EXIT
            log.error(f"Draining did not finish within {self.timeout:g}s, forcing exit")
        except Exception:
            self._state = ShutdownState.FORCED_EXIT
            log.exception("Draining failed, forcing exit")
        else:
            self._state = ShutdownState.CLOSED
            log.info("Drained all connections and resource pools")
        finally:
            self.finished_at = loop.time()
            self._finished.set()
        return self._state

    async def _drain(self) -> None:
        for transport in self._transports:
            try:
                transport.stop_accepting()
            except Exception as e:
                log.error(f"Stopping transport {transport!r} failed: {e!r}")

        closers = list(self._connections.values())
        if closers:
            log.info(f"Closing {len(closers)} long-lived connection(s)")
            await self._settle({f"connection #{index}": closer for index, closer in enumerate(closers)})

        await self._settle({f"transport {transport!r}": transport.wait_closed for transport in self._transports})

        if self._pools:
            log.info(f"Draining resource pools: {', '.join(self._pools)}")
            await self._settle({f"resource pool '{name}'": pool.drain_and_close for name, pool in self._pools.items()})

    async def _settle(self, calls: dict[str, Callable[[], Any]]) -> None:
        """Run every call concurrently; a failing call is logged and counts as settled."""
        pending: dict[str, asyncio.Future[Any]] = {}
        for label, call in calls.items():
            try:
                pending[label] = asyncio.ensure_future(call())
            except Exception as e:
                # raised before returning, or returned something that is not awaitable
                log.error(f"Closing {label} failed: {e!r}")

        results = await asyncio.gather(*pending.values(), return_exceptions=True)
        for label, result in zip(pending, results, strict=True):
            if isinstance(result, BaseException):
                log.error(f"Closing {label} failed: {result!r}")
