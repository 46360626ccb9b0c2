"""Callback protocol reporting a metadata refresh, and a console renderer for it."""

import logging
from abc import ABC, abstractmethod
from enum import IntEnum

from pydantic import BaseModel
from rich.console import Console

from aptcache.utils import NumSys, time_str, unit_str

logger = logging.getLogger(__name__)


class ItemStatus(IntEnum):
    """Status of one acquired item, numbered as APT numbers its item states."""

    IDLE = 0
    FETCHING = 1
    DONE = 2
    ERROR = 3
    AUTH_ERROR = 4
    TRANSIENT_NETWORK_ERROR = 5

    @property
    def is_ignorable(self) -> bool:
        """Ignorable failures are reported as `Ign`, everything else as `Err`."""
        return self in (ItemStatus.IDLE, ItemStatus.DONE)


class Worker(BaseModel):
    """Snapshot of one transfer in flight, as passed to `UpdateProgress.pulse`."""

    id: int
    status: ItemStatus = ItemStatus.FETCHING
    description: str
    uri: str
    current_size: int = 0
    total_size: int = 0


class UpdateProgress(ABC):
    """Receives the events of one refresh.

    A refresh calls `start` once, then exactly one of `hit`, `fetch` or `fail`
    per item with `pulse` interleaved, then `done` and finally `stop`. Calls are
    never concurrent. Exceptions raised here are logged and otherwise ignored.
    """

    def pulse_interval(self) -> int:
        """Milliseconds between pulses; 0 pulses on every transfer chunk."""
        return 500

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def hit(self, id: int, description: str) -> None:
        """The item is unchanged, nothing was transferred."""

    @abstractmethod
    def fetch(self, id: int, description: str, file_size: int) -> None:
        """The item was downloaded; a size of 0 means unknown."""

    @abstractmethod
    def fail(self, id: int, description: str, status: ItemStatus, error_text: str) -> None:
        """The item failed or was ignored, see `ItemStatus.is_ignorable`."""

    @abstractmethod
    def pulse(
        self,
        workers: list[Worker],
        percent: float,
        total_bytes: int,
        current_bytes: int,
        current_cps: int,
    ) -> None: ...

    @abstractmethod
    def done(self) -> None: ...

    @abstractmethod
    def stop(self, fetched_bytes: int, elapsed_time: int, current_cps: int, pending_errors: bool) -> None: ...


class AptUpdateProgress(UpdateProgress):
    """Renders a refresh the way `apt update` does.

    Args:
        console: Where to print, defaults to a new rich `Console` on stdout
        interval: Pulse interval in milliseconds
    """

    def __init__(self, console: Console | None = None, interval: int = 500):
        self.console = console or Console()
        self.interval = interval

    def pulse_interval(self) -> int:
        return self.interval

    def _print(self, text: str) -> None:
        self.console.print(text, markup=False, highlight=False, soft_wrap=True)

    def start(self) -> None:
        logger.debug("Refresh started")

    def hit(self, id: int, description: str) -> None:
        self._print(f"Hit:{id} {description}")

    def fetch(self, id: int, description: str, file_size: int) -> None:
        if file_size:
            self._print(f"Get:{id} {description} [{unit_str(file_size, NumSys.DECIMAL)}]")
        else:
            self._print(f"Get:{id} {description}")

    def fail(self, id: int, description: str, status: ItemStatus, error_text: str) -> None:
        if ItemStatus(status).is_ignorable:
            self._print(f"Ign:{id} {description}")
            if not error_text:
                return
        else:
            self._print(f"Err:{id} {description}")
        if error_text:
            self._print(f"  {error_text}")

    def pulse(
        self,
        workers: list[Worker],
        percent: float,
        total_bytes: int,
        current_bytes: int,
        current_cps: int,
    ) -> None:
        if not self.console.is_terminal:
            return
        parts = [f"{percent:.0f}%"]
        for worker in workers:
            if worker.total_size:
                parts.append(
                    f"[{worker.id} {worker.description} "
                    f"{unit_str(worker.current_size)}/{unit_str(worker.total_size)}]"
                )
            else:
                parts.append(f"[{worker.id} {worker.description}]")
        if current_cps:
            parts.append(f"{unit_str(current_cps)}/s")
        line = " ".join(parts)[: self.console.width - 1]
        self.console.print(line.ljust(self.console.width - 1), end="\r", markup=False, highlight=False)

    def done(self) -> None:
        if self.console.is_terminal:
            self.console.print(" " * (self.console.width - 1), end="\r")

    def stop(self, fetched_bytes: int, elapsed_time: int, current_cps: int, pending_errors: bool) -> None:
        if fetched_bytes:
            self._print(
                f"Fetched {unit_str(fetched_bytes, NumSys.DECIMAL)} in {time_str(elapsed_time)} "
                f"({unit_str(current_cps, NumSys.DECIMAL)}/s)"
            )
        else:
            self._print("Nothing to fetch.")
        if pending_errors:
            self._print("Some index files failed to download. They have been ignored, or old ones used instead.")
