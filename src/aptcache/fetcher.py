"""Asynchronous refresh of Release files and package indexes into the lists directory."""

import asyncio
import gzip
import hashlib
import logging
import lzma
import os
import time
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import formatdate
from pathlib import Path

import aiofiles
import httpx
from debian import deb822

from aptcache import constants
from aptcache.config import Configuration
from aptcache.errors import FetchError, MetadataError
from aptcache.index import parse_release_file, release_hashes
from aptcache.models.repository import SourceEntry
from aptcache.progress import ItemStatus, UpdateProgress, Worker
from aptcache.sources import SourceList
from aptcache.utils import try_parse_date, uri_to_filename

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


@dataclass(slots=True)
class Candidate:
    """One URI an item can be acquired from, with the checksum of its transferred bytes."""

    uri: str
    destination: Path
    sha256: str | None = None
    size: int | None = None

    @property
    def compression(self) -> str:
        for suffix in (".xz", ".gz"):
            if self.uri.endswith(suffix):
                return suffix
        return ""


@dataclass(slots=True)
class AcquireItem:
    """A file to acquire, tried candidate by candidate until one exists."""

    description: str
    candidates: list[Candidate]
    # checksum and size of the decompressed file, from the Release
    expected: tuple[str, int] | None = None
    # release items only: the source entries sharing this suite
    entries: list[SourceEntry] = field(default_factory=list)
    release: deb822.Release | None = None

    @property
    def is_release(self) -> bool:
        return bool(self.entries)


@dataclass(slots=True)
class AcquireResult:
    fetched_bytes: int = 0
    elapsed: int = 0
    failures: list[tuple[str, int, str]] = field(default_factory=list)

    @property
    def pending_errors(self) -> bool:
        return bool(self.failures)


class _ItemFailed(Exception):
    def __init__(self, status: ItemStatus, text: str):
        super().__init__(text)
        self.status = status
        self.text = text


def _decompress(data: bytes, compression: str) -> bytes:
    match compression:
        case ".xz":
            return lzma.decompress(data)
        case ".gz":
            return gzip.decompress(data)
    return data


async def sha256_file(path: Path) -> str:
    """Checksum a local file without blocking the event loop on reads."""
    digest = hashlib.sha256()
    async with aiofiles.open(path, "rb") as f:
        while chunk := await f.read(_CHUNK_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


class Acquire:
    """Runs one refresh: every suite's Release first, then the indexes each Release lists.

    Args:
        config: Where the lists live and how many transfers may run at once
        sources: The configured source entries
        progress: Receives every event of the refresh
        transport: Optional httpx transport used instead of the network
    """

    def __init__(
        self,
        config: Configuration,
        sources: SourceList,
        progress: UpdateProgress,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.sources = sources
        self.progress = progress
        self.transport = transport
        self.lists = config.lists_path
        self.partial = self.lists / "partial"

        self._client: httpx.AsyncClient | None = None
        self._next_id = 0
        self._workers: dict[int, Worker] = {}
        self._started = 0.0
        self._interval = 500
        self._fetched_bytes = 0
        self._total_bytes = 0
        self._total_items = 0
        self._done_items = 0
        self._failures: list[tuple[str, int, str]] = []

    def run(self) -> AcquireResult:
        """Refresh the lists, blocking until every item has been reported.

        Raises:
            FetchError: Before `start` if there is nothing to refresh, the caller is
                inside a running event loop or the lists directory cannot be prepared,
                after `stop` if any item failed hard
        """
        if not self.sources.binary_entries:
            raise FetchError("No binary sources are configured")
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            raise FetchError("A refresh blocks until done and cannot run inside a running event loop")
        try:
            self.partial.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FetchError(f"Unable to prepare lists directory {self.partial}: {e}") from e

        result = asyncio.run(self._run())
        if result.pending_errors:
            raise FetchError(f"Failed to fetch {len(result.failures)} index files", result.failures)
        return result

    def _notify(self, event: str, *args):
        try:
            return getattr(self.progress, event)(*args)
        except Exception:
            logger.exception(f"Progress callback '{event}' raised")
            return None

    def _release_items(self) -> list[AcquireItem]:
        grouped: dict[str, list[SourceEntry]] = {}
        for entry in self.sources.binary_entries:
            grouped.setdefault(entry.dist_uri, []).append(entry)

        items = []
        for entries in grouped.values():
            candidates = [
                Candidate(uri=uri, destination=self.lists / uri_to_filename(uri)) for uri in entries[0].release_uris()
            ]
            items.append(AcquireItem(entries[0].release_description(), candidates, entries=entries))
        return items

    def _index_items(self, release_item: AcquireItem) -> list[AcquireItem]:
        hashes = release_hashes(release_item.release)
        seen: set[str] = set()
        items = []
        for entry in release_item.entries:
            for target in self.sources.index_targets(entry):
                if target.uri in seen:
                    continue
                seen.add(target.uri)

                destination = self.lists / target.filename
                if not hashes:
                    # Release without checksums: probe the usual compressions
                    candidates = [
                        Candidate(uri=target.uri + suffix, destination=destination)
                        for suffix in constants.LEGACY_INDEX_SUFFIXES
                    ]
                    items.append(AcquireItem(target.description, candidates))
                    continue

                candidates = []
                for suffix in constants.INDEX_SUFFIXES:
                    if listed := hashes.get(target.release_key + suffix):
                        sha256, size = listed
                        candidates.append(Candidate(target.uri + suffix, destination, sha256, size))
                if not candidates:
                    self._next_id += 1
                    logger.debug(f"{target.release_key} is not listed in {release_item.description}")
                    self._notify("fail", self._next_id, target.description, ItemStatus.IDLE, "")
                    continue
                items.append(AcquireItem(target.description, candidates, expected=hashes.get(target.release_key)))
        return items

    async def _run(self) -> AcquireResult:
        self._started = time.monotonic()
        self._notify("start")
        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                follow_redirects=True,
                timeout=self.config.timeout,
                headers={"User-Agent": constants.USER_AGENT},
            ) as client:
                self._client = client
                releases = self._release_items()
                await self._process(releases)

                indexes = []
                for item in releases:
                    if item.release is not None:
                        indexes.extend(self._index_items(item))
                await self._process(indexes)
        finally:
            elapsed = time.monotonic() - self._started
            cps = int(self._fetched_bytes / elapsed) if elapsed > 0 else 0
            self._notify("done")
            self._notify("stop", self._fetched_bytes, int(elapsed), cps, bool(self._failures))

        logger.info(f"Refresh finished: {self._fetched_bytes} bytes fetched, {len(self._failures)} failures")
        return AcquireResult(self._fetched_bytes, int(elapsed), list(self._failures))

    async def _process(self, items: list[AcquireItem]) -> None:
        if not items:
            return
        self._total_items += len(items)
        self._total_bytes += sum(item.candidates[0].size or 0 for item in items)

        queue: asyncio.Queue[AcquireItem] = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)

        interval = self._notify("pulse_interval")
        if not isinstance(interval, int) or interval < 0:
            interval = 500
        self._interval = interval
        pulser = asyncio.create_task(self._pulse_loop(interval)) if interval > 0 else None
        try:
            count = min(self.config.max_workers, len(items))
            workers = [asyncio.create_task(self._worker(queue)) for _ in range(count)]
            await asyncio.gather(*workers)
        finally:
            if pulser is not None:
                pulser.cancel()

    async def _pulse_loop(self, interval: int) -> None:
        while True:
            await asyncio.sleep(interval / 1000)
            self._pulse()

    def _pulse(self) -> None:
        elapsed = time.monotonic() - self._started
        cps = int(self._fetched_bytes / elapsed) if elapsed > 0 else 0
        if self._total_bytes:
            percent = min(100.0, 100.0 * self._fetched_bytes / self._total_bytes)
        else:
            percent = 100.0 * self._done_items / self._total_items if self._total_items else 0.0
        workers = [worker.model_copy() for worker in self._workers.values()]
        self._notify("pulse", workers, percent, self._total_bytes, self._fetched_bytes, cps)

    async def _worker(self, queue: asyncio.Queue) -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            await self._acquire(item)

    async def _acquire(self, item: AcquireItem) -> None:
        self._next_id += 1
        item_id = self._next_id
        worker = Worker(id=item_id, description=item.description, uri=item.candidates[0].uri)
        self._workers[item_id] = worker
        try:
            fetched = await self._transfer(item, worker)
        except _ItemFailed as e:
            self._fail(item_id, item, e.status, e.text)
        except httpx.TransportError as e:
            self._fail(item_id, item, ItemStatus.TRANSIENT_NETWORK_ERROR, str(e) or type(e).__name__)
        except (httpx.HTTPError, httpx.StreamError) as e:
            # redirect loops, undecodable bodies and other protocol-level failures
            self._fail(item_id, item, ItemStatus.ERROR, str(e) or type(e).__name__)
        except OSError as e:
            self._fail(item_id, item, ItemStatus.ERROR, f"Unable to store {item.description}: {e}")
        else:
            if fetched is None:
                logger.debug(f"Hit {item.description}")
                self._notify("hit", item_id, item.description)
            else:
                self._notify("fetch", item_id, item.description, fetched)
        finally:
            self._workers.pop(item_id, None)
            self._done_items += 1

    def _fail(self, item_id: int, item: AcquireItem, status: ItemStatus, text: str) -> None:
        if not status.is_ignorable:
            logger.debug(f"Failed to fetch {item.description}: {text}")
            self._failures.append((item.description, int(status), text))
        self._notify("fail", item_id, item.description, status, text)

    async def _is_current(self, item: AcquireItem) -> bool:
        destination = item.candidates[0].destination
        if item.expected is None or not destination.is_file():
            return False
        sha256, size = item.expected
        return destination.stat().st_size == size and await sha256_file(destination) == sha256

    async def _transfer(self, item: AcquireItem, worker: Worker) -> int | None:
        """Acquire one item.

        Returns:
            The number of bytes transferred, or None if the local copy is current
        """
        if await self._is_current(item):
            if item.is_release:
                self._finish_release(item, item.candidates[0].destination)
            return None

        missing: list[str] = []
        for candidate in item.candidates:
            worker.uri = candidate.uri
            headers = {}
            # an item with a known checksum and a stale local copy is always transferred
            if item.expected is None and candidate.destination.is_file():
                headers["If-Modified-Since"] = formatdate(candidate.destination.stat().st_mtime, usegmt=True)

            async with self._client.stream("GET", candidate.uri, headers=headers) as response:
                if response.status_code == 304:
                    if item.is_release:
                        self._finish_release(item, candidate.destination)
                    return None
                if response.status_code == 404:
                    missing.append(f"{response.status_code} {response.reason_phrase}")
                    continue
                if response.status_code in (401, 403):
                    raise _ItemFailed(ItemStatus.AUTH_ERROR, f"{response.status_code} {response.reason_phrase}")
                if response.is_error:
                    raise _ItemFailed(ItemStatus.ERROR, f"{response.status_code} {response.reason_phrase}")

                worker.total_size = int(response.headers.get("content-length") or candidate.size or 0)
                data = bytearray()
                async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                    data.extend(chunk)
                    worker.current_size += len(chunk)
                    self._fetched_bytes += len(chunk)
                    if self._interval == 0:
                        self._pulse()
                last_modified = try_parse_date(response.headers.get("last-modified"))

            await self._store(item, candidate, bytes(data), last_modified)
            return len(data)

        if item.is_release:
            raise _ItemFailed(ItemStatus.ERROR, f"The repository does not have a Release file ({missing[-1]})")
        if item.expected is None:
            raise _ItemFailed(ItemStatus.DONE, missing[-1])
        raise _ItemFailed(ItemStatus.ERROR, missing[-1])

    def _verify(self, data: bytes, checksum: tuple[str | None, int | None]) -> None:
        sha256, size = checksum
        if size is not None and len(data) != size:
            raise _ItemFailed(ItemStatus.ERROR, "File has unexpected size")
        if sha256 is not None and hashlib.sha256(data).hexdigest() != sha256:
            raise _ItemFailed(ItemStatus.ERROR, "Hash Sum mismatch")

    async def _store(
        self, item: AcquireItem, candidate: Candidate, data: bytes, last_modified: datetime | None
    ) -> None:
        self._verify(data, (candidate.sha256, candidate.size))
        try:
            content = _decompress(data, candidate.compression)
        except (lzma.LZMAError, zlib.error, OSError, EOFError) as e:
            raise _ItemFailed(ItemStatus.ERROR, f"Unable to decompress {candidate.uri}: {e}") from e
        if item.expected is not None:
            self._verify(content, item.expected)

        partial = self.partial / candidate.destination.name
        try:
            async with aiofiles.open(partial, "wb") as f:
                await f.write(content)
            if last_modified:
                remote_ts = last_modified.timestamp()
                os.utime(partial, (remote_ts, remote_ts))
            if item.is_release:
                self._finish_release(item, partial)
            os.replace(partial, candidate.destination)
        except (_ItemFailed, OSError):
            partial.unlink(missing_ok=True)
            raise
        logger.debug(f"Stored {candidate.uri} as {candidate.destination}")

    def _finish_release(self, item: AcquireItem, path: Path) -> None:
        try:
            item.release = parse_release_file(path)
        except MetadataError as e:
            raise _ItemFailed(ItemStatus.ERROR, str(e)) from e
