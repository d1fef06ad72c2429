"""Single-owner worker for one partition.

Commands reach a partition only through its worker's inbound queue and are
executed in delivery order by one task, so the partition's store is never
driven concurrently by two routers. Stream commands run as separate tasks
(the store yields between batches) so a long stream does not hold up index
writes queued behind it.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass
import logging
from typing import Any

from shardsearch.domain.commands import StreamCommand, command_name
from shardsearch.partition.router import PartitionRouter


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Envelope:
    command: Any
    done: asyncio.Future


_STOP = object()


class PartitionWorker:
    """Owns a ``PartitionRouter`` and feeds it from one queue."""

    def __init__(self, router: PartitionRouter, *, queue_size: int = 0) -> None:
        self.router = router
        self._queue: asyncio.Queue[_Envelope | object] = asyncio.Queue(maxsize=queue_size)
        self._task: asyncio.Task | None = None
        self._stream_tasks: dict[asyncio.Task, _Envelope] = {}
        self._processed = 0
        self._errors = 0
        self._stopping = False

    @property
    def partition(self):
        return self.router.partition

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "partition": self.router.partition.value,
            "node": self.router.node.name,
            "queued": self._queue.qsize(),
            "active_streams": len(self._stream_tasks),
            "processed": self._processed,
            "errors": self._errors,
        }

    def start(self) -> None:
        if self.running:
            return
        self._stopping = False
        self._task = asyncio.create_task(self._run(), name=f"partition-{self.router.partition}")

    async def submit(self, command: Any) -> asyncio.Future:
        """Queue ``command``; the returned future resolves once it has been handled.

        For streams the future resolves when the stream task finishes. Errors
        raised by the router are set on the future.
        """
        if not self.running or self._stopping:
            raise RuntimeError(f"Partition worker {self.router.partition} is not running")
        done: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._queue.put(_Envelope(command, done))
        return done

    async def call(self, command: Any) -> None:
        """Submit ``command`` and wait for it to be handled."""
        await (await self.submit(command))

    async def stop(self) -> None:
        """Stop accepting work, cancel running streams and stop the router."""
        self._stopping = True
        if self._task is not None:
            await self._queue.put(_STOP)
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        while not self._queue.empty():
            envelope = self._queue.get_nowait()
            if isinstance(envelope, _Envelope) and not envelope.done.done():
                envelope.done.cancel()

        streams = list(self._stream_tasks.items())
        for task, _envelope in streams:
            task.cancel()
        for task, envelope in streams:
            with suppress(asyncio.CancelledError):
                await task
            if not envelope.done.done():
                envelope.done.cancel()
        self._stream_tasks.clear()

        self.router.stop()

    async def _run(self) -> None:
        while True:
            envelope = await self._queue.get()
            if envelope is _STOP:
                break
            assert isinstance(envelope, _Envelope)
            if isinstance(envelope.command, StreamCommand):
                self._spawn_stream(envelope)
                continue
            await self._execute(envelope)

    async def _execute(self, envelope: _Envelope) -> None:
        self._resolve(envelope, await self._handle(envelope))

    async def _handle(self, envelope: _Envelope) -> Exception | None:
        try:
            await self.router.dispatch(envelope.command)
        except asyncio.CancelledError:
            if not envelope.done.done():
                envelope.done.cancel()
            raise
        except Exception as exc:
            self._errors += 1
            logger.warning(
                "Partition %s failed to handle %s: %s",
                self.router.partition,
                command_name(envelope.command),
                exc,
                exc_info=True,
            )
            return exc
        finally:
            self._processed += 1
        return None

    @staticmethod
    def _resolve(envelope: _Envelope, error: Exception | None) -> None:
        if envelope.done.done():
            return
        if error is not None:
            envelope.done.set_exception(error)
        else:
            envelope.done.set_result(None)

    def _spawn_stream(self, envelope: _Envelope) -> None:
        task = asyncio.create_task(self._run_stream(envelope))
        self._stream_tasks[task] = envelope

    async def _run_stream(self, envelope: _Envelope) -> None:
        # leave the active set before the submitter is woken
        try:
            error = await self._handle(envelope)
        finally:
            self._stream_tasks.pop(asyncio.current_task(), None)
        self._resolve(envelope, error)
