"""
Model provisioning for the U2-Net ONNX files.

The provisioner:
 - keeps one `ProvisionState` per model descriptor,
 - downloads a missing model exactly once, no matter how many requests
   are waiting for it,
 - releases every waiter when the file is ready, or raises
   `DownloadFailure` to each of them when the attempt fails.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import pooch

from .errors import DownloadFailure
from .profiles import ModelDescriptor

logger = logging.getLogger(__name__)

Fetcher = Callable[[str, Path, str], None]


def fetch_model_file(url: str, dest: Path, md5: str) -> None:
    """Download `url` to `dest`, verifying the md5 before the file is moved into place."""
    pooch.retrieve(
        url,
        known_hash=f"md5:{md5}",
        fname=dest.name,
        path=dest.parent,
        progressbar=False,
    )


@dataclass
class ProvisionState:
    ready: bool = False
    waiters: List[asyncio.Future] = field(default_factory=list)
    task: Optional[asyncio.Task] = None
    worker: Optional[asyncio.Future] = None


def _consume_result(future: asyncio.Future) -> None:
    # Outcome of an abandoned worker is reported by the attempt that owns it.
    if not future.cancelled():
        future.exception()


class ModelProvisioner:
    """Single-flight download gate shared by every request of the process."""

    def __init__(
        self,
        descriptors: Iterable[ModelDescriptor],
        fetcher: Fetcher = fetch_model_file,
        timeout_seconds: Optional[float] = None,
    ):
        self._fetcher = fetcher
        self.timeout_seconds = timeout_seconds
        self._states: Dict[str, ProvisionState] = {d.name: ProvisionState() for d in descriptors}

    def state(self, descriptor: ModelDescriptor) -> ProvisionState:
        try:
            return self._states[descriptor.name]
        except KeyError:
            raise ValueError(f"Unknown model descriptor: {descriptor.name}") from None

    def is_ready(self, descriptor: ModelDescriptor) -> bool:
        return self.state(descriptor).ready

    def prefetch(self, descriptor: ModelDescriptor) -> None:
        """Start provisioning in the background without waiting for it."""
        state = self.state(descriptor)
        if not state.ready:
            self._start(descriptor, state)

    async def ensure(self, descriptor: ModelDescriptor) -> Path:
        """Return the local model path once the file is present on disk."""
        state = self.state(descriptor)
        if state.ready:
            return descriptor.path

        waiter = asyncio.get_running_loop().create_future()
        state.waiters.append(waiter)
        self._start(descriptor, state)
        await waiter
        return descriptor.path

    def _start(self, descriptor: ModelDescriptor, state: ProvisionState) -> None:
        # No await between the check and the assignment: concurrent callers
        # observe the in-flight task and only queue themselves.
        if state.task is None:
            state.task = asyncio.get_running_loop().create_task(self._provision(descriptor, state))

    async def _provision(self, descriptor: ModelDescriptor, state: ProvisionState) -> None:
        error: Optional[BaseException] = None
        try:
            await asyncio.wait_for(self._attempt(descriptor, state), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            error = exc
            logger.error("Download of %s timed out after %ss", descriptor.name, self.timeout_seconds)
        except Exception as exc:  # noqa: BLE001
            error = exc
            logger.exception("Download of %s failed", descriptor.name)
        except asyncio.CancelledError as exc:
            error = exc
            raise
        finally:
            self._release(descriptor, state, error)

    async def _attempt(self, descriptor: ModelDescriptor, state: ProvisionState) -> None:
        # A worker thread left behind by a timed-out attempt may still be
        # writing the file; let it finish before starting another fetch.
        orphan = state.worker
        if orphan is not None and not orphan.done():
            logger.info("Waiting for the previous %s download to finish", descriptor.name)
            await asyncio.wait([orphan])

        worker = asyncio.ensure_future(asyncio.to_thread(self._ensure_file, descriptor))
        worker.add_done_callback(_consume_result)
        state.worker = worker
        # shield: a timeout abandons the worker but keeps it tracked on the state.
        await asyncio.shield(worker)

    def _release(
        self, descriptor: ModelDescriptor, state: ProvisionState, error: Optional[BaseException]
    ) -> None:
        if error is None:
            state.ready = True
        waiters, state.waiters = state.waiters, []
        state.task = None

        for waiter in waiters:
            if waiter.done():
                continue
            if error is None:
                waiter.set_result(None)
                continue
            if isinstance(error, DownloadFailure):
                reason = error.reason
            else:
                reason = str(error) or type(error).__name__
            failure = DownloadFailure(descriptor.name, reason)
            failure.__cause__ = error
            waiter.set_exception(failure)

    def _ensure_file(self, descriptor: ModelDescriptor) -> None:
        if descriptor.path.exists():
            logger.info("U2-Net model %s found at %s", descriptor.name, descriptor.path)
            return

        if not descriptor.url or not descriptor.md5:
            raise DownloadFailure(descriptor.name, "no remote source or checksum configured")

        logger.info("U2-Net model %s downloading...", descriptor.name)
        descriptor.path.parent.mkdir(parents=True, exist_ok=True)
        self._fetcher(descriptor.url, descriptor.path, descriptor.md5)
        if not descriptor.path.exists():
            raise DownloadFailure(descriptor.name, "retrieval finished without producing the file")
        logger.info("U2-Net model %s downloaded!", descriptor.name)
