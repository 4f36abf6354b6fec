"""Per-user sandbox registry with inactivity reaping.

Maps each user key to at most one live sandbox. Lease, release and reap for
the same key are serialized by a per-key ``asyncio.Lock``, so concurrent
requests from one user never provision two sandboxes.
"""

import asyncio
import math
import time
from typing import Callable

from schemadiff.core.config import get_settings
from schemadiff.core.logging import get_logger
from schemadiff.infrastructure.sandbox.base import PreviewSandbox
from schemadiff.infrastructure.sandbox.provisioner import SandboxProvisioner

logger = get_logger(__name__)

Clock = Callable[[], float]


class SandboxRegistry:
    """Owns the live sandboxes of the process.

    The periodic reaper is an ``asyncio.Task`` created by :meth:`start` and
    cancelled by :meth:`stop`.
    """

    def __init__(
        self,
        provisioner: SandboxProvisioner | None = None,
        inactivity_seconds: float | None = None,
        reap_interval_seconds: float | None = None,
        clock: Clock = time.monotonic,
    ):
        """Initialize the registry.

        Args:
            provisioner: Creates sandboxes on first lease.
            inactivity_seconds: Idle time after which a sandbox is reaped
                (default: 30 minutes from settings).
            reap_interval_seconds: Period of the background reaper
                (default: 5 minutes from settings).
            clock: Monotonic time source in seconds.
        """
        settings = get_settings()
        self.provisioner = provisioner or SandboxProvisioner(settings)
        self.inactivity_seconds = (
            inactivity_seconds
            if inactivity_seconds is not None
            else settings.sandbox_inactivity_seconds
        )
        self.reap_interval_seconds = (
            reap_interval_seconds
            if reap_interval_seconds is not None
            else settings.sandbox_reaper_interval_seconds
        )
        self.clock = clock
        self._sandboxes: dict[str, PreviewSandbox] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_guard = asyncio.Lock()
        self._reaper: asyncio.Task | None = None

    async def _lock_for(self, user_key: str) -> asyncio.Lock:
        async with self._locks_guard:
            lock = self._locks.get(user_key)
            if lock is None:
                lock = self._locks[user_key] = asyncio.Lock()
            return lock

    def get(self, user_key: str) -> PreviewSandbox | None:
        """Return the live sandbox of ``user_key`` without touching it."""
        return self._sandboxes.get(user_key)

    def __contains__(self, user_key: object) -> bool:
        return user_key in self._sandboxes

    def __len__(self) -> int:
        return len(self._sandboxes)

    async def lease(self, user_key: str) -> PreviewSandbox:
        """Return the sandbox of ``user_key``, creating it if absent.

        Every lease refreshes ``last_accessed``; consecutive leases of the same
        sandbox observe strictly increasing values.

        Raises:
            ProvisioningError: If a new sandbox cannot be created.
        """
        lock = await self._lock_for(user_key)
        async with lock:
            now = self.clock()
            sandbox = self._sandboxes.get(user_key)
            if sandbox is None:
                sandbox = await self.provisioner.create(user_key)
                sandbox.created_at = now
                sandbox.last_accessed = now
                self._sandboxes[user_key] = sandbox
                return sandbox

            if sandbox.last_accessed is not None and now <= sandbox.last_accessed:
                now = math.nextafter(sandbox.last_accessed, math.inf)
            sandbox.last_accessed = now
            return sandbox

    async def release(self, user_key: str) -> bool:
        """Discard and forget the sandbox of ``user_key``.

        Returns:
            True if a sandbox was released.
        """
        lock = await self._lock_for(user_key)
        async with lock:
            sandbox = self._sandboxes.pop(user_key, None)
            if sandbox is None:
                return False
            await self._discard(sandbox)
            logger.info("Sandbox released", user_key=user_key, sandbox_id=sandbox.sandbox_id)
            return True

    async def reap(self) -> list[str]:
        """Discard every sandbox idle for longer than the inactivity threshold.

        Returns:
            The user keys whose sandboxes were reaped.
        """
        reaped = []
        for user_key in list(self._sandboxes):
            lock = await self._lock_for(user_key)
            async with lock:
                sandbox = self._sandboxes.get(user_key)
                # May have been leased or released while waiting for the lock
                if sandbox is None or not self._is_stale(sandbox):
                    continue
                del self._sandboxes[user_key]
                await self._discard(sandbox)
                reaped.append(user_key)

        if reaped:
            logger.info("Reaped inactive sandboxes", count=len(reaped), user_keys=reaped)
        return reaped

    def _is_stale(self, sandbox: PreviewSandbox) -> bool:
        if sandbox.last_accessed is None:
            return False
        return self.clock() - sandbox.last_accessed > self.inactivity_seconds

    async def _discard(self, sandbox: PreviewSandbox) -> None:
        try:
            await sandbox.discard()
        except Exception as e:
            # A broken sandbox must not block reaping of the others
            logger.error(
                "Failed to discard sandbox",
                sandbox_id=sandbox.sandbox_id,
                user_key=sandbox.user_key,
                error=str(e),
            )

    async def _reap_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.reap_interval_seconds)
            try:
                await self.reap()
            except Exception as e:
                logger.error("Sandbox reaper cycle failed", error=str(e))

    @property
    def is_running(self) -> bool:
        return self._reaper is not None and not self._reaper.done()

    def start(self) -> None:
        """Start the background reaper. Must be called from a running event loop."""
        if self.is_running:
            return
        self._reaper = asyncio.create_task(self._reap_periodically(), name="sandbox-reaper")
        logger.info("Sandbox reaper started", interval_seconds=self.reap_interval_seconds)

    async def stop(self) -> None:
        """Cancel the background reaper and wait for it to finish."""
        reaper, self._reaper = self._reaper, None
        if reaper is None:
            return
        reaper.cancel()
        try:
            await reaper
        except asyncio.CancelledError:
            pass
        logger.info("Sandbox reaper stopped")

    async def close(self) -> None:
        """Stop the reaper and discard every sandbox."""
        await self.stop()
        for user_key in list(self._sandboxes):
            await self.release(user_key)
