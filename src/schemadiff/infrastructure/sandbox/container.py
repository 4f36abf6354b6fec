"""Sandbox backed by a PostgreSQL server in a Docker container.

Each sandbox gets its own container and host port. The server is probed with
``SELECT 1`` until it accepts connections, so callers never see a sandbox
that is still starting up.
"""

import asyncio
import threading

from docker import DockerClient
from docker.errors import DockerException, NotFound
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from schemadiff.core.config import Settings, get_settings
from schemadiff.core.exceptions import ApplyError, ProvisioningError
from schemadiff.core.logging import get_logger
from schemadiff.domain.entities import DatabaseSchema
from schemadiff.infrastructure.introspection.postgres import PostgresIntrospector
from schemadiff.infrastructure.sandbox.base import PreviewSandbox, StatementOutcome
from schemadiff.infrastructure.sandbox.live import apply_atomic, apply_each

logger = get_logger(__name__)

POSTGRES_PORT = "5432/tcp"
MAX_PROBE_DELAY = 5.0


class PortAllocator:
    """Hands out host ports from ``[base_port, base_port + size)``.

    Thread-safe; a port is never handed out twice until released.
    """

    def __init__(self, base_port: int, size: int = 1000):
        self.base_port = base_port
        self.size = size
        self._in_use: set[int] = set()
        self._lock = threading.Lock()

    def acquire(self) -> int:
        """Reserve the lowest free port.

        Raises:
            ProvisioningError: If every port in the range is taken.
        """
        with self._lock:
            for port in range(self.base_port, self.base_port + self.size):
                if port not in self._in_use:
                    self._in_use.add(port)
                    return port
        raise ProvisioningError(
            f"No free sandbox port in {self.base_port}-{self.base_port + self.size - 1}"
        )

    def release(self, port: int) -> None:
        with self._lock:
            self._in_use.discard(port)

    @property
    def in_use(self) -> set[int]:
        with self._lock:
            return set(self._in_use)


def connection_url(settings: Settings, port: int, host: str = "127.0.0.1") -> str:
    """Build the asyncpg URL of a sandbox listening on ``port``."""
    return (
        f"postgresql+asyncpg://{settings.container_user}:{settings.container_password}"
        f"@{host}:{port}/{settings.container_database}"
    )


async def wait_until_ready(engine: AsyncEngine, timeout: float, interval: float) -> int:
    """Probe ``engine`` with ``SELECT 1`` until it answers.

    The delay between attempts starts at ``interval`` and doubles up to
    five seconds.

    Returns:
        The number of attempts made.

    Raises:
        ProvisioningError: If the server does not answer within ``timeout`` seconds.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    delay = interval
    attempts = 0
    while True:
        attempts += 1
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return attempts
        except (SQLAlchemyError, OSError) as e:
            if loop.time() + delay > deadline:
                raise ProvisioningError(
                    f"Sandbox database not ready after {timeout:g}s ({attempts} attempts): {e}"
                ) from e
            logger.debug("Sandbox database not ready yet", attempt=attempts, retry_in=delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, MAX_PROBE_DELAY)


class ContainerSandbox(PreviewSandbox):
    """A dedicated PostgreSQL container."""

    backend = "container"

    def __init__(
        self,
        sandbox_id: str,
        user_key: str,
        container,
        port: int,
        engine: AsyncEngine,
        allocator: PortAllocator,
        apply_mode: str = "statement",
        introspector: PostgresIntrospector | None = None,
    ):
        super().__init__(sandbox_id, user_key)
        self.container = container
        self.port = port
        self.engine = engine
        self.allocator = allocator
        self.apply_mode = apply_mode
        self.introspector = introspector or PostgresIntrospector()
        self._discarded = False

    @property
    def connection_url(self) -> str:
        return self.engine.url.render_as_string(hide_password=False)

    @classmethod
    async def start(
        cls,
        sandbox_id: str,
        user_key: str,
        client: DockerClient,
        allocator: PortAllocator,
        settings: Settings | None = None,
        introspector: PostgresIntrospector | None = None,
    ) -> "ContainerSandbox":
        """Start a container and wait until its server accepts connections.

        On failure the container is removed and the port released before the
        error propagates.
        """
        settings = settings or get_settings()
        port = allocator.acquire()
        container = None
        engine = None
        try:
            container = await asyncio.to_thread(
                client.containers.run,
                settings.container_image,
                name=sandbox_id,
                detach=True,
                environment={
                    "POSTGRES_USER": settings.container_user,
                    "POSTGRES_PASSWORD": settings.container_password,
                    "POSTGRES_DB": settings.container_database,
                },
                ports={POSTGRES_PORT: port},
                labels={"schemadiff.sandbox": sandbox_id, "schemadiff.user_key": user_key},
            )
            engine = create_async_engine(connection_url(settings, port), poolclass=NullPool)
            attempts = await wait_until_ready(
                engine,
                timeout=settings.container_ready_timeout_seconds,
                interval=settings.container_probe_interval_seconds,
            )
        except BaseException:
            if engine is not None:
                await engine.dispose()
            if container is not None:
                await _remove_container(container)
            allocator.release(port)
            raise

        logger.info(
            "Sandbox container ready",
            sandbox_id=sandbox_id,
            port=port,
            image=settings.container_image,
            probe_attempts=attempts,
        )
        return cls(
            sandbox_id,
            user_key,
            container=container,
            port=port,
            engine=engine,
            allocator=allocator,
            apply_mode=settings.container_apply_mode,
            introspector=introspector,
        )

    def _require_open(self) -> None:
        if self._discarded:
            raise ApplyError(f"Sandbox {self.sandbox_id} has been discarded")

    async def apply_statements(self, statements: list[str]) -> list[StatementOutcome]:
        self._require_open()
        if self.apply_mode == "atomic":
            return await apply_atomic(self.engine, statements)
        return await apply_each(self.engine, statements)

    async def introspect(self) -> DatabaseSchema:
        self._require_open()
        return await self.introspector.introspect(self.engine)

    async def discard(self) -> None:
        if self._discarded:
            return
        self._discarded = True
        try:
            await self.engine.dispose()
            await _remove_container(self.container)
        finally:
            self.allocator.release(self.port)
        logger.info("Sandbox container removed", sandbox_id=self.sandbox_id, port=self.port)


async def _remove_container(container) -> None:
    """Stop and remove a container, tolerating one that is already gone."""
    try:
        await asyncio.to_thread(container.stop, timeout=5)
        await asyncio.to_thread(container.remove, force=True)
    except NotFound:
        pass
    except DockerException as e:
        logger.warning("Failed to remove sandbox container", container=container.name, error=str(e))
