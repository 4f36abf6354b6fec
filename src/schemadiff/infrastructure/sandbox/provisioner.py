"""Creates preview sandboxes for the configured backend."""

import uuid

import docker
from docker import DockerClient
from docker.errors import DockerException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from schemadiff.core.config import Settings, get_settings
from schemadiff.core.exceptions import IntrospectionError, ProvisioningError
from schemadiff.core.logging import get_logger
from schemadiff.infrastructure.introspection.postgres import PostgresIntrospector, normalize_url
from schemadiff.infrastructure.sandbox.base import PreviewSandbox
from schemadiff.infrastructure.sandbox.container import ContainerSandbox, PortAllocator
from schemadiff.infrastructure.sandbox.hybrid import HybridSandbox
from schemadiff.infrastructure.sandbox.memory import InMemorySandbox

logger = get_logger(__name__)


def new_sandbox_id() -> str:
    return f"preview-{uuid.uuid4().hex[:12]}"


class SandboxProvisioner:
    """Acquires a disposable database for a user.

    The backend is chosen by ``settings.sandbox_backend``:

    - ``memory``: a fresh :class:`InMemorySandbox`.
    - ``hybrid``: a :class:`HybridSandbox` with a private in-memory catalog,
      seeded from the schema of ``hybrid_database_url`` when set. The live
      database is only read, never written.
    - ``container``: a :class:`ContainerSandbox` running PostgreSQL in Docker.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        docker_client: DockerClient | None = None,
        port_allocator: PortAllocator | None = None,
    ):
        self.settings = settings or get_settings()
        self._docker_client = docker_client
        self.port_allocator = port_allocator or PortAllocator(
            self.settings.container_base_port, self.settings.container_port_range
        )
        self.introspector = PostgresIntrospector(
            schema=self.settings.introspection_schema,
            include_security=self.settings.include_security,
        )

    @property
    def backend(self) -> str:
        return self.settings.sandbox_backend

    def _docker(self) -> DockerClient:
        if self._docker_client is None:
            self._docker_client = docker.from_env()
        return self._docker_client

    async def create(self, user_key: str) -> PreviewSandbox:
        """Create a sandbox owned by ``user_key``.

        Raises:
            ProvisioningError: If the backend cannot start a database.
        """
        sandbox_id = new_sandbox_id()
        try:
            sandbox = await self._create(sandbox_id, user_key)
        except ProvisioningError as e:
            logger.error(
                "Sandbox provisioning failed",
                backend=self.backend,
                user_key=user_key,
                error=e.detail,
            )
            raise
        except (DockerException, SQLAlchemyError, OSError, IntrospectionError) as e:
            logger.error(
                "Sandbox provisioning failed",
                backend=self.backend,
                user_key=user_key,
                error=str(e),
            )
            raise ProvisioningError(f"Failed to create {self.backend} sandbox: {e}") from e

        logger.info(
            "Sandbox provisioned",
            backend=self.backend,
            sandbox_id=sandbox.sandbox_id,
            user_key=user_key,
        )
        return sandbox

    async def _create(self, sandbox_id: str, user_key: str) -> PreviewSandbox:
        if self.backend == "memory":
            return InMemorySandbox(sandbox_id, user_key)

        if self.backend == "hybrid":
            if not self.settings.hybrid_database_url:
                return HybridSandbox(sandbox_id, user_key, introspector=self.introspector)
            sandbox = HybridSandbox(
                sandbox_id,
                user_key,
                source=create_async_engine(normalize_url(self.settings.hybrid_database_url)),
                introspector=self.introspector,
                owns_source=True,
            )
            try:
                await sandbox.seed_from_source()
            except IntrospectionError:
                await sandbox.discard()
                raise
            return sandbox

        if self.backend == "container":
            return await ContainerSandbox.start(
                sandbox_id,
                user_key,
                client=self._docker(),
                allocator=self.port_allocator,
                settings=self.settings,
                introspector=self.introspector,
            )

        raise ProvisioningError(f"Unknown sandbox backend: {self.backend}")
