"""Sandbox that applies in memory and reads its starting schema from a live database.

Statements always run against the sandbox's own :class:`InMemoryDatabase`,
so users sharing one configured database never see each other's changes.
The optional live engine is only ever introspected.
"""

from sqlalchemy.ext.asyncio import AsyncEngine

from schemadiff.core.exceptions import IntrospectionError
from schemadiff.core.logging import get_logger
from schemadiff.domain.entities import DatabaseSchema
from schemadiff.infrastructure.engine import InMemoryDatabase
from schemadiff.infrastructure.introspection.postgres import PostgresIntrospector
from schemadiff.infrastructure.sandbox.memory import InMemorySandbox

logger = get_logger(__name__)


class HybridSandbox(InMemorySandbox):
    """Per-user in-memory catalog, optionally seeded from a live ``AsyncEngine``."""

    backend = "hybrid"

    def __init__(
        self,
        sandbox_id: str,
        user_key: str,
        database: InMemoryDatabase | None = None,
        source: AsyncEngine | None = None,
        introspector: PostgresIntrospector | None = None,
        owns_source: bool = False,
    ):
        """Initialize the sandbox.

        Args:
            sandbox_id: Unique sandbox identifier.
            user_key: Owning user.
            database: Private catalog; a new empty one when omitted.
            source: Live database read by :meth:`introspect_source`.
            introspector: Reader for the live source.
            owns_source: Dispose the source engine on discard.
        """
        super().__init__(sandbox_id, user_key, database)
        self.source = source
        self.introspector = introspector or PostgresIntrospector()
        self.owns_source = owns_source

    async def introspect_source(self) -> DatabaseSchema:
        """Read the schema of the live source.

        Raises:
            IntrospectionError: If there is no source or it cannot be read.
        """
        if self.source is None:
            raise IntrospectionError(f"Sandbox {self.sandbox_id} has no live source")
        return await self.introspector.introspect(self.source)

    async def seed_from_source(self) -> DatabaseSchema:
        """Replace the private catalog with a copy of the live source schema."""
        self._require_database()
        schema = await self.introspect_source()
        self.database = InMemoryDatabase.from_schema(schema)
        logger.info(
            "Hybrid sandbox seeded",
            sandbox_id=self.sandbox_id,
            tables=len(schema.tables),
        )
        return schema

    async def discard(self) -> None:
        source, self.source = self.source, None
        await super().discard()
        if source is not None and self.owns_source:
            await source.dispose()
            logger.debug("Hybrid sandbox source disposed", sandbox_id=self.sandbox_id)
