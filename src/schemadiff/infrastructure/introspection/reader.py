"""Schema reading for every supported descriptor kind."""

from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from schemadiff.core.config import get_settings
from schemadiff.core.exceptions import IntrospectionError
from schemadiff.core.logging import get_logger
from schemadiff.domain.entities import DatabaseSchema
from schemadiff.infrastructure.engine import InMemoryDatabase
from schemadiff.infrastructure.introspection.postgres import PostgresIntrospector, normalize_url
from schemadiff.infrastructure.introspection.snapshot import load_snapshot
from schemadiff.infrastructure.sandbox.base import PreviewSandbox

logger = get_logger(__name__)

SchemaDescriptor = (
    DatabaseSchema | InMemoryDatabase | PreviewSandbox | AsyncEngine | AsyncConnection | str | Path
)

URL_SCHEMES = ("postgresql", "postgres")


def is_database_url(value: str) -> bool:
    return value.split(":", 1)[0].split("+", 1)[0] in URL_SCHEMES


async def get_schema(
    descriptor: SchemaDescriptor,
    introspector: PostgresIntrospector | None = None,
) -> DatabaseSchema:
    """Read a schema from any supported descriptor.

    Args:
        descriptor: A schema value, an in-memory database, a sandbox, a live
            engine or connection, a PostgreSQL URL, or a snapshot file path.
        introspector: Reader for live databases; built from settings when omitted.

    Raises:
        IntrospectionError: If the schema cannot be read.
    """
    if isinstance(descriptor, DatabaseSchema):
        return descriptor
    if isinstance(descriptor, InMemoryDatabase):
        return descriptor.introspect()
    if isinstance(descriptor, PreviewSandbox):
        return await descriptor.introspect()

    if introspector is None:
        settings = get_settings()
        introspector = PostgresIntrospector(
            schema=settings.introspection_schema,
            include_security=settings.include_security,
        )

    if isinstance(descriptor, (AsyncEngine, AsyncConnection)):
        return await introspector.introspect(descriptor)

    if isinstance(descriptor, str) and is_database_url(descriptor):
        try:
            engine = create_async_engine(normalize_url(descriptor))
        except (SQLAlchemyError, ImportError, ValueError) as e:
            raise IntrospectionError(f"Invalid database URL: {e}") from e
        try:
            return await introspector.introspect(engine)
        finally:
            await engine.dispose()

    if isinstance(descriptor, (str, Path)):
        return load_snapshot(descriptor)

    raise IntrospectionError(f"Unsupported schema descriptor: {type(descriptor).__name__}")
