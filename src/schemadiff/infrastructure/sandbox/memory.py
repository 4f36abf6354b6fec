"""Sandbox backed by the in-memory relational engine."""

from schemadiff.core.exceptions import ApplyError
from schemadiff.core.logging import get_logger
from schemadiff.domain.entities import DatabaseSchema
from schemadiff.infrastructure.engine import DDLError, InMemoryDatabase
from schemadiff.infrastructure.sandbox.base import PreviewSandbox, StatementOutcome

logger = get_logger(__name__)


def apply_in_memory(database: InMemoryDatabase, statements: list[str]) -> list[StatementOutcome]:
    """Apply statements one by one, recording failures and continuing."""
    outcomes = []
    for statement in statements:
        try:
            database.execute(statement)
            outcomes.append(StatementOutcome(statement=statement, success=True))
        except DDLError as e:
            logger.warning("Statement failed", statement=statement, error=str(e))
            outcomes.append(StatementOutcome(statement=statement, success=False, error=str(e)))
    return outcomes


class InMemorySandbox(PreviewSandbox):
    """A fresh in-process catalog per user."""

    backend = "memory"

    def __init__(self, sandbox_id: str, user_key: str, database: InMemoryDatabase | None = None):
        super().__init__(sandbox_id, user_key)
        self.database: InMemoryDatabase | None = database or InMemoryDatabase()

    def _require_database(self) -> InMemoryDatabase:
        if self.database is None:
            raise ApplyError(f"Sandbox {self.sandbox_id} has been discarded")
        return self.database

    async def apply_statements(self, statements: list[str]) -> list[StatementOutcome]:
        return apply_in_memory(self._require_database(), statements)

    async def introspect(self) -> DatabaseSchema:
        return self._require_database().introspect()

    async def discard(self) -> None:
        if self.database is not None:
            logger.debug("In-memory sandbox discarded", sandbox_id=self.sandbox_id)
        self.database = None
