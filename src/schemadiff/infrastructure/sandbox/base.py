"""Base abstractions for preview sandboxes."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from schemadiff.domain.entities import DatabaseSchema
from schemadiff.domain.services import split_statements


@dataclass(slots=True)
class StatementOutcome:
    """Result of applying one statement to a sandbox."""

    statement: str
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"statement": self.statement, "success": self.success, "error": self.error}


class PreviewSandbox(ABC):
    """A disposable database owned by one user.

    Attributes:
        sandbox_id: Unique identifier, also used as container name.
        user_key: Key of the owning user.
        backend: Backend name, e.g. ``memory``.
        created_at: When the registry first leased the sandbox.
        last_accessed: When the registry last leased the sandbox.
    """

    backend = "abstract"

    def __init__(self, sandbox_id: str, user_key: str) -> None:
        self.sandbox_id = sandbox_id
        self.user_key = user_key
        # Registry clock readings, set when the sandbox is leased
        self.created_at: float | None = None
        self.last_accessed: float | None = None

    @abstractmethod
    async def apply_statements(self, statements: list[str]) -> list[StatementOutcome]:
        """Apply statements in order and report one outcome per statement."""
        ...

    @abstractmethod
    async def introspect(self) -> DatabaseSchema:
        """Read the current schema of the sandbox."""
        ...

    @abstractmethod
    async def discard(self) -> None:
        """Release every resource held by the sandbox. Safe to call twice."""
        ...

    async def apply_script(self, script: str) -> list[StatementOutcome]:
        """Split ``script`` into statements and apply them."""
        return await self.apply_statements(split_statements(script))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.sandbox_id} user={self.user_key}>"
