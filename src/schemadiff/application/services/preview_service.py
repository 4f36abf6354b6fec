"""Preview service: dry-run a migration in a per-user sandbox.

A preview brings the user's sandbox to the source schema, applies either a
caller-supplied script or the synthesized migration, and diffs the result
against the target. An empty final diff means the migration converges.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pglast.parser import ParseError

from schemadiff.core.config import Settings, get_settings
from schemadiff.core.exceptions import SchemaDiffError, ValidationError
from schemadiff.core.logging import LoggingContext, get_logger
from schemadiff.domain.entities import DatabaseSchema, SchemaDiff
from schemadiff.domain.services import (
    DDLSynthesizer,
    SQLValidator,
    compare_schemas,
    split_statements,
)
from schemadiff.infrastructure.introspection import PostgresIntrospector, get_schema
from schemadiff.infrastructure.introspection.reader import SchemaDescriptor
from schemadiff.infrastructure.sandbox import SandboxRegistry, StatementOutcome

logger = get_logger(__name__)


class PreviewState(str, Enum):
    """Progress of a preview request."""

    IDLE = "idle"
    SANDBOX_ACQUIRED = "sandbox_acquired"
    SOURCE_SEEDED = "source_seeded"
    CANDIDATE_APPLIED = "candidate_applied"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class PreviewResult:
    """Outcome of :meth:`PreviewOrchestrator.preview_changes`.

    Attributes:
        state: ``VERIFIED`` on success, ``FAILED`` otherwise.
        diff: Remaining difference between the sandbox and the target.
        applied_script: The script applied as the candidate migration.
        validation_errors: Problems found in a caller-supplied script.
        outcomes: Per-statement results of the candidate migration.
        seed_outcomes: Per-statement results of seeding the source schema.
        sandbox_id: Sandbox the preview ran in.
        error: ``{"code", "detail"}`` when the preview failed.
    """

    state: PreviewState = PreviewState.IDLE
    diff: SchemaDiff | None = None
    applied_script: str | None = None
    validation_errors: list[str] = field(default_factory=list)
    outcomes: list[StatementOutcome] = field(default_factory=list)
    seed_outcomes: list[StatementOutcome] = field(default_factory=list)
    sandbox_id: str | None = None
    error: dict[str, Any] | None = None

    @property
    def converged(self) -> bool:
        """True if the sandbox matches the target after the migration."""
        return self.state == PreviewState.VERIFIED and self.diff is not None and self.diff.is_empty

    @property
    def failed_statements(self) -> list[StatementOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "converged": self.converged,
            "diff": self.diff.to_dict() if self.diff is not None else None,
            "appliedScript": self.applied_script,
            "validationErrors": list(self.validation_errors),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "seedOutcomes": [outcome.to_dict() for outcome in self.seed_outcomes],
            "sandboxId": self.sandbox_id,
            "error": self.error,
        }


class PreviewOrchestrator:
    """Composes introspection, diffing, synthesis, validation and sandboxes."""

    def __init__(
        self,
        registry: SandboxRegistry | None = None,
        settings: Settings | None = None,
        validator: SQLValidator | None = None,
        synthesizer: DDLSynthesizer | None = None,
        introspector: PostgresIntrospector | None = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or SandboxRegistry()
        self.validator = validator or SQLValidator()
        self.synthesizer = synthesizer or DDLSynthesizer(
            include_security=self.settings.include_security,
            inline_columns=self.settings.inline_create_columns,
        )
        self.introspector = introspector or PostgresIntrospector(
            schema=self.settings.introspection_schema,
            include_security=self.settings.include_security,
        )

    async def _read(self, descriptor: SchemaDescriptor) -> DatabaseSchema:
        return await get_schema(descriptor, self.introspector)

    async def compare(
        self, source: SchemaDescriptor, target: SchemaDescriptor
    ) -> tuple[SchemaDiff, str]:
        """Diff two schemas and synthesize the migration between them.

        Raises:
            IntrospectionError: If either schema cannot be read.
        """
        source_schema = await self._read(source)
        target_schema = await self._read(target)
        diff = compare_schemas(source_schema, target_schema)
        script = self.synthesizer.render(self.synthesizer.generate(diff, target_schema))
        logger.info(
            "Schemas compared",
            tables_added=len(diff.tables_added),
            tables_removed=len(diff.tables_removed),
            tables_changed=len(diff.tables_diff),
        )
        return diff, script

    async def preview_changes(
        self,
        user_key: str,
        source: SchemaDescriptor,
        target: SchemaDescriptor,
        script: str | None = None,
    ) -> PreviewResult:
        """Dry-run a migration from ``source`` to ``target`` in the user's sandbox.

        Args:
            user_key: Owner of the sandbox.
            source: Schema the migration starts from.
            target: Schema the migration should arrive at.
            script: Candidate DDL. When omitted the migration is synthesized.

        Returns:
            PreviewResult: Never raises for engine failures; the result carries
            ``state=FAILED`` and a structured ``error`` instead. The sandbox is
            released whenever a preview fails after acquiring it.
        """
        result = PreviewResult()
        with LoggingContext(user_key=user_key):
            if script is not None:
                validation = self.validator.validate(script)
                if not validation.valid:
                    # Rejected scripts never reach a sandbox
                    result.state = PreviewState.FAILED
                    result.validation_errors = validation.errors
                    result.error = ValidationError(validation.errors).to_dict()
                    logger.info("Preview rejected by validation", errors=len(validation.errors))
                    return result

            try:
                await self._run(user_key, source, target, script, result)
            except SchemaDiffError as e:
                await self._fail(user_key, result, e.to_dict())
            except Exception as e:
                logger.exception("Unexpected preview failure")
                await self._fail(user_key, result, {"code": "internal_error", "detail": str(e)})
        return result

    async def _run(
        self,
        user_key: str,
        source: SchemaDescriptor,
        target: SchemaDescriptor,
        script: str | None,
        result: PreviewResult,
    ) -> None:
        sandbox = await self.registry.lease(user_key)
        result.sandbox_id = sandbox.sandbox_id
        result.state = PreviewState.SANDBOX_ACQUIRED

        with LoggingContext(sandbox_id=sandbox.sandbox_id, backend=sandbox.backend):
            source_schema = await self._read(source)
            target_schema = await self._read(target)

            # A reused sandbox may hold an earlier preview; reconcile it to the source
            current = await sandbox.introspect()
            seed = self.synthesizer.generate(compare_schemas(current, source_schema), source_schema)
            result.seed_outcomes = await sandbox.apply_statements(seed)
            result.state = PreviewState.SOURCE_SEEDED

            if script is None:
                statements = self.synthesizer.generate(
                    compare_schemas(source_schema, target_schema), target_schema
                )
                result.applied_script = self.synthesizer.render(statements)
            else:
                try:
                    statements = split_statements(script)
                except ParseError as e:
                    raise ValidationError([str(e)]) from e
                result.applied_script = script
            result.outcomes = await sandbox.apply_statements(statements)
            result.state = PreviewState.CANDIDATE_APPLIED

            actual = await sandbox.introspect()
            result.diff = compare_schemas(actual, target_schema)
            result.state = PreviewState.VERIFIED

            logger.info(
                "Preview verified",
                seeded=len(seed),
                applied=len(statements),
                failed=len(result.failed_statements),
                converged=result.converged,
            )

    async def _fail(self, user_key: str, result: PreviewResult, error: dict[str, Any]) -> None:
        logger.warning(
            "Preview failed",
            state=result.state.value,
            code=error.get("code"),
            detail=error.get("detail"),
        )
        result.state = PreviewState.FAILED
        result.error = error
        await self.registry.release(user_key)
