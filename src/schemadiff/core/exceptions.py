"""Error taxonomy for schema introspection, validation and sandbox previews."""


class SchemaDiffError(Exception):
    """Base class for all engine errors.

    Attributes:
        code: Machine-readable error code.
        detail: Human-readable description.
    """

    code = "schemadiff_error"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "detail": self.detail}


class IntrospectionError(SchemaDiffError):
    """Raised when a schema cannot be read from a database or sandbox."""

    code = "introspection_error"


class ValidationError(SchemaDiffError):
    """Raised when a candidate DDL script is rejected."""

    code = "validation_error"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid DDL script")

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "detail": self.detail, "errors": self.errors}


class ApplyError(SchemaDiffError):
    """Raised when a DDL statement fails against a sandbox."""

    code = "apply_error"

    def __init__(self, detail: str, statement: str | None = None):
        self.statement = statement
        super().__init__(detail)

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "detail": self.detail, "statement": self.statement}


class ProvisioningError(SchemaDiffError):
    """Raised when a sandbox cannot be created."""

    code = "provisioning_error"
