"""Exceptions raised while executing DDL against the in-memory catalog."""


class DDLError(Exception):
    """Base class for all DDL-related errors."""
    pass


class DDLSyntaxError(DDLError):
    """Raised when a statement cannot be parsed."""
    def __init__(self, message: str, position: int | None = None):
        self.position = position
        super().__init__(f"{message} at position {position}" if position is not None else message)


class UnsupportedStatementError(DDLError):
    """Raised for statements the in-memory engine does not model."""
    pass


class DDLExecutionError(DDLError):
    """Raised when a parsed statement cannot be applied to the catalog."""
    pass
