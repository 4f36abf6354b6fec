"""Domain services for schemadiff.

Services contain the pure schema logic: comparison, DDL generation and
script validation. They have no dependencies on databases or containers.
"""

from schemadiff.domain.services.ddl_synthesizer import DDLSynthesizer, generate_psql, quote_ident
from schemadiff.domain.services.schema_comparator import compare_schemas, compare_tables
from schemadiff.domain.services.sql_validator import (
    SQLValidator,
    ValidationResult,
    split_statements,
    validate_ddl,
)
from schemadiff.domain.services.type_normalizer import normalize_type, takes_length

__all__ = [
    "DDLSynthesizer",
    "SQLValidator",
    "ValidationResult",
    "compare_schemas",
    "compare_tables",
    "generate_psql",
    "normalize_type",
    "quote_ident",
    "split_statements",
    "takes_length",
    "validate_ddl",
]
