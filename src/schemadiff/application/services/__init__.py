"""Application services."""

from schemadiff.application.services.preview_service import (
    PreviewOrchestrator,
    PreviewResult,
    PreviewState,
)

__all__ = ["PreviewOrchestrator", "PreviewResult", "PreviewState"]
