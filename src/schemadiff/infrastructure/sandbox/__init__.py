"""Preview sandboxes: disposable per-user databases."""

from schemadiff.infrastructure.sandbox.base import PreviewSandbox, StatementOutcome
from schemadiff.infrastructure.sandbox.container import ContainerSandbox, PortAllocator
from schemadiff.infrastructure.sandbox.hybrid import HybridSandbox
from schemadiff.infrastructure.sandbox.memory import InMemorySandbox
from schemadiff.infrastructure.sandbox.provisioner import SandboxProvisioner
from schemadiff.infrastructure.sandbox.registry import SandboxRegistry

__all__ = [
    "ContainerSandbox",
    "HybridSandbox",
    "InMemorySandbox",
    "PortAllocator",
    "PreviewSandbox",
    "SandboxProvisioner",
    "SandboxRegistry",
    "StatementOutcome",
]
