"""Application interfaces (ports): repository and service protocols.

Define contracts for infrastructure implementations (DIP).
No runtime imports from autoflow.infrastructure.
"""

from autoflow.application.interfaces.repositories import (
    IExecutionRepository,
    IPermissionRepository,
    IWorkflowRepository,
    IWorkflowVersionRepository,
)
from autoflow.application.interfaces.services import (
    IActionHandler,
    INodeTypeCatalog,
    ISuggestionProvider,
)

__all__ = [
    "IActionHandler",
    "IExecutionRepository",
    "INodeTypeCatalog",
    "IPermissionRepository",
    "ISuggestionProvider",
    "IWorkflowRepository",
    "IWorkflowVersionRepository",
]
