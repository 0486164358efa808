"""Shared utilities: enums, telemetry, and cross-cutting helpers.

Used by domain, application, and infrastructure. No business logic.
"""

from autoflow.shared.cancellation import CancellationToken
from autoflow.shared.enums import ExecutionStatus, StepStatus
from autoflow.shared.utils import ensure_utc, generate_cuid, utc_now

__all__ = [
    "CancellationToken",
    "ExecutionStatus",
    "StepStatus",
    "generate_cuid",
    "utc_now",
    "ensure_utc",
]
