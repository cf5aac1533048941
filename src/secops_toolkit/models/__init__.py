"""
Data models for remote actions and collected evidence.
"""

from secops_toolkit.models.actions import (
    ActionOutcome,
    ActionRequest,
    ActionStatus,
    IsolationResult,
    IsolationType,
    RemoteResponse,
    RiskLevel,
    RuleExportResult,
    RuleExportSet,
    SignInEvent,
    SignInQuery,
    SignInQueryResult,
    WorkspaceRef,
    SIGNIN_COLUMNS,
)
from secops_toolkit.models.evidence import (
    ArtifactRecord,
    CategoryResult,
    CategoryStatus,
    EvidenceBundle,
)

__all__ = [
    # Actions
    "ActionOutcome",
    "ActionRequest",
    "ActionStatus",
    "IsolationResult",
    "IsolationType",
    "RemoteResponse",
    "RiskLevel",
    "RuleExportResult",
    "RuleExportSet",
    "SignInEvent",
    "SignInQuery",
    "SignInQueryResult",
    "WorkspaceRef",
    "SIGNIN_COLUMNS",
    # Evidence
    "ArtifactRecord",
    "CategoryResult",
    "CategoryStatus",
    "EvidenceBundle",
]
