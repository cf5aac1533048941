"""
Data models for remote security-management actions.

These models describe the requests sent to the EDR, SIEM and directory
APIs and the shape of what comes back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from secops_toolkit.errors import AmbiguousResult, PartialCollectionFailure


class IsolationType(str, Enum):
    """Isolation modes accepted by the EDR isolation endpoint."""

    FULL = "Full"
    SELECTIVE = "Selective"


class RiskLevel(str, Enum):
    """Sign-in risk levels."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ActionStatus(str, Enum):
    """Normalized status of a remote action."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def from_remote(cls, value: Any) -> "ActionStatus":
        """Map a status string reported by the remote system."""
        if not isinstance(value, str):
            return cls.UNKNOWN

        normalized = value.strip().lower()
        if normalized in ("pending", "inprogress", "in_progress", "queued"):
            return cls.PENDING
        if normalized in ("succeeded", "success", "completed"):
            return cls.SUCCEEDED
        if normalized in ("failed", "timeout", "cancelled", "canceled"):
            return cls.FAILED
        return cls.UNKNOWN


class ActionOutcome(str, Enum):
    """Tri-state outcome of a submitted action."""

    SUCCEEDED = "succeeded"
    AMBIGUOUS = "ambiguous"
    FAILED = "failed"


class ActionRequest(BaseModel):
    """
    A validated request for one remote action.

    Built from validated input and never modified afterwards.
    """

    model_config = ConfigDict(frozen=True)

    target_id: str = Field(description="Identifier of the target (machine id, workspace, ...)")
    parameters: dict[str, str] = Field(default_factory=dict, description="Action-specific parameters")
    comment: str | None = Field(default=None, description="Optional free-text comment")


class RemoteResponse(BaseModel):
    """Response returned by a remote security-management API."""

    request_id: str | None = None
    status: ActionStatus = ActionStatus.UNKNOWN
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(
        cls,
        payload: dict[str, Any],
        id_field: str = "id",
        status_field: str = "status",
    ) -> "RemoteResponse":
        """Build a response from a decoded JSON object."""
        request_id = payload.get(id_field)
        return cls(
            request_id=str(request_id) if request_id else None,
            status=ActionStatus.from_remote(payload.get(status_field)),
            extra={k: v for k, v in payload.items() if k not in (id_field, status_field)},
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "request_id": self.request_id,
            "status": self.status.value,
            **self.extra,
        }


@dataclass
class IsolationResult:
    """Result of a device isolation request."""

    request: ActionRequest
    outcome: ActionOutcome
    response: RemoteResponse | None = None
    warning: AmbiguousResult | None = None

    @property
    def isolation_type(self) -> str:
        """Isolation mode that was requested."""
        return self.request.parameters.get("IsolationType", "")


class WorkspaceRef(BaseModel):
    """Reference to a SIEM (Sentinel) workspace."""

    model_config = ConfigDict(frozen=True)

    subscription_id: str
    resource_group: str
    workspace_name: str

    @property
    def workspace_id(self) -> str:
        """Resource path of the workspace."""
        return (
            f"/subscriptions/{self.subscription_id}"
            f"/resourceGroups/{self.resource_group}"
            f"/providers/Microsoft.OperationalInsights/workspaces/{self.workspace_name}"
        )


@dataclass
class RuleExportSet:
    """Analytic rules listed from one workspace, in listing order."""

    workspace_id: str
    rules: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.rules)


@dataclass
class RuleExportResult:
    """Outcome of exporting every rule of a workspace."""

    workspace_id: str
    output_dir: Path
    found: int = 0
    exported: int = 0
    files: list[Path] = field(default_factory=list)
    failures: list[PartialCollectionFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict[str, Any]:
        """Summary suitable for JSON serialization."""
        return {
            "workspace_id": self.workspace_id,
            "output_dir": str(self.output_dir),
            "found": self.found,
            "exported": self.exported,
            "failed": [
                {"rule": f.item, "error": str(f.cause)} for f in self.failures
            ],
            "files": [p.name for p in self.files],
        }


class SignInQuery(BaseModel):
    """Validated sign-in log query."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    risk_level: RiskLevel = RiskLevel.NONE
    output: Path | None = None

    @property
    def days_back(self) -> int:
        return (self.end - self.start).days


# Column order for sign-in CSV output
SIGNIN_COLUMNS = [
    "createdDateTime",
    "userPrincipalName",
    "appDisplayName",
    "clientAppUsed",
    "riskLevelDuringSignIn",
    "conditionalAccessStatus",
    "mfaDetail",
    "resourceDisplayName",
    "status",
    "ipAddress",
    "deviceDetail",
]


class SignInEvent(BaseModel):
    """
    A single directory sign-in event.

    Field names follow the Graph ``signIn`` resource so that records
    round-trip through JSON and CSV with their original keys.
    """

    model_config = ConfigDict(populate_by_name=True)

    created: datetime | None = Field(default=None, alias="createdDateTime")
    user_principal_name: str | None = Field(default=None, alias="userPrincipalName")
    app_display_name: str | None = Field(default=None, alias="appDisplayName")
    client_app_used: str | None = Field(default=None, alias="clientAppUsed")
    risk_level: str | None = Field(default=None, alias="riskLevelDuringSignIn")
    conditional_access_status: str | None = Field(default=None, alias="conditionalAccessStatus")
    mfa_detail: dict[str, Any] | None = Field(default=None, alias="mfaDetail")
    resource_display_name: str | None = Field(default=None, alias="resourceDisplayName")
    status: dict[str, Any] | None = None
    ip_address: str | None = Field(default=None, alias="ipAddress")
    device_detail: dict[str, Any] | None = Field(default=None, alias="deviceDetail")

    @classmethod
    def from_graph(cls, item: dict[str, Any]) -> "SignInEvent":
        """Build an event from a Graph ``signIn`` object."""
        mfa = item.get("mfaDetail")
        if mfa is None and item.get("authenticationRequirement"):
            mfa = {"authenticationRequirement": item["authenticationRequirement"]}

        return cls.model_validate({
            "createdDateTime": item.get("createdDateTime"),
            "userPrincipalName": item.get("userPrincipalName"),
            "appDisplayName": item.get("appDisplayName"),
            "clientAppUsed": item.get("clientAppUsed"),
            "riskLevelDuringSignIn": item.get("riskLevelDuringSignIn"),
            "conditionalAccessStatus": item.get("conditionalAccessStatus"),
            "mfaDetail": mfa,
            "resourceDisplayName": item.get("resourceDisplayName"),
            "status": item.get("status"),
            "ipAddress": item.get("ipAddress"),
            "deviceDetail": item.get("deviceDetail"),
        })

    @property
    def succeeded(self) -> bool:
        """Whether the sign-in completed without an error code."""
        return bool(self.status) and self.status.get("errorCode", 0) == 0

    def to_row(self) -> dict[str, Any]:
        """Flatten into one CSV row keyed by ``SIGNIN_COLUMNS``."""
        return {
            "createdDateTime": self.created.isoformat() if self.created else None,
            "userPrincipalName": self.user_principal_name,
            "appDisplayName": self.app_display_name,
            "clientAppUsed": self.client_app_used,
            "riskLevelDuringSignIn": self.risk_level,
            "conditionalAccessStatus": self.conditional_access_status,
            "mfaDetail": _flatten(self.mfa_detail),
            "resourceDisplayName": self.resource_display_name,
            "status": _flatten(self.status),
            "ipAddress": self.ip_address,
            "deviceDetail": _flatten(self.device_detail),
        }


def _flatten(value: dict[str, Any] | None) -> str | None:
    """Render a nested object as ``key=value; key=value``."""
    if not value:
        return None
    return "; ".join(f"{k}={v}" for k, v in value.items() if v not in (None, ""))


@dataclass
class SignInQueryResult:
    """Events returned for one sign-in query."""

    query: SignInQuery
    filter_expression: str
    events: list[SignInEvent] = field(default_factory=list)
    output_path: Path | None = None

    @property
    def total(self) -> int:
        return len(self.events)

    def count_by(self, attribute: str) -> dict[str, int]:
        """Count events grouped by an attribute, most frequent first."""
        counts: dict[str, int] = {}
        for event in self.events:
            key = getattr(event, attribute) or "unknown"
            counts[key] = counts.get(key, 0) + 1
        return dict(sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])))
