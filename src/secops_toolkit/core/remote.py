"""
Remote security-management API clients.

Each client performs one logical remote action over an already
authenticated ``httpx.Client``. Token acquisition happens elsewhere; the
caller passes a bearer token to ``open_session``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

import httpx

from secops_toolkit.core.reporter import sanitize_filename, write_json
from secops_toolkit.errors import (
    AmbiguousResult,
    OutputWriteFailed,
    PartialCollectionFailure,
    RemoteCallFailed,
)
from secops_toolkit.models.actions import (
    ActionOutcome,
    ActionRequest,
    ActionStatus,
    IsolationResult,
    RemoteResponse,
    RiskLevel,
    RuleExportResult,
    RuleExportSet,
    SignInEvent,
    SignInQuery,
    SignInQueryResult,
    WorkspaceRef,
)

logger = logging.getLogger(__name__)

# Written next to the exported rules, so no rule may take this name
EXPORT_SUMMARY_NAME = "export_summary"


def open_session(
    base_url: str,
    token: str,
    timeout: float = 60.0,
    user_agent: str = "secops-toolkit/0.1.0",
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Create an HTTP session that sends ``token`` as a bearer credential."""
    return httpx.Client(
        base_url=base_url.rstrip("/"),
        headers={
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": user_agent,
        },
        timeout=timeout,
        transport=transport,
    )


def format_timestamp(value: datetime) -> str:
    """Format a datetime as an OData UTC literal (``2024-01-31T08:00:00Z``)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def build_signin_filter(start: datetime, end: datetime, risk_level: RiskLevel) -> str:
    """
    Build the OData filter for a sign-in query.

    The time window is always present with inclusive bounds. A risk-level
    equality clause is added only when a level other than ``none`` is
    requested.
    """
    clauses = [
        f"createdDateTime ge {format_timestamp(start)}",
        f"createdDateTime le {format_timestamp(end)}",
    ]
    if risk_level != RiskLevel.NONE:
        clauses.append(f"riskLevelDuringSignIn eq '{risk_level.value}'")
    return " and ".join(clauses)


class RemoteActionInvoker:
    """
    Base class for remote API clients.

    Wraps every call so that transport, authentication and remote-side
    errors surface as ``RemoteCallFailed``. There is no retry.
    """

    def __init__(self, session: httpx.Client):
        self.session = session

    def request(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Issue one request and fail with ``RemoteCallFailed`` on error."""
        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            logger.error(f"{operation}: HTTP {status} {detail}")
            raise RemoteCallFailed(operation, f"HTTP {status} {detail}".strip()) from e
        except httpx.HTTPError as e:
            logger.error(f"{operation}: {e}")
            raise RemoteCallFailed(operation, e) from e
        return response

    def get_json(self, operation: str, url: str, **kwargs: Any) -> dict[str, Any]:
        """GET a JSON object."""
        response = self.request(operation, "GET", url, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteCallFailed(operation, "response body is not valid JSON") from e
        if not isinstance(data, dict):
            raise RemoteCallFailed(operation, "response body is not a JSON object")
        return data

    def paginate(
        self,
        operation: str,
        url: str,
        params: dict[str, str] | None = None,
        next_key: str = "nextLink",
    ) -> Iterator[dict[str, Any]]:
        """Yield every item of a paged ``value`` collection, following next links."""
        page = 0
        next_url: str | None = url
        while next_url:
            # Next links already carry the query string
            data = self.get_json(operation, next_url, params=params if page == 0 else None)
            page += 1
            items = data.get("value") or []
            logger.debug(f"{operation}: page {page} returned {len(items)} items")
            yield from items
            next_url = data.get(next_key)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "RemoteActionInvoker":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _error_detail(response: httpx.Response) -> str:
    """Extract the remote error message from an error response, if any."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or ""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message") or error.get("code") or ""
        if isinstance(error, str):
            return error
    return response.reason_phrase or ""


class DefenderClient(RemoteActionInvoker):
    """
    Client for the EDR machine-actions API.

    Example:
        ```python
        with DefenderClient(open_session(url, token)) as client:
            result = client.isolate_device(request)
        ```
    """

    def isolate_device(self, request: ActionRequest) -> IsolationResult:
        """
        Submit a single isolation request.

        A response carrying a request id is treated as success. A response
        without one is reported as ambiguous rather than assumed successful.
        """
        body = {
            "IsolationType": request.parameters["IsolationType"],
            "Comment": request.comment,
        }
        logger.info(f"Requesting {body['IsolationType']} isolation of {request.target_id}")

        response = self.request(
            "Isolate device",
            "POST",
            f"/api/machines/{request.target_id}/isolate",
            json=body,
        )

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            warning = AmbiguousResult(
                "Isolation response was not a JSON object; the request may or may not have been accepted",
                payload=response.text[:500],
            )
            logger.warning(str(warning))
            return IsolationResult(request=request, outcome=ActionOutcome.AMBIGUOUS, warning=warning)

        remote = RemoteResponse.from_payload(payload)

        if not remote.request_id:
            warning = AmbiguousResult(
                "Isolation response did not include a request id", payload=payload
            )
            logger.warning(str(warning))
            return IsolationResult(
                request=request,
                outcome=ActionOutcome.AMBIGUOUS,
                response=remote,
                warning=warning,
            )

        outcome = ActionOutcome.FAILED if remote.status == ActionStatus.FAILED else ActionOutcome.SUCCEEDED
        logger.info(f"Isolation request {remote.request_id} status: {remote.status.value}")
        return IsolationResult(request=request, outcome=outcome, response=remote)


class SentinelClient(RemoteActionInvoker):
    """Client for the SIEM analytic-rules API."""

    def __init__(self, session: httpx.Client, api_version: str = "2023-02-01"):
        super().__init__(session)
        self.api_version = api_version

    def list_alert_rules(self, workspace: WorkspaceRef) -> RuleExportSet:
        """List every analytic rule of a workspace."""
        url = (
            f"{workspace.workspace_id}"
            "/providers/Microsoft.SecurityInsights/alertRules"
        )
        rules = []
        for item in self.paginate("List analytic rules", url, params={"api-version": self.api_version}):
            rules.append((_rule_display_name(item), item))

        logger.info(f"Found {len(rules)} analytic rules in {workspace.workspace_name}")
        return RuleExportSet(workspace_id=workspace.workspace_id, rules=rules)

    def export_rules(self, workspace: WorkspaceRef, output_dir: Path) -> RuleExportResult:
        """
        Export every rule of a workspace to its own JSON file.

        The listing failing is fatal. A single rule failing to export is
        recorded and the remaining rules are still exported.
        """
        rule_set = self.list_alert_rules(workspace)
        result = RuleExportResult(
            workspace_id=rule_set.workspace_id,
            output_dir=output_dir,
            found=rule_set.total,
        )

        used_names: set[str] = {EXPORT_SUMMARY_NAME}
        for display_name, definition in rule_set.rules:
            path = output_dir / f"{_unique_stem(sanitize_filename(display_name), used_names)}.json"
            try:
                write_json(path, definition)
            except OutputWriteFailed as e:
                logger.warning(f"Failed to export rule '{display_name}': {e}")
                result.failures.append(PartialCollectionFailure(display_name, e))
                continue

            result.files.append(path)
            result.exported += 1
            logger.debug(f"Exported rule '{display_name}' to {path}")

        logger.info(f"Exported {result.exported} of {result.found} rules to {output_dir}")
        return result


def _rule_display_name(rule: dict[str, Any]) -> str:
    properties = rule.get("properties") or {}
    return properties.get("displayName") or rule.get("name") or rule.get("id") or "unnamed-rule"


def _unique_stem(stem: str, used: set[str]) -> str:
    """Return ``stem``, or ``stem_N`` if an earlier rule already took it."""
    candidate = stem
    n = 2
    while candidate.lower() in used:
        candidate = f"{stem}_{n}"
        n += 1
    used.add(candidate.lower())
    return candidate


class GraphSignInClient(RemoteActionInvoker):
    """Client for the directory sign-in log API."""

    def query_signins(self, query: SignInQuery) -> SignInQueryResult:
        """Return every sign-in event matching the query, across all pages."""
        expression = build_signin_filter(query.start, query.end, query.risk_level)
        logger.info(f"Querying sign-ins: {expression}")

        events = [
            SignInEvent.from_graph(item)
            for item in self.paginate(
                "Query sign-in logs",
                "/auditLogs/signIns",
                params={"$filter": expression},
                next_key="@odata.nextLink",
            )
        ]

        logger.info(f"Retrieved {len(events)} sign-in events")
        return SignInQueryResult(query=query, filter_expression=expression, events=events)
