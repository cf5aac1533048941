"""
Pytest configuration and shared fixtures.
"""

import pytest
import httpx
from datetime import datetime, timezone

from secops_toolkit.core.collector import CategorySpec
from secops_toolkit.core.remote import open_session


@pytest.fixture
def tmp_workspace(tmp_path):
    """Create a temporary workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def make_session():
    """Build an HTTP session whose requests are answered by ``handler``."""
    def factory(handler, base_url="https://api.test"):
        return open_session(base_url, "test-token", transport=httpx.MockTransport(handler))
    return factory


@pytest.fixture
def fixed_now():
    return datetime(2024, 3, 8, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_alert_rules():
    """Analytic rules as returned by the rule-listing API."""
    return [
        {
            "id": "/subscriptions/sub/.../alertRules/11111111",
            "name": "11111111",
            "kind": "Scheduled",
            "properties": {
                "displayName": "Brute force: SSH (v2)",
                "enabled": True,
                "severity": "High",
                "query": "SigninLogs | where ResultType != 0",
                "queryFrequency": "PT1H",
                "triggerThreshold": 5,
                "tactics": ["CredentialAccess"],
            },
        },
        {
            "id": "/subscriptions/sub/.../alertRules/22222222",
            "name": "22222222",
            "kind": "Scheduled",
            "properties": {
                "displayName": "Rule/B",
                "enabled": False,
                "severity": "Medium",
                "query": "SecurityEvent | take 1",
                "triggerThreshold": 0,
            },
        },
        {
            "id": "/subscriptions/sub/.../alertRules/33333333",
            "name": "33333333",
            "kind": "Fusion",
            "properties": {
                "displayName": "Advanced Multistage Attack Detection",
                "enabled": True,
            },
        },
    ]


@pytest.fixture
def sample_signins():
    """Sign-in events as returned by the directory API."""
    return [
        {
            "id": "s1",
            "createdDateTime": "2024-03-07T09:15:00Z",
            "userPrincipalName": "alice@contoso.com",
            "appDisplayName": "Azure Portal",
            "clientAppUsed": "Browser",
            "riskLevelDuringSignIn": "high",
            "conditionalAccessStatus": "success",
            "resourceDisplayName": "Windows Azure Service Management API",
            "status": {"errorCode": 0, "failureReason": None},
            "ipAddress": "203.0.113.10",
            "deviceDetail": {"operatingSystem": "Windows 10", "browser": "Edge 122"},
            "authenticationRequirement": "multiFactorAuthentication",
        },
        {
            "id": "s2",
            "createdDateTime": "2024-03-06T22:01:30Z",
            "userPrincipalName": "bob@contoso.com",
            "appDisplayName": "Office 365 Exchange Online",
            "clientAppUsed": "IMAP4",
            "riskLevelDuringSignIn": "high",
            "conditionalAccessStatus": "failure",
            "resourceDisplayName": "Office 365 Exchange Online",
            "status": {"errorCode": 53003, "failureReason": "Blocked by Conditional Access"},
            "ipAddress": "198.51.100.7",
            "deviceDetail": {"operatingSystem": "", "browser": ""},
        },
    ]


@pytest.fixture
def fake_categories():
    """Categories that do not touch the host."""
    def ok_numbers(ctx):
        return [{"pid": 1, "cpu": 0.5, "name": "init", "nested": {"ports": [22, 443]}}]

    def ok_empty(ctx):
        return []

    def broken(ctx):
        raise PermissionError("access denied")

    def events(ctx):
        return [{"id": 4624, "message": "logon"}]

    return [
        CategorySpec("system-info", ok_numbers),
        CategorySpec("services", broken),
        CategorySpec("scheduled-tasks", ok_empty),
        CategorySpec("security-events", events, event_log=True),
    ]
