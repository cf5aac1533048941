"""
Core pipeline stages: validation, remote actions, collection, reporting.
"""

from secops_toolkit.core.validation import ParameterValidator
from secops_toolkit.core.remote import (
    RemoteActionInvoker,
    DefenderClient,
    SentinelClient,
    GraphSignInClient,
    open_session,
)
from secops_toolkit.core.collector import ArtifactCollector
from secops_toolkit.core.reporter import ResultReporter

__all__ = [
    "ParameterValidator",
    "RemoteActionInvoker",
    "DefenderClient",
    "SentinelClient",
    "GraphSignInClient",
    "open_session",
    "ArtifactCollector",
    "ResultReporter",
]
