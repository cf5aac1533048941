# SecOps Toolkit - Source Package
"""
SecOps Toolkit - incident response helpers for cloud security operations.

This package isolates endpoints through the EDR API, collects host triage
packages, exports SIEM analytic rules and queries sign-in risk logs, each
as a validate, act, report pipeline.
"""

from secops_toolkit.core.collector import ArtifactCollector
from secops_toolkit.core.remote import DefenderClient, GraphSignInClient, SentinelClient
from secops_toolkit.core.validation import ParameterValidator
from secops_toolkit.models.evidence import EvidenceBundle

__version__ = "0.1.0"
__all__ = [
    "ArtifactCollector",
    "DefenderClient",
    "GraphSignInClient",
    "SentinelClient",
    "ParameterValidator",
    "EvidenceBundle",
]
