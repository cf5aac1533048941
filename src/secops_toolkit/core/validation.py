"""
Input validation for every command.

All checks here run before any network or OS call. Enumerated values and
identifiers are pure checks; only the output-path helpers touch the
filesystem (create-if-absent).
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import TypeVar

from secops_toolkit.errors import InvalidArgument, PathUnavailable
from secops_toolkit.models.actions import (
    ActionRequest,
    IsolationType,
    RiskLevel,
    SignInQuery,
    WorkspaceRef,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9._()\-]+$")
MAX_COMMENT_LENGTH = 1000
MAX_DAYS_BACK = 30


class ParameterValidator:
    """
    Validates raw command input into typed parameter sets.

    Example:
        ```python
        validator = ParameterValidator()
        request = validator.validate_isolation("abc123", "full", None)
        request.parameters["IsolationType"]  # "Full"
        ```
    """

    def identifier(self, field: str, value: str | None) -> str:
        """Check a resource identifier that will be embedded in a URL path."""
        if value is None or not value.strip():
            raise InvalidArgument(field, "a value is required")

        value = value.strip()
        if not IDENTIFIER_PATTERN.match(value):
            raise InvalidArgument(
                field, f"'{value}' contains characters outside [A-Za-z0-9._()-]"
            )
        return value

    def choice(self, field: str, value: str | None, allowed: type[E]) -> E:
        """Match ``value`` case-insensitively against an enumeration."""
        options = [member.value for member in allowed]
        if value is not None:
            for member in allowed:
                if member.value.lower() == value.strip().lower():
                    return member

        raise InvalidArgument(
            field, f"'{value}' is not one of {', '.join(options)}"
        )

    def token(self, value: str | None, env_var: str) -> str:
        """Check that a pre-acquired access token was supplied."""
        if value is None or not value.strip():
            raise InvalidArgument("token", f"pass --token or set {env_var}")
        return value.strip()

    def comment(self, value: str | None) -> str | None:
        """Normalize an optional free-text comment."""
        if value is None:
            return None

        value = value.strip()
        if not value:
            return None
        if len(value) > MAX_COMMENT_LENGTH:
            raise InvalidArgument(
                "comment", f"must be at most {MAX_COMMENT_LENGTH} characters"
            )
        return value

    def days_back(self, value: int | str | None) -> int:
        """Check the size of a look-back window in days."""
        try:
            days = int(value)
        except (TypeError, ValueError):
            raise InvalidArgument("days_back", f"'{value}' is not an integer")

        if days < 1 or days > MAX_DAYS_BACK:
            raise InvalidArgument(
                "days_back", f"must be between 1 and {MAX_DAYS_BACK}, got {days}"
            )
        return days

    def output_directory(self, value: str | Path | None, field: str = "output_dir") -> Path:
        """Return an existing directory, creating it if absent."""
        if value is None or not str(value).strip():
            raise InvalidArgument(field, "a directory is required")

        path = Path(value).expanduser()
        if path.exists() and not path.is_dir():
            raise PathUnavailable(path, NotADirectoryError(f"{path} is not a directory"))

        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PathUnavailable(path, e) from e

        logger.debug(f"Output directory ready: {path}")
        return path

    def output_file(self, value: str | Path | None, field: str = "output") -> Path | None:
        """Return a file path whose parent directory exists."""
        if value is None or not str(value).strip():
            return None

        path = Path(value).expanduser()
        if path.is_dir():
            raise InvalidArgument(field, f"{path} is a directory")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PathUnavailable(path.parent, e) from e
        return path

    # ------------------------------------------------------------------
    # Per-command parameter sets
    # ------------------------------------------------------------------

    def validate_isolation(
        self,
        machine_id: str | None,
        isolation_type: str | None,
        comment: str | None = None,
    ) -> ActionRequest:
        """Validate input for a device isolation request."""
        mode = self.choice("isolation_type", isolation_type, IsolationType)
        target = self.identifier("machine_id", machine_id)

        return ActionRequest(
            target_id=target,
            parameters={"IsolationType": mode.value},
            comment=self.comment(comment),
        )

    def validate_rule_export(
        self,
        subscription_id: str | None,
        resource_group: str | None,
        workspace_name: str | None,
        output_dir: str | Path | None,
    ) -> tuple[WorkspaceRef, Path]:
        """Validate input for an analytic rule export."""
        workspace = WorkspaceRef(
            subscription_id=self.identifier("subscription_id", subscription_id),
            resource_group=self.identifier("resource_group", resource_group),
            workspace_name=self.identifier("workspace", workspace_name),
        )
        return workspace, self.output_directory(output_dir)

    def validate_signin_query(
        self,
        days_back: int | str | None,
        risk_level: str | None,
        output: str | Path | None = None,
        now: datetime | None = None,
    ) -> SignInQuery:
        """Validate input for a sign-in log query."""
        level = self.choice("risk_level", risk_level, RiskLevel)
        days = self.days_back(days_back)

        end = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        start = end - timedelta(days=days)

        return SignInQuery(
            start=start,
            end=end,
            risk_level=level,
            output=self.output_file(output),
        )

    def validate_collection(
        self,
        output_dir: str | Path | None,
        max_events: int | str | None,
    ) -> tuple[Path, int]:
        """Validate input for host artifact collection."""
        try:
            events = int(max_events)
        except (TypeError, ValueError):
            raise InvalidArgument("max_events", f"'{max_events}' is not an integer")
        if events < 1:
            raise InvalidArgument("max_events", "must be at least 1")

        return self.output_directory(output_dir), events
