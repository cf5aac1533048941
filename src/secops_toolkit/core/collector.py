"""
Host artifact collector.

Enumerates a fixed, ordered set of artifact categories from the local host
and writes each one to its own JSON file, followed by a manifest. A
category that fails is recorded as failed and leaves no output file; the
remaining categories are still collected.
"""

from __future__ import annotations

import getpass
import json
import logging
import os
import platform
import shutil
import socket
import subprocess
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import psutil

from secops_toolkit.core.reporter import sanitize_filename, write_json
from secops_toolkit.errors import (
    InsufficientPrivilege,
    OutputWriteFailed,
    PartialCollectionFailure,
    PathUnavailable,
)
from secops_toolkit.models.evidence import (
    ArtifactRecord,
    CategoryResult,
    CategoryStatus,
    EvidenceBundle,
)

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"
IS_LINUX = sys.platform.startswith("linux")

COMMAND_TIMEOUT = 300


class CategoryUnavailable(Exception):
    """The category cannot be collected on this platform."""


# Expected per-category failures, logged without a traceback
CATEGORY_ERRORS = (
    CategoryUnavailable,
    OSError,
    ValueError,
    KeyError,
    psutil.Error,
    subprocess.SubprocessError,
    OutputWriteFailed,
)


def is_elevated() -> bool:
    """Check if running with root/Administrator privileges."""
    if IS_WINDOWS:
        try:
            import ctypes
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except (AttributeError, OSError):
            return False
    return os.geteuid() == 0


@dataclass
class CollectionContext:
    """Parameters shared by every category."""

    now: datetime
    max_events: int = 1000
    recent_days: int = 7
    recent_paths: list[str] = field(default_factory=list)


@dataclass
class CategorySpec:
    """One artifact category and the function that enumerates it."""

    name: str
    collect: Callable[[CollectionContext], list[dict[str, Any]]]
    event_log: bool = False


# =========================================================================
# PLATFORM HELPERS
# =========================================================================

def _run(args: list[str], timeout: int = COMMAND_TIMEOUT) -> str:
    """Run a command and return its stdout."""
    logger.debug(f"Running: {' '.join(args)}")
    result = subprocess.run(
        args,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=True,
    )
    return result.stdout


def _powershell_json(script: str) -> list[dict[str, Any]]:
    """Run a PowerShell pipeline and decode its output as a list of objects."""
    output = _run([
        "powershell", "-NoProfile", "-NonInteractive", "-Command",
        f"{script} | ConvertTo-Json -Depth 3 -Compress",
    ])
    if not output.strip():
        return []

    data = json.loads(output)
    if isinstance(data, dict):
        return [data]
    return list(data)


def _iso(timestamp: float | None) -> str | None:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _journal(max_events: int, *matches: str) -> list[dict[str, Any]]:
    """Read the newest journal entries, optionally restricted by field matches."""
    output = _run(["journalctl", "-n", str(max_events), "-o", "json", "--no-pager", *matches])
    rows = []
    for line in output.splitlines():
        if not line.strip():
            continue
        entry = json.loads(line)
        realtime = entry.get("__REALTIME_TIMESTAMP")
        rows.append({
            "time": _iso(int(realtime) / 1_000_000) if realtime else None,
            "host": entry.get("_HOSTNAME"),
            "identifier": entry.get("SYSLOG_IDENTIFIER"),
            "priority": int(entry["PRIORITY"]) if str(entry.get("PRIORITY", "")).isdigit() else None,
            "pid": int(entry["_PID"]) if str(entry.get("_PID", "")).isdigit() else None,
            "message": entry.get("MESSAGE"),
        })
    return rows


def _win_events(log_name: str, max_events: int) -> list[dict[str, Any]]:
    return _powershell_json(
        f"Get-WinEvent -LogName {log_name} -MaxEvents {max_events} | Select-Object "
        "@{n='TimeCreated';e={$_.TimeCreated.ToString('o')}}, Id, LevelDisplayName, ProviderName, Message"
    )


# =========================================================================
# CATEGORIES
# =========================================================================

def collect_system_info(ctx: CollectionContext) -> list[dict[str, Any]]:
    uname = platform.uname()
    memory = psutil.virtual_memory()
    return [{
        "hostname": socket.gethostname(),
        "fqdn": socket.getfqdn(),
        "os": uname.system,
        "os_release": uname.release,
        "os_version": uname.version,
        "machine": uname.machine,
        "processor": uname.processor,
        "boot_time": _iso(psutil.boot_time()),
        "cpu_count": psutil.cpu_count(),
        "memory_total": memory.total,
        "memory_available": memory.available,
        "current_user": getpass.getuser(),
        "collected_at": ctx.now.isoformat(),
    }]


def collect_processes(ctx: CollectionContext) -> list[dict[str, Any]]:
    rows = []
    for proc in psutil.process_iter(
        ["pid", "ppid", "name", "exe", "cmdline", "username", "create_time", "status"]
    ):
        info = dict(proc.info)
        info["cmdline"] = " ".join(info["cmdline"]) if info.get("cmdline") else ""
        info["create_time"] = _iso(info.get("create_time"))
        rows.append(info)
    return sorted(rows, key=lambda r: r["pid"])


def _connection_rows() -> list[dict[str, Any]]:
    names: dict[int, str | None] = {}
    rows = []
    for conn in psutil.net_connections(kind="inet"):
        protocol = "tcp" if conn.type == socket.SOCK_STREAM else "udp"
        if conn.family == socket.AF_INET6:
            protocol += "6"

        if conn.pid and conn.pid not in names:
            try:
                names[conn.pid] = psutil.Process(conn.pid).name()
            except psutil.Error:
                names[conn.pid] = None

        rows.append({
            "protocol": protocol,
            "local_address": conn.laddr.ip if conn.laddr else None,
            "local_port": conn.laddr.port if conn.laddr else None,
            "remote_address": conn.raddr.ip if conn.raddr else None,
            "remote_port": conn.raddr.port if conn.raddr else None,
            "state": conn.status,
            "pid": conn.pid,
            "process": names.get(conn.pid) if conn.pid else None,
        })
    return rows


def collect_network_connections(ctx: CollectionContext) -> list[dict[str, Any]]:
    return _connection_rows()


def collect_listening_ports(ctx: CollectionContext) -> list[dict[str, Any]]:
    rows = [
        r for r in _connection_rows()
        if r["state"] == psutil.CONN_LISTEN
        or (r["protocol"].startswith("udp") and r["remote_address"] is None)
    ]
    return sorted(rows, key=lambda r: (r["protocol"], r["local_port"] or 0))


def collect_services(ctx: CollectionContext) -> list[dict[str, Any]]:
    if IS_WINDOWS:
        rows = []
        for service in psutil.win_service_iter():
            try:
                rows.append(service.as_dict())
            except psutil.Error as e:
                logger.debug(f"Skipping service {service.name()}: {e}")
        return rows

    if IS_LINUX and shutil.which("systemctl"):
        output = _run([
            "systemctl", "list-units", "--type=service", "--all",
            "--no-pager", "--plain", "--no-legend",
        ])
        rows = []
        for line in output.splitlines():
            parts = line.split(None, 4)
            if len(parts) < 4:
                continue
            rows.append({
                "name": parts[0],
                "load": parts[1],
                "active": parts[2],
                "sub": parts[3],
                "description": parts[4] if len(parts) > 4 else "",
            })
        return rows

    raise CategoryUnavailable("no service manager interface available")


def collect_installed_software(ctx: CollectionContext) -> list[dict[str, Any]]:
    if IS_WINDOWS:
        return _powershell_json(
            "Get-ItemProperty "
            "'HKLM:\\Software\\Microsoft\\Windows\\CurrentVersion\\Uninstall\\*',"
            "'HKLM:\\Software\\Wow6432Node\\Microsoft\\Windows\\CurrentVersion\\Uninstall\\*' "
            "-ErrorAction SilentlyContinue | Where-Object DisplayName | "
            "Select-Object DisplayName, DisplayVersion, Publisher, InstallDate, InstallLocation"
        )

    if shutil.which("dpkg-query"):
        output = _run(["dpkg-query", "-W", "-f=${Package}\t${Version}\t${Architecture}\n"])
    elif shutil.which("rpm"):
        output = _run(["rpm", "-qa", "--queryformat", "%{NAME}\t%{VERSION}-%{RELEASE}\t%{ARCH}\n"])
    else:
        raise CategoryUnavailable("no supported package manager found")

    rows = []
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) == 3:
            rows.append({"name": parts[0], "version": parts[1], "architecture": parts[2]})
    return sorted(rows, key=lambda r: r["name"])


CRON_LOCATIONS = ["/etc/crontab", "/etc/cron.d", "/var/spool/cron", "/var/spool/cron/crontabs"]


def collect_scheduled_tasks(ctx: CollectionContext) -> list[dict[str, Any]]:
    if IS_WINDOWS:
        return _powershell_json(
            "Get-ScheduledTask | Select-Object TaskName, TaskPath, "
            "@{n='State';e={$_.State.ToString()}}, Author, "
            "@{n='Actions';e={($_.Actions | ForEach-Object { $_.Execute + ' ' + $_.Arguments }) -join '; '}}"
        )

    rows = []
    for location in map(Path, CRON_LOCATIONS):
        if location.is_dir():
            files = sorted(p for p in location.iterdir() if p.is_file())
        elif location.is_file():
            files = [location]
        else:
            continue

        for path in files:
            for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
                line = line.strip()
                if line and not line.startswith("#"):
                    rows.append({"source": str(path), "entry": line})
    return rows


def collect_user_accounts(ctx: CollectionContext) -> list[dict[str, Any]]:
    if IS_WINDOWS:
        return _powershell_json(
            "Get-LocalUser | Select-Object Name, Enabled, Description, "
            "@{n='SID';e={$_.SID.Value}}, "
            "@{n='LastLogon';e={if ($_.LastLogon) { $_.LastLogon.ToString('o') }}}, "
            "@{n='PasswordLastSet';e={if ($_.PasswordLastSet) { $_.PasswordLastSet.ToString('o') }}}"
        )

    import pwd

    logged_in = {u.name for u in psutil.users()}
    return [
        {
            "username": entry.pw_name,
            "uid": entry.pw_uid,
            "gid": entry.pw_gid,
            "home": entry.pw_dir,
            "shell": entry.pw_shell,
            "gecos": entry.pw_gecos,
            "logged_in": entry.pw_name in logged_in,
        }
        for entry in pwd.getpwall()
    ]


def collect_network_adapters(ctx: CollectionContext) -> list[dict[str, Any]]:
    families = {
        socket.AF_INET: "IPv4",
        socket.AF_INET6: "IPv6",
        psutil.AF_LINK: "MAC",
    }
    stats = psutil.net_if_stats()
    rows = []
    for name, addresses in sorted(psutil.net_if_addrs().items()):
        stat = stats.get(name)
        rows.append({
            "name": name,
            "is_up": stat.isup if stat else None,
            "speed_mbps": stat.speed if stat else None,
            "mtu": stat.mtu if stat else None,
            "addresses": [
                {
                    "family": families.get(addr.family, str(addr.family)),
                    "address": addr.address,
                    "netmask": addr.netmask,
                    "broadcast": addr.broadcast,
                }
                for addr in addresses
            ],
        })
    return rows


def collect_system_events(ctx: CollectionContext) -> list[dict[str, Any]]:
    if IS_WINDOWS:
        return _win_events("System", ctx.max_events)
    if IS_LINUX and shutil.which("journalctl"):
        return _journal(ctx.max_events)
    raise CategoryUnavailable("no event log interface available")


def collect_security_events(ctx: CollectionContext) -> list[dict[str, Any]]:
    if IS_WINDOWS:
        return _win_events("Security", ctx.max_events)
    if IS_LINUX and shutil.which("journalctl"):
        # auth and authpriv facilities
        return _journal(ctx.max_events, "SYSLOG_FACILITY=4", "SYSLOG_FACILITY=10")
    raise CategoryUnavailable("no event log interface available")


def collect_disk_volumes(ctx: CollectionContext) -> list[dict[str, Any]]:
    rows = []
    for part in psutil.disk_partitions(all=False):
        row = {
            "device": part.device,
            "mountpoint": part.mountpoint,
            "fstype": part.fstype,
            "options": part.opts,
            "total": None,
            "used": None,
            "free": None,
            "percent": None,
        }
        try:
            usage = psutil.disk_usage(part.mountpoint)
            row.update(total=usage.total, used=usage.used, free=usage.free, percent=usage.percent)
        except OSError as e:
            logger.debug(f"No usage for {part.mountpoint}: {e}")
        rows.append(row)
    return rows


def default_recent_paths() -> list[str]:
    if IS_WINDOWS:
        appdata = os.environ.get("APPDATA", "")
        return [str(Path(appdata) / "Microsoft" / "Windows" / "Recent")]
    return [str(Path.home()), "/tmp"]


def collect_recent_files(ctx: CollectionContext) -> list[dict[str, Any]]:
    cutoff = (ctx.now - timedelta(days=ctx.recent_days)).timestamp()
    rows = []
    for directory in map(Path, ctx.recent_paths or default_recent_paths()):
        if not directory.is_dir():
            logger.debug(f"Recent-file location not found: {directory}")
            continue

        for entry in os.scandir(directory):
            if not entry.is_file(follow_symlinks=False):
                continue
            st = entry.stat(follow_symlinks=False)
            if st.st_mtime < cutoff:
                continue
            rows.append({
                "path": entry.path,
                "size": st.st_size,
                "modified": _iso(st.st_mtime),
                "accessed": _iso(st.st_atime),
                "changed": _iso(st.st_ctime),
                "is_shortcut": entry.name.lower().endswith(".lnk"),
            })
    return sorted(rows, key=lambda r: r["modified"] or "", reverse=True)


DEFAULT_CATEGORIES = [
    CategorySpec("system-info", collect_system_info),
    CategorySpec("processes", collect_processes),
    CategorySpec("network-connections", collect_network_connections),
    CategorySpec("listening-ports", collect_listening_ports),
    CategorySpec("services", collect_services),
    CategorySpec("installed-software", collect_installed_software),
    CategorySpec("scheduled-tasks", collect_scheduled_tasks),
    CategorySpec("user-accounts", collect_user_accounts),
    CategorySpec("network-adapters", collect_network_adapters),
    CategorySpec("system-events", collect_system_events, event_log=True),
    CategorySpec("security-events", collect_security_events, event_log=True),
    CategorySpec("disk-volumes", collect_disk_volumes),
    CategorySpec("recent-files", collect_recent_files),
]


class ArtifactCollector:
    """
    Collect a triage package from the local host.

    Example:
        ```python
        collector = ArtifactCollector("./triage", skip_event_logs=True)
        bundle = collector.collect()
        print(f"Collected {len(bundle.collected)} categories")
        ```
    """

    def __init__(
        self,
        output_dir: str | Path,
        host_id: str | None = None,
        max_events: int = 1000,
        recent_days: int = 7,
        recent_paths: list[str] | None = None,
        skip_event_logs: bool = False,
        require_privilege: bool = True,
        categories: list[CategorySpec] | None = None,
        privilege_check: Callable[[], bool] | None = None,
    ):
        """
        Initialize the collector.

        Args:
            output_dir: Base directory; each run writes to its own subdirectory
            host_id: Host identifier recorded in the manifest (hostname if None)
            max_events: Maximum entries read from each event log
            recent_days: Age limit for recent-file metadata
            recent_paths: Directories scanned for recent files
            skip_event_logs: Skip the event-log categories
            require_privilege: Fail unless running elevated
            categories: Categories to collect, in order
            privilege_check: Returns True when running elevated (``is_elevated`` if None)
        """
        self.output_dir = Path(output_dir)
        self.host_id = host_id or socket.gethostname()
        self.max_events = max_events
        self.recent_days = recent_days
        self.recent_paths = recent_paths or []
        self.skip_event_logs = skip_event_logs
        self.require_privilege = require_privilege
        self.categories = categories if categories is not None else DEFAULT_CATEGORIES
        self.privilege_check = privilege_check or is_elevated

    def collect(
        self,
        progress_callback: Callable[[str], None] | None = None,
    ) -> EvidenceBundle:
        """
        Run every category and write the manifest.

        Raises:
            InsufficientPrivilege: before any category, when not elevated
            PathUnavailable: when the run directory cannot be created
            OutputWriteFailed: when the manifest cannot be written
        """
        if self.require_privilege and not self.privilege_check():
            raise InsufficientPrivilege()

        now = datetime.now(timezone.utc)
        run_dir = self.output_dir / f"{sanitize_filename(self.host_id)}_{now:%Y%m%d_%H%M%S}"
        try:
            run_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PathUnavailable(run_dir, e) from e

        logger.info(f"Starting triage collection for {self.host_id} into {run_dir}")

        context = CollectionContext(
            now=now,
            max_events=self.max_events,
            recent_days=self.recent_days,
            recent_paths=self.recent_paths,
        )
        bundle = EvidenceBundle(host_id=self.host_id, collected_at=now, output_dir=run_dir)

        for category in self.categories:
            if category.event_log and self.skip_event_logs:
                logger.info(f"Skipping {category.name}")
                bundle.results.append(CategoryResult(category.name, CategoryStatus.SKIPPED))
                continue

            if progress_callback:
                progress_callback(category.name)
            bundle.results.append(self._collect_category(category, context, bundle))

        bundle.manifest_path = write_json(run_dir / "manifest.json", bundle.manifest())
        logger.info(
            f"Collection complete: {len(bundle.collected)} collected, "
            f"{len(bundle.failed)} failed, {len(bundle.skipped)} skipped"
        )
        return bundle

    def _collect_category(
        self,
        category: CategorySpec,
        context: CollectionContext,
        bundle: EvidenceBundle,
    ) -> CategoryResult:
        """Collect and write one category; every failure is returned, not raised."""
        path = bundle.output_dir / f"{category.name}.json"
        try:
            rows = category.collect(context)
            record = ArtifactRecord(
                category=category.name,
                rows=rows,
                collected_at=datetime.now(timezone.utc),
            )
            write_json(path, record.to_dict())
        except CATEGORY_ERRORS as e:
            logger.warning(f"Failed to collect {category.name}: {e}")
            return _failed(category.name, e)
        except Exception as e:
            logger.exception(f"Unexpected error collecting {category.name}")
            return _failed(category.name, e)

        bundle.records.append(record)
        logger.info(f"Collected {record.row_count} {category.name} rows")
        return CategoryResult(
            category.name,
            CategoryStatus.COLLECTED,
            output_file=path,
            row_count=record.row_count,
        )


def _failed(name: str, cause: Exception) -> CategoryResult:
    return CategoryResult(
        name,
        CategoryStatus.FAILED,
        error=PartialCollectionFailure(name, cause),
    )
