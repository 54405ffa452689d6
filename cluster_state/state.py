"""Paused-cluster state records and their on-disk layout.

A state file is a list of shell-sourceable ``KEY=value`` lines so the generated
resume script can ``source`` it directly::

    # Kubernetes cluster state file
    STATE_VERSION=1
    CLUSTER_NAME=dev
    PROVIDER=kind
    PAUSED_AT='2026-01-04 10:15:00'
    KUBECONFIG_SAVED=true
    KUBECONFIG_PATH=/home/me/.kube/cluster-states/dev-kubeconfig.yaml
    PROVIDER_RECORD='{"nodes":["dev-control-plane"]}'

Files written by the older shell tooling carry no ``STATE_VERSION`` and append
the provider record as a raw JSON blob; :meth:`ClusterState.load` accepts both.
"""

from __future__ import annotations

import json
import os
import re
import shlex
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import AUTO, PROVIDERS
from .errors import StateFileError

STATE_VERSION = 1
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
SNAPSHOT_STAMP_FORMAT = "%Y%m%d%H%M%S"

_KEY_LINE = re.compile(r"^([A-Z_][A-Z0-9_]*)=(.*)$")


class StateLayout:
    """Paths owned by one cluster name + provider pair inside a state directory."""

    def __init__(self, state_dir: Path, cluster: str, provider: str) -> None:
        self.state_dir = Path(state_dir)
        self.cluster = cluster
        self.provider = provider

    @property
    def state_file(self) -> Path:
        return self.state_dir / f"{self.cluster}-{self.provider}.state"

    @property
    def kubeconfig(self) -> Path:
        return self.state_dir / f"{self.cluster}-kubeconfig.yaml"

    @property
    def backup_dir(self) -> Path:
        return self.state_dir / f"{self.cluster}-backup"

    @property
    def resume_script(self) -> Path:
        return self.state_dir / f"resume-{self.cluster}.sh"

    def snapshot_dir(self, stamp: str) -> Path:
        return self.state_dir / f"{self.cluster}-snapshot-{stamp}"


class ClusterState:
    def __init__(
        self,
        cluster_name: str,
        provider: str,
        paused_at: Optional[str] = None,
        *,
        kubeconfig_saved: bool = False,
        kubeconfig_path: Optional[str] = None,
        workloads_backup_dir: Optional[str] = None,
        snapshot_created: bool = False,
        snapshot_name: Optional[str] = None,
        snapshot_driver: Optional[str] = None,
        snapshot_dir: Optional[str] = None,
        provider_record: Optional[Dict[str, Any]] = None,
        state_version: int = STATE_VERSION,
    ) -> None:
        self.cluster_name = cluster_name
        self.provider = provider
        self.paused_at = paused_at or datetime.now().strftime(TIMESTAMP_FORMAT)
        self.kubeconfig_saved = kubeconfig_saved
        self.kubeconfig_path = kubeconfig_path
        self.workloads_backup_dir = workloads_backup_dir
        self.snapshot_created = snapshot_created
        self.snapshot_name = snapshot_name
        self.snapshot_driver = snapshot_driver
        self.snapshot_dir = snapshot_dir
        self.provider_record = provider_record or {}
        self.state_version = state_version

    def __repr__(self) -> str:
        return f"ClusterState(cluster_name={self.cluster_name!r}, provider={self.provider!r}, paused_at={self.paused_at!r})"

    # ------------------------------------------------------------ Serialise
    def to_pairs(self) -> List[tuple]:
        pairs: List[tuple] = [
            ("STATE_VERSION", str(self.state_version)),
            ("CLUSTER_NAME", self.cluster_name),
            ("PROVIDER", self.provider),
            ("PAUSED_AT", self.paused_at),
        ]
        if self.kubeconfig_saved:
            pairs.append(("KUBECONFIG_SAVED", "true"))
        if self.kubeconfig_path:
            pairs.append(("KUBECONFIG_PATH", self.kubeconfig_path))
        if self.workloads_backup_dir:
            pairs.append(("WORKLOADS_BACKUP_DIR", self.workloads_backup_dir))
        if self.snapshot_created:
            pairs.append(("SNAPSHOT_CREATED", "true"))
        for key, value in (
            ("SNAPSHOT_NAME", self.snapshot_name),
            ("SNAPSHOT_DRIVER", self.snapshot_driver),
            ("SNAPSHOT_DIR", self.snapshot_dir),
        ):
            if value:
                pairs.append((key, value))
        if self.provider_record:
            pairs.append(("PROVIDER_RECORD", json.dumps(self.provider_record, sort_keys=True, separators=(",", ":"))))
        return pairs

    def render(self) -> str:
        lines = [
            "# Kubernetes cluster state file",
            f"# Generated by cluster-state pause on {self.paused_at}",
        ]
        lines.extend(f"{key}={shlex.quote(value)}" for key, value in self.to_pairs())
        return "\n".join(lines) + "\n"

    def write(self, path: Path) -> Path:
        """Atomically replace ``path`` with the rendered state."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(self.render())
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:  # pragma: no cover - already moved or removed
                pass
            raise
        return path

    # ---------------------------------------------------------------- Parse
    @classmethod
    def parse(cls, text: str, source: str = "<state>") -> "ClusterState":
        values: Dict[str, str] = {}
        extra: List[str] = []
        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            match = _KEY_LINE.match(line)
            if not match:
                extra.append(raw_line)
                continue
            values[match.group(1)] = _unquote(match.group(2))

        version_text = values.get("STATE_VERSION", "0")
        if not version_text.isdigit():
            raise StateFileError(f"[State] Invalid STATE_VERSION={version_text} file={source}")
        version = int(version_text)
        if version > STATE_VERSION:
            raise StateFileError(f"[State] Unsupported state version={version} supported={STATE_VERSION} file={source}")

        cluster = values.get("CLUSTER_NAME", "")
        provider = values.get("PROVIDER", "")
        if not cluster or not provider:
            raise StateFileError(f"[State] State file is missing CLUSTER_NAME or PROVIDER file={source}")

        record: Dict[str, Any] = {}
        if "PROVIDER_RECORD" in values:
            record = _load_record(values["PROVIDER_RECORD"])
        elif extra:
            record = _load_record("\n".join(extra))

        return cls(
            cluster,
            provider,
            values.get("PAUSED_AT") or None,
            kubeconfig_saved=values.get("KUBECONFIG_SAVED") == "true",
            kubeconfig_path=values.get("KUBECONFIG_PATH") or None,
            workloads_backup_dir=values.get("WORKLOADS_BACKUP_DIR") or None,
            snapshot_created=values.get("SNAPSHOT_CREATED") == "true",
            snapshot_name=values.get("SNAPSHOT_NAME") or None,
            snapshot_driver=values.get("SNAPSHOT_DRIVER") or None,
            snapshot_dir=values.get("SNAPSHOT_DIR") or None,
            provider_record=record,
            state_version=version or STATE_VERSION,
        )

    @classmethod
    def load(cls, path: Path) -> "ClusterState":
        path = Path(path)
        if not path.is_file():
            raise StateFileError(f"[State] State file not found path={path}")
        return cls.parse(path.read_text(encoding="utf-8"), source=str(path))


def _unquote(raw: str) -> str:
    raw = raw.strip()
    if not raw:
        return ""
    try:
        return " ".join(shlex.split(raw, comments=False, posix=True))
    except ValueError:
        return raw


def _load_record(text: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def find_state_file(state_dir: Path, cluster: str, provider: str = AUTO) -> Path:
    """Locate the state file for ``cluster``.

    Looks for the provider-specific file first, then every known provider, then
    any ``<cluster>*.state`` file in the directory.
    """
    state_dir = Path(state_dir)
    if provider != AUTO:
        specific = StateLayout(state_dir, cluster, provider).state_file
        if specific.is_file():
            return specific

    for candidate in PROVIDERS:
        possible = StateLayout(state_dir, cluster, candidate).state_file
        if possible.is_file():
            return possible

    if state_dir.is_dir():
        matches = sorted(path for path in state_dir.glob(f"{cluster}*.state") if path.is_file())
        if matches:
            return matches[0]

    raise StateFileError(f"[State] Could not find state file cluster={cluster} dir={state_dir}")
