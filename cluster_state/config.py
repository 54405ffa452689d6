"""Defaults shared by the commands, overridable through the environment."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from .errors import ClusterStateError

PROVIDERS = ("minikube", "kind", "k3d")
AUTO = "auto"

DEFAULT_TIMEOUT = 300
DEFAULT_MANIFEST_ROOT = "k8s"
DEFAULT_PROVIDER = "minikube"
DEFAULT_CLUSTER_NAME = "k8s-cluster"
DEFAULT_K8S_VERSION = "latest"
WORKLOAD_WAIT_TIMEOUT = 180
STABILIZE_SECONDS = 5
READY_POLL_INTERVAL = 5


class Settings:
    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        env = os.environ if environ is None else environ

        self.state_dir = Path(env.get("CLUSTER_STATE_DIR") or Path.home() / ".kube" / "cluster-states").expanduser()
        self.timeout = parse_positive_int(env.get("CLUSTER_STATE_TIMEOUT") or str(DEFAULT_TIMEOUT), "CLUSTER_STATE_TIMEOUT")
        self.manifest_root = Path(env.get("CLUSTER_STATE_MANIFESTS") or DEFAULT_MANIFEST_ROOT)
        self.provider = validate_provider(env.get("CLUSTER_STATE_PROVIDER") or DEFAULT_PROVIDER)


def parse_positive_int(value: str, label: str) -> int:
    text = str(value).strip()
    if not text.isdigit() or int(text) < 1:
        raise ClusterStateError(f"[Config] {label} must be a positive integer value={value}")
    return int(text)


def validate_provider(name: str, allow_auto: bool = False) -> str:
    provider = (name or "").strip().lower()
    if provider in PROVIDERS:
        return provider
    if allow_auto and provider == AUTO:
        return provider
    supported = ", ".join(PROVIDERS + ((AUTO,) if allow_auto else ()))
    raise ClusterStateError(f"[Config] Unsupported provider '{name}'. Supported providers: {supported}")
