"""kubectl access used by drain, backup, restore, apply and validation."""

from __future__ import annotations

import contextlib
import json
import subprocess
import time
from typing import Any, Dict, Iterator, List, Optional

from .errors import ClusterStateError
from .runner import CommandRunner

UNHEALTHY_POD_PHASES = ("Pending", "Failed", "Unknown")


class Kubectl:
    def __init__(self, runner: CommandRunner, kubeconfig: Optional[str] = None) -> None:
        self.runner = runner
        self.kubeconfig = kubeconfig

    # ------------------------------------------------------------ Core helpers
    def command(self, *args: str) -> List[str]:
        cmd = ["kubectl"]
        if self.kubeconfig:
            cmd.append(f"--kubeconfig={self.kubeconfig}")
        cmd.extend(args)
        return cmd

    def run(self, *args: str, check: bool = True, capture_output: bool = False, mutating: bool = True) -> subprocess.CompletedProcess[str]:
        return self.runner.run(self.command(*args), check=check, capture_output=capture_output, mutating=mutating)

    def query(self, *args: str) -> subprocess.CompletedProcess[str]:
        return self.runner.query(self.command(*args))

    def get_json(self, *args: str) -> Optional[Dict[str, Any]]:
        result = self.query("get", *args, "-o", "json")
        if result.returncode != 0 or not result.stdout:
            return None
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, dict) else None

    # -------------------------------------------------------------- Contexts
    def current_context(self) -> str:
        return (self.query("config", "current-context").stdout or "").strip()

    def use_context(self, context: str) -> bool:
        # Context switches are reversible, so they run even in dry-run mode.
        return self.run("config", "use-context", context, check=False, capture_output=True, mutating=False).returncode == 0

    def use_cluster_context(self, cluster: str, provider_context: str) -> bool:
        if self.use_context(cluster):
            return True
        if provider_context != cluster:
            return self.use_context(provider_context)
        return False

    @contextlib.contextmanager
    def temporary_context(self, cluster: str, provider_context: str) -> Iterator[bool]:
        previous = self.current_context()
        switched = self.use_cluster_context(cluster, provider_context)
        try:
            yield switched
        finally:
            if previous:
                self.use_context(previous)

    # ----------------------------------------------------------------- Nodes
    def list_nodes(self) -> List[str]:
        result = self.query("get", "nodes", "-o", "name")
        if result.returncode != 0:
            return []
        return [line.strip().split("/", 1)[-1] for line in result.stdout.splitlines() if line.strip()]

    def cordon(self, node: str, timeout: int) -> bool:
        return self.run("cordon", node, f"--timeout={timeout}s", check=False, capture_output=True).returncode == 0

    def drain(self, node: str, timeout: int) -> bool:
        result = self.run(
            "drain",
            node,
            "--ignore-daemonsets",
            "--delete-emptydir-data",
            "--force",
            f"--timeout={timeout}s",
            check=False,
            capture_output=True,
        )
        return result.returncode == 0

    def api_reachable(self) -> bool:
        return self.query("get", "nodes").returncode == 0

    def nodes_not_ready(self) -> Optional[List[str]]:
        """Names of nodes whose Ready condition is not True; None when unreadable."""
        data = self.get_json("nodes")
        if data is None:
            return None
        not_ready = []
        for item in data.get("items", []):
            name = (item.get("metadata") or {}).get("name", "")
            conditions = (item.get("status") or {}).get("conditions") or []
            ready = any(cond.get("type") == "Ready" and cond.get("status") == "True" for cond in conditions)
            if not ready:
                not_ready.append(name)
        return not_ready

    def node_count(self) -> int:
        data = self.get_json("nodes")
        return len((data or {}).get("items", []))

    def wait_for_nodes_ready(self, timeout: int, interval: int, sleep=time.sleep, clock=time.monotonic) -> None:
        deadline = clock() + timeout
        while True:
            not_ready = self.nodes_not_ready()
            if not_ready is not None and not not_ready and self.node_count() > 0:
                return
            if clock() >= deadline:
                raise ClusterStateError(f"[Nodes] Timed out waiting for nodes to become Ready timeout={timeout}s")
            sleep(interval)

    # ------------------------------------------------------------ Workloads
    def unhealthy_system_pods(self) -> Optional[List[str]]:
        data = self.get_json("pods", "-n", "kube-system")
        if data is None:
            return None
        unhealthy = []
        for item in data.get("items", []):
            phase = (item.get("status") or {}).get("phase", "Unknown")
            if phase in UNHEALTHY_POD_PHASES:
                name = (item.get("metadata") or {}).get("name", "")
                unhealthy.append(f"{name}={phase}")
        return unhealthy

    def deployments_not_ready(self) -> Optional[List[str]]:
        data = self.get_json("deployments", "--all-namespaces")
        if data is None:
            return None
        lagging = []
        for item in data.get("items", []):
            metadata = item.get("metadata") or {}
            desired = (item.get("spec") or {}).get("replicas", 1) or 0
            ready = (item.get("status") or {}).get("readyReplicas", 0) or 0
            if ready != desired:
                lagging.append(f"{metadata.get('namespace', 'default')}/{metadata.get('name', '')} ready={ready}/{desired}")
        return lagging

    def namespaces(self) -> List[str]:
        result = self.query("get", "namespaces", "--no-headers", "-o", "custom-columns=:metadata.name")
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def resource_names(self, kind: str, namespace: str) -> List[str]:
        result = self.query("get", kind, "-n", namespace, "--no-headers", "-o", "custom-columns=:metadata.name")
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def dump(self, kind: str, all_namespaces: bool = True) -> subprocess.CompletedProcess[str]:
        args = ["get", kind]
        if all_namespaces:
            args.append("--all-namespaces")
        args.extend(["-o", "yaml"])
        return self.query(*args)

    def apply(self, path: str, timeout: Optional[int] = None, check: bool = True) -> subprocess.CompletedProcess[str]:
        args = ["apply", "-f", path]
        if timeout:
            args.append(f"--timeout={timeout}s")
        return self.run(*args, check=check)

    def wait(self, resource: str, namespace: str, condition: str, timeout: int) -> bool:
        result = self.run(
            "wait",
            f"--for=condition={condition}",
            f"--timeout={timeout}s",
            resource,
            "-n",
            namespace,
            check=False,
        )
        return result.returncode == 0

    def show(self, *args: str) -> None:
        self.run(*args, check=False, mutating=False)
