"""Local Kubernetes providers: minikube, kind and k3d.

Each provider answers the same questions (does the cluster exist, is it
running) and performs the same lifecycle actions (create, stop, start,
snapshot, delete) with its own vendor CLI.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type

import yaml

from .config import DEFAULT_K8S_VERSION, PROVIDERS
from .errors import ClusterStateError, ProviderNotFoundError
from .runner import CommandRunner
from .state import SNAPSHOT_STAMP_FORMAT, StateLayout


class SnapshotInfo:
    def __init__(self, driver: str, name: Optional[str] = None, directory: Optional[Path] = None) -> None:
        self.driver = driver
        self.name = name
        self.directory = directory

    def __repr__(self) -> str:
        return f"SnapshotInfo(driver={self.driver!r}, name={self.name!r}, directory={self.directory!r})"


class Provider:
    name = ""
    binary = ""

    def __init__(self, runner: CommandRunner, logger: logging.Logger, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.runner = runner
        self.logger = logger
        self.clock = clock or datetime.now

    def context_name(self, cluster: str) -> str:
        return cluster

    def available(self) -> bool:
        return self.runner.has_command(self.binary)

    def list_clusters(self) -> List[str]:
        raise NotImplementedError

    def exists(self, cluster: str) -> bool:
        return cluster in self.list_clusters()

    def is_running(self, cluster: str) -> bool:
        raise NotImplementedError

    def describe(self, cluster: str) -> Dict[str, Any]:
        return {}

    def kubeconfig_text(self, cluster: str) -> str:
        raise NotImplementedError

    def export_kubeconfig(self, cluster: str, path: Path) -> bool:
        text = self.kubeconfig_text(cluster)
        if not text.strip():
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        os.chmod(path, 0o600)
        return True

    def stop(self, cluster: str) -> None:
        raise NotImplementedError

    def start(self, cluster: str) -> None:
        raise NotImplementedError

    def snapshot(self, cluster: str, layout: StateLayout) -> SnapshotInfo:
        raise ClusterStateError(f"[Snapshot] Snapshots are not supported for provider={self.name}")

    def create(self, cluster: str, nodes: int = 1, version: str = DEFAULT_K8S_VERSION, config_file: Optional[Path] = None) -> None:
        raise NotImplementedError

    def delete(self, cluster: str) -> None:
        raise NotImplementedError

    def restart(self, cluster: str) -> None:
        self.stop(cluster)
        self.start(cluster)

    def node_count(self, cluster: str) -> int:
        return 0

    def stamp(self) -> str:
        return self.clock().strftime(SNAPSHOT_STAMP_FORMAT)

    def must_run(self, cmd: List[str], failure: str) -> subprocess.CompletedProcess[str]:
        try:
            return self.runner.run(cmd)
        except subprocess.CalledProcessError as exc:
            raise ClusterStateError(failure) from exc

    @staticmethod
    def load_json(text: str) -> Any:
        if not text or not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return None


class MinikubeProvider(Provider):
    name = "minikube"
    binary = "minikube"

    def profiles(self) -> List[Dict[str, Any]]:
        data = self.load_json(self.runner.query(["minikube", "profile", "list", "-o", "json"]).stdout)
        if not isinstance(data, dict):
            return []
        return list(data.get("valid") or []) + list(data.get("invalid") or [])

    def list_clusters(self) -> List[str]:
        return [str(profile.get("Name")) for profile in self.profiles() if profile.get("Name")]

    def status(self, cluster: str) -> Dict[str, Any]:
        data = self.load_json(self.runner.query(["minikube", "status", "-p", cluster, "-o", "json"]).stdout)
        if isinstance(data, list):
            data = data[0] if data else {}
        return data if isinstance(data, dict) else {}

    def is_running(self, cluster: str) -> bool:
        return self.status(cluster).get("Host") == "Running"

    def is_paused(self, cluster: str) -> bool:
        return self.status(cluster).get("APIServer") == "Paused"

    def describe(self, cluster: str) -> Dict[str, Any]:
        for profile in self.profiles():
            if profile.get("Name") == cluster:
                return profile
        return {}

    def driver(self, cluster: str) -> str:
        return str((self.describe(cluster).get("Config") or {}).get("Driver") or "")

    def kubeconfig_text(self, cluster: str) -> str:
        self.runner.run(["minikube", "update-context", "-p", cluster], check=False, capture_output=True)
        result = self.runner.query(["kubectl", "config", "view", "--minify", "--flatten", f"--context={cluster}"])
        return result.stdout if result.returncode == 0 else ""

    def supports_pause(self) -> bool:
        return "pause" in (self.runner.query(["minikube", "help"]).stdout or "")

    def stop(self, cluster: str) -> None:
        if self.supports_pause():
            self.logger.info(f"[Pause] Using minikube pause profile={cluster}")
            if self.runner.succeeds(["minikube", "pause", "-p", cluster]):
                return
            self.logger.warning(f"[Pause] minikube pause failed; falling back to stop profile={cluster}")
        self.logger.info(f"[Pause] Stopping minikube profile={cluster}")
        self.must_run(["minikube", "stop", "-p", cluster], f"[Pause] Failed to stop minikube cluster '{cluster}'")

    def start(self, cluster: str) -> None:
        if self.is_paused(cluster):
            self.logger.info(f"[Resume] Unpausing minikube profile={cluster}")
            self.must_run(["minikube", "unpause", "-p", cluster], f"[Resume] Failed to unpause minikube cluster '{cluster}'")
            return
        self.logger.info(f"[Resume] Starting minikube profile={cluster}")
        self.must_run(["minikube", "start", "-p", cluster], f"[Resume] Failed to start minikube cluster '{cluster}'")

    def snapshot(self, cluster: str, layout: StateLayout) -> SnapshotInfo:
        driver = self.driver(cluster)
        if driver != "virtualbox":
            raise ClusterStateError(f"[Snapshot] Snapshot not supported for driver={driver or 'unknown'}")
        if not self.runner.has_command("VBoxManage"):
            raise ClusterStateError("[Snapshot] VBoxManage command not found, cannot create snapshot")

        snapshot_name = f"{cluster}_{self.stamp()}"
        self.logger.info(f"[Snapshot] Creating VirtualBox snapshot name={snapshot_name}")
        self.must_run(["VBoxManage", "snapshot", cluster, "take", snapshot_name], "[Snapshot] Failed to create VirtualBox snapshot")
        return SnapshotInfo(driver="virtualbox", name=snapshot_name)

    def create(self, cluster: str, nodes: int = 1, version: str = DEFAULT_K8S_VERSION, config_file: Optional[Path] = None) -> None:
        cmd = ["minikube", "start", "-p", cluster]
        if version != DEFAULT_K8S_VERSION:
            cmd.append(f"--kubernetes-version={version}")
        if nodes > 1:
            cmd.append(f"--nodes={nodes}")
        if config_file:
            self.logger.warning(f"[Cluster] minikube does not accept a config file; {config_file} is ignored")
        self.must_run(cmd, f"[Cluster] Failed to create minikube cluster '{cluster}'")

    def delete(self, cluster: str) -> None:
        self.must_run(["minikube", "delete", "-p", cluster], f"[Cluster] Failed to delete minikube cluster '{cluster}'")

    def restart(self, cluster: str) -> None:
        # Full stop and start; pause/unpause keeps the VM up.
        self.logger.info(f"[Restart] Stopping minikube profile={cluster}")
        self.must_run(["minikube", "stop", "-p", cluster], f"[Restart] Failed to stop minikube cluster '{cluster}'")
        self.logger.info(f"[Restart] Starting minikube profile={cluster}")
        self.must_run(["minikube", "start", "-p", cluster], f"[Restart] Failed to start minikube cluster '{cluster}'")

    def node_count(self, cluster: str) -> int:
        result = self.runner.query(["minikube", "node", "list", "-p", cluster])
        return len([line for line in result.stdout.splitlines() if line.strip()]) if result.returncode == 0 else 0


class ContainerProvider(Provider):
    """Providers whose nodes are Docker containers."""

    def container_label(self, cluster: str) -> str:
        raise NotImplementedError

    def containers(self, cluster: str, include_stopped: bool = False) -> List[str]:
        cmd = ["docker", "ps"]
        if include_stopped:
            cmd.append("-a")
        cmd.extend(["--filter", f"label={self.container_label(cluster)}", "--format", "{{.Names}}"])
        result = self.runner.query(cmd)
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def snapshot(self, cluster: str, layout: StateLayout) -> SnapshotInfo:
        containers = self.containers(cluster)
        if not containers:
            raise ClusterStateError(f"[Snapshot] No Docker containers found for {self.name} cluster: {cluster}")

        snapshot_dir = layout.snapshot_dir(self.stamp())
        snapshot_dir.mkdir(parents=True, exist_ok=True)
        for container in containers:
            result = self.runner.query(["docker", "inspect", container])
            if result.returncode != 0:
                raise ClusterStateError(f"[Snapshot] docker inspect failed container={container}")
            (snapshot_dir / f"{container}.json").write_text(result.stdout, encoding="utf-8")
            self.logger.info(f"[Snapshot] Saved container information container={container}")
        return SnapshotInfo(driver="docker", directory=snapshot_dir)


class KindProvider(ContainerProvider):
    name = "kind"
    binary = "kind"

    def context_name(self, cluster: str) -> str:
        return f"kind-{cluster}"

    def container_label(self, cluster: str) -> str:
        return f"io.x-k8s.kind.cluster={cluster}"

    def list_clusters(self) -> List[str]:
        result = self.runner.query(["kind", "get", "clusters"])
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def is_running(self, cluster: str) -> bool:
        return bool(self.containers(cluster))

    def nodes(self, cluster: str) -> List[str]:
        result = self.runner.query(["kind", "get", "nodes", "--name", cluster])
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def describe(self, cluster: str) -> Dict[str, Any]:
        return {"name": cluster, "nodes": self.nodes(cluster)}

    def kubeconfig_text(self, cluster: str) -> str:
        result = self.runner.query(["kind", "get", "kubeconfig", "--name", cluster])
        return result.stdout if result.returncode == 0 else ""

    def stop(self, cluster: str) -> None:
        containers = self.containers(cluster)
        if not containers:
            raise ClusterStateError(f"[Pause] No running Docker containers found for kind cluster: {cluster}")
        for container in containers:
            self.logger.info(f"[Pause] Stopping container={container}")
            self.must_run(["docker", "stop", container], f"[Pause] Failed to stop container {container}")

    def start(self, cluster: str) -> None:
        containers = self.containers(cluster, include_stopped=True)
        if not containers:
            raise ClusterStateError(f"[Resume] No Docker containers found for kind cluster: {cluster}")
        for container in containers:
            self.logger.info(f"[Resume] Starting container={container}")
            self.must_run(["docker", "start", container], f"[Resume] Failed to start container: {container}")

    def create(self, cluster: str, nodes: int = 1, version: str = DEFAULT_K8S_VERSION, config_file: Optional[Path] = None) -> None:
        cmd = ["kind", "create", "cluster", "--name", cluster]
        if version != DEFAULT_K8S_VERSION:
            cmd.extend(["--image", f"kindest/node:v{version}"])

        if config_file:
            cmd.extend(["--config", str(config_file)])
            self.must_run(cmd, f"[Cluster] Failed to create kind cluster '{cluster}'")
            return
        if nodes <= 1:
            self.must_run(cmd, f"[Cluster] Failed to create kind cluster '{cluster}'")
            return

        with tempfile.TemporaryDirectory(prefix="cluster-state-") as tmp_dir:
            generated = Path(tmp_dir) / "kind-config.yaml"
            with generated.open("w", encoding="utf-8") as handle:
                yaml.safe_dump(multi_node_kind_config(nodes), handle, sort_keys=False)
            self.logger.info(f"[Cluster] Generated kind config nodes={nodes}")
            cmd.extend(["--config", str(generated)])
            self.must_run(cmd, f"[Cluster] Failed to create kind cluster '{cluster}'")

    def delete(self, cluster: str) -> None:
        self.must_run(["kind", "delete", "cluster", "--name", cluster], f"[Cluster] Failed to delete kind cluster '{cluster}'")

    def node_count(self, cluster: str) -> int:
        return len(self.nodes(cluster))

    def restart(self, cluster: str) -> None:
        # kind cannot restart in place; recreate with the same node count.
        nodes = max(self.node_count(cluster), 1)
        self.logger.info(f"[Restart] Recreating kind cluster name={cluster} nodes={nodes}")
        self.delete(cluster)
        self.create(cluster, nodes=nodes)


class K3dProvider(ContainerProvider):
    name = "k3d"
    binary = "k3d"

    def context_name(self, cluster: str) -> str:
        return f"k3d-{cluster}"

    def container_label(self, cluster: str) -> str:
        return f"k3d.cluster={cluster}"

    def records(self) -> List[Dict[str, Any]]:
        data = self.load_json(self.runner.query(["k3d", "cluster", "list", "-o", "json"]).stdout)
        return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []

    def list_clusters(self) -> List[str]:
        return [str(record.get("name")) for record in self.records() if record.get("name")]

    def describe(self, cluster: str) -> Dict[str, Any]:
        for record in self.records():
            if record.get("name") == cluster:
                return record
        return {}

    def is_running(self, cluster: str) -> bool:
        record = self.describe(cluster)
        if not record:
            return False
        if (record.get("serversRunning") or 0) > 0:
            return True
        for node in record.get("nodes") or []:
            if node.get("role") == "server" and (node.get("State") or {}).get("Running"):
                return True
        return any(server.get("state") == "running" for server in record.get("servers") or [])

    def kubeconfig_text(self, cluster: str) -> str:
        result = self.runner.query(["k3d", "kubeconfig", "get", cluster])
        return result.stdout if result.returncode == 0 else ""

    def stop(self, cluster: str) -> None:
        self.logger.info(f"[Pause] Stopping k3d cluster name={cluster}")
        self.must_run(["k3d", "cluster", "stop", cluster], f"[Pause] Failed to stop k3d cluster '{cluster}'")

    def start(self, cluster: str) -> None:
        self.logger.info(f"[Resume] Starting k3d cluster name={cluster}")
        self.must_run(["k3d", "cluster", "start", cluster], f"[Resume] Failed to start k3d cluster '{cluster}'")

    def create(self, cluster: str, nodes: int = 1, version: str = DEFAULT_K8S_VERSION, config_file: Optional[Path] = None) -> None:
        cmd = ["k3d", "cluster", "create", cluster]
        if version != DEFAULT_K8S_VERSION:
            cmd.extend(["--image", f"rancher/k3s:v{version}-k3s1"])
        if nodes > 1:
            cmd.extend(["--agents", str(nodes - 1)])
        if config_file:
            cmd.extend(["--config", str(config_file)])
        self.must_run(cmd, f"[Cluster] Failed to create k3d cluster '{cluster}'")

    def delete(self, cluster: str) -> None:
        self.must_run(["k3d", "cluster", "delete", cluster], f"[Cluster] Failed to delete k3d cluster '{cluster}'")

    def node_count(self, cluster: str) -> int:
        return len(self.describe(cluster).get("nodes") or [])


PROVIDER_CLASSES: Dict[str, Type[Provider]] = {
    "minikube": MinikubeProvider,
    "kind": KindProvider,
    "k3d": K3dProvider,
}


def multi_node_kind_config(nodes: int) -> Dict[str, Any]:
    return {
        "kind": "Cluster",
        "apiVersion": "kind.x-k8s.io/v1alpha4",
        "nodes": [{"role": "control-plane"}] + [{"role": "worker"} for _ in range(nodes - 1)],
    }


def get_provider(name: str, runner: CommandRunner, logger: logging.Logger) -> Provider:
    try:
        provider_class = PROVIDER_CLASSES[name]
    except KeyError:
        raise ClusterStateError(f"[Provider] Unsupported provider: {name}") from None
    return provider_class(runner, logger)


def hinted_providers(cluster: str) -> List[str]:
    """Providers suggested by the cluster name, most specific first."""
    hints = []
    if cluster == "minikube" or cluster.startswith("minikube-"):
        hints.append("minikube")
    if cluster.startswith("kind-") or cluster.endswith("-kind"):
        hints.append("kind")
    if cluster.startswith("k3d-") or cluster.endswith("-k3d"):
        hints.append("k3d")
    return hints


def detect_provider(runner: CommandRunner, logger: logging.Logger, cluster: str) -> Provider:
    logger.info(f"[Provider] Auto-detecting provider cluster={cluster}")
    order = hinted_providers(cluster) + [name for name in PROVIDERS if name not in hinted_providers(cluster)]
    for name in order:
        provider = get_provider(name, runner, logger)
        if not provider.available():
            logger.debug(f"[Provider] Skipping provider={name} reason=binary-not-found")
            continue
        if provider.exists(cluster):
            logger.info(f"[Provider] Detected provider={name}")
            return provider
    raise ProviderNotFoundError(f"[Provider] Could not detect provider for cluster: {cluster}")
