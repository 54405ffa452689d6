"""Create, delete, restart and create-then-apply for local clusters."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from .config import DEFAULT_K8S_VERSION, READY_POLL_INTERVAL
from .errors import ClusterStateError
from .manifests import apply_manifests, planned_directories, wait_for_workloads
from .operation import Operation
from .providers import Provider
from .runner import CommandRunner, require_confirmation


class ClusterOperation(Operation):
    """Operations on an explicitly named cluster of a known provider."""

    def __init__(
        self,
        runner: CommandRunner,
        logger: logging.Logger,
        *,
        cluster: str,
        provider: str,
        timeout: int,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(runner, logger)
        self.cluster = cluster
        self.provider_name = provider
        self.timeout = timeout
        self.sleep = sleep
        self.clock = clock
        self._provider: Optional[Provider] = None

    @property
    def provider(self) -> Provider:
        if self._provider is None:
            self._provider = self.resolve_provider(self.cluster, self.provider_name)
        return self._provider

    def check_requirements(self, kubectl: bool = True) -> None:
        self.logger.info(f"[{self.tag}] Checking requirements...")
        self.runner.ensure_command(self.provider.binary)
        if kubectl:
            self.runner.ensure_command("kubectl")
        self.success(f"[{self.tag}] Required tools are available")

    def require_existing(self) -> None:
        if not self.provider.exists(self.cluster):
            raise ClusterStateError(f"[Cluster] Cluster '{self.cluster}' not found for provider {self.provider.name}")
        self.success(f"[Cluster] Cluster '{self.cluster}' found")

    def wait_for_cluster(self) -> None:
        if self.dry_run:
            self.logger.info("[DryRun] Would wait for all nodes to become Ready")
            return
        self.logger.info(f"[Nodes] Waiting for cluster to be ready timeout={self.timeout}s")
        self.kubectl.wait_for_nodes_ready(self.timeout, READY_POLL_INTERVAL, sleep=self.sleep, clock=self.clock)
        self.success("[Nodes] Cluster is ready")

    def display_cluster_info(self) -> None:
        if self.dry_run:
            return
        self.logger.info("[Cluster] Nodes:")
        self.kubectl.show("get", "nodes")
        self.logger.info("[Cluster] Cluster Info:")
        self.kubectl.show("cluster-info")
        self.logger.info(f"[Cluster] To use this cluster run: kubectl config use-context {self.provider.context_name(self.cluster)}")


class ClusterCreator(ClusterOperation):
    title = "Kubernetes Cluster Creation"
    tag = "Create"

    def __init__(
        self,
        runner: CommandRunner,
        logger: logging.Logger,
        *,
        nodes: int = 1,
        version: str = DEFAULT_K8S_VERSION,
        config_file: Optional[Path] = None,
        **kwargs,
    ) -> None:
        super().__init__(runner, logger, **kwargs)
        self.nodes = nodes
        self.version = version
        self.config_file = Path(config_file) if config_file else None
        if self.config_file and not self.config_file.is_file():
            raise ClusterStateError(f"[Config] Config file not found: {self.config_file}")

    def run_flow(self) -> None:
        self.log_configuration(
            [
                ("Cluster Name", self.cluster),
                ("Provider", self.provider_name),
                ("Node Count", self.nodes),
                ("K8s Version", self.version),
                ("Config File", self.config_file or "None"),
                ("Timeout", f"{self.timeout}s"),
            ]
        )
        self.create_cluster()

    def create_cluster(self) -> None:
        self.check_requirements()
        self.logger.info("[Cluster] Checking if cluster already exists...")
        if self.provider.exists(self.cluster):
            raise ClusterStateError(f"[Cluster] {self.provider.name} cluster '{self.cluster}' already exists")
        self.success(f"[Cluster] No existing cluster with name '{self.cluster}' found")

        self.logger.info(f"[Cluster] Creating {self.provider.name} cluster name={self.cluster}")
        self.provider.create(self.cluster, nodes=self.nodes, version=self.version, config_file=self.config_file)
        self.success(f"[Cluster] {self.provider.name} cluster '{self.cluster}' created")

        self.wait_for_cluster()
        self.display_cluster_info()


class ClusterDeleter(ClusterOperation):
    title = "Kubernetes Cluster Deletion"
    tag = "Delete"

    def __init__(self, runner: CommandRunner, logger: logging.Logger, *, force: bool = False, **kwargs) -> None:
        super().__init__(runner, logger, **kwargs)
        self.force = force

    def run_flow(self) -> None:
        self.log_configuration(
            [
                ("Cluster Name", self.cluster),
                ("Provider", self.provider_name),
                ("Force Delete", self.force),
            ]
        )
        self.check_requirements(kubectl=False)
        self.require_existing()
        if not self.dry_run:
            self.logger.warning(f"[Delete] Cluster '{self.cluster}' and all of its workloads will be permanently deleted")
            require_confirmation("Are you sure you want to continue?", self.force, "Deletion canceled by user.")

        self.provider.delete(self.cluster)
        self.success(f"[Cluster] {self.provider.name} cluster '{self.cluster}' deleted")


class ClusterRestarter(ClusterOperation):
    title = "Kubernetes Cluster Restart"
    tag = "Restart"

    def __init__(self, runner: CommandRunner, logger: logging.Logger, *, force: bool = False, **kwargs) -> None:
        super().__init__(runner, logger, **kwargs)
        self.force = force

    def run_flow(self) -> None:
        self.log_configuration(
            [
                ("Cluster Name", self.cluster),
                ("Provider", self.provider_name),
                ("Force", self.force),
                ("Timeout", f"{self.timeout}s"),
            ]
        )
        self.check_requirements()
        self.require_existing()
        self.logger.info(f"[Restart] Node Count: {self.provider.node_count(self.cluster)}")

        if not self.dry_run:
            self.logger.warning("[Restart] This may cause temporary downtime for applications running on the cluster")
            require_confirmation("Are you sure you want to continue?", self.force, "Restart canceled by user.")

        self.provider.restart(self.cluster)
        self.success(f"[Restart] {self.provider.name} cluster '{self.cluster}' restarted")
        self.wait_for_cluster()
        self.display_cluster_info()


class ClusterApplier(ClusterCreator):
    title = "Create and Apply Kubernetes Cluster"
    tag = "Apply"

    def __init__(
        self,
        runner: CommandRunner,
        logger: logging.Logger,
        *,
        manifest_root: Path,
        switch_context: bool = True,
        **kwargs,
    ) -> None:
        super().__init__(runner, logger, **kwargs)
        self.manifest_root = Path(manifest_root)
        self.switch_context = switch_context
        if not self.manifest_root.is_dir():
            raise ClusterStateError(f"[Manifests] Manifest root not found: {self.manifest_root}")

    def run_flow(self) -> None:
        super().run_flow()
        self.switch_kubectl_context()
        self.apply()
        self.success("[Apply] Cluster created and manifests applied")

    def switch_kubectl_context(self) -> None:
        if not self.switch_context:
            return
        context = self.provider.context_name(self.cluster)
        self.logger.info(f"[Kubeconfig] Switching kubectl context to context={context}")
        if not self.kubectl.use_context(context):
            self.report.warn("context", f"[Kubeconfig] Could not switch kubectl context to {context}")

    def apply(self) -> None:
        planned = planned_directories(self.manifest_root)
        self.logger.info(f"[Manifests] Applying manifests root={self.manifest_root} directories={len(planned)}")
        apply_manifests(self.kubectl, self.manifest_root, self.logger)
        if self.dry_run:
            self.logger.info("[DryRun] Would wait for every Deployment and StatefulSet to become ready")
            return
        wait_for_workloads(self.kubectl, self.report, self.logger)
        self.kubectl.show("get", "all", "--all-namespaces")
