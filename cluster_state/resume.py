"""Resume a paused local cluster from its state file and validate its health."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from .config import AUTO, STABILIZE_SECONDS
from .errors import ClusterStateError, ProviderNotFoundError
from .operation import Operation
from .providers import Provider, get_provider
from .runner import CommandRunner, confirm, require_confirmation
from .state import ClusterState, find_state_file
from .workloads import backup_files, restore_workloads


class ClusterResumer(Operation):
    title = "Kubernetes Cluster Resume"
    tag = "Resume"

    def __init__(
        self,
        runner: CommandRunner,
        logger: logging.Logger,
        *,
        cluster: Optional[str] = None,
        provider: str = AUTO,
        state_file: Optional[Path] = None,
        state_dir: Path,
        timeout: int,
        restore: bool = False,
        skip_validation: bool = False,
        force: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(runner, logger)
        if not cluster and not state_file:
            raise ClusterStateError("[Resume] Either cluster name (-n, --name) or state file (-s, --state-file) is required")
        self.cluster = cluster
        self.provider_name = provider
        self.state_file = Path(state_file) if state_file else None
        self.state_dir = Path(state_dir)
        self.timeout = timeout
        self.restore = restore
        self.skip_validation = skip_validation
        self.force = force
        self.sleep = sleep

        self.state: Optional[ClusterState] = None
        self.provider: Optional[Provider] = None
        self.workloads_restored = False

    def run_flow(self) -> None:
        state = self.load_state()
        self.state = state
        cluster = state.cluster_name
        provider = get_provider(state.provider, self.runner, self.logger)
        self.runner.ensure_command(provider.binary)
        self.provider = provider

        self.log_configuration(
            [
                ("Cluster Name", cluster),
                ("Provider", provider.name),
                ("State File", self.state_file),
                ("Paused At", state.paused_at),
                ("Wait Timeout", f"{self.timeout} seconds"),
                ("Restore Workloads", self.restore),
                ("Skip Validation", self.skip_validation),
                ("Force", self.force),
            ]
        )

        provider.start(cluster)
        self.success(f"[Resume] Cluster '{cluster}' resumed provider={provider.name}")

        self.restore_kubeconfig(state)
        if self.restore:
            self.restore_workloads(state)
        self.validate_cluster(cluster, provider)

        if state.kubeconfig_saved and state.kubeconfig_path and Path(state.kubeconfig_path).is_file():
            self.logger.info(f"[Resume] To use this cluster run: export KUBECONFIG={state.kubeconfig_path}")
        else:
            self.logger.info(f"[Resume] To use this cluster run: kubectl config use-context {provider.context_name(cluster)}")

    # ---------------------------------------------------------- State lookup
    def load_state(self) -> ClusterState:
        if self.state_file is not None:
            state = ClusterState.load(self.state_file)
            self.logger.info(f"[State] Loaded state file: {self.state_file}")
            self.logger.info(f"[State] Cluster: {state.cluster_name}, Provider: {state.provider}")
            self.check_mismatch(state, self.cluster or state.cluster_name, self.provider_name)
            return state

        if not self.cluster:
            raise ClusterStateError("[Resume] A cluster name is required to search for a state file")
        provider_name = self.provider_name
        if provider_name == AUTO:
            try:
                provider_name = self.resolve_provider(self.cluster, AUTO).name
            except ProviderNotFoundError:
                self.logger.warning(f"[Resume] Provider detection failed for cluster '{self.cluster}'; searching state files")
        self.logger.info(f"[State] Looking for state file cluster={self.cluster}")
        self.state_file = find_state_file(self.state_dir, self.cluster, provider_name)
        self.logger.info(f"[State] Found state file: {self.state_file}")
        state = ClusterState.load(self.state_file)
        self.check_mismatch(state, self.cluster, provider_name)
        return state

    def check_mismatch(self, state: ClusterState, cluster: str, provider_name: str) -> None:
        provider_differs = provider_name != AUTO and state.provider != provider_name
        if state.cluster_name == cluster and not provider_differs:
            return
        self.report.warn("state", f"[State] State file contains different cluster info: {state.cluster_name}/{state.provider}")
        require_confirmation("Continue anyway?", self.force or self.dry_run)

    # ------------------------------------------------------------ Kubeconfig
    def restore_kubeconfig(self, state: ClusterState) -> None:
        if not (state.kubeconfig_saved and state.kubeconfig_path):
            self.logger.info("[Kubeconfig] No kubeconfig to restore")
            return
        path = Path(state.kubeconfig_path)
        self.logger.info(f"[Kubeconfig] Restoring kubeconfig from: {path}")
        if not path.is_file():
            self.report.warn("kubeconfig", f"[Kubeconfig] Kubeconfig file not found: {path}")
            return
        self.kubectl.kubeconfig = str(path)
        self.success("[Kubeconfig] Kubeconfig restored")
        self.logger.info(f"[Kubeconfig]   export KUBECONFIG={path}")

    # -------------------------------------------------------------- Restore
    def restore_workloads(self, state: ClusterState) -> None:
        backup_dir = Path(state.workloads_backup_dir) if state.workloads_backup_dir else None
        if backup_dir is None or not backup_dir.is_dir():
            self.logger.info("[Restore] No workload backups to restore")
            return

        files = backup_files(backup_dir)
        if not files:
            self.report.warn("restore", f"[Restore] No backup files found in {backup_dir}")
            return
        self.logger.info(f"[Restore] Found {len(files)} backup files in {backup_dir}")

        if not confirm("Do you want to restore all workloads?", self.force or self.dry_run):
            self.logger.info("[Restore] Workload restoration skipped by user")
            return

        applied = restore_workloads(self.kubectl, backup_dir, self.timeout, self.report, self.logger)
        self.workloads_restored = True
        if self.report.advisories_for("restore"):
            self.logger.warning("[Restore] Issues while restoring workloads")
        else:
            self.success(f"[Restore] Workloads restored files={len(applied)}")

    # ------------------------------------------------------------ Validation
    def validate_cluster(self, cluster: str, provider: Provider) -> None:
        if self.skip_validation:
            self.logger.info("[Validate] Validation skipped as requested")
            return
        if self.dry_run:
            self.logger.info("[DryRun] Would validate API reachability, node readiness and system pods")
            return

        self.logger.info(f"[Validate] Validating cluster '{cluster}' health...")
        if not self.kubectl.use_cluster_context(cluster, provider.context_name(cluster)):
            self.report.warn("validate", "[Validate] Could not set kubectl context, validation may be incomplete")

        self.logger.info("[Validate] Waiting for cluster to stabilize...")
        self.sleep(STABILIZE_SECONDS)

        self.logger.info("[Validate] Testing API server connectivity...")
        if not self.kubectl.api_reachable():
            self.report.warn("validate", "[Validate] Cannot connect to Kubernetes API server")
            return

        healthy = True
        not_ready = self.kubectl.nodes_not_ready()
        if not_ready is None or not_ready:
            healthy = False
            self.report.warn("validate", f"[Validate] Not all nodes are ready: {', '.join(not_ready or ['status unavailable'])}")
        else:
            self.success("[Validate] All nodes are in Ready state")

        pods = self.kubectl.unhealthy_system_pods()
        if pods is None or pods:
            healthy = False
            self.report.warn("validate", f"[Validate] Not all system pods are running: {', '.join(pods or ['status unavailable'])}")
        else:
            self.success("[Validate] All system pods are running")

        workloads_ready = True
        if self.workloads_restored:
            lagging = self.kubectl.deployments_not_ready()
            if lagging is None or lagging:
                workloads_ready = False
                self.report.warn("validate", f"[Validate] Not all workloads are fully ready: {'; '.join(lagging or ['status unavailable'])}")
            else:
                self.success("[Validate] All workloads are running")

        if not healthy:
            self.logger.warning("[Validate] Cluster is running but may have issues - check the warnings above")
        elif not workloads_ready:
            self.logger.warning("[Validate] Cluster is running but some workloads aren't fully ready")
        else:
            self.success("[Validate] Cluster is healthy and ready for use")
