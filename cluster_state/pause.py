"""Pause a local cluster: drain, back up, snapshot, record state, stop compute."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Optional

from .config import AUTO
from .errors import ClusterStateError
from .operation import Operation
from .providers import Provider
from .resume_script import write_resume_script
from .runner import CommandRunner, require_confirmation
from .state import ClusterState, StateLayout
from .workloads import backup_workloads


class ClusterPauser(Operation):
    title = "Kubernetes Cluster Pause"
    tag = "Pause"

    def __init__(
        self,
        runner: CommandRunner,
        logger: logging.Logger,
        *,
        cluster: str,
        provider: str = AUTO,
        state_dir: Path,
        timeout: int,
        force: bool = False,
        drain: bool = True,
        backup: bool = True,
        snapshot: bool = False,
        preserve_kubeconfig: bool = True,
    ) -> None:
        super().__init__(runner, logger)
        self.cluster = cluster
        self.provider_name = provider
        self.state_dir = Path(state_dir)
        self.timeout = timeout
        self.force = force
        self.drain_enabled = drain
        self.backup_enabled = backup
        self.snapshot_enabled = snapshot
        self.preserve_kubeconfig = preserve_kubeconfig

        self.provider: Optional[Provider] = None
        self.layout: Optional[StateLayout] = None
        self.state: Optional[ClusterState] = None

    def run_flow(self) -> None:
        provider = self.resolve_provider(self.cluster, self.provider_name)
        self.provider = provider
        self.layout = layout = StateLayout(self.state_dir, self.cluster, provider.name)
        self.log_configuration(
            [
                ("Cluster Name", self.cluster),
                ("Provider", provider.name),
                ("Force", self.force),
                ("Wait Timeout", f"{self.timeout} seconds"),
                ("Drain Nodes", self.drain_enabled),
                ("Backup Workloads", self.backup_enabled),
                ("Create Snapshots", self.snapshot_enabled),
                ("Preserve Kubeconfig", self.preserve_kubeconfig),
                ("State Directory", self.state_dir),
            ]
        )

        if not provider.exists(self.cluster):
            raise ClusterStateError(f"[Pause] Cluster '{self.cluster}' does not exist for provider '{provider.name}'")

        running = provider.is_running(self.cluster)
        if not running:
            self.report.warn("running", f"[Pause] Cluster '{self.cluster}' is not running; only its state will be saved")
            if not self.dry_run:
                require_confirmation("Would you like to continue with saving the state?", self.force)
        elif not self.dry_run:
            require_confirmation(f"Are you sure you want to pause cluster '{self.cluster}'?", self.force)

        state = ClusterState(self.cluster, provider.name, provider_record=provider.describe(self.cluster))
        self.state = state

        if running:
            self.drain_nodes(provider)
            self.backup_workloads(provider, layout, state)
        else:
            self.logger.info("[Pause] Skipping drain and workload backup reason=cluster-not-running")
        self.save_kubeconfig(provider, layout, state)
        if running:
            self.create_snapshot(provider, layout, state)

        self.save_state(layout, state)

        if running:
            provider.stop(self.cluster)
            self.success(f"[Pause] Cluster '{self.cluster}' paused provider={provider.name}")

        self.write_resume_script(layout)
        self.log_summary(layout)

    # -------------------------------------------------------------- Draining
    def drain_nodes(self, provider: Provider) -> None:
        if not self.drain_enabled:
            self.logger.info("[Drain] Node draining skipped as requested")
            return

        self.logger.info(f"[Drain] Draining nodes cluster={self.cluster}")
        with self.kubectl.temporary_context(self.cluster, provider.context_name(self.cluster)) as switched:
            if not switched:
                self.report.warn("drain", "[Drain] Could not set kubectl context for draining nodes")
                return
            nodes = self.kubectl.list_nodes()
            if not nodes:
                self.report.warn("drain", "[Drain] No nodes found to drain")
                return
            for node in nodes:
                self.logger.info(f"[Drain] Cordoning node={node}")
                if not self.kubectl.cordon(node, self.timeout):
                    self.report.warn("drain", f"[Drain] Failed to cordon node={node}")
                self.logger.info(f"[Drain] Draining node={node}")
                if self.kubectl.drain(node, self.timeout):
                    self.success(f"[Drain] Node {node} drained")
                else:
                    self.report.warn("drain", f"[Drain] Failed to drain node {node} completely, continuing anyway")

    # ---------------------------------------------------------------- Backup
    def backup_workloads(self, provider: Provider, layout: StateLayout, state: ClusterState) -> None:
        if not self.backup_enabled:
            self.logger.info("[Backup] Workload backup skipped as requested")
            return
        if self.dry_run:
            self.logger.info(f"[DryRun] Would back up workloads to {layout.backup_dir}")
            return

        self.logger.info("[Backup] Backing up workloads for future resume")
        with self.kubectl.temporary_context(self.cluster, provider.context_name(self.cluster)) as switched:
            if not switched:
                self.report.warn("backup", "[Backup] Could not set kubectl context; workloads not backed up")
                return
            written = backup_workloads(self.kubectl, layout.backup_dir, self.report, self.logger)
        if written:
            state.workloads_backup_dir = str(layout.backup_dir)
            self.success(f"[Backup] Workloads backed up to {layout.backup_dir} files={len(written)}")

    # ------------------------------------------------------------ Kubeconfig
    def save_kubeconfig(self, provider: Provider, layout: StateLayout, state: ClusterState) -> None:
        if not self.preserve_kubeconfig:
            return
        if self.dry_run:
            self.logger.info(f"[DryRun] Would preserve kubeconfig at {layout.kubeconfig}")
            return

        self.logger.info("[Kubeconfig] Preserving kubeconfig context")
        try:
            saved = provider.export_kubeconfig(self.cluster, layout.kubeconfig)
        except (OSError, subprocess.CalledProcessError) as exc:
            self.report.warn("kubeconfig", f"[Kubeconfig] Failed to preserve kubeconfig: {exc}")
            return
        if not saved:
            self.report.warn("kubeconfig", "[Kubeconfig] Failed to preserve kubeconfig")
            return
        state.kubeconfig_saved = True
        state.kubeconfig_path = str(layout.kubeconfig)
        self.success(f"[Kubeconfig] Kubeconfig preserved at {layout.kubeconfig}")

    # -------------------------------------------------------------- Snapshot
    def create_snapshot(self, provider: Provider, layout: StateLayout, state: ClusterState) -> None:
        if not self.snapshot_enabled:
            self.logger.info("[Snapshot] Snapshot creation skipped as not requested")
            return
        if self.dry_run:
            self.logger.info(f"[DryRun] Would create a {provider.name} snapshot for cluster={self.cluster}")
            return

        self.logger.info(f"[Snapshot] Creating snapshot cluster={self.cluster}")
        try:
            snapshot = provider.snapshot(self.cluster, layout)
        except (ClusterStateError, OSError) as exc:
            self.report.warn("snapshot", str(exc))
            return
        state.snapshot_created = True
        state.snapshot_driver = snapshot.driver
        state.snapshot_name = snapshot.name
        state.snapshot_dir = str(snapshot.directory) if snapshot.directory else None
        self.success(f"[Snapshot] Snapshot created driver={snapshot.driver} {snapshot.name or snapshot.directory}")

    # ----------------------------------------------------------------- State
    def save_state(self, layout: StateLayout, state: ClusterState) -> None:
        if self.dry_run:
            self.logger.info(f"[DryRun] Would write state file {layout.state_file}")
            return
        self.logger.info(f"[State] Creating state file: {layout.state_file}")
        try:
            state.write(layout.state_file)
        except OSError as exc:
            raise ClusterStateError(f"[State] Failed to save cluster state file={layout.state_file}: {exc}") from exc
        self.success(f"[State] Cluster state saved to {layout.state_file}")

    def write_resume_script(self, layout: StateLayout) -> None:
        if self.dry_run:
            self.logger.info(f"[DryRun] Would write resume script {layout.resume_script}")
            return
        try:
            write_resume_script(layout.resume_script, self.cluster, layout.state_file)
        except OSError as exc:
            self.report.warn("resume-script", f"[State] Failed to write resume script: {exc}")
            return
        self.success(f"[State] Resume script created: {layout.resume_script}")

    def log_summary(self, layout: StateLayout) -> None:
        self.logger.info(f"[Pause] Summary cluster={self.cluster} state={layout.state_file}")
        self.logger.info(f"[Pause] To resume later, run: cluster-state resume --name {self.cluster}")
        self.logger.info(f"[Pause]   or: {layout.resume_script}")
