"""Execution of vendor CLI commands (kubectl, minikube, kind, k3d, docker)."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from typing import Callable, Dict, List, Optional

from .errors import CancelledByUser, ClusterStateError


class CommandRunner:
    def __init__(
        self,
        logger: logging.Logger,
        *,
        dry_run: bool = False,
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        self.logger = logger
        self.dry_run = dry_run
        self.env = env if env is not None else os.environ.copy()

    def run(
        self,
        cmd: List[str],
        *,
        check: bool = True,
        capture_output: bool = False,
        mutating: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run ``cmd``; in dry-run mode mutating commands are only reported."""
        rendered = shlex.join(cmd)
        if self.dry_run and mutating:
            self.logger.info(f"[DryRun] Would run: {rendered}")
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        self.logger.debug(f"[Exec] {rendered}")
        try:
            return subprocess.run(
                cmd,
                check=check,
                text=True,
                capture_output=capture_output,
                env=self.env,
            )
        except FileNotFoundError as exc:
            raise ClusterStateError(f"[Deps] {cmd[0]} is required but not found in PATH") from exc

    def query(self, cmd: List[str]) -> subprocess.CompletedProcess[str]:
        """Read-only command: always executed, never raises on a non-zero exit."""
        return self.run(cmd, check=False, capture_output=True, mutating=False)

    def succeeds(self, cmd: List[str]) -> bool:
        return self.run(cmd, check=False, capture_output=True).returncode == 0

    def has_command(self, name: str) -> bool:
        return shutil.which(name, path=self.env.get("PATH")) is not None

    def ensure_command(self, name: str) -> None:
        if not self.has_command(name):
            raise ClusterStateError(f"[Deps] {name} is required but not found in PATH")


def confirm(prompt: str, force: bool, reader: Optional[Callable[[str], str]] = None) -> bool:
    if force:
        return True
    try:
        answer = (reader or input)(f"{prompt} (y/n): ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def require_confirmation(prompt: str, force: bool, message: str = "Operation cancelled by user.") -> None:
    if not confirm(prompt, force):
        raise CancelledByUser(message)
