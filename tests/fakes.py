"""Recording stand-in for CommandRunner used across the test suite."""

import json
import logging
import subprocess
from typing import Dict, List, Tuple

from cluster_state.runner import CommandRunner

DEFAULT_BINARIES = ("minikube", "kind", "k3d", "kubectl", "docker")


def quiet_logger() -> logging.Logger:
    logger = logging.getLogger("cluster_state.tests")
    logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger


class FakeRunner(CommandRunner):
    def __init__(self, dry_run=False, binaries=DEFAULT_BINARIES):
        super().__init__(quiet_logger(), dry_run=dry_run, env={})
        self.binaries = set(binaries)
        self.responses: Dict[Tuple[str, ...], List[subprocess.CompletedProcess]] = {}
        self.calls: List[List[str]] = []
        self.reported: List[List[str]] = []
        self.hooks: Dict[Tuple[str, ...], object] = {}

    def on(self, *prefix, stdout="", returncode=0, stderr=""):
        """Script the result for commands starting with ``prefix``.

        Registering the same prefix again queues results; the last one repeats.
        """
        result = subprocess.CompletedProcess(list(prefix), returncode, stdout=stdout, stderr=stderr)
        self.responses.setdefault(tuple(prefix), []).append(result)
        return self

    def on_json(self, *prefix, data):
        return self.on(*prefix, stdout=json.dumps(data))

    def hook(self, *prefix, callback):
        self.hooks[tuple(prefix)] = callback

    def _match(self, table, cmd):
        best = None
        for prefix in table:
            if tuple(cmd[: len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        return best

    def run(self, cmd, *, check=True, capture_output=False, mutating=True):
        cmd = list(cmd)
        if self.dry_run and mutating:
            self.reported.append(cmd)
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        self.calls.append(cmd)
        hook_prefix = self._match(self.hooks, cmd)
        if hook_prefix is not None:
            self.hooks[hook_prefix](cmd)

        prefix = self._match(self.responses, cmd)
        if prefix is None:
            result = subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")
        else:
            queue = self.responses[prefix]
            scripted = queue.pop(0) if len(queue) > 1 else queue[0]
            result = subprocess.CompletedProcess(cmd, scripted.returncode, stdout=scripted.stdout, stderr=scripted.stderr)

        if check and result.returncode != 0:
            raise subprocess.CalledProcessError(result.returncode, cmd, output=result.stdout, stderr=result.stderr)
        return result

    def has_command(self, name):
        return name in self.binaries

    def commands_starting(self, *prefix):
        return [cmd for cmd in self.calls if tuple(cmd[: len(prefix)]) == prefix]

    def index_of(self, *prefix):
        for index, cmd in enumerate(self.calls):
            if tuple(cmd[: len(prefix)]) == prefix:
                return index
        raise AssertionError(f"command {prefix} was not run; calls={self.calls}")


def ready_nodes(*names):
    return {
        "items": [
            {"metadata": {"name": name}, "status": {"conditions": [{"type": "Ready", "status": "True"}]}}
            for name in names
        ]
    }


def kind_cluster(runner, name="dev", running=True, containers=("dev-control-plane",)):
    """Script a kind cluster called ``name`` on ``runner``."""
    label = f"label=io.x-k8s.kind.cluster={name}"
    runner.on("kind", "get", "clusters", stdout=f"{name}\n")
    runner.on("kind", "get", "nodes", "--name", name, stdout="\n".join(containers) + "\n")
    runner.on("kind", "get", "kubeconfig", "--name", name, stdout="apiVersion: v1\nkind: Config\n")
    runner.on("docker", "ps", "--filter", label, stdout=("\n".join(containers) + "\n") if running else "")
    runner.on("docker", "ps", "-a", "--filter", label, stdout="\n".join(containers) + "\n")
    return runner
