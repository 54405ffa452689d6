"""Unit tests for the providers module"""

import json
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from cluster_state.errors import ClusterStateError, ProviderNotFoundError
from cluster_state.providers import (
    K3dProvider,
    KindProvider,
    MinikubeProvider,
    detect_provider,
    get_provider,
    hinted_providers,
    multi_node_kind_config,
)
from cluster_state.state import StateLayout
from tests.fakes import FakeRunner, kind_cluster


class TestDetectProvider(unittest.TestCase):
    """Test provider auto-detection"""

    def test_detects_kind(self):
        runner = FakeRunner()
        runner.on_json("minikube", "profile", "list", data={"valid": [{"Name": "other"}]})
        runner.on("kind", "get", "clusters", stdout="dev\n")

        provider = detect_provider(runner, runner.logger, "dev")

        self.assertIsInstance(provider, KindProvider)

    def test_exact_name_match_only(self):
        runner = FakeRunner()
        runner.on_json("minikube", "profile", "list", data={"valid": [{"Name": "dev-old"}]})
        runner.on("kind", "get", "clusters", stdout="dev2\n")
        runner.on_json("k3d", "cluster", "list", data=[{"name": "dev"}])

        provider = detect_provider(runner, runner.logger, "dev")

        self.assertIsInstance(provider, K3dProvider)

    def test_name_hint_probed_first(self):
        runner = FakeRunner()
        runner.on("kind", "get", "clusters", stdout="k3d-lab\n")
        runner.on_json("k3d", "cluster", "list", data=[{"name": "k3d-lab"}])

        provider = detect_provider(runner, runner.logger, "k3d-lab")

        self.assertIsInstance(provider, K3dProvider)
        self.assertEqual(runner.calls[0][:3], ["k3d", "cluster", "list"])

    def test_skips_missing_binaries(self):
        runner = FakeRunner(binaries=("kind", "kubectl", "docker"))
        runner.on("kind", "get", "clusters", stdout="dev\n")

        detect_provider(runner, runner.logger, "dev")

        self.assertFalse(runner.commands_starting("minikube"))

    def test_not_found(self):
        runner = FakeRunner()
        with self.assertRaises(ProviderNotFoundError):
            detect_provider(runner, runner.logger, "ghost")

    def test_hints(self):
        self.assertEqual(hinted_providers("minikube"), ["minikube"])
        self.assertEqual(hinted_providers("app-kind"), ["kind"])
        self.assertEqual(hinted_providers("plain"), [])

    def test_unknown_provider(self):
        runner = FakeRunner()
        with self.assertRaises(ClusterStateError):
            get_provider("docker-desktop", runner, runner.logger)


class TestKindProvider(unittest.TestCase):
    """Test kind provider container handling"""

    def setUp(self):
        self.runner = kind_cluster(FakeRunner(), containers=("dev-control-plane", "dev-worker"))
        self.provider = KindProvider(self.runner, self.runner.logger)

    def test_context_name(self):
        self.assertEqual(self.provider.context_name("dev"), "kind-dev")

    def test_stop_each_container(self):
        self.provider.stop("dev")
        stopped = [cmd[2] for cmd in self.runner.commands_starting("docker", "stop")]
        self.assertEqual(stopped, ["dev-control-plane", "dev-worker"])

    def test_stop_aborts_on_failure(self):
        self.runner.on("docker", "stop", "dev-control-plane", returncode=1)
        with self.assertRaises(ClusterStateError):
            self.provider.stop("dev")
        self.assertEqual(len(self.runner.commands_starting("docker", "stop")), 1)

    def test_stop_without_running_containers(self):
        runner = kind_cluster(FakeRunner(), running=False)
        with self.assertRaises(ClusterStateError):
            KindProvider(runner, runner.logger).stop("dev")

    def test_start_uses_stopped_containers(self):
        self.provider.start("dev")
        started = [cmd[2] for cmd in self.runner.commands_starting("docker", "start")]
        self.assertEqual(started, ["dev-control-plane", "dev-worker"])

    def test_start_without_containers(self):
        runner = FakeRunner()
        with self.assertRaises(ClusterStateError):
            KindProvider(runner, runner.logger).start("dev")

    def test_snapshot_writes_inspect_output(self):
        self.runner.on("docker", "inspect", stdout='[{"Id": "abc"}]')
        provider = KindProvider(self.runner, self.runner.logger, clock=lambda: datetime(2026, 1, 4, 10, 15, 0))
        with tempfile.TemporaryDirectory() as tmp:
            snapshot = provider.snapshot("dev", StateLayout(Path(tmp), "dev", "kind"))
            self.assertEqual(snapshot.directory, Path(tmp) / "dev-snapshot-20260104101500")
            self.assertEqual(sorted(p.name for p in snapshot.directory.iterdir()), ["dev-control-plane.json", "dev-worker.json"])

    def test_create_multi_node(self):
        self.provider.create("lab", nodes=3, version="1.29.2")
        cmd = self.runner.commands_starting("kind", "create", "cluster")[0]
        self.assertIn("--image", cmd)
        self.assertIn("kindest/node:v1.29.2", cmd)
        self.assertIn("--config", cmd)

    def test_multi_node_config(self):
        config = multi_node_kind_config(3)
        self.assertEqual([node["role"] for node in config["nodes"]], ["control-plane", "worker", "worker"])

    def test_restart_recreates_with_node_count(self):
        self.provider.restart("dev")
        delete_index = self.runner.index_of("kind", "delete", "cluster")
        create_index = self.runner.index_of("kind", "create", "cluster")
        self.assertLess(delete_index, create_index)
        self.assertIn("--config", self.runner.calls[create_index])


class TestMinikubeProvider(unittest.TestCase):
    """Test minikube provider"""

    def setUp(self):
        self.runner = FakeRunner()
        self.runner.on_json("minikube", "profile", "list", data={"valid": [{"Name": "vm", "Config": {"Driver": "virtualbox"}}]})
        self.provider = MinikubeProvider(self.runner, self.runner.logger, clock=lambda: datetime(2026, 1, 4, 10, 15, 0))

    def test_is_running(self):
        self.runner.on_json("minikube", "status", data={"Host": "Running", "APIServer": "Running"})
        self.assertTrue(self.provider.is_running("vm"))

    def test_stop_prefers_pause(self):
        self.runner.on("minikube", "help", stdout="  pause   pause Kubernetes\n")
        self.provider.stop("vm")
        self.assertTrue(self.runner.commands_starting("minikube", "pause"))
        self.assertFalse(self.runner.commands_starting("minikube", "stop"))

    def test_stop_falls_back_when_pause_fails(self):
        self.runner.on("minikube", "help", stdout="pause")
        self.runner.on("minikube", "pause", returncode=1)
        self.provider.stop("vm")
        self.assertEqual(self.runner.commands_starting("minikube", "stop"), [["minikube", "stop", "-p", "vm"]])

    def test_start_unpauses_paused_cluster(self):
        self.runner.on_json("minikube", "status", data={"Host": "Running", "APIServer": "Paused"})
        self.provider.start("vm")
        self.assertEqual(self.runner.commands_starting("minikube", "unpause"), [["minikube", "unpause", "-p", "vm"]])

    def test_start_stopped_cluster(self):
        self.runner.on_json("minikube", "status", data={"Host": "Stopped", "APIServer": "Stopped"})
        self.provider.start("vm")
        self.assertEqual(self.runner.commands_starting("minikube", "start"), [["minikube", "start", "-p", "vm"]])

    def test_virtualbox_snapshot(self):
        self.runner.binaries.add("VBoxManage")
        snapshot = self.provider.snapshot("vm", StateLayout(Path("/unused"), "vm", "minikube"))
        self.assertEqual(snapshot.name, "vm_20260104101500")
        self.assertEqual(self.runner.commands_starting("VBoxManage")[0], ["VBoxManage", "snapshot", "vm", "take", "vm_20260104101500"])

    def test_snapshot_unsupported_driver(self):
        runner = FakeRunner()
        runner.on_json("minikube", "profile", "list", data={"valid": [{"Name": "vm", "Config": {"Driver": "docker"}}]})
        with self.assertRaises(ClusterStateError):
            MinikubeProvider(runner, runner.logger).snapshot("vm", StateLayout(Path("/unused"), "vm", "minikube"))

    def test_restart_stops_and_starts(self):
        self.runner.on("minikube", "help", stdout="  pause   pause Kubernetes\n")
        self.runner.on_json("minikube", "status", data={"Host": "Running", "APIServer": "Paused"})

        self.provider.restart("vm")

        self.assertLess(self.runner.index_of("minikube", "stop", "-p", "vm"), self.runner.index_of("minikube", "start", "-p", "vm"))
        self.assertFalse(self.runner.commands_starting("minikube", "pause"))
        self.assertFalse(self.runner.commands_starting("minikube", "unpause"))

    def test_restart_stop_failure(self):
        self.runner.on("minikube", "stop", returncode=1)
        with self.assertRaises(ClusterStateError):
            self.provider.restart("vm")
        self.assertFalse(self.runner.commands_starting("minikube", "start"))

    def test_create_arguments(self):
        self.provider.create("lab", nodes=2, version="1.28.0")
        self.assertEqual(
            self.runner.commands_starting("minikube", "start")[0],
            ["minikube", "start", "-p", "lab", "--kubernetes-version=1.28.0", "--nodes=2"],
        )


class TestK3dProvider(unittest.TestCase):
    """Test k3d provider"""

    def provider_with(self, record):
        runner = FakeRunner()
        runner.on("k3d", "cluster", "list", stdout=json.dumps([record]))
        return runner, K3dProvider(runner, runner.logger)

    def test_running_from_server_count(self):
        _, provider = self.provider_with({"name": "lab", "serversRunning": 1})
        self.assertTrue(provider.is_running("lab"))

    def test_running_from_node_state(self):
        _, provider = self.provider_with({"name": "lab", "nodes": [{"role": "server", "State": {"Running": True}}]})
        self.assertTrue(provider.is_running("lab"))

    def test_stopped(self):
        _, provider = self.provider_with({"name": "lab", "serversRunning": 0, "nodes": [{"role": "server", "State": {"Running": False}}]})
        self.assertFalse(provider.is_running("lab"))

    def test_create_arguments(self):
        runner, provider = self.provider_with({"name": "other"})
        provider.create("lab", nodes=3, version="1.29.1")
        self.assertEqual(
            runner.commands_starting("k3d", "cluster", "create")[0],
            ["k3d", "cluster", "create", "lab", "--image", "rancher/k3s:v1.29.1-k3s1", "--agents", "2"],
        )

    def test_stop_failure_is_fatal(self):
        runner, provider = self.provider_with({"name": "lab"})
        runner.on("k3d", "cluster", "stop", returncode=1)
        with self.assertRaises(ClusterStateError):
            provider.stop("lab")


if __name__ == "__main__":
    unittest.main()
