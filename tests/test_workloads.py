"""Unit tests for workload backup and restore"""

import os
import stat
import tempfile
import unittest
from pathlib import Path

from cluster_state.errors import OperationReport
from cluster_state.kube import Kubectl
from cluster_state.workloads import BACKUP_RESOURCES, backup_files, backup_workloads, count_items, restore_workloads
from tests.fakes import FakeRunner, quiet_logger

EMPTY_LIST = "apiVersion: v1\nkind: List\nitems: []\n"
TWO_DEPLOYMENTS = """apiVersion: v1
kind: List
items:
- kind: Deployment
  metadata:
    name: web
- kind: Deployment
  metadata:
    name: worker
"""


class TestCountItems(unittest.TestCase):
    def test_list(self):
        self.assertEqual(count_items(TWO_DEPLOYMENTS), 2)

    def test_empty_list(self):
        self.assertEqual(count_items(EMPTY_LIST), 0)

    def test_unreadable(self):
        self.assertIsNone(count_items("plain text"))
        self.assertIsNone(count_items("items: [unclosed"))


class TestBackupWorkloads(unittest.TestCase):
    """Test dumping resources into the backup directory"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.backup_dir = Path(self.tmp.name) / "dev-backup"
        self.runner = FakeRunner()
        for _, resource, _, _ in BACKUP_RESOURCES:
            self.runner.on("kubectl", "get", resource, stdout=TWO_DEPLOYMENTS if resource == "deployments" else EMPTY_LIST)
        self.report = OperationReport("Pause", quiet_logger())

    def tearDown(self):
        self.tmp.cleanup()

    def test_writes_every_resource(self):
        written = backup_workloads(Kubectl(self.runner), self.backup_dir, self.report, quiet_logger())

        self.assertEqual(len(written), len(BACKUP_RESOURCES))
        self.assertTrue(self.report.clean)
        self.assertEqual((self.backup_dir / "deployments.yaml").read_text(encoding="utf-8"), TWO_DEPLOYMENTS)

    def test_secrets_are_private(self):
        backup_workloads(Kubectl(self.runner), self.backup_dir, self.report, quiet_logger())

        mode = stat.S_IMODE(os.stat(self.backup_dir / "secrets.yaml").st_mode)
        self.assertEqual(mode, 0o600)

    def test_namespaced_resources_use_all_namespaces(self):
        backup_workloads(Kubectl(self.runner), self.backup_dir, self.report, quiet_logger())

        self.assertIn("--all-namespaces", self.runner.commands_starting("kubectl", "get", "secrets")[0])
        self.assertNotIn("--all-namespaces", self.runner.commands_starting("kubectl", "get", "pv")[0])

    def test_failed_resource_is_advisory(self):
        self.runner.responses.pop(("kubectl", "get", "secrets"))
        self.runner.on("kubectl", "get", "secrets", returncode=1, stderr="forbidden")

        written = backup_workloads(Kubectl(self.runner), self.backup_dir, self.report, quiet_logger())

        self.assertEqual(len(written), len(BACKUP_RESOURCES) - 1)
        self.assertFalse((self.backup_dir / "secrets.yaml").exists())
        self.assertEqual(len(self.report.advisories_for("backup")), 1)
        self.assertIn("forbidden", self.report.advisories[0].message)


class TestRestoreWorkloads(unittest.TestCase):
    """Test dependency-ordered restore"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.backup_dir = Path(self.tmp.name)
        self.runner = FakeRunner()
        self.report = OperationReport("Resume", quiet_logger())

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, *names):
        for name in names:
            (self.backup_dir / name).write_text(EMPTY_LIST, encoding="utf-8")

    def applied_files(self):
        return [Path(cmd[3]).name for cmd in self.runner.commands_starting("kubectl", "apply")]

    def test_dependency_order(self):
        self.write("deployments.yaml", "services.yaml", "secrets.yaml", "namespaces.yaml", "configmaps.yaml")

        applied = restore_workloads(Kubectl(self.runner), self.backup_dir, 300, self.report, quiet_logger())

        expected = ["namespaces.yaml", "configmaps.yaml", "secrets.yaml", "services.yaml", "deployments.yaml"]
        self.assertEqual(applied, expected)
        self.assertEqual(self.applied_files(), expected)
        self.assertIn("--timeout=300s", self.runner.calls[0])

    def test_failure_continues_with_next_file(self):
        self.write("configmaps.yaml", "services.yaml")
        self.runner.on("kubectl", "apply", "-f", str(self.backup_dir / "configmaps.yaml"), returncode=1)

        applied = restore_workloads(Kubectl(self.runner), self.backup_dir, 60, self.report, quiet_logger())

        self.assertEqual(applied, ["services.yaml"])
        self.assertEqual(len(self.report.advisories_for("restore")), 1)

    def test_backup_files_lists_yaml_only(self):
        self.write("services.yaml", "deployments.yaml")
        (self.backup_dir / "notes.txt").write_text("x", encoding="utf-8")
        self.assertEqual([p.name for p in backup_files(self.backup_dir)], ["deployments.yaml", "services.yaml"])


if __name__ == "__main__":
    unittest.main()
