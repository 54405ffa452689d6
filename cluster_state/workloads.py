"""Workload backup at pause time and ordered restore at resume time."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

import yaml

from .errors import OperationReport
from .kube import Kubectl

PRIVATE_FILES = ("secrets.yaml",)

# (file name, kubectl resource, namespaced, label)
BACKUP_RESOURCES: List[Tuple[str, str, bool, str]] = [
    ("namespaces.yaml", "namespaces", False, "namespaces"),
    ("deployments.yaml", "deployments", True, "deployments"),
    ("services.yaml", "services", True, "services"),
    ("configmaps.yaml", "configmaps", True, "configmaps"),
    ("secrets.yaml", "secrets", True, "secrets"),
    ("persistent-volumes.yaml", "pv", False, "persistent volumes"),
    ("persistent-volume-claims.yaml", "pvc", True, "persistent volume claims"),
]

RESTORE_ORDER: List[Tuple[str, str]] = [
    ("namespaces.yaml", "Namespaces"),
    ("configmaps.yaml", "ConfigMaps"),
    ("secrets.yaml", "Secrets"),
    ("persistent-volumes.yaml", "Persistent Volumes"),
    ("persistent-volume-claims.yaml", "Persistent Volume Claims"),
    ("services.yaml", "Services"),
    ("deployments.yaml", "Deployments"),
]


def count_items(document: str) -> Optional[int]:
    """Number of items in a ``kubectl get -o yaml`` List; None when unparseable."""
    try:
        data = yaml.safe_load(document)
    except yaml.YAMLError:
        return None
    if not isinstance(data, dict):
        return None
    if data.get("kind") == "List" or "items" in data:
        return len(data.get("items") or [])
    return 1


def backup_workloads(kubectl: Kubectl, backup_dir: Path, report: OperationReport, logger: logging.Logger) -> List[Path]:
    backup_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for file_name, resource, namespaced, label in BACKUP_RESOURCES:
        logger.info(f"[Backup] Backing up {label}...")
        result = kubectl.dump(resource, all_namespaces=namespaced)
        if result.returncode != 0:
            report.warn("backup", f"[Backup] Failed to back up {label}: {(result.stderr or '').strip() or 'kubectl error'}")
            continue
        items = count_items(result.stdout)
        if items is None:
            report.warn("backup", f"[Backup] kubectl returned unreadable YAML for {label}")
            continue
        target = backup_dir / file_name
        target.write_text(result.stdout, encoding="utf-8")
        if file_name in PRIVATE_FILES:
            os.chmod(target, 0o600)
        written.append(target)
        logger.debug(f"[Backup] Wrote {target} items={items}")
    return written


def backup_files(backup_dir: Path) -> List[Path]:
    return sorted(path for path in backup_dir.glob("*.yaml") if path.is_file())


def restore_workloads(kubectl: Kubectl, backup_dir: Path, timeout: int, report: OperationReport, logger: logging.Logger) -> List[str]:
    """Apply backed-up resources in dependency order; returns the files applied."""
    applied: List[str] = []
    for file_name, label in RESTORE_ORDER:
        path = backup_dir / file_name
        if not path.is_file():
            continue
        logger.info(f"[Restore] Restoring {label}...")
        try:
            kubectl.apply(str(path), timeout=timeout)
        except subprocess.CalledProcessError as exc:
            report.warn("restore", f"[Restore] Failed to restore {label} exit={exc.returncode}")
            continue
        applied.append(file_name)
    return applied
