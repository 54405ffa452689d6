"""Ordered manifest apply for freshly created clusters."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Tuple

from .config import WORKLOAD_WAIT_TIMEOUT
from .errors import OperationReport
from .kube import Kubectl

MANIFEST_ORDER: List[Tuple[str, str]] = [
    ("namespace", "Namespaces"),
    ("configmaps", "ConfigMaps"),
    ("secrets", "Secrets"),
    ("persistentvolumeclaims", "PersistentVolumeClaims"),
    ("services", "Services"),
    ("deployments", "Deployments"),
    ("statefulsets", "StatefulSets"),
    ("ingress", "Ingress"),
    ("daemonsets", "DaemonSets"),
    ("jobs", "Jobs"),
    ("cronjobs", "CronJobs"),
    ("networkpolicies", "NetworkPolicies"),
    ("serviceaccounts", "ServiceAccounts"),
    ("roles", "Roles"),
    ("rolebindings", "RoleBindings"),
    ("clusterroles", "ClusterRoles"),
    ("clusterrolebindings", "ClusterRoleBindings"),
    ("resourcequotas", "ResourceQuotas"),
    ("limitranges", "LimitRanges"),
    ("horizontalpodautoscalers", "HorizontalPodAutoscalers"),
    ("poddisruptionbudgets", "PodDisruptionBudgets"),
    ("customresourcedefinitions", "CustomResourceDefinitions"),
]

# (resource kind, wait condition)
WAIT_TARGETS: List[Tuple[str, str]] = [
    ("deployment", "available"),
    ("statefulset", "ready"),
]


def planned_directories(root: Path) -> List[Path]:
    return [root / name for name, _ in MANIFEST_ORDER if (root / name).is_dir()]


def apply_manifests(kubectl: Kubectl, root: Path, logger: logging.Logger) -> List[str]:
    """Apply every present manifest directory in the fixed order.

    A failing apply raises CalledProcessError and stops the sequence.
    """
    applied: List[str] = []
    for name, label in MANIFEST_ORDER:
        directory = root / name
        if not directory.is_dir():
            continue
        logger.info(f"[Manifests] Applying {label}...")
        kubectl.apply(str(directory))
        applied.append(name)
    if not applied:
        logger.warning(f"[Manifests] No manifest directories found root={root}")
    return applied


def wait_for_workloads(kubectl: Kubectl, report: OperationReport, logger: logging.Logger, timeout: int = WORKLOAD_WAIT_TIMEOUT) -> None:
    for namespace in kubectl.namespaces():
        for kind, condition in WAIT_TARGETS:
            for name in kubectl.resource_names(kind, namespace):
                logger.info(f"[Manifests] Waiting for {kind}/{name} namespace={namespace}")
                if not kubectl.wait(f"{kind}/{name}", namespace, condition, timeout):
                    report.warn("wait", f"[Manifests] {kind}/{name} not {condition} after {timeout}s namespace={namespace}")
