"""Standalone resume script written next to a paused cluster's state file."""

from __future__ import annotations

import os
import shlex
from pathlib import Path

RESUME_TEMPLATE = """#!/usr/bin/env bash
# Resume the paused Kubernetes cluster {cluster}
# Generated by cluster-state pause

set -e

export STATE_FILE={state_file}

if [[ ! -f "${{STATE_FILE}}" ]]; then
  echo "Error: State file not found: ${{STATE_FILE}}"
  exit 1
fi

KUBECONFIG_SAVED=""
KUBECONFIG_PATH=""
WORKLOADS_BACKUP_DIR=""
# shellcheck disable=SC1090
source "${{STATE_FILE}}"

echo "Resuming cluster: ${{CLUSTER_NAME}} (${{PROVIDER}})"

case "${{PROVIDER}}" in
  minikube)
    if minikube status -p "${{CLUSTER_NAME}}" -o json 2>/dev/null | grep -q '"APIServer":"Paused"'; then
      minikube unpause -p "${{CLUSTER_NAME}}"
    else
      minikube start -p "${{CLUSTER_NAME}}"
    fi
    ;;
  kind)
    CONTAINERS=$(docker ps -a --filter "label=io.x-k8s.kind.cluster=${{CLUSTER_NAME}}" --format "{{{{.Names}}}}")
    if [[ -z "${{CONTAINERS}}" ]]; then
      echo "Error: No Docker containers found for kind cluster: ${{CLUSTER_NAME}}"
      exit 1
    fi
    for CONTAINER in ${{CONTAINERS}}; do
      echo "Starting container: ${{CONTAINER}}"
      docker start "${{CONTAINER}}" > /dev/null
    done
    ;;
  k3d)
    k3d cluster start "${{CLUSTER_NAME}}"
    ;;
  *)
    echo "Error: Unsupported provider: ${{PROVIDER}}"
    exit 1
    ;;
esac

if [[ "${{KUBECONFIG_SAVED}}" == "true" && -n "${{KUBECONFIG_PATH}}" ]]; then
  if [[ -f "${{KUBECONFIG_PATH}}" ]]; then
    echo "Run the following command to use the kubeconfig:"
    echo "export KUBECONFIG=${{KUBECONFIG_PATH}}"
  else
    echo "Warning: Kubeconfig file not found: ${{KUBECONFIG_PATH}}"
  fi
fi

echo "Cluster ${{CLUSTER_NAME}} resumed successfully."
echo "Note: Workloads may take some time to start up completely."

if [[ -n "${{WORKLOADS_BACKUP_DIR}}" && -d "${{WORKLOADS_BACKUP_DIR}}" ]]; then
  echo
  echo "Workloads were backed up to: ${{WORKLOADS_BACKUP_DIR}}"
  echo "Restore them with: cluster-state resume --state-file ${{STATE_FILE}} --restore-workloads"
fi
"""


def render_resume_script(cluster: str, state_file: Path) -> str:
    return RESUME_TEMPLATE.format(cluster=cluster, state_file=shlex.quote(str(state_file)))


def write_resume_script(path: Path, cluster: str, state_file: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_resume_script(cluster, state_file), encoding="utf-8")
    os.chmod(path, 0o755)
    return path
