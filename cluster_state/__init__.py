"""Lifecycle and pause/resume tooling for local Kubernetes clusters."""

__version__ = "0.1.0"
