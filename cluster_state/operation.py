"""Shared flow for every cluster-state command."""

from __future__ import annotations

import logging
from typing import Any, List, Tuple

from .config import AUTO
from .errors import OperationReport
from .kube import Kubectl
from .log import log_success, print_separator
from .providers import Provider, detect_provider, get_provider
from .runner import CommandRunner


class Operation:
    title = ""
    tag = ""

    def __init__(self, runner: CommandRunner, logger: logging.Logger) -> None:
        self.runner = runner
        self.logger = logger
        self.kubectl = Kubectl(runner)
        self.report = OperationReport(self.tag, logger)

    @property
    def dry_run(self) -> bool:
        return self.runner.dry_run

    # -------------------------------------------------------------- Entry point
    def execute(self) -> OperationReport:
        print_separator(self.title)
        if self.dry_run:
            self.logger.info("[DryRun] No changes will be made; vendor commands are only reported")
        try:
            self.run_flow()
        finally:
            print_separator(f"End of {self.title}")
        self.report.log_summary()
        return self.report

    def run_flow(self) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------ Helpers
    def resolve_provider(self, cluster: str, provider_name: str) -> Provider:
        if provider_name == AUTO:
            return detect_provider(self.runner, self.logger, cluster)
        provider = get_provider(provider_name, self.runner, self.logger)
        self.runner.ensure_command(provider.binary)
        return provider

    def log_configuration(self, items: List[Tuple[str, Any]]) -> None:
        width = max(len(label) for label, _ in items) + 1
        self.logger.info(f"[{self.tag}] Configuration:")
        for label, value in items:
            self.logger.info(f"[{self.tag}]   {(label + ':').ljust(width)} {value}")

    def success(self, message: str) -> None:
        log_success(self.logger, message)
