"""Error types and the advisory-failure report shared by every command."""

from __future__ import annotations

import logging
from typing import List


class ClusterStateError(Exception):
    """Raised when an operation cannot continue."""


class ProviderNotFoundError(ClusterStateError):
    """Raised when no provider reports the requested cluster."""


class StateFileError(ClusterStateError):
    """Raised when a state file is missing or cannot be understood."""


class CancelledByUser(Exception):
    """Raised when the user declines a confirmation prompt."""


class Advisory:
    """A failed step that did not abort the operation."""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        self.message = message

    def __repr__(self) -> str:
        return f"Advisory(step={self.step!r}, message={self.message!r})"

    def __str__(self) -> str:
        return f"{self.step}: {self.message}"


class OperationReport:
    def __init__(self, operation: str, logger: logging.Logger) -> None:
        self.operation = operation
        self.logger = logger
        self.advisories: List[Advisory] = []

    @property
    def clean(self) -> bool:
        return not self.advisories

    def warn(self, step: str, message: str) -> None:
        self.advisories.append(Advisory(step, message))
        self.logger.warning(message)

    def advisories_for(self, step: str) -> List[Advisory]:
        return [advisory for advisory in self.advisories if advisory.step == step]

    def log_summary(self) -> None:
        if self.clean:
            self.logger.info(f"[{self.operation}] Completed without warnings")
            return
        self.logger.warning(f"[{self.operation}] Completed with {len(self.advisories)} warning(s)")
        for advisory in self.advisories:
            self.logger.warning(f"[{self.operation}]   - {advisory}")
