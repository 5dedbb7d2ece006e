"""Error types shared by the core and adapters."""

from __future__ import annotations

from typing import Optional


class SkybridgeError(Exception):
    """Base class for relay errors."""


class StartupError(SkybridgeError):
    """The bridge cannot come online (own identity or backlog unavailable)."""


class PipelineCompositionError(SkybridgeError):
    """A stage was installed before the stage that provides its inputs."""


class DeliveryError(SkybridgeError):
    """Sending or editing a message on a platform failed."""


class PlatformError(DeliveryError):
    """A platform API answered with an error payload."""

    def __init__(self, method: str, description: str, code: Optional[int] = None) -> None:
        super().__init__(f"{method} failed ({code}): {description}")
        self.method = method
        self.description = description
        self.code = code
