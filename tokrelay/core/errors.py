# tokrelay/core/errors.py
"""
Relay error taxonomy.

Each error is absorbed at the boundary of the concern that raised it:
provisioning falls back to the fallback channel, retrieval degrades to
link-only delivery, and a delivery failure never stops the other platform.
ForwardingError is the only one that reaches the gateway.
"""
from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors"""


class ProvisioningError(RelayError):
    """Creating a destination channel failed."""


class ForwardingError(RelayError):
    """A recognized notification could not be enqueued."""


class RetrievalError(RelayError):
    """
    A download engine failed or produced an implausible result.

    Attributes:
        engine: Registry name of the engine involved (None if selection failed).
    """

    def __init__(self, message: str, engine: str | None = None):
        self.engine = engine
        super().__init__(message)


class EngineNotConfiguredError(RetrievalError):
    """DOWNLOAD_ENGINE names an engine that is not registered."""


class DeliveryError(RelayError):
    """
    One platform adapter failed to deliver.

    Attributes:
        channel: Adapter name ("discord" / "telegram").
    """

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(f"[{channel}] {message}")
