"""Sandbox providers: docker containers, E2B managed sandboxes, local processes."""

from mategate.infrastructure.sandbox.base import ProviderUnavailableError, SandboxProvider
from mategate.infrastructure.sandbox.docker import DockerProvider
from mategate.infrastructure.sandbox.e2b import E2BProvider
from mategate.infrastructure.sandbox.local import SubprocessProvider

__all__ = [
    "DockerProvider",
    "E2BProvider",
    "ProviderUnavailableError",
    "SandboxProvider",
    "SubprocessProvider",
]
