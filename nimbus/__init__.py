"""Client core for the Nimbus cloud file-storage service."""

from .config import NimbusConfig  # noqa: F401
from .runtime import NimbusRuntime  # noqa: F401
