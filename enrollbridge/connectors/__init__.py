"""Platform connectors.

Exports:
    BaseConnector          -- abstract connector contract
    IntelliSourceConnector -- PowerPortal IntelliSOURCE implementation
    ConnectorRegistry      -- lookup of connectors by id
    default_registry       -- registry with the built-in connectors
"""

from enrollbridge.connectors.base import BaseConnector
from enrollbridge.connectors.intellisource import PRESETS, IntelliSourceConnector
from enrollbridge.connectors.registry import ConnectorRegistry, default_registry

__all__ = [
    "PRESETS",
    "BaseConnector",
    "ConnectorRegistry",
    "IntelliSourceConnector",
    "default_registry",
]
