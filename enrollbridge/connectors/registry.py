"""Registry of available platform connectors."""

import logging

from enrollbridge.connectors.base import BaseConnector
from enrollbridge.schemas import UtilityPreset

logger = logging.getLogger(__name__)


class ConnectorRegistry:
    """Keeps connectors by id and answers metadata/preset queries.

    The first connector registered is the default.
    """

    def __init__(self) -> None:
        self._connectors: dict[str, BaseConnector] = {}

    def register(self, connector: BaseConnector) -> bool:
        """Add ``connector``; returns False if its id is empty or taken."""
        if not connector.id:
            logger.warning("Refusing to register connector without an id: %r", connector)
            return False
        if connector.id in self._connectors:
            logger.warning("Connector '%s' is already registered", connector.id)
            return False
        self._connectors[connector.id] = connector
        logger.debug("Registered connector '%s' v%s", connector.id, connector.version)
        return True

    def unregister(self, connector_id: str) -> bool:
        return self._connectors.pop(connector_id, None) is not None

    def get(self, connector_id: str) -> BaseConnector | None:
        return self._connectors.get(connector_id)

    def has(self, connector_id: str) -> bool:
        return connector_id in self._connectors

    def all(self) -> list[BaseConnector]:
        return list(self._connectors.values())

    def __len__(self) -> int:
        return len(self._connectors)

    def get_default(self) -> BaseConnector | None:
        return next(iter(self._connectors.values()), None)

    def get_metadata(self, connector_id: str | None = None) -> dict:
        """Metadata for one connector, or ``{id: metadata}`` for all of them."""
        if connector_id is not None:
            connector = self.get(connector_id)
            return connector.metadata() if connector else {}
        return {cid: c.metadata() for cid, c in self._connectors.items()}

    def get_options(self) -> dict[str, str]:
        """``{id: name}`` for select boxes."""
        return {cid: c.name for cid, c in self._connectors.items()}

    def get_all_presets(self) -> dict[str, UtilityPreset]:
        """Presets from every connector, keyed ``"<connector_id>:<preset_id>"``."""
        presets = {}
        for cid, connector in self._connectors.items():
            for preset_id, preset in connector.presets.items():
                presets[f"{cid}:{preset_id}"] = preset
        return presets

    def get_supporting(self, feature: str) -> list[BaseConnector]:
        return [c for c in self._connectors.values() if c.supports(feature)]


def default_registry() -> ConnectorRegistry:
    """Registry with the built-in connectors registered."""
    from enrollbridge.connectors.intellisource import IntelliSourceConnector

    registry = ConnectorRegistry()
    registry.register(IntelliSourceConnector())
    return registry
