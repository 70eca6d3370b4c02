"""Connector contract shared by every enrollment platform integration."""

from abc import ABC, abstractmethod

from enrollbridge.schemas import (
    AccountValidationOutcome,
    BookingOutcome,
    ConfigField,
    ConnectionTestOutcome,
    EnrollmentOutcome,
    ScheduleOutcome,
    UtilityPreset,
)


class BaseConnector(ABC):
    """Abstract base class for platform connectors.

    Business operations are coroutines taking the request data and the
    connector config dict. They never raise; failures come back as outcomes
    with an ``error_code``.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    version: str = "1.0.0"

    @abstractmethod
    def get_config_fields(self) -> list[ConfigField]:
        ...

    @abstractmethod
    def validate_config(self, config: dict) -> list[str]:
        """Return human-readable problems with ``config``; empty when usable."""
        ...

    @abstractmethod
    async def test_connection(self, config: dict) -> ConnectionTestOutcome:
        ...

    @abstractmethod
    async def validate_account(self, data: dict, config: dict) -> AccountValidationOutcome:
        ...

    @abstractmethod
    async def submit_enrollment(self, form_data: dict, config: dict) -> EnrollmentOutcome:
        ...

    @abstractmethod
    async def get_schedule_slots(self, data: dict, config: dict) -> ScheduleOutcome:
        ...

    @abstractmethod
    async def book_appointment(self, data: dict, config: dict) -> BookingOutcome:
        ...

    @abstractmethod
    def map_fields(self, form_data: dict, kind: str = "enrollment") -> dict:
        ...

    @property
    @abstractmethod
    def supported_features(self) -> list[str]:
        ...

    @property
    def presets(self) -> dict[str, UtilityPreset]:
        return {}

    def supports(self, feature: str) -> bool:
        return feature in self.supported_features

    def metadata(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "features": list(self.supported_features),
            "config_fields": [f.model_dump() for f in self.get_config_fields()],
            "presets": sorted(self.presets),
        }
