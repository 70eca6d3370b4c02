"""Scheduling response interpretation.

A ``/field_service_requests/scheduling.xml`` response carries three things
the scheduler needs:

- the customer's installed equipment, classified by device type into
  AC-only, Heat-only and AC/Heat-combo buckets;
- open appointment slots per date, with capacity per time of day under
  whatever labels the utility's back office uses (``AM``, ``Mid-Day``,
  ``midday``, ``MD``...);
- the field service request (FSR) number, whose alphabetic prefix encodes
  the service region.

Everything is classified once in ``__init__``; accessors only read.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from enrollbridge.xml_tree import as_list, node_attr, node_value

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "05"
DEFAULT_DESIRED_DEVICE = "05"

# Device type code -> bucket
AC_ONLY = "ac"
HEAT_ONLY = "heat"
AC_HEAT = "ac_heat"
EQUIPMENT_TYPES: dict[str, str] = {
    "05": AC_ONLY,   # Split AC
    "10": AC_ONLY,   # Package AC
    "20": HEAT_ONLY,  # Heat pump
    "15": AC_HEAT,   # AC heat pump combo
}
DCU_DEVICE_CODES = frozenset({"15", "02"})

TIME_BUCKETS = ("am", "md", "pm", "ev")
TIME_ALIASES: dict[str, str] = {
    "am": "am",
    "mid-day": "md",
    "midday": "md",
    "md": "md",
    "pm": "pm",
    "afternoon": "pm",
    "evening": "ev",
    "ev": "ev",
}
TIME_LABELS: dict[str, str] = {
    "am": "8:00 AM - 11:00 AM",
    "md": "11:00 AM - 2:00 PM",
    "pm": "2:00 PM - 5:00 PM",
    "ev": "5:00 PM - 8:00 PM",
}

# Saturday and Sunday (date.weekday())
WEEKEND_DAYS = frozenset({5, 6})

REGION_NAMES: dict[str, str] = {
    # Philadelphia
    "SPHI": "South Philadelphia",
    "NPHI": "North Philadelphia",
    "PHI": "Philadelphia",
    # Delmarva
    "DPL": "Delmarva Power",
    "DDPL": "Delmarva Delaware",
    "MDPL": "Delmarva Maryland",
    "NMD": "North Maryland",
    "NMDPL": "North Maryland",
    "SMD": "South Maryland",
    "SMDPL": "South Maryland",
    "EMD": "Eastern Maryland",
    "WMD": "Western Maryland",
    # Atlantic City
    "ACE": "Atlantic City Electric",
    "SACE": "South Atlantic City",
    "NACE": "North Atlantic City",
    "PECO": "PECO Energy",
    # Pepco
    "PEP": "Pepco",
    "PEPDC": "Pepco DC",
    "PEPMD": "Pepco Maryland",
    "PDC": "Pepco DC",
    "PMD": "Pepco Maryland",
    # Delaware
    "DEL": "Delaware",
    "NDEL": "North Delaware",
    "SDEL": "South Delaware",
}

_REGION_PREFIX_RE = re.compile(r"^([A-Za-z]+)")
_SLOT_DATE_FORMAT = "%m/%d/%Y"


@dataclass
class EquipmentBucket:
    """Devices of one category, with the last-seen location and device code."""

    items: list[dict] = field(default_factory=list)
    location: str = DEFAULT_LOCATION
    desired_device: str = DEFAULT_DESIRED_DEVICE

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def is_dcu(self) -> bool:
        return any(_desired_device(item, "") in DCU_DEVICE_CODES for item in self.items)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "location": self.location,
            "desired_device": self.desired_device,
            "is_dcu": self.is_dcu,
        }


def _desired_device(equipment: dict, default: str) -> str:
    return str(node_attr(equipment, "desiredDevice", node_attr(equipment, "desireddevice", default)))


def normalize_time_id(raw_id: str) -> str | None:
    """Fold a platform time-of-day label into ``am``/``md``/``pm``/``ev``."""
    return TIME_ALIASES.get(str(raw_id).strip().lower())


def parse_slot_date(raw: str) -> date | None:
    try:
        return datetime.strptime(raw.strip(), _SLOT_DATE_FORMAT).date()
    except ValueError:
        return None


def format_schedule_time(raw_time: str) -> str:
    """Fold an appointment start time such as ``"07:00 AM"`` into its window."""
    if not raw_time:
        return ""
    try:
        hour = int(raw_time.split(":")[0].strip())
    except ValueError:
        return raw_time
    meridiem = raw_time.split(" ")[-1].strip().upper()
    if meridiem == "AM" and 7 <= hour < 11:
        return TIME_LABELS["am"]
    if (meridiem == "AM" and hour >= 11) or (meridiem == "PM" and hour in (12, 1)):
        return TIME_LABELS["md"]
    if meridiem == "PM" and 2 <= hour < 5:
        return TIME_LABELS["pm"]
    return TIME_LABELS["ev"]


def _to_int(value: Any) -> int:
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return 0


class SchedulingResult:
    """Read-only view over a parsed scheduling response."""

    def __init__(self, document: dict):
        self._root: dict = {}
        self.error_message = ""
        self._buckets: dict[str, EquipmentBucket] = {
            AC_ONLY: EquipmentBucket(),
            HEAT_ONLY: EquipmentBucket(),
            AC_HEAT: EquipmentBucket(),
        }
        self._slots: list[dict] = []

        message = document.get("message") if isinstance(document, dict) else None
        if isinstance(message, dict):
            self._root = message
            self._classify_equipment()
            self._collect_slots()
        else:
            self.error_message = "Unexpected response format"

    # ── Parsing ──

    def _classify_equipment(self) -> None:
        equipments = self._root.get("equipments")
        if not isinstance(equipments, dict):
            return
        for equipment in as_list(equipments.get("equipment")):
            if not isinstance(equipment, dict):
                continue
            bucket_name = EQUIPMENT_TYPES.get(str(node_attr(equipment, "type", "")))
            if bucket_name is None:
                logger.debug("Skipping equipment with unknown type %r",
                             node_attr(equipment, "type"))
                continue
            bucket = self._buckets[bucket_name]
            bucket.items.append(equipment)
            bucket.location = str(node_attr(equipment, "location", DEFAULT_LOCATION))
            bucket.desired_device = _desired_device(equipment, DEFAULT_DESIRED_DEVICE)

    def _collect_slots(self) -> None:
        openslots = self._root.get("openslots")
        if not isinstance(openslots, dict) or "noslots" in openslots:
            return
        for slot in as_list(openslots.get("slot")):
            if not isinstance(slot, dict):
                continue
            slot_date = node_attr(slot, "date", node_attr(slot, "DATE", ""))
            if not slot_date:
                continue
            self._slots.append({
                "date": str(slot_date),
                "times": self._parse_times(slot.get("time", slot.get("TIME"))),
            })

    @staticmethod
    def _parse_times(time_data: Any) -> dict[str, dict]:
        times = {bucket: {"available": False, "capacity": 0} for bucket in TIME_BUCKETS}
        for time in as_list(time_data):
            raw_id = node_attr(time, "id", node_attr(time, "ID", ""))
            bucket = normalize_time_id(raw_id)
            if bucket is None:
                continue
            capacity = _to_int(node_attr(time, "value", node_attr(time, "VALUE", 0)))
            times[bucket] = {"available": capacity > 0, "capacity": capacity}
        return times

    # ── Basic fields ──

    def _field(self, name: str) -> str:
        return node_value(self._root.get(name), "")

    @property
    def message_type(self) -> str:
        return self._field("messagetype")

    @property
    def scheduled(self) -> str:
        return self._field("scheduled")

    def is_scheduled(self) -> bool:
        return self.scheduled.upper() == "Y"

    @property
    def fsr_no(self) -> str:
        return self._field("fsrno")

    @property
    def comverge_no(self) -> str:
        return self._field("comvergeno")

    @property
    def schedule_date(self) -> str:
        return self._field("scheduledate")

    @property
    def schedule_time(self) -> str:
        return self._field("scheduletime")

    @property
    def must_schedule(self) -> str:
        return self._field("mustSchedule")

    @property
    def email(self) -> str:
        return self._field("email")

    @property
    def first_name(self) -> str:
        return self._field("fname")

    @property
    def last_name(self) -> str:
        return self._field("lname")

    @property
    def address(self) -> dict[str, str]:
        address = self._root.get("address")
        address = address if isinstance(address, dict) else {}
        return {
            part: node_value(address.get(part), "")
            for part in ("street", "city", "state", "zip")
        }

    # ── Region ──

    def get_region(self) -> str:
        """Explicit region field, else the FSR number's alphabetic prefix."""
        for name in ("region", "territory", "serviceArea"):
            if name in self._root:
                return self._field(name)
        match = _REGION_PREFIX_RE.match(self.fsr_no)
        return match.group(1).upper() if match else ""

    def get_region_name(self) -> str:
        region = self.get_region()
        if not region:
            return ""
        return REGION_NAMES.get(region.upper(), region.upper())

    # ── Equipment ──

    def has_equipment(self) -> bool:
        equipments = self._root.get("equipments")
        return isinstance(equipments, dict) and "equipment" in equipments

    def equipment(self, bucket: str) -> EquipmentBucket:
        """Bucket by name: ``"ac"``, ``"heat"`` or ``"ac_heat"``."""
        return self._buckets[bucket]

    @property
    def ac(self) -> EquipmentBucket:
        return self._buckets[AC_ONLY]

    @property
    def heat(self) -> EquipmentBucket:
        return self._buckets[HEAT_ONLY]

    @property
    def ac_heat(self) -> EquipmentBucket:
        return self._buckets[AC_HEAT]

    def total_equipment_count(self) -> int:
        # Combo units replace separate AC and heat units in the count
        if self.ac_heat.count:
            return self.ac_heat.count
        return self.ac.count + self.heat.count

    def is_dcu(self) -> bool:
        return any(bucket.is_dcu for bucket in self._buckets.values())

    # ── Slots ──

    def get_slots(self) -> list[dict]:
        return self._slots

    def has_slots(self) -> bool:
        return bool(self._slots)

    def get_slots_for_display(
        self,
        required_capacity: int = 1,
        excluded_weekdays: frozenset[int] = WEEKEND_DAYS,
    ) -> list[dict]:
        """Slots the scheduler can offer, one entry per bookable date.

        Args:
            required_capacity: Minimum capacity a time bucket needs, usually
                the number of devices to install.
            excluded_weekdays: ``date.weekday()`` values never offered.

        Returns:
            Dicts with ``date``, ``formatted_date``, ``weekday`` and
            ``times`` (bucket -> available/capacity/label). Dates with no
            available bucket are dropped.
        """
        display = []
        for slot in self._slots:
            slot_date = parse_slot_date(slot["date"])
            if slot_date is None:
                logger.debug("Skipping slot with unparseable date %r", slot["date"])
                continue
            if slot_date.weekday() in excluded_weekdays:
                continue
            times = {
                bucket: {
                    "available": info["available"] and info["capacity"] >= required_capacity,
                    "capacity": info["capacity"],
                    "label": TIME_LABELS[bucket],
                }
                for bucket, info in slot["times"].items()
            }
            if not any(t["available"] for t in times.values()):
                continue
            display.append({
                "date": slot["date"],
                "formatted_date": f"{slot_date:%A, %B} {slot_date.day}",
                "weekday": slot_date.weekday(),
                "times": times,
            })
        return display

    def get_raw_openslots(self) -> Any:
        return self._root.get("openslots", {})

    # ── Existing appointment ──

    def get_existing_appointment(self) -> dict | None:
        """Summary of an already-booked appointment, or None."""
        if not self.is_scheduled():
            return None
        addr = self.address
        name = f"{self.first_name.lower().title()} {self.last_name.lower().title()}".strip()
        return {
            "customer_name": name,
            "address": (
                f"{addr['street']}, {addr['city']}, {addr['state']} {addr['zip']}"
                if addr["street"] else ""
            ),
            "scheduled_date": self.schedule_date,
            "scheduled_time": format_schedule_time(self.schedule_time),
            "equipment_count": self.total_equipment_count(),
            "is_dcu": self.is_dcu(),
            "fsr_no": self.fsr_no,
        }

    def to_dict(self) -> dict:
        return {
            "message_type": self.message_type,
            "is_scheduled": self.is_scheduled(),
            "scheduled": self.scheduled,
            "schedule_date": self.schedule_date,
            "schedule_time": self.schedule_time,
            "fsr_no": self.fsr_no,
            "comverge_no": self.comverge_no,
            "must_schedule": self.must_schedule,
            "region": self.get_region(),
            "region_name": self.get_region_name(),
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "address": self.address,
            "equipment": {
                AC_ONLY: self.ac.to_dict(),
                HEAT_ONLY: self.heat.to_dict(),
                AC_HEAT: self.ac_heat.to_dict(),
                "total": self.total_equipment_count(),
            },
            "slots": self.get_slots(),
            "has_slots": self.has_slots(),
        }
