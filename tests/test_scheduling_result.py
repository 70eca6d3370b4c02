"""Tests for the scheduling result interpreter."""

from enrollbridge.response_validator import validate_response
from enrollbridge.results.scheduling import (
    TIME_LABELS,
    SchedulingResult,
    format_schedule_time,
    normalize_time_id,
    parse_slot_date,
)
from enrollbridge.xml_tree import parse


SLOTS_XML = """<message>
  <messagetype>scheduling</messagetype>
  <scheduled>N</scheduled>
  <fsrno>SPHI12345</fsrno>
  <comvergeno>C-77</comvergeno>
  <equipments>
    <equipment type="05" location="10" desiredDevice="05"/>
    <equipment type="10" location="15" desiredDevice="02"/>
    <equipment type="20" location="05" desiredDevice="05"/>
  </equipments>
  <openslots>
    <slot date="1/3/2026"><time id="AM" value="4"/></slot>
    <slot date="1/4/2026"><time id="PM" value="4"/></slot>
    <slot date="1/5/2026">
      <time id="AM" value="0"/>
      <time id="Mid-Day" value="2"/>
      <time id="afternoon" value="1"/>
    </slot>
    <slot DATE="1/6/2026"><TIME ID="EV" VALUE="0"/></slot>
  </openslots>
</message>"""


def _result(xml: str = SLOTS_XML) -> SchedulingResult:
    return SchedulingResult(parse(xml))


class TestEquipment:

    def test_buckets(self):
        result = _result()
        assert result.ac.count == 2
        assert result.heat.count == 1
        assert result.ac_heat.count == 0
        assert result.ac.location == "15"
        assert result.ac.desired_device == "02"

    def test_dcu_detection(self):
        result = _result()
        assert result.ac.is_dcu
        assert not result.heat.is_dcu
        assert result.is_dcu()

    def test_total_without_combo(self):
        assert _result().total_equipment_count() == 3

    def test_total_prefers_combo(self):
        xml = """<message><messagetype>s</messagetype><equipments>
            <equipment type="15" desireddevice="15"/>
            <equipment type="05"/>
        </equipments></message>"""
        result = _result(xml)
        assert result.ac_heat.count == 1
        assert result.ac_heat.location == "05"
        assert result.ac_heat.is_dcu
        assert result.total_equipment_count() == 1

    def test_single_equipment_node(self):
        xml = '<message><equipments><equipment type="20"/></equipments></message>'
        result = _result(xml)
        assert result.heat.count == 1
        assert result.heat.desired_device == "05"


class TestSlots:

    def test_time_aliases(self):
        assert normalize_time_id("Mid-Day") == normalize_time_id("md") == "md"
        assert normalize_time_id("MIDDAY") == "md"
        assert normalize_time_id("Afternoon") == "pm"
        assert normalize_time_id("evening") == "ev"
        assert normalize_time_id("night") is None

    def test_raw_slots(self):
        slots = _result().get_slots()
        assert [s["date"] for s in slots] == ["1/3/2026", "1/4/2026", "1/5/2026", "1/6/2026"]
        monday = slots[2]["times"]
        assert monday["am"] == {"available": False, "capacity": 0}
        assert monday["md"] == {"available": True, "capacity": 2}
        assert monday["pm"] == {"available": True, "capacity": 1}
        assert monday["ev"] == {"available": False, "capacity": 0}

    def test_display_excludes_weekends(self):
        display = _result().get_slots_for_display()
        assert [d["date"] for d in display] == ["1/5/2026"]
        assert display[0]["formatted_date"] == "Monday, January 5"

    def test_display_drops_days_without_availability(self):
        dates = [d["date"] for d in _result().get_slots_for_display()]
        assert "1/6/2026" not in dates

    def test_display_required_capacity(self):
        display = _result().get_slots_for_display(required_capacity=2)
        times = display[0]["times"]
        assert times["md"]["available"]
        assert not times["pm"]["available"]
        assert times["md"]["label"] == TIME_LABELS["md"]
        assert _result().get_slots_for_display(required_capacity=3) == []

    def test_custom_excluded_weekdays(self):
        display = _result().get_slots_for_display(excluded_weekdays=frozenset({6}))
        assert [d["date"] for d in display] == ["1/3/2026", "1/5/2026"]

    def test_noslots(self):
        result = _result("<message><openslots><noslots/></openslots></message>")
        assert not result.has_slots()
        assert result.get_slots_for_display() == []

    def test_parse_slot_date(self):
        assert parse_slot_date("1/5/2026").isoformat() == "2026-01-05"
        assert parse_slot_date("2026-01-05") is None

    def test_out_of_range_capacity_treated_as_zero(self):
        xml = (
            '<message><fsrno>F1</fsrno><openslots><slot date="1/5/2026">'
            '<time id="AM" value="1e400"/><time id="PM" value="2.0"/>'
            '</slot></openslots></message>'
        )
        assert validate_response("scheduling", parse(xml))
        times = SchedulingResult(parse(xml)).get_slots()[0]["times"]
        assert times["am"] == {"available": False, "capacity": 0}
        assert times["pm"] == {"available": True, "capacity": 2}



class TestRegion:

    def test_prefix_from_fsr(self):
        result = _result()
        assert result.get_region() == "SPHI"
        assert result.get_region_name() == "South Philadelphia"

    def test_explicit_region_field(self):
        result = _result("<message><territory>pepdc</territory><fsrno>SPHI1</fsrno></message>")
        assert result.get_region() == "pepdc"
        assert result.get_region_name() == "Pepco DC"

    def test_unknown_code_passes_through_uppercased(self):
        result = _result("<message><fsrno>zzq991</fsrno></message>")
        assert result.get_region() == "ZZQ"
        assert result.get_region_name() == "ZZQ"

    def test_no_region(self):
        result = _result("<message><fsrno>12345</fsrno></message>")
        assert result.get_region() == ""
        assert result.get_region_name() == ""


class TestExistingAppointment:

    def test_none_when_not_scheduled(self):
        assert _result().get_existing_appointment() is None

    def test_summary(self):
        result = _result(
            "<message><scheduled>Y</scheduled><fsrno>NMD5</fsrno>"
            "<fname>JANE</fname><lname>DOE</lname>"
            "<scheduledate>1/5/2026</scheduledate><scheduletime>07:00 AM</scheduletime>"
            "<address><street>12 Main St</street><city>Dover</city><state>DE</state>"
            "<zip>19901</zip></address>"
            '<equipments><equipment type="15"/></equipments></message>'
        )
        appointment = result.get_existing_appointment()
        assert appointment["customer_name"] == "Jane Doe"
        assert appointment["address"] == "12 Main St, Dover, DE 19901"
        assert appointment["scheduled_time"] == TIME_LABELS["am"]
        assert appointment["equipment_count"] == 1
        assert appointment["fsr_no"] == "NMD5"

    def test_format_schedule_time(self):
        assert format_schedule_time("07:00 AM") == TIME_LABELS["am"]
        assert format_schedule_time("11:00 AM") == TIME_LABELS["md"]
        assert format_schedule_time("01:00 PM") == TIME_LABELS["md"]
        assert format_schedule_time("02:00 PM") == TIME_LABELS["pm"]
        assert format_schedule_time("05:00 PM") == TIME_LABELS["ev"]
        assert format_schedule_time("") == ""


class TestToDict:

    def test_summary_fields(self):
        data = _result().to_dict()
        assert data["fsr_no"] == "SPHI12345"
        assert data["region_name"] == "South Philadelphia"
        assert data["equipment"]["total"] == 3
        assert data["has_slots"] is True
        assert data["is_scheduled"] is False
