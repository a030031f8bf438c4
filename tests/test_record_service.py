"""Tests for the record store and RecordService."""
from __future__ import annotations

import json

import pytest
from sqlalchemy import inspect

from club_backend.database import (
    AttendanceRecord, Checkin, DatabaseManager, RecordError, RecordService
)
from club_backend.database.record_service import display_name, split_name


def checkin(records: RecordService, first="Ana", last="Lee", date="2024-05-01", **extra):
    body = {"action": "checkin", "firstName": first, "lastName": last, "date": date}
    body.update(extra)
    return records.checkin(body)


class TestTabs:

    def test_tabs_created_on_first_use(self, db_manager: DatabaseManager):
        assert db_manager.get_stats()["tabs"] == {}

        db_manager.get_tab("Check-ins")

        assert "checkins" in inspect(db_manager.engine).get_table_names()
        assert db_manager.get_stats()["tabs"] == {"Check-ins": 0}

    def test_unknown_tab(self, db_manager: DatabaseManager):
        with pytest.raises(KeyError):
            db_manager.get_tab("Payroll")

    def test_existing_tables_found_on_reopen(self, tmp_path):
        path = tmp_path / "records.db"
        first = DatabaseManager(path)
        RecordService(first).add_student({"first": "Ana", "last": "Lee"})
        first.close()

        reopened = DatabaseManager(path)
        assert reopened.initialize()
        assert reopened.get_stats()["tabs"]["Roster"] == 1
        reopened.close()


class TestNames:

    def test_display_name(self):
        assert display_name("Ana", "Lee") == "Lee, Ana"

    def test_split_name(self):
        assert split_name("Lee, Ana") == {"firstName": "Ana", "lastName": "Lee"}
        assert split_name("Cher") == {"firstName": "", "lastName": "Cher"}


class TestCheckins:

    def test_checkin_appends_row(self, records: RecordService, db_manager):
        result = checkin(records, time="2024-05-01T17:59:00.000Z", paid=True, **{"class": "Kids"})
        assert result == {"ok": True, "name": "Lee, Ana"}

        with db_manager.get_session() as session:
            rows = [r.to_dict() for r in session.query(Checkin).all()]
        assert rows == [{
            "date": "2024-05-01",
            "name": "Lee, Ana",
            "timestamp": "2024-05-01T17:59:00.000Z",
            "class": "Kids",
            "paid": "TRUE"
        }]

    def test_null_optional_fields_read_as_empty(self, records: RecordService, db_manager):
        result = records.checkin({
            "action": "checkin", "firstName": "Ana", "lastName": "Lee",
            "date": None, "time": None, "class": None, "paid": None
        })
        assert result["ok"] is True

        with db_manager.get_session() as session:
            row = session.query(Checkin).one()
        assert (row.date, row.class_name, row.paid) == ("", "", "")
        assert row.timestamp.endswith("Z")

    def test_missing_name_refused(self, records: RecordService):
        with pytest.raises(RecordError, match="required"):
            records.checkin({"action": "checkin", "firstName": "Ana"})

    def test_duplicates_accumulate_but_read_once(self, records: RecordService, db_manager):
        checkin(records)
        checkin(records)
        checkin(records, first="Bo", last="Kim")

        with db_manager.get_session() as session:
            assert session.query(Checkin).count() == 3

        result = records.attendance("2024-05-01")
        assert result == {"date": "2024-05-01", "present": ["Lee, Ana", "Kim, Bo"], "source": "checkins"}

    def test_attendance_requires_date(self, records: RecordService):
        with pytest.raises(RecordError, match="date"):
            records.attendance(None)


class TestAttendance:

    def test_admin_record_is_authoritative(self, records: RecordService):
        checkin(records)
        records.save_attendance({"date": "2024-05-01", "names": ["Kim, Bo"]})

        assert records.attendance("2024-05-01") == {"date": "2024-05-01", "present": ["Kim, Bo"]}

    def test_save_attendance_replaces(self, records: RecordService, db_manager):
        records.save_attendance({"date": "2024-05-01", "names": ["Kim, Bo"]})
        records.save_attendance({"date": "2024-05-01", "names": ["Lee, Ana"]})

        with db_manager.get_session() as session:
            assert session.query(AttendanceRecord).count() == 1
        assert records.attendance("2024-05-01")["present"] == ["Lee, Ana"]

    def test_all_attendance_merges_checkins(self, records: RecordService):
        records.save_attendance({"date": "2024-05-01", "names": ["Kim, Bo"]})
        checkin(records, date="2024-05-01")
        checkin(records, date="2024-05-03")
        checkin(records, date="2024-05-03")

        assert records.all_attendance() == {"attendance": {
            "2024-05-01": ["Kim, Bo"],
            "2024-05-03": ["Lee, Ana"],
        }}

    def test_malformed_attendance_row_reads_empty(self, records: RecordService, db_manager):
        model = db_manager.get_tab(AttendanceRecord.TAB)
        with db_manager.get_session() as session:
            session.add(model(date="2024-05-02", names="not json"))
            session.commit()

        assert records.attendance("2024-05-02")["present"] == []


class TestRoster:

    def test_new_student_enrols_and_checks_in(self, records: RecordService):
        records.new_student({"firstName": "Ana", "lastName": "Lee", "date": "2024-05-01", "class": "Adults"})
        records.new_student({"firstName": "Ana", "lastName": "Lee", "date": "2024-05-01", "class": "Adults"})

        assert records.roster() == {
            "roster": ["Lee, Ana"],
            "students": [{"firstName": "Ana", "lastName": "Lee"}]
        }
        assert records.attendance("2024-05-01")["present"] == ["Lee, Ana"]
        students = records.new_students()["students"]
        assert len(students) == 2
        assert students[0]["status"] == "pending"
        assert students[0]["class"] == "Adults"

    def test_roster_sorted(self, records: RecordService):
        records.add_student({"first": "Bo", "last": "Kim"})
        records.add_student({"first": "Ana", "last": "Lee"})
        records.add_student({"first": "Cy", "last": "Adams"})

        assert records.roster()["roster"] == ["Adams, Cy", "Kim, Bo", "Lee, Ana"]

    def test_remove_student(self, records: RecordService):
        records.add_student({"first": "Ana", "last": "Lee"})
        records.remove_student({"name": "Lee, Ana"})
        records.remove_student({"name": "Lee, Ana"})

        assert records.roster()["roster"] == []

    def test_edit_student_renames_everywhere(self, records: RecordService):
        records.add_student({"first": "Ana", "last": "Lee"})
        records.save_attendance({"date": "2024-05-01", "names": ["Kim, Bo", "Lee, Ana"]})
        checkin(records, date="2024-05-03")

        result = records.edit_student({"oldName": "Lee, Ana", "newFirst": "Anna", "newLast": "Lee"})

        assert result == {"ok": True, "oldName": "Lee, Ana", "newName": "Lee, Anna"}
        assert records.roster()["roster"] == ["Lee, Anna"]
        assert records.attendance("2024-05-01")["present"] == ["Kim, Bo", "Lee, Anna"]
        assert records.attendance("2024-05-03")["present"] == ["Lee, Anna"]

    def test_edit_student_requires_fields(self, records: RecordService):
        with pytest.raises(RecordError):
            records.edit_student({"oldName": "Lee, Ana"})


class TestCancelled:

    def test_cancel_and_restore(self, records: RecordService):
        records.cancel_class({"date": "2024-05-01"})
        records.cancel_class({"date": "2024-05-01"})
        records.cancel_class({"date": "2024-05-08"})
        assert records.cancelled() == {"cancelled": ["2024-05-01", "2024-05-08"]}

        records.restore_class({"date": "2024-05-01"})
        assert records.cancelled() == {"cancelled": ["2024-05-08"]}


class TestDues:

    def test_self_report_then_admin_toggle(self, records: RecordService):
        records.record_dues({"firstName": "Ana", "lastName": "Lee", "month": "2024-05", "date": "2024-05-02"})
        assert records.dues()["dues"]["2024-05"]["Lee, Ana"] == {
            "paid": True, "date": "2024-05-02", "source": "self"
        }

        records.toggle_dues({"name": "Lee, Ana", "month": "2024-05", "paid": False, "date": "2024-05-03"})
        assert records.dues()["dues"] == {"2024-05": {"Lee, Ana": {
            "paid": False, "date": "2024-05-03", "source": "admin"
        }}}

    def test_record_dues_requires_month(self, records: RecordService):
        with pytest.raises(RecordError, match="month"):
            records.record_dues({"firstName": "Ana", "lastName": "Lee"})


class TestSettings:

    def test_set_and_read(self, records: RecordService, db_manager):
        records.set_setting({"settingKey": "classTimes", "settingValue": json.dumps(["17:00"])})
        records.set_setting({"settingKey": "monthlyFee", "settingValue": 60})
        records.set_setting({"settingKey": "monthlyFee", "settingValue": 65})

        assert records.settings() == {"settings": {"classTimes": '["17:00"]', "monthlyFee": "65"}}
        assert db_manager.get_setting("missing", "x") == "x"

    def test_setting_key_required(self, records: RecordService):
        with pytest.raises(RecordError):
            records.set_setting({"settingValue": "1"})
