"""
Record Service for the Club Record Store
=========================================
Business logic behind every record API action.

Features:
- Append-only kiosk check-ins (duplicates accumulate, reports de-duplicate)
- New-student intake with automatic roster enrolment
- Admin-authored attendance that overrides kiosk check-ins per date
- Roster edits propagated through attendance and check-in history
- Monthly dues and key/value settings upserts
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .models import (
    RosterEntry, AttendanceRecord, Checkin, NewStudent, CancelledDate,
    DuesRecord, Setting, DuesSource, IntakeStatus
)
from .db_manager import get_db_manager, DatabaseManager
from ..schemas import (
    CheckinPayload, NewStudentPayload, RecordDuesPayload, AddStudentPayload,
    RemoveStudentPayload, EditStudentPayload, SaveAttendancePayload,
    ClassDatePayload, ToggleDuesPayload, SetSettingPayload
)

# Configure logging
logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)


class RecordError(Exception):
    """A record operation was refused; the message is shown to the caller."""


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def display_name(first: str, last: str) -> str:
    """Roster display form: "Last, First"."""
    return f"{last}, {first}"


def split_name(name: str) -> Dict[str, str]:
    """Split a "Last, First" roster name into its parts."""
    parts = str(name).split(',')
    return {
        "firstName": parts[1].strip() if len(parts) > 1 else "",
        "lastName": parts[0].strip()
    }


def _paid_cell(value) -> str:
    if isinstance(value, bool):
        return "TRUE" if value else ""
    return value or ""


class RecordService:
    """
    Main service for record operations.

    Usage:
        service = RecordService()
        service.checkin({"firstName": "Ana", "lastName": "Lee", "date": "2024-05-01"})
        service.attendance("2024-05-01")
    """

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        """
        Initialize record service.

        Args:
            db_manager: Optional DatabaseManager instance. Uses global if not provided.
        """
        self.db = db_manager or get_db_manager()

    @staticmethod
    def _parse(model: Type[P], body: Dict[str, Any]) -> P:
        try:
            return model.model_validate(body)
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][-1]) for err in e.errors())
            raise RecordError(f"{fields} required") from e

    # ============== Reads ==============

    def roster(self) -> dict:
        """Roster names in two shapes: "Last, First" strings and split parts."""
        model = self.db.get_tab(RosterEntry.TAB)
        with self.db.get_session() as session:
            names = [
                r.name for r in session.query(model).order_by(model.name).all()
                if r.name and r.name.strip()
            ]

        return {"roster": names, "students": [split_name(n) for n in names]}

    def attendance(self, date: Optional[str]) -> dict:
        """
        Attendance for one date.
        The admin record wins; without one, fall back to distinct check-in names.
        """
        if not date:
            raise RecordError("date parameter required")

        model = self.db.get_tab(AttendanceRecord.TAB)
        with self.db.get_session() as session:
            record = session.query(model).filter_by(date=date).order_by(model.id).first()
            if record:
                return {"date": date, "present": record.present()}

        return {"date": date, "present": self._checkin_names(date), "source": "checkins"}

    def all_attendance(self) -> dict:
        """Every date's attendance; check-ins only fill dates with no admin record."""
        attendance: Dict[str, List[str]] = {}

        att_model = self.db.get_tab(AttendanceRecord.TAB)
        ci_model = self.db.get_tab(Checkin.TAB)
        with self.db.get_session() as session:
            for record in session.query(att_model).order_by(att_model.id).all():
                if record.date:
                    attendance[record.date] = record.present()
            admin_dates = set(attendance)

            for checkin in session.query(ci_model).order_by(ci_model.id).all():
                if not checkin.date or not checkin.name or checkin.date in admin_dates:
                    continue
                names = attendance.setdefault(checkin.date, [])
                if checkin.name not in names:
                    names.append(checkin.name)

        return {"attendance": attendance}

    def _checkin_names(self, date: str) -> List[str]:
        model = self.db.get_tab(Checkin.TAB)
        names: List[str] = []
        with self.db.get_session() as session:
            for checkin in session.query(model).filter_by(date=date).order_by(model.id).all():
                if checkin.name and checkin.name not in names:
                    names.append(checkin.name)
        return names

    def cancelled(self) -> dict:
        model = self.db.get_tab(CancelledDate.TAB)
        with self.db.get_session() as session:
            dates = [r.date for r in session.query(model).order_by(model.id).all() if r.date]
        return {"cancelled": dates}

    def new_students(self) -> dict:
        model = self.db.get_tab(NewStudent.TAB)
        with self.db.get_session() as session:
            rows = session.query(model).order_by(model.id).all()
            return {"students": [r.to_dict() for r in rows if r.first_name]}

    def dues(self) -> dict:
        """Dues keyed by month then student name."""
        model = self.db.get_tab(DuesRecord.TAB)
        dues: Dict[str, Dict[str, dict]] = {}
        with self.db.get_session() as session:
            for row in session.query(model).order_by(model.id).all():
                if not row.month or not row.student_name:
                    continue
                dues.setdefault(row.month, {})[row.student_name] = {
                    "paid": bool(row.paid),
                    "date": row.date_confirmed or "",
                    "source": row.source or ""
                }
        return {"dues": dues}

    def settings(self) -> dict:
        model = self.db.get_tab(Setting.TAB)
        with self.db.get_session() as session:
            return {"settings": {s.key: s.value for s in session.query(model).all() if s.key}}

    # ============== Public writes (kiosk) ==============

    def checkin(self, body: Dict[str, Any]) -> dict:
        """
        Append a kiosk check-in.

        Duplicate check-ins for the same person and date are accepted; the
        kiosk queue may deliver a submission more than once.
        """
        payload = self._parse(CheckinPayload, body)
        name = display_name(payload.firstName, payload.lastName)
        self._append_checkin(name, payload)
        logger.info(f"[RECORDS] Check-in: {name} on {payload.date or '?'}")
        return {"ok": True, "name": name}

    def new_student(self, body: Dict[str, Any]) -> dict:
        """Record an intake row, check the student in, and enrol them on the roster."""
        payload = self._parse(NewStudentPayload, body)
        name = display_name(payload.firstName, payload.lastName)

        model = self.db.get_tab(NewStudent.TAB)
        with self.db.get_session() as session:
            session.add(model(
                first_name=payload.firstName,
                last_name=payload.lastName,
                date=payload.date,
                time=payload.time,
                class_name=payload.class_name,
                status=IntakeStatus.PENDING.value
            ))
            session.commit()

        self._append_checkin(name, payload)
        self._add_to_roster(name)
        logger.info(f"[RECORDS] New student: {name}")
        return {"ok": True}

    def record_dues(self, body: Dict[str, Any]) -> dict:
        """Student self-reports a dues payment for a month."""
        payload = self._parse(RecordDuesPayload, body)
        if not payload.month:
            raise RecordError("month required")

        name = display_name(payload.firstName, payload.lastName)
        self._upsert_dues(payload.month, name, True, payload.date, DuesSource.SELF)
        return {"ok": True}

    def _append_checkin(self, name: str, payload: CheckinPayload):
        model = self.db.get_tab(Checkin.TAB)
        with self.db.get_session() as session:
            session.add(model(
                date=payload.date,
                name=name,
                timestamp=payload.time or utc_now_iso(),
                class_name=payload.class_name,
                paid=_paid_cell(payload.paid)
            ))
            session.commit()

    # ============== Protected writes (admin) ==============

    def add_student(self, body: Dict[str, Any]) -> dict:
        payload = self._parse(AddStudentPayload, body)
        name = display_name(payload.first, payload.last)
        self._add_to_roster(name)
        return {"ok": True, "name": name}

    def remove_student(self, body: Dict[str, Any]) -> dict:
        """Remove the last roster row matching the name; absent names are a no-op."""
        payload = self._parse(RemoveStudentPayload, body)
        model = self.db.get_tab(RosterEntry.TAB)
        with self.db.get_session() as session:
            entry = session.query(model).filter_by(name=payload.name).order_by(model.id.desc()).first()
            if entry:
                session.delete(entry)
                session.commit()
                logger.info(f"[RECORDS] Removed from roster: {payload.name}")
        return {"ok": True}

    def edit_student(self, body: Dict[str, Any]) -> dict:
        """
        Rename a student everywhere their name is recorded.

        Updates the roster row, every admin attendance list that contains the
        old name, and every check-in row. Malformed attendance rows are skipped.
        """
        payload = self._parse(EditStudentPayload, body)
        if not payload.oldName or not payload.newFirst or not payload.newLast:
            raise RecordError("oldName, newLast, newFirst required")

        old_name = payload.oldName
        new_name = display_name(payload.newFirst, payload.newLast)

        roster_model = self.db.get_tab(RosterEntry.TAB)
        att_model = self.db.get_tab(AttendanceRecord.TAB)
        ci_model = self.db.get_tab(Checkin.TAB)

        with self.db.get_session() as session:
            entry = session.query(roster_model).filter_by(name=old_name).order_by(roster_model.id).first()
            if entry:
                entry.name = new_name

            for record in session.query(att_model).all():
                try:
                    present = json.loads(record.names or "[]")
                except ValueError:
                    continue
                if isinstance(present, list) and old_name in present:
                    present[present.index(old_name)] = new_name
                    record.names = json.dumps(present)

            session.query(ci_model).filter_by(name=old_name).update({"name": new_name})
            session.commit()

        logger.info(f"[RECORDS] Renamed {old_name} -> {new_name}")
        return {"ok": True, "oldName": old_name, "newName": new_name}

    def save_attendance(self, body: Dict[str, Any]) -> dict:
        """Insert or replace the admin attendance list for a date."""
        payload = self._parse(SaveAttendancePayload, body)
        model = self.db.get_tab(AttendanceRecord.TAB)
        with self.db.get_session() as session:
            record = session.query(model).filter_by(date=payload.date).order_by(model.id).first()
            if record:
                record.names = json.dumps(payload.names)
            else:
                session.add(model(date=payload.date, names=json.dumps(payload.names)))
            session.commit()
        logger.info(f"[RECORDS] Attendance saved for {payload.date}: {len(payload.names)} present")
        return {"ok": True}

    def cancel_class(self, body: Dict[str, Any]) -> dict:
        payload = self._parse(ClassDatePayload, body)
        model = self.db.get_tab(CancelledDate.TAB)
        with self.db.get_session() as session:
            if not session.query(model).filter_by(date=payload.date).first():
                session.add(model(date=payload.date, timestamp=utc_now_iso()))
                session.commit()
                logger.info(f"[RECORDS] Class cancelled: {payload.date}")
        return {"ok": True}

    def restore_class(self, body: Dict[str, Any]) -> dict:
        payload = self._parse(ClassDatePayload, body)
        model = self.db.get_tab(CancelledDate.TAB)
        with self.db.get_session() as session:
            row = session.query(model).filter_by(date=payload.date).order_by(model.id.desc()).first()
            if row:
                session.delete(row)
                session.commit()
                logger.info(f"[RECORDS] Class restored: {payload.date}")
        return {"ok": True}

    def toggle_dues(self, body: Dict[str, Any]) -> dict:
        payload = self._parse(ToggleDuesPayload, body)
        if not payload.month or not payload.name:
            raise RecordError("month and name required")
        self._upsert_dues(payload.month, payload.name, payload.paid, payload.date, DuesSource.ADMIN)
        return {"ok": True}

    def set_setting(self, body: Dict[str, Any]) -> dict:
        payload = self._parse(SetSettingPayload, body)
        if not payload.settingKey:
            raise RecordError("settingKey required")
        value = payload.settingValue
        self.db.set_setting(payload.settingKey, None if value is None else str(value))
        return {"ok": True}

    # ============== Helpers ==============

    def _add_to_roster(self, name: str):
        """Add a name to the roster unless it is already present."""
        model = self.db.get_tab(RosterEntry.TAB)
        with self.db.get_session() as session:
            if session.query(model).filter_by(name=name).first():
                return
            session.add(model(name=name))
            session.commit()
            logger.info(f"[RECORDS] Added to roster: {name}")

    def _upsert_dues(self, month: str, name: str, paid: bool, date: Optional[str], source: DuesSource):
        model = self.db.get_tab(DuesRecord.TAB)
        with self.db.get_session() as session:
            row = session.query(model).filter_by(month=month, student_name=name).order_by(model.id).first()
            if not row:
                row = model(month=month, student_name=name)
                session.add(row)
            row.paid = paid
            row.date_confirmed = date or utc_now_iso()
            row.source = source.value
            session.commit()
        logger.info(f"[RECORDS] Dues {month} for {name}: paid={paid} ({source.value})")
