"""
Database Models for the Club Record Store
==========================================
SQLAlchemy ORM models, one per spreadsheet-style tab.

Tabs:
- Roster: registered students ("Last, First")
- Attendance: admin-authored attendance lists, one row per date
- Check-ins: append-only self-service kiosk check-ins
- New Students: intake submissions awaiting admin review
- Cancelled: dates on which class was cancelled
- Dues: monthly dues status per student
- Settings: key/value runtime settings
"""

import json
from enum import Enum
from sqlalchemy import Column, String, Integer, Boolean, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class DuesSource(str, Enum):
    """Who confirmed a dues payment."""
    SELF = "self"
    ADMIN = "admin"


class IntakeStatus(str, Enum):
    """Review state of a new-student intake row."""
    PENDING = "pending"


class RosterEntry(Base):
    """
    Registered students table.
    Names are stored as "Last, First" and kept unique by the service layer.
    """
    __tablename__ = 'roster'
    TAB = 'Roster'
    HEADERS = ('Name',)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, index=True)

    def __repr__(self):
        return f"<RosterEntry(name={self.name})>"


class AttendanceRecord(Base):
    """
    Admin-authored attendance for a single date.
    When present it is authoritative over kiosk check-ins for that date.
    """
    __tablename__ = 'attendance'
    TAB = 'Attendance'
    HEADERS = ('Date', 'Names')

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(String(20), nullable=False, index=True)
    names = Column(Text, nullable=False, default="[]")  # JSON array of "Last, First"

    def present(self) -> list:
        """Decode the stored name list; malformed JSON reads as empty."""
        try:
            value = json.loads(self.names or "[]")
        except ValueError:
            return []
        return value if isinstance(value, list) else []

    def __repr__(self):
        return f"<AttendanceRecord(date={self.date})>"


class Checkin(Base):
    """
    Append-only log of kiosk check-ins.
    Duplicate submissions accumulate here; reports de-duplicate on read.
    """
    __tablename__ = 'checkins'
    TAB = 'Check-ins'
    HEADERS = ('Date', 'Name', 'Timestamp', 'Class', 'Paid')

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(String(20), nullable=False, default="", index=True)
    name = Column(String(200), nullable=False)
    timestamp = Column(String(40), nullable=False)
    class_name = Column(String(100), nullable=False, default="")
    paid = Column(String(20), nullable=False, default="")

    def __repr__(self):
        return f"<Checkin(id={self.id}, date={self.date}, name={self.name})>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "date": self.date,
            "name": self.name,
            "timestamp": self.timestamp,
            "class": self.class_name,
            "paid": self.paid
        }


class NewStudent(Base):
    """Intake rows submitted from the kiosk by first-time students."""
    __tablename__ = 'new_students'
    TAB = 'New Students'
    HEADERS = ('First Name', 'Last Name', 'Date', 'Time', 'Class', 'Status')

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date = Column(String(20), nullable=False, default="")
    time = Column(String(40), nullable=False, default="")
    class_name = Column(String(100), nullable=False, default="")
    status = Column(String(20), nullable=True, default=IntakeStatus.PENDING.value)

    def to_dict(self) -> dict:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "date": self.date,
            "time": self.time,
            "class": self.class_name,
            "status": self.status or IntakeStatus.PENDING.value
        }


class CancelledDate(Base):
    __tablename__ = 'cancelled'
    TAB = 'Cancelled'
    HEADERS = ('Date', 'Timestamp')

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(String(20), nullable=False, index=True)
    timestamp = Column(String(40), nullable=False)


class DuesRecord(Base):
    """
    Monthly dues status, one row per (month, student).
    Source records whether the student self-reported or an admin toggled it.
    """
    __tablename__ = 'dues'
    TAB = 'Dues'
    HEADERS = ('Month', 'Student Name', 'Paid', 'Date Confirmed', 'Source')

    id = Column(Integer, primary_key=True, autoincrement=True)
    month = Column(String(20), nullable=False, index=True)
    student_name = Column(String(200), nullable=False)
    paid = Column(Boolean, default=False, nullable=False)
    date_confirmed = Column(String(40), nullable=False, default="")
    source = Column(String(20), nullable=False, default="")

    def __repr__(self):
        return f"<DuesRecord(month={self.month}, name={self.student_name}, paid={self.paid})>"


class Setting(Base):
    """
    Runtime settings edited from the admin dashboard.
    Values are stored as strings.
    """
    __tablename__ = 'settings'
    TAB = 'Settings'
    HEADERS = ('Key', 'Value')

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Setting(key={self.key}, value={self.value})>"


# Tab name -> model, in the order tabs are listed to admins
TABS = {
    model.TAB: model
    for model in (
        RosterEntry, AttendanceRecord, Checkin, NewStudent,
        CancelledDate, DuesRecord, Setting
    )
}
