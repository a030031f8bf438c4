"""
Database Module for the Club Record Store
==========================================
Provides SQLite-backed record tabs with:
- Tabs provisioned on first use
- Append-only kiosk check-ins
- Admin roster, attendance, dues and settings upserts
"""

from .models import (
    RosterEntry, AttendanceRecord, Checkin, NewStudent, CancelledDate,
    DuesRecord, Setting, TABS
)
from .db_manager import DatabaseManager, get_db_manager
from .record_service import RecordService, RecordError

__all__ = [
    'RosterEntry',
    'AttendanceRecord',
    'Checkin',
    'NewStudent',
    'CancelledDate',
    'DuesRecord',
    'Setting',
    'TABS',
    'DatabaseManager',
    'get_db_manager',
    'RecordService',
    'RecordError'
]
