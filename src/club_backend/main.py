"""
Club Record API
===============
Serves both the student sign-in kiosk and the admin attendance tracker.

Flow:
1. GET  /?action=<read>            -> roster, attendance, dues, settings ...
2. POST / {action, token, ...}      -> check-ins (public) and admin writes (write key)
3. Every application failure is answered as {"error": message} so clients
   can tell an application rejection from a transport failure
"""

import os
import logging
from pathlib import Path
from typing import Optional, Dict, Any, Callable

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .auth import AuthMode, WriteKeyGate
from .database import DatabaseManager, RecordService, RecordError
from .database.record_service import utc_now_iso

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ============== Configuration ==============
DATABASE_PATH = os.environ.get("CLUB_DATABASE_PATH")
WRITE_KEY = os.environ.get("WRITE_KEY")
AUTH_MODE = os.environ.get("AUTH_MODE", AuthMode.REQUIRED.value)
API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "8000"))
# ==========================================

# Kiosk actions, accepted without a write key
PUBLIC_ACTIONS = {
    "checkin": RecordService.checkin,
    "new_student": RecordService.new_student,
    "recorddues": RecordService.record_dues,
}

# Admin actions, gated by the write key
PROTECTED_ACTIONS = {
    "addstudent": RecordService.add_student,
    "removestudent": RecordService.remove_student,
    "editstudent": RecordService.edit_student,
    "saveattendance": RecordService.save_attendance,
    "cancelclass": RecordService.cancel_class,
    "restoreclass": RecordService.restore_class,
    "toggledues": RecordService.toggle_dues,
    "setsetting": RecordService.set_setting,
}


def create_app(
    db_path: Optional[str] = DATABASE_PATH,
    write_key: Optional[str] = WRITE_KEY,
    auth_mode: str = AUTH_MODE
) -> FastAPI:
    """Build the record API bound to one database and one write-key policy."""
    app = FastAPI(
        title="Club Record API",
        description="Attendance, roster and dues records for the club sign-in kiosk and admin dashboard",
        version="1.0.0"
    )

    # CORS middleware: kiosk and admin pages are served from other origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db = DatabaseManager(Path(db_path) if db_path else None)
    app.state.gate = WriteKeyGate(write_key, AuthMode(auth_mode))
    app.state.records = None

    @app.on_event("startup")
    async def startup_event():
        """Open the record store and report the write-key policy."""
        logger.info("=" * 60)
        logger.info("Starting Club Record API")
        logger.info("=" * 60)

        if app.state.db.initialize():
            app.state.records = RecordService(app.state.db)
            logger.info(f"Record store: ✓ Ready ({app.state.db.db_path})")
        else:
            logger.error("Record store: ✗ Unavailable - all actions will return 503")

        app.state.gate.log_status()
        logger.info("=" * 60)

    def get_records() -> RecordService:
        if app.state.records is None:
            raise HTTPException(status_code=503, detail="Record store not available")
        return app.state.records

    def run(handler: Callable[[], dict]) -> Dict[str, Any]:
        try:
            return handler()
        except RecordError as e:
            return {"error": str(e)}
        except Exception as e:
            logger.error(f"Action failed: {e}", exc_info=True)
            return {"error": str(e)}

    @app.get("/")
    async def read_action(
        action: str = Query("", description="Read action name"),
        date: Optional[str] = Query(None, description="Date in YYYY-MM-DD format")
    ):
        """Read endpoint used by both the kiosk and the admin dashboard."""
        action = action.lower()
        if action == "ping":
            return {"ok": True, "ts": utc_now_iso()}

        records = get_records()
        readers = {
            "roster": records.roster,
            "attendance": lambda: records.attendance(date),
            "allattendance": records.all_attendance,
            "cancelled": records.cancelled,
            "newstudents": records.new_students,
            "dues": records.dues,
            "settings": records.settings,
        }
        reader = readers.get(action)
        if reader is None:
            return {"error": f"Unknown action: {action}"}
        return run(reader)

    @app.post("/")
    async def write_action(request: Request):
        """
        Write endpoint.

        The body is JSON {action, token, ...fields}. Check-in style actions
        are public; everything else requires the write key.
        """
        try:
            body = await request.json()
        except ValueError:
            return {"error": "Request body must be JSON"}
        if not isinstance(body, dict):
            return {"error": "Request body must be a JSON object"}

        records = get_records()
        action = str(body.get("action") or "").lower()

        handler = PUBLIC_ACTIONS.get(action)
        if handler is not None:
            return run(lambda: handler(records, body))

        if not app.state.gate.verify(body):
            logger.warning(f"Rejected '{action}': invalid write key")
            return {"error": "Invalid write key"}

        handler = PROTECTED_ACTIONS.get(action)
        if handler is None:
            return {"error": f"Unknown action: {action}"}
        return run(lambda: handler(records, body))

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        status = {
            "status": "online",
            "service": "Club Record API",
            "record_store": app.state.records is not None,
            "write_key_configured": app.state.gate.write_key is not None,
            "auth_mode": app.state.gate.mode.value
        }
        if app.state.records is not None:
            status["tabs"] = app.state.db.get_stats()["tabs"]
        return status

    return app


app = create_app()


def main():
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    main()
