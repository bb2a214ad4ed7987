"""
Durable session values for the console.

Each field lives in its own row of a small SQLite key-value table, so a bad
value or a failed write only ever affects that one field. The store never
raises: an unavailable database or an undecodable value reads as absent.
"""

import json
import logging
import sqlite3
from contextlib import closing
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class SessionField(str, Enum):
    ACCESS_TOKEN = "strava_token"
    INSTRUCTIONS_URL = "instructions_url"
    HISTORY_URL = "history_url"
    CARDIO_NOTES = "cardio_notes"
    EQUIPMENT_SELECTION = "equipment_selection"


def _dedupe(items) -> List[str]:
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def _encode(field: SessionField, value) -> str:
    if field is SessionField.ACCESS_TOKEN:
        return json.dumps({"access_token": value})
    if field is SessionField.EQUIPMENT_SELECTION:
        return json.dumps(_dedupe(str(v) for v in value))
    return str(value)


def _decode(field: SessionField, raw: str):
    if field is SessionField.ACCESS_TOKEN:
        tok = json.loads(raw)
        if not isinstance(tok, dict) or not isinstance(tok.get("access_token"), str):
            raise ValueError("token record has no access_token")
        return tok["access_token"]
    if field is SessionField.EQUIPMENT_SELECTION:
        items = json.loads(raw)
        if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
            raise ValueError("equipment selection is not a list of strings")
        return _dedupe(items)
    return raw


class SessionStore:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self._init_db()

    def _connect(self):
        return closing(sqlite3.connect(self.db_path))

    def _init_db(self):
        try:
            with self._connect() as db:
                db.execute('''
                    CREATE TABLE IF NOT EXISTS session_values (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                ''')
                db.commit()
        except sqlite3.Error as e:
            logger.warning("Session store unavailable at %s: %s", self.db_path, e)

    def get(self, field: SessionField):
        """Return the decoded value for ``field`` or None."""
        field = SessionField(field)
        try:
            with self._connect() as db:
                row = db.execute(
                    "SELECT value FROM session_values WHERE key = ?", (field.value,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.warning("Could not read %s from session store: %s", field.value, e)
            return None

        if row is None:
            return None
        try:
            return _decode(field, row[0])
        except (ValueError, TypeError) as e:
            logger.warning("Ignoring undecodable %s in session store: %s", field.value, e)
            return None

    def set(self, field: SessionField, value) -> None:
        field = SessionField(field)
        try:
            encoded = _encode(field, value)
        except (TypeError, ValueError) as e:
            logger.warning("Could not encode %s for session store: %s", field.value, e)
            return
        try:
            with self._connect() as db:
                db.execute(
                    "INSERT OR REPLACE INTO session_values (key, value, updated_at) "
                    "VALUES (?, ?, CURRENT_TIMESTAMP)",
                    (field.value, encoded),
                )
                db.commit()
        except sqlite3.Error as e:
            logger.warning("Could not write %s to session store: %s", field.value, e)

    def clear(self, field: SessionField) -> None:
        field = SessionField(field)
        try:
            with self._connect() as db:
                db.execute("DELETE FROM session_values WHERE key = ?", (field.value,))
                db.commit()
        except sqlite3.Error as e:
            logger.warning("Could not clear %s from session store: %s", field.value, e)

    # Typed accessors

    def get_access_token(self) -> Optional[str]:
        return self.get(SessionField.ACCESS_TOKEN)

    def set_access_token(self, token: str) -> None:
        self.set(SessionField.ACCESS_TOKEN, token)

    def get_instructions_url(self) -> Optional[str]:
        return self.get(SessionField.INSTRUCTIONS_URL)

    def get_history_url(self) -> Optional[str]:
        return self.get(SessionField.HISTORY_URL)

    def get_cardio_notes(self) -> Optional[str]:
        return self.get(SessionField.CARDIO_NOTES)

    def get_equipment_selection(self) -> List[str]:
        """Saved selection; missing or corrupt data reads as empty."""
        return self.get(SessionField.EQUIPMENT_SELECTION) or []

    def set_equipment_selection(self, keys) -> None:
        self.set(SessionField.EQUIPMENT_SELECTION, list(keys))

    def load_form_defaults(self) -> Dict:
        """Initial form values read once when the console starts."""
        return {
            "access_token": self.get_access_token() or "",
            "instructions_url": self.get_instructions_url() or "",
            "history_url": self.get_history_url() or "",
            "cardio_notes": self.get_cardio_notes() or "",
            "equipment": self.get_equipment_selection(),
        }
