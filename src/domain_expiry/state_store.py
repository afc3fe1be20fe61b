"""
State Store module for notification delivery state.

One row per notification identity records the outcome and time of the last
delivery attempt. The file-backed store keeps rows in a JSON file with an
HMAC over the content so that tampering is detected on load.
"""

import hashlib
import hmac
import json
from datetime import date
from pathlib import Path
from typing import Optional

from .enums import NotificationChannelName, NotificationStatus
from .exceptions import PersistenceError, TamperingError
from .models import (
    NotificationIdentity,
    NotificationState,
    parse_iso_datetime,
    utc_now,
)


def _state_to_dict(state: NotificationState) -> dict:
    identity = state.identity
    return {
        "user_id": identity.user_id,
        "domain": identity.domain,
        "expires_at": identity.expires_at.isoformat(),
        "threshold_days": identity.threshold_days,
        "channel": identity.channel.value,
        "status": state.status.value,
        "payload": state.payload,
        "error_message": state.error_message,
        "last_notified_at": state.last_notified_at.isoformat() if state.last_notified_at else None,
        "created_at": state.created_at.isoformat(),
    }


def _state_from_dict(data: dict) -> NotificationState:
    created_at = parse_iso_datetime(str(data.get("created_at", "")))
    if created_at is None:
        raise ValueError("notification state has no valid created_at")
    last_notified_at = data.get("last_notified_at")
    return NotificationState(
        identity=NotificationIdentity(
            user_id=int(data["user_id"]),
            domain=str(data["domain"]),
            expires_at=date.fromisoformat(data["expires_at"]),
            threshold_days=int(data["threshold_days"]),
            channel=NotificationChannelName(data["channel"]),
        ),
        status=NotificationStatus(data["status"]),
        payload=str(data.get("payload", "")),
        error_message=data.get("error_message"),
        last_notified_at=parse_iso_datetime(last_notified_at) if last_notified_at else None,
        created_at=created_at,
    )


class NotificationStateStore:
    """
    Notification state keyed by identity.

    Without a file path the store is purely in memory. With one, the file
    is read on construction and rewritten after every upsert.
    """

    VERSION = 1

    def __init__(self, file_path: Optional[Path] = None, hmac_secret: str = "") -> None:
        """
        Initialize the state store.

        Args:
            file_path: Optional path to the state file (JSON format)
            hmac_secret: Secret key for HMAC computation

        Raises:
            TamperingError: If the existing file fails HMAC validation
            PersistenceError: If the existing file cannot be read or parsed
        """
        self._file_path = file_path
        self._hmac_secret = hmac_secret.encode("utf-8")
        self._states: dict[str, NotificationState] = {}
        if self._file_path is not None:
            self.load()

    def get(self, identity: NotificationIdentity) -> Optional[NotificationState]:
        return self._states.get(identity.key)

    def upsert(self, state: NotificationState) -> NotificationState:
        """
        Insert or replace the row for the state's identity.

        The creation time of an existing row is preserved.
        """
        existing = self._states.get(state.identity.key)
        if existing is not None:
            state.created_at = existing.created_at
        self._states[state.identity.key] = state
        if self._file_path is not None:
            self.save()
        return state

    def all(self) -> list[NotificationState]:
        return list(self._states.values())

    def load(self) -> None:
        if self._file_path is None or not self._file_path.exists():
            return

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse notification state file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read notification state file: {e}",
                details={"file_path": str(self._file_path)},
            )

        stored_hmac = raw_data.get("hmac", "")
        data_for_hmac = {
            "version": raw_data.get("version"),
            "states": raw_data.get("states", []),
            "last_updated": raw_data.get("last_updated"),
        }
        computed_hmac = self.compute_hmac(data_for_hmac)
        if not self.validate_hmac(stored_hmac, computed_hmac):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - data may have been tampered with",
                details={
                    "file_path": str(self._file_path),
                    "expected_hmac": computed_hmac,
                    "stored_hmac": stored_hmac,
                },
            )

        try:
            states = [_state_from_dict(item) for item in raw_data.get("states", [])]
        except (KeyError, ValueError, TypeError) as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Invalid notification state row: {e}",
                details={"file_path": str(self._file_path)},
            )
        self._states = {state.identity.key: state for state in states}

    def save(self) -> None:
        """
        Write all rows to file with HMAC protection.

        Raises:
            PersistenceError: If no file is configured or it cannot be written
        """
        if self._file_path is None:
            raise PersistenceError(
                code="no_file",
                message="Notification state store has no file path",
                details={},
            )

        data = {
            "version": self.VERSION,
            "states": [_state_to_dict(state) for state in self._states.values()],
            "last_updated": utc_now().isoformat(),
        }
        data["hmac"] = self.compute_hmac(data)

        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self._file_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write notification state file: {e}",
                details={"file_path": str(self._file_path)},
            )

    def compute_hmac(self, data: dict) -> str:
        """
        Compute HMAC-SHA256 over serialized data.

        Args:
            data: Dictionary to compute HMAC over

        Returns:
            Hexadecimal HMAC string
        """
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def validate_hmac(self, stored_hmac: str, computed_hmac: str) -> bool:
        """Validate HMAC using constant-time comparison."""
        return hmac.compare_digest(stored_hmac, computed_hmac)

    @property
    def file_path(self) -> Optional[Path]:
        return self._file_path
