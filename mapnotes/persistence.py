"""JSON-backed persistence for users and annotations."""

from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional, Union

from .security import DEFAULT_ROUNDS, get_password_hash

logger = logging.getLogger(__name__)

ADMIN_USERNAME = "admin"
MAX_TEXT_LENGTH = 255

Number = Union[int, float]


class StoreError(RuntimeError):
    """Raised when the store document cannot be read, repaired or written."""


def utc_timestamp() -> str:
    """Return the current UTC time as ISO-8601 with millisecond precision."""

    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _empty_document() -> Dict[str, list]:
    return {"users": [], "annotations": []}


class DocumentStore:
    """Keep the users/annotations document in memory and mirror it to disk.

    The file is read once when the store is created. After that every read is
    served from memory and every mutation rewrites the whole document before
    returning. The lock makes each read-mutate-flush sequence atomic with
    respect to other request threads.
    """

    def __init__(
        self,
        storage_path: Path,
        admin_password: str = "admin",
        bcrypt_rounds: int = DEFAULT_ROUNDS,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._path = Path(storage_path)
        self._lock = Lock()
        self._admin_password = admin_password
        self._bcrypt_rounds = bcrypt_rounds
        self._new_id = id_factory
        self._document: Dict[str, list] = _empty_document()
        self.initialize()

    @property
    def path(self) -> Path:
        return self._path

    def initialize(self) -> None:
        """Create, load and repair the document, bootstrapping the admin user."""

        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                if not self._path.exists():
                    self._write(_empty_document())
                    logger.info("Created new store document at %s", self._path)

                document = self._read()
                if not isinstance(document, dict):
                    raise StoreError(f"{self._path} does not contain a JSON object")
                for key in ("users", "annotations"):
                    if not document.get(key):
                        document[key] = []
                    elif not isinstance(document[key], list):
                        raise StoreError(f"{self._path}: '{key}' must be a list")
                    if not all(isinstance(entry, dict) for entry in document[key]):
                        raise StoreError(f"{self._path}: every '{key}' entry must be an object")
                self._document = {"users": document["users"], "annotations": document["annotations"]}

                if self._find_user(ADMIN_USERNAME) is None:
                    self._document["users"].append(
                        {
                            "id": self._new_id(),
                            "username": ADMIN_USERNAME,
                            "password": get_password_hash(self._admin_password, self._bcrypt_rounds),
                            "createdAt": utc_timestamp(),
                        }
                    )
                    self._write(self._document)
                    logger.info("Created default '%s' user", ADMIN_USERNAME)
            except StoreError:
                raise
            except (OSError, TypeError, ValueError) as exc:
                raise StoreError(f"Store initialization failed for {self._path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Disk I/O
    # ------------------------------------------------------------------

    def _read(self) -> object:
        with self._path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def _write(self, payload: Dict[str, list]) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, allow_nan=False)
        os.replace(tmp_path, self._path)

    def flush(self) -> None:
        """Write the full in-memory document to disk."""

        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        try:
            self._write(self._document)
        except (OSError, TypeError, ValueError) as exc:
            raise StoreError(f"Failed to write {self._path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def _find_user(self, username: str) -> Optional[dict]:
        for user in self._document["users"]:
            if user.get("username") == username:
                return user
        return None

    def find_user(self, username: str) -> Optional[dict]:
        with self._lock:
            user = self._find_user(username)
            return dict(user) if user is not None else None

    def users(self) -> List[dict]:
        with self._lock:
            return [dict(user) for user in self._document["users"]]

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def annotations(self) -> List[dict]:
        with self._lock:
            return [dict(annotation) for annotation in self._document["annotations"]]

    def annotations_for(self, user_id: str) -> List[dict]:
        with self._lock:
            return [dict(a) for a in self._document["annotations"] if a.get("userId") == user_id]

    def get_annotation(self, annotation_id: str) -> Optional[dict]:
        with self._lock:
            for annotation in self._document["annotations"]:
                if annotation.get("id") == annotation_id:
                    return dict(annotation)
            return None

    def add_annotation(self, text: str, x: Number, y: Number, user_id: str) -> dict:
        """Append a new annotation owned by *user_id* and persist it."""

        annotation = {
            "id": self._new_id(),
            "text": text[:MAX_TEXT_LENGTH],
            "x": x,
            "y": y,
            "userId": user_id,
            "createdAt": utc_timestamp(),
        }
        with self._lock:
            self._document["annotations"].append(annotation)
            self._flush_locked()
        return dict(annotation)

    def delete_annotation(self, annotation_id: str, owner_id: Optional[str] = None) -> Optional[dict]:
        """Remove the annotation with *annotation_id* and persist the change.

        When *owner_id* is given only an annotation owned by that user matches.
        Returns the removed record, or ``None`` when nothing matched (in which
        case the file is not rewritten).
        """

        with self._lock:
            remaining = []
            removed = None
            for annotation in self._document["annotations"]:
                matches = annotation.get("id") == annotation_id and (
                    owner_id is None or annotation.get("userId") == owner_id
                )
                if matches and removed is None:
                    removed = annotation
                elif not matches:
                    remaining.append(annotation)
            if removed is None:
                return None
            self._document["annotations"] = remaining
            self._flush_locked()
            return dict(removed)

    def snapshot(self) -> Dict[str, List[dict]]:
        """Return a deep-enough copy of the whole document."""

        with self._lock:
            return {
                "users": [dict(user) for user in self._document["users"]],
                "annotations": [dict(annotation) for annotation in self._document["annotations"]],
            }
