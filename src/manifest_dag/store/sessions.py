"""Session lifecycle on top of an artifact store.

A session is one execution of a workflow for a persona. Sessions live at
``<base>/<persona>/<session id>/`` and carry a ``session.json`` metadata file
at their root. The stage tree of the session grows beneath that directory.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from manifest_dag.errors import StoreError
from manifest_dag.store.base import ArtifactStore, CreateResult, join_path

logger = logging.getLogger(__name__)

SESSION_FILE = "session.json"


@dataclass(frozen=True, slots=True)
class Session:
    id: str
    persona: str
    manifest_version: str
    created: str
    root: str

    def to_json(self) -> dict[str, str]:
        return {
            "id": self.id,
            "persona": self.persona,
            "manifest_version": self.manifest_version,
            "created": self.created,
        }

    @staticmethod
    def from_json(obj: dict[str, object], *, root: str) -> Session | None:
        values = {key: obj.get(key) for key in ("id", "persona", "manifest_version", "created")}
        if not all(isinstance(value, str) and value for value in values.values()):
            return None
        return Session(
            id=str(values["id"]),
            persona=str(values["persona"]),
            manifest_version=str(values["manifest_version"]),
            created=str(values["created"]),
            root=root,
        )


def new_session_id(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%d%H%M%S")
    return f"session-{stamp}-{uuid.uuid4().hex[:6]}"


class SessionManager:
    """Create, open, and list sessions stored in an :class:`ArtifactStore`."""

    def __init__(self, store: ArtifactStore, base: str = "sessions") -> None:
        self._store = store
        self._base = base

    def _persona_dir(self, persona: str) -> str:
        return join_path(self._base, persona)

    def create_session(self, persona: str, manifest_version: str) -> Session:
        now = datetime.now(UTC)
        session_id = new_session_id(now)
        root = join_path(self._persona_dir(persona), session_id)
        session = Session(
            id=session_id,
            persona=persona,
            manifest_version=manifest_version,
            created=now.isoformat(),
            root=root,
        )
        payload = json.dumps(session.to_json(), indent=2, ensure_ascii=False).encode("utf-8")
        result = self._store.create_atomically(join_path(root, SESSION_FILE), payload)
        if result is CreateResult.ALREADY_EXISTS:
            raise StoreError(join_path(root, SESSION_FILE), "Session already exists")

        logger.info("Session created", extra={"persona": persona, "session_id": session_id})
        return session

    def open_session(self, persona: str, session_id: str) -> Session | None:
        root = join_path(self._persona_dir(persona), session_id)
        raw = self._store.read(join_path(root, SESSION_FILE))
        if raw is None:
            return None
        try:
            obj = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning(
                "Session metadata is not valid JSON",
                extra={"persona": persona, "session_id": session_id},
            )
            return None
        if not isinstance(obj, dict):
            return None
        return Session.from_json(obj, root=root)

    def list_sessions(self, persona: str) -> list[Session]:
        """Sessions for ``persona``, newest first."""

        sessions = []
        for child in self._store.list_children(self._persona_dir(persona)):
            session = self.open_session(persona, child)
            if session is not None:
                sessions.append(session)
        sessions.sort(key=lambda s: (s.created, s.id), reverse=True)
        return sessions
