from __future__ import annotations

import logging
from typing import Any

from content_studio.errors import NotFoundError
from content_studio.workflows import engine
from content_studio.workflows.engine import WorkflowDefinition, WorkflowSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """In-memory workflow sessions, keyed by id and scoped to their owner."""

    def __init__(self) -> None:
        self._sessions: dict[str, WorkflowSession] = {}

    def create(self, definition: WorkflowDefinition, owner_id: str, inputs: dict[str, Any]) -> WorkflowSession:
        session = engine.start(definition, owner_id, inputs)
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str, owner_id: str) -> WorkflowSession:
        session = self._sessions.get(session_id)
        if session is None or session.owner_id != owner_id:
            raise NotFoundError("session not found", details={"session_id": session_id})
        return session

    def delete(self, session_id: str, owner_id: str) -> WorkflowSession:
        session = self.get(session_id, owner_id)
        del self._sessions[session_id]
        logger.info("Deleted %s session %s", session.tool, session_id)
        return session

    def list_for(self, owner_id: str) -> list[WorkflowSession]:
        out = [s for s in self._sessions.values() if s.owner_id == owner_id]
        out.sort(key=lambda s: s.created_at, reverse=True)
        return out

    def __len__(self) -> int:
        return len(self._sessions)
