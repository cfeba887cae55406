import logging
from datetime import datetime, timezone
from itertools import islice
from typing import Any, Dict, List, Optional

from ..config import settings
from ..models.schemas import DesignSpecification, Session

logger = logging.getLogger(settings.SERVICE_NAME + ".store")


class DesignStore:
    """
    In-memory registry of connection sessions and of every design generated by this process.

    One instance is created per application and injected wherever it is needed.
    History is never trimmed. Methods are synchronous: on a single event loop every
    mutation completes between suspension points, so no lock is needed. A
    multi-threaded host would have to guard these dicts.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        # dicts keep insertion order, which is the order list_recent relies on
        self._history: Dict[str, DesignSpecification] = {}

    # --- Sessions ---
    def create_session(self, connection_id: str) -> Session:
        session = Session(
            connection_id=connection_id,
            connected_at=datetime.now(timezone.utc),
        )
        self._sessions[connection_id] = session
        logger.info(f"Session created for connection {connection_id}. Active sessions: {len(self._sessions)}")
        return session

    def destroy_session(self, connection_id: str) -> None:
        if self._sessions.pop(connection_id, None) is not None:
            logger.info(f"Session destroyed for connection {connection_id}. Active sessions: {len(self._sessions)}")

    def get_session(self, connection_id: str) -> Optional[Session]:
        return self._sessions.get(connection_id)

    def mark_plugin(self, connection_id: str, metadata: Dict[str, Any]) -> None:
        session = self._sessions.get(connection_id)
        if session is not None:
            session.plugin = metadata

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    # --- History ---
    def record_design(self, spec: DesignSpecification, connection_id: Optional[str] = None) -> None:
        """
        Add a design to history and, if the originating session is still alive,
        to that session's design list. A session that has already gone away is not an error.
        """
        self._history[spec.id] = spec
        if connection_id is not None:
            session = self._sessions.get(connection_id)
            if session is not None:
                session.design_ids.append(spec.id)
            else:
                logger.debug(f"Design {spec.id} recorded after connection {connection_id} closed.")
        logger.debug(f"Design {spec.id} recorded. History size: {len(self._history)}")

    def get_design(self, spec_id: str) -> Optional[DesignSpecification]:
        return self._history.get(spec_id)

    def list_recent(self, n: int) -> List[DesignSpecification]:
        """Return the `n` most recently recorded designs, oldest first."""
        if n <= 0:
            return []
        recent = list(islice(reversed(self._history.values()), n))
        recent.reverse()
        return recent

    def __len__(self) -> int:
        return len(self._history)

    def __contains__(self, spec_id: object) -> bool:
        return spec_id in self._history
