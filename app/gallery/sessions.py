"""
Upload session tracking for the admin gallery manager.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set
import logging
import random
import string
import time

logger = logging.getLogger(__name__)

_ALPHABET = string.digits + string.ascii_lowercase


def new_session_id() -> str:
    """Opaque batch identifier: session_<epoch ms>_<7 base36 chars>."""
    suffix = "".join(random.choices(_ALPHABET, k=7))
    return f"session_{int(time.time() * 1000)}_{suffix}"


@dataclass
class UploadSession:
    session_id: str
    urls: Set[str] = field(default_factory=set)
    committed: bool = False
    dismissed: bool = False


class UploadSessionTracker:
    """
    Sessions opened by one gallery manager, in creation order.

    A session is committed once the storage provider has been told to retain
    its files. Dismissed sessions belong to batches the admin walked away
    from; their files must not reach the gallery.
    """

    def __init__(self):
        self._sessions: Dict[str, UploadSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def issue(self) -> str:
        session_id = new_session_id()
        self.track(session_id)
        logger.info(f"Created new upload session ID: {session_id}")
        return session_id

    def track(self, session_id: str) -> UploadSession:
        if session_id not in self._sessions:
            self._sessions[session_id] = UploadSession(session_id)
        return self._sessions[session_id]

    def get(self, session_id: str) -> Optional[UploadSession]:
        return self._sessions.get(session_id)

    def add_urls(self, session_id: str, urls: Iterable[str]) -> None:
        session = self.track(session_id)
        session.urls.update(urls)
        session.committed = False

    def mark_committed(self, session_id: str) -> None:
        self.track(session_id).committed = True

    def dismiss(self, session_id: str) -> None:
        self.track(session_id).dismissed = True

    def session_ids(self) -> List[str]:
        return list(self._sessions)

    def uncommitted(self) -> List[UploadSession]:
        return [s for s in self._sessions.values() if not s.committed]

    def session_for_url(self, url: str) -> Optional[str]:
        for session in self._sessions.values():
            if url in session.urls:
                return session.session_id
        return None

    def forget(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
