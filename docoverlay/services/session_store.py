"""
Session Store

In-memory registry of editing sessions. Sessions live only for the
lifetime of the process; nothing is persisted.

Each session holds its source PDF and every preview PNG, so the store
drops sessions idle for longer than SESSION_IDLE_TTL_SECONDS and keeps at
most MAX_SESSIONS, evicting the least recently used first.
"""

import logging
import time
import uuid
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from docoverlay.services.overlay.assets import AssetDecoder
from docoverlay.services.overlay.editor_session import EditorSession
from docoverlay.services.overlay.export_service import ExportService
from docoverlay.services.overlay.fonts import FontResolver
from docoverlay.services.overlay.preview_generator import PreviewGenerator
from docoverlay.services.overlay.text_metrics import MetricsMode, TextMetricsProvider

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Creates and tracks EditorSession instances.

    One FontResolver is shared by every session so downloaded fonts are
    cached process-wide.

    Args:
        settings: Application settings
        clock: Monotonic time source in seconds
    """

    def __init__(self, settings, clock: Callable[[], float] = time.monotonic):
        self.settings = settings
        self.font_resolver = FontResolver.from_settings(settings)
        self._clock = clock
        # OrderedDict for LRU behavior: least recently used first
        self._sessions: OrderedDict[str, Tuple[EditorSession, float]] = OrderedDict()

    def build_session(self) -> EditorSession:
        metrics = TextMetricsProvider(
            font_resolver=self.font_resolver,
            mode=MetricsMode(self.settings.text_metrics_mode),
        )
        export_service = ExportService(
            font_resolver=self.font_resolver,
            asset_decoder=AssetDecoder(timeout=self.settings.asset_fetch_timeout),
        )
        return EditorSession(
            metrics=metrics,
            preview_generator=PreviewGenerator.from_settings(self.settings),
            export_service=export_service,
        )

    def create(self) -> tuple[str, EditorSession]:
        self.evict_idle()
        # Evict least recently used if at capacity
        while self._sessions and len(self._sessions) >= self.settings.max_sessions:
            oldest = next(iter(self._sessions))
            logger.info(f"Session limit reached, evicting {oldest}")
            self.drop(oldest)

        session_id = uuid.uuid4().hex
        session = self.build_session()
        self._sessions[session_id] = (session, self._clock())
        logger.info(f"Created editing session {session_id}")
        return session_id, session

    def get(self, session_id: str) -> EditorSession:
        self.evict_idle()
        try:
            session, _ = self._sessions[session_id]
        except KeyError:
            raise KeyError(f"Unknown session: {session_id}") from None
        self._sessions[session_id] = (session, self._clock())
        self._sessions.move_to_end(session_id)
        return session

    def drop(self, session_id: str) -> Optional[EditorSession]:
        entry = self._sessions.pop(session_id, None)
        if entry is None:
            return None
        session, _ = entry
        session.reset()
        logger.info(f"Dropped editing session {session_id}")
        return session

    def evict_idle(self) -> int:
        """Drop sessions idle past the TTL; returns how many were dropped."""
        cutoff = self._clock() - self.settings.session_idle_ttl_seconds
        expired = [sid for sid, (_, used) in self._sessions.items() if used < cutoff]
        for session_id in expired:
            logger.info(f"Session {session_id} idle past TTL")
            self.drop(session_id)
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)
