import asyncio
import logging
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.errors import EngineError
from app.services.post_service import EDITABLE_FIELDS, PostService

logger = logging.getLogger(__name__)


class AutosaveDebouncer:
    """
    Per-post debounce for editor autosave ticks.

    Each submit merges the edited fields into the pending snapshot and restarts
    the quiet-period timer. When the timer expires the merged fields are written
    through PostService.edit_post, which skips fields equal to the stored value.
    Must be used from a running event loop.
    """

    def __init__(
        self,
        post_service: Optional[PostService] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        delay_seconds: Optional[float] = None,
    ):
        self.posts = post_service or PostService()
        self.session_factory = session_factory
        self.delay_seconds = settings.autosave_debounce_seconds if delay_seconds is None else delay_seconds
        self._pending: Dict[str, Tuple[str, dict]] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self.logger = logging.getLogger(__name__)

    def submit(self, user_id: str, post_id: str, **fields):
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        _, pending = self._pending.get(post_id, (user_id, {}))
        pending.update({field: value for field, value in fields.items() if value is not None})
        self._pending[post_id] = (user_id, pending)

        self._cancel_timer(post_id)
        self._timers[post_id] = asyncio.get_running_loop().create_task(self._flush_later(post_id))
        self.logger.debug(f"submit: post: {post_id}, pending: {sorted(pending)}")

    def pending_fields(self, post_id: str) -> dict:
        return dict(self._pending.get(post_id, (None, {}))[1])

    async def flush(self, post_id: str) -> list[str]:
        """Write pending edits now. Returns the fields that were actually changed."""
        self._cancel_timer(post_id)
        entry = self._pending.pop(post_id, None)
        if entry is None:
            return []

        user_id, fields = entry
        db = self.session_factory()
        try:
            _, changed = self.posts.edit_post(db, user_id, post_id, **fields)
        finally:
            db.close()
        self.logger.info(f"flush: Success - post: {post_id}, changed: {changed}")
        return changed

    def cancel(self, post_id: str):
        """Drop pending edits without writing them"""
        self._cancel_timer(post_id)
        self._pending.pop(post_id, None)

    async def close(self):
        """Flush every pending post and stop all timers"""
        for post_id in list(self._pending):
            try:
                await self.flush(post_id)
            except EngineError as e:
                self.logger.error(f"close: Failure flushing post {post_id} - {e.message}")

    async def _flush_later(self, post_id: str):
        try:
            await asyncio.sleep(self.delay_seconds)
        except asyncio.CancelledError:
            return

        # Detach this task so flush() does not cancel itself
        self._timers.pop(post_id, None)
        try:
            await self.flush(post_id)
        except EngineError as e:
            # Reported but not retried; the next edit schedules another write
            self.logger.error(f"_flush_later: Failure - post: {post_id}, error: {e.message}")

    def _cancel_timer(self, post_id: str):
        timer = self._timers.pop(post_id, None)
        if timer is not None and not timer.done():
            timer.cancel()


_debouncer: Optional[AutosaveDebouncer] = None


def get_autosave_debouncer() -> AutosaveDebouncer:
    global _debouncer
    if _debouncer is None:
        _debouncer = AutosaveDebouncer()
    return _debouncer
