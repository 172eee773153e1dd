import logging
from datetime import datetime
from app.core.firebase import get_firestore_client

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Product analytics and error events mirrored to Firestore. Never raises."""

    def __init__(self):
        self.db = get_firestore_client()
        self.events_collection = 'engine_events'
        self.errors_collection = 'engine_errors'
        self.logger = logging.getLogger(__name__)

    def log_event(
        self,
        event_name: str,
        user_id: str = None,
        parameters: dict = None,
    ):
        logger.debug(f"log_event: Entry - {event_name}, user: {user_id}")

        try:
            self.db.collection(self.events_collection).add({
                'event_name': event_name,
                'user_id': user_id,
                'parameters': parameters or {},
                'timestamp': datetime.utcnow()
            })
        except Exception as e:
            # Analytics failures must not break the calling action
            logger.error(f"log_event: Failure - {e}")

    def log_success(
        self,
        action: str,
        user_id: str = None,
        parameters: dict = None
    ):
        self.log_event(
            event_name=f'{action}_success',
            user_id=user_id,
            parameters={'status': 'success', **(parameters or {})}
        )

    def log_denied(
        self,
        action: str,
        reason: str,
        user_id: str = None,
        parameters: dict = None
    ):
        """Expected refusals (quota exhausted, invalid transition) tracked for product metrics only"""
        self.log_event(
            event_name=f'{action}_denied',
            user_id=user_id,
            parameters={'status': 'denied', 'reason': reason, **(parameters or {})}
        )

    def log_failure(
        self,
        action: str,
        error: str,
        user_id: str = None,
        parameters: dict = None,
        stack_trace: str = None
    ):
        """Unexpected failure: analytics event plus an error record for debugging"""
        self.log_event(
            event_name=f'{action}_failure',
            user_id=user_id,
            parameters={'status': 'failure', 'error': error, **(parameters or {})}
        )

        try:
            self.db.collection(self.errors_collection).add({
                'action': action,
                'user_id': user_id,
                'error_message': error,
                'stack_trace': stack_trace,
                'parameters': parameters or {},
                'fatal': False,
                'timestamp': datetime.utcnow()
            })
        except Exception as e:
            logger.error(f"log_failure: Failure - {e}")
