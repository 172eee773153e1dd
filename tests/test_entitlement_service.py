"""
Tests for the entitlement gate
"""

from datetime import datetime

import pytest

from app.core.errors import QuotaExceeded
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.usage_record import UsageRecord


class TestCheckEntitlement:

    def test_first_check_creates_free_subscription(self, db_session, entitlement_service, now):
        """No subscription yet: free allowance and a persisted default"""
        entitlement = entitlement_service.check_entitlement(db_session, "new_user", now)

        assert entitlement.allowed is True
        assert entitlement.used == 0
        assert entitlement.limit == 2
        assert entitlement.plan_tier == "free"

        stored = db_session.query(Subscription).filter(Subscription.user_id == "new_user").first()
        assert stored is not None
        assert stored.plan_tier == "free"
        assert stored.status == SubscriptionStatus.ACTIVE
        assert stored.tokens == 2

    def test_check_does_not_consume(self, db_session, entitlement_service, now):
        entitlement_service.check_entitlement(db_session, "u1", now)
        entitlement_service.check_entitlement(db_session, "u1", now)
        assert db_session.query(UsageRecord).count() == 0

    def test_starter_at_limit_is_denied(self, db_session, entitlement_service, subscription_service, now):
        subscription_service.apply_plan_change(db_session, "u1", "starter")
        for _ in range(20):
            entitlement_service.consume(db_session, "u1", now)

        entitlement = entitlement_service.check_entitlement(db_session, "u1", now)
        assert entitlement.allowed is False
        assert entitlement.used == 20
        assert entitlement.limit == 20
        assert entitlement.remaining == 0

    def test_pro_is_unlimited(self, db_session, entitlement_service, subscription_service, now):
        subscription_service.apply_plan_change(db_session, "u1", "pro")
        for _ in range(50):
            entitlement_service.consume(db_session, "u1", now)

        entitlement = entitlement_service.check_entitlement(db_session, "u1", now)
        assert entitlement.allowed is True
        assert entitlement.limit is None
        assert entitlement.unlimited is True
        assert entitlement.remaining is None

    def test_null_tokens_use_plan_allowance(self, db_session, entitlement_service, now):
        db_session.add(Subscription(user_id="u1", plan_tier="starter", status=SubscriptionStatus.ACTIVE, tokens=None))
        db_session.commit()

        assert entitlement_service.check_entitlement(db_session, "u1", now).limit == 20

    def test_past_due_status_does_not_gate(self, db_session, entitlement_service, subscription_service, now):
        subscription_service.apply_plan_change(db_session, "u1", "starter", status=SubscriptionStatus.PAST_DUE)
        assert entitlement_service.check_entitlement(db_session, "u1", now).allowed is True

    def test_new_month_starts_at_zero(self, db_session, entitlement_service):
        january = datetime(2025, 1, 20)
        entitlement_service.consume(db_session, "u1", january)
        entitlement_service.consume(db_session, "u1", january)

        assert entitlement_service.check_entitlement(db_session, "u1", january).allowed is False
        february = entitlement_service.check_entitlement(db_session, "u1", datetime(2025, 2, 1))
        assert february.allowed is True
        assert february.used == 0


class TestConsume:

    def test_sequential_consumes_count(self, db_session, entitlement_service, now):
        for expected in range(1, 4):
            record = entitlement_service.consume(db_session, "u1", now)
            assert record.ratings_used == expected

    def test_consume_snapshots_plan(self, db_session, entitlement_service, subscription_service, now):
        subscription_service.apply_plan_change(db_session, "u1", "starter")
        record = entitlement_service.consume(db_session, "u1", now)
        assert record.plan_tier == "starter"
        assert record.month == "2025-03"

    def test_consume_does_not_touch_token_balance(self, db_session, entitlement_service, now):
        entitlement_service.consume(db_session, "u1", now)
        subscription = db_session.query(Subscription).filter(Subscription.user_id == "u1").first()
        assert subscription.tokens == 2

    def test_require_entitlement_raises_with_counts(self, db_session, entitlement_service, now):
        entitlement_service.consume(db_session, "u1", now)
        entitlement_service.consume(db_session, "u1", now)

        with pytest.raises(QuotaExceeded) as exc_info:
            entitlement_service.require_entitlement(db_session, "u1", now)

        assert exc_info.value.used == 2
        assert exc_info.value.limit == 2
        assert exc_info.value.status_code == 403


class TestTryConsume:

    def test_try_consume_until_limit(self, db_session, entitlement_service, mock_cache, now):
        assert entitlement_service.try_consume(db_session, "u1", now).ratings_used == 1
        assert entitlement_service.try_consume(db_session, "u1", now).ratings_used == 2

        with pytest.raises(QuotaExceeded) as exc_info:
            entitlement_service.try_consume(db_session, "u1", now)
        assert exc_info.value.used == 2

        assert mock_cache.acquire_lock.call_count == 3
        assert mock_cache.release_lock.call_count == 3
        mock_cache.acquire_lock.assert_called_with("usage_lock:u1:2025-03", timeout_seconds=10, block_seconds=5)

    def test_try_consume_without_lock_still_bounded(self, db_session, entitlement_service, mock_cache, now):
        mock_cache.acquire_lock.return_value = False

        entitlement_service.try_consume(db_session, "u1", now)
        entitlement_service.try_consume(db_session, "u1", now)
        with pytest.raises(QuotaExceeded):
            entitlement_service.try_consume(db_session, "u1", now)

        mock_cache.release_lock.assert_not_called()

    def test_try_consume_pro_never_denied(self, db_session, entitlement_service, subscription_service, now):
        subscription_service.apply_plan_change(db_session, "u1", "pro")
        for _ in range(10):
            record = entitlement_service.try_consume(db_session, "u1", now)
        assert record.ratings_used == 10


class TestUsageStatus:

    def test_usage_status(self, db_session, entitlement_service, now):
        entitlement_service.consume(db_session, "u1", now)
        status = entitlement_service.get_usage_status(db_session, "u1", now)

        assert status == {
            'plan_tier': 'free',
            'month': '2025-03',
            'used': 1,
            'limit': 2,
            'remaining': 1,
            'unlimited': False,
            'allowed': True,
        }
