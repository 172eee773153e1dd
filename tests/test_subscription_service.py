"""
Tests for the subscription store
"""

from datetime import datetime

import pytest

from app.models.subscription import SubscriptionStatus
from app.models.subscription_history import SubscriptionHistory
from app.services.plan_catalog import UNLIMITED


class TestGetOrCreate:

    def test_default_subscription(self, db_session, subscription_service):
        subscription = subscription_service.get_or_create_subscription(db_session, "u1")

        assert subscription.plan_tier == "free"
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.tokens == 2

        history = db_session.query(SubscriptionHistory).all()
        assert [entry.action for entry in history] == ["created"]

    def test_second_read_returns_same_row(self, db_session, subscription_service):
        first = subscription_service.get_or_create_subscription(db_session, "u1")
        second = subscription_service.get_or_create_subscription(db_session, "u1")
        assert first.user_id == second.user_id
        assert db_session.query(SubscriptionHistory).count() == 1

    def test_current_subscription_dict(self, db_session, subscription_service):
        data = subscription_service.get_current_subscription(db_session, "u1")
        assert data["plan_tier"] == "free"
        assert data["tokens"] == 2
        assert data["unlimited"] is False
        assert data["features"]["ai_ratings_per_month"] == 2


class TestPlanChanges:

    def test_upgrade_assigns_plan_tokens(self, db_session, subscription_service):
        subscription = subscription_service.apply_plan_change(
            db_session, "u1", "starter",
            stripe_customer_id="cus_1",
            stripe_subscription_id="sub_1",
            current_period_end=datetime(2025, 4, 1),
        )

        assert subscription.plan_tier == "starter"
        assert subscription.tokens == 20
        assert subscription.stripe_customer_id == "cus_1"
        assert subscription_service.find_by_stripe_subscription(db_session, "sub_1").user_id == "u1"
        assert subscription_service.find_by_stripe_customer(db_session, "cus_1").user_id == "u1"

    def test_pro_is_unlimited(self, db_session, subscription_service):
        subscription = subscription_service.apply_plan_change(db_session, "u1", "pro")
        assert subscription.tokens == UNLIMITED
        assert subscription_service.get_current_subscription(db_session, "u1")["unlimited"] is True

    def test_history_actions(self, db_session, subscription_service):
        subscription_service.apply_plan_change(db_session, "u1", "pro")
        subscription_service.apply_plan_change(db_session, "u1", "starter")
        subscription_service.apply_plan_change(db_session, "u1", "free", status=SubscriptionStatus.CANCELED)

        actions = [entry["action"] for entry in subscription_service.get_subscription_history(db_session, "u1")]
        assert sorted(actions) == sorted(["created", "upgraded", "downgraded", "canceled"])

    def test_unknown_tier_rejected(self, db_session, subscription_service):
        with pytest.raises(ValueError):
            subscription_service.apply_plan_change(db_session, "u1", "platinum")

    def test_update_status_keeps_plan(self, db_session, subscription_service):
        subscription_service.apply_plan_change(db_session, "u1", "starter")
        subscription = subscription_service.update_status(db_session, "u1", SubscriptionStatus.PAST_DUE)

        assert subscription.status == SubscriptionStatus.PAST_DUE
        assert subscription.plan_tier == "starter"
        assert subscription.tokens == 20


class TestSubscriptionListeners:

    def test_listener_receives_plan_change(self, db_session, subscription_service):
        received = []
        unsubscribe = subscription_service.subscribe_to_subscription("u1", received.append)

        subscription_service.apply_plan_change(db_session, "u1", "starter")
        assert received[-1]["plan_tier"] == "starter"

        count = len(received)
        unsubscribe()
        subscription_service.apply_plan_change(db_session, "u1", "pro")
        assert len(received) == count

    def test_other_users_not_notified(self, db_session, subscription_service):
        received = []
        subscription_service.subscribe_to_subscription("u2", received.append)
        subscription_service.apply_plan_change(db_session, "u1", "starter")
        assert received == []
