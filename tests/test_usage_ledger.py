"""
Tests for the monthly usage ledger
"""

from datetime import datetime

from app.models.usage_record import UsageRecord
from app.services.plan_catalog import UNLIMITED
from app.services.usage_ledger import UsageLedger, month_key, usage_record_id


class TestMonthKey:

    def test_zero_padded(self):
        assert month_key(datetime(2025, 3, 1)) == "2025-03"
        assert month_key(datetime(2025, 12, 31, 23, 59)) == "2025-12"

    def test_record_id(self):
        assert usage_record_id("u1", "2025-03") == "u1_2025-03"


class TestUsageLedger:

    def test_missing_record_means_zero(self, db_session, now):
        assert UsageLedger().current_usage(db_session, "u1", now) is None

    def test_increment_creates_and_counts(self, db_session, now):
        ledger = UsageLedger()
        ledger.increment(db_session, "u1", "free", now)
        record = ledger.increment(db_session, "u1", "free", now)
        db_session.commit()

        assert record.id == "u1_2025-03"
        assert record.month == "2025-03"
        assert record.ratings_used == 2
        assert db_session.query(UsageRecord).count() == 1

    def test_months_are_separate(self, db_session):
        ledger = UsageLedger()
        ledger.increment(db_session, "u1", "free", datetime(2025, 1, 31, 23, 0))
        ledger.increment(db_session, "u1", "free", datetime(2025, 2, 1, 0, 30))
        db_session.commit()

        assert ledger.current_usage(db_session, "u1", datetime(2025, 1, 15)).ratings_used == 1
        assert ledger.current_usage(db_session, "u1", datetime(2025, 2, 15)).ratings_used == 1
        assert ledger.current_usage(db_session, "u1", datetime(2025, 3, 15)) is None

    def test_try_increment_stops_at_limit(self, db_session, now):
        ledger = UsageLedger()
        assert ledger.try_increment(db_session, "u1", "free", 2, now).ratings_used == 1
        assert ledger.try_increment(db_session, "u1", "free", 2, now).ratings_used == 2
        assert ledger.try_increment(db_session, "u1", "free", 2, now) is None
        db_session.commit()

        assert ledger.current_usage(db_session, "u1", now).ratings_used == 2

    def test_try_increment_zero_limit(self, db_session, now):
        assert UsageLedger().try_increment(db_session, "u1", "free", 0, now) is None

    def test_try_increment_unlimited(self, db_session, now):
        ledger = UsageLedger()
        for _ in range(5):
            record = ledger.try_increment(db_session, "u1", "pro", UNLIMITED, now)
        assert record.ratings_used == 5

    def test_reset(self, db_session, now):
        ledger = UsageLedger()
        ledger.increment(db_session, "u1", "free", now)
        db_session.commit()

        assert ledger.reset(db_session, "u1", "2025-03") == 1
        db_session.commit()
        assert ledger.current_usage(db_session, "u1", now).ratings_used == 0

    def test_reset_missing_month(self, db_session):
        assert UsageLedger().reset(db_session, "u1", "2020-01") == 0
