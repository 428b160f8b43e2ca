from __future__ import annotations

from datetime import date

import pytest

from pfm import models
from pfm.models import RecurringFrequency
from pfm.services.net_worth_service import NetWorthService, period_start
from pfm.services.projection_calculator import PayoffSettings


def _snapshot(db, asset, on: date, balance: float) -> None:
    db.add(models.AssetSnapshot(asset_id=asset.id, date=on, balance=balance))
    db.commit()


def _recurring(db, asset, **values) -> models.RecurringTransaction:
    base = dict(
        asset_id=asset.id,
        description="Payment",
        amount=0,
        frequency=RecurringFrequency.MONTHLY,
        start_date=date(2025, 1, 1),
        next_run_date=date(2025, 4, 1),
        is_active=True,
    )
    base.update(values)
    row = models.RecurringTransaction(**base)
    db.add(row)
    db.commit()
    return row


class TestSummary:
    def test_totals_by_category(self, db_session, make_asset):
        make_asset("Checking", balance=1_000, on=date(2025, 1, 1))
        make_asset("Savings", category="Savings", balance=5_000, on=date(2025, 1, 1))
        make_asset("Visa", category="Credit Cards", balance=300, on=date(2025, 1, 1))
        user_id = db_session.query(models.User).first().id

        summary = NetWorthService(db_session).get_summary(user_id, date(2025, 3, 1))

        assert summary.total_assets == 6_000
        assert summary.total_liabilities == 300
        assert summary.net_worth == 5_700
        assert summary.change_from_last_period == 0
        names = [c.category_name for c in summary.assets_by_category]
        assert names[-1] == "Credit Cards"

    def test_change_from_thirty_days_ago(self, db_session, make_asset, user):
        checking = make_asset("Checking", balance=1_000, on=date(2025, 1, 1))
        make_asset("Visa", category="Credit Cards", balance=300, on=date(2025, 1, 1))
        _snapshot(db_session, checking, date(2025, 2, 20), 2_000)

        summary = NetWorthService(db_session).get_summary(user.id, date(2025, 3, 1))

        assert summary.net_worth == 1_700
        assert summary.change_from_last_period == 1_000
        assert summary.change_percent == pytest.approx(142.86)


class TestHistory:
    def test_monthly_buckets_use_latest_snapshot_and_subtract_liabilities(self, db_session, make_asset, user):
        checking = make_asset("Checking", balance=1_000, on=date(2025, 1, 1))
        card = make_asset("Visa", category="Credit Cards")
        _snapshot(db_session, checking, date(2025, 2, 10), 1_500)
        _snapshot(db_session, card, date(2025, 2, 5), 200)

        points = NetWorthService(db_session).get_history(user.id, date(2025, 1, 1), date(2025, 3, 31))

        assert [p.date for p in points] == [date(2025, 1, 1), date(2025, 2, 1), date(2025, 3, 1)]
        assert [p.net_worth for p in points] == [1_000, 1_300, 1_300]
        assert points[1].total_liabilities == 200

    def test_snapshot_before_range_is_carried_forward(self, db_session, make_asset, user):
        make_asset("Checking", balance=750, on=date(2024, 6, 1))
        points = NetWorthService(db_session).get_history(user.id, date(2025, 1, 1), date(2025, 1, 31))
        assert [p.net_worth for p in points] == [750]

    def test_rejects_unknown_grouping(self, db_session, user):
        with pytest.raises(ValueError):
            NetWorthService(db_session).get_history(user.id, date(2025, 1, 1), date(2025, 2, 1), "fortnight")

    @pytest.mark.parametrize(
        "group_by,expected",
        [
            ("day", date(2025, 5, 14)),
            ("week", date(2025, 5, 12)),
            ("month", date(2025, 5, 1)),
            ("quarter", date(2025, 4, 1)),
            ("year", date(2025, 1, 1)),
        ],
    )
    def test_period_start(self, group_by, expected):
        assert period_start(date(2025, 5, 14), group_by) == expected


class TestProjection:
    def test_projection_from_database(self, db_session, make_asset, user):
        checking = make_asset("Checking", balance=1_000, on=date(2025, 1, 5))
        _snapshot(db_session, checking, date(2025, 2, 5), 1_500)
        _snapshot(db_session, checking, date(2025, 3, 5), 2_000)
        _recurring(db_session, checking, description="Savings", amount=100, day_of_month=1)

        result = NetWorthService(db_session).get_projection(user.id, today=date(2025, 3, 20))

        assert result.current_net_worth == 2_000
        # 추세는 첫 스냅샷이 있는 1월부터: 1000 → 1500 → 2000
        assert result.average_monthly_net_change == 500
        assert result.recurring_transfers_monthly_total == 100
        assert result.projected_monthly_change == pytest.approx(600)
        historical = [p for p in result.projected_history if p.is_historical]
        future = [p for p in result.projected_history if not p.is_historical]
        assert [p.date for p in historical] == [date(2025, 1, 1), date(2025, 2, 1), date(2025, 3, 1)]
        assert len(future) == 12
        assert future[0].date == date(2025, 4, 1)

    def test_single_snapshot_projects_flat(self, db_session, make_asset, user):
        make_asset("Checking", balance=100_000, on=date(2025, 3, 5))

        result = NetWorthService(db_session).get_projection(
            user.id, include_recurring=False, today=date(2025, 3, 20)
        )

        assert result.average_monthly_net_change == 0
        assert result.projected_monthly_change == 0
        future = [p for p in result.projected_history if not p.is_historical]
        assert future[-1].projected_net_worth == 100_000

    def test_projection_without_snapshots_has_no_trend(self, db_session, user):
        result = NetWorthService(db_session).get_projection(user.id, today=date(2025, 3, 20))

        assert result.average_monthly_net_change == 0
        assert [p for p in result.projected_history if p.is_historical] == []

    def test_liability_payment_raises_net_worth(self, db_session, make_asset, user):
        card = make_asset("Visa", category="Credit Cards", balance=1_000, on=date(2025, 3, 1))
        _recurring(db_session, card, description="Card payment", amount=-200, day_of_month=1)

        result = NetWorthService(db_session).get_projection(user.id, today=date(2025, 3, 20))

        assert result.recurring_transfers_monthly_total == 200

    def test_ended_schedules_are_excluded(self, db_session, make_asset, user):
        checking = make_asset("Checking", balance=0, on=date(2025, 1, 1))
        _recurring(db_session, checking, amount=100, end_date=date(2025, 3, 1), next_run_date=date(2025, 3, 1))

        result = NetWorthService(db_session).get_projection(user.id, today=date(2025, 3, 20))

        assert result.recurring_transfers == []

    def test_goal_and_average_expenses(self, db_session, make_asset, user):
        make_asset("Checking", balance=1_000, on=date(2025, 1, 1))
        db_session.add(models.Expense(user_id=user.id, date=date(2025, 2, 3), amount=400))
        db_session.commit()

        result = NetWorthService(db_session).get_projection(
            user.id,
            goal_amount=500,
            include_average_expenses=True,
            today=date(2025, 3, 20),
        )

        assert result.average_monthly_expenses == 400
        assert result.goal.months_to_goal == 0


class TestLiabilityPayoff:
    def test_payment_implied_by_recurring_transactions(self, db_session, make_asset, user):
        card = make_asset("Visa", category="Credit Cards", balance=1_000, on=date(2025, 3, 1))
        _recurring(db_session, card, amount=-200, day_of_month=1)

        result = NetWorthService(db_session).get_liability_payoff(user.id, today=date(2025, 3, 20))

        item = result.liabilities[0]
        assert item.has_recurring_payment
        assert item.monthly_payment == 200
        assert item.months_to_payoff == 5
        assert item.estimated_payoff_date == date(2025, 8, 1)
        assert result.overall_payoff_date == date(2025, 8, 1)

    def test_interest_schedule_supplies_rate(self, db_session, make_asset, user):
        card = make_asset("Visa", category="Credit Cards", balance=1_000, on=date(2025, 3, 1))
        _recurring(db_session, card, amount=-200, day_of_month=1)
        _recurring(db_session, card, description="APR", interest_rate=24, day_of_month=1)

        result = NetWorthService(db_session).get_liability_payoff(user.id, today=date(2025, 3, 20))

        assert result.liabilities[0].interest_rate == 24
        assert result.liabilities[0].total_interest_paid > 0

    def test_settings_override_can_make_debt_unpayable(self, db_session, make_asset, user):
        card = make_asset("Visa", category="Credit Cards", balance=1_000, on=date(2025, 3, 1))
        overrides = [PayoffSettings(asset_id=card.id, monthly_payment=5, interest_rate=12)]

        result = NetWorthService(db_session).get_liability_payoff(user.id, overrides, today=date(2025, 3, 20))

        item = result.liabilities[0]
        assert item.estimated_payoff_date is None
        assert item.months_to_payoff is None
        assert result.overall_payoff_date is None
        assert result.months_to_payoff is None

    def test_assets_are_not_liabilities(self, db_session, make_asset, user):
        make_asset("Checking", balance=1_000, on=date(2025, 3, 1))
        result = NetWorthService(db_session).get_liability_payoff(user.id, today=date(2025, 3, 20))
        assert result.liabilities == []
        assert result.total_liabilities == 0
