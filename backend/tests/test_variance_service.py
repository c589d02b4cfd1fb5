"""
Variance report tests.
"""

from types import SimpleNamespace

import pytest

from retailpos.services import register_service
from retailpos.services.variance_service import build_variance_report, get_variance_report
from retailpos.validation import NotFoundError, PreconditionError


def tx(transaction_type, amount, direction=None):
    return SimpleNamespace(transaction_type=transaction_type, amount_cents=amount, direction=direction)


def closed_session(opening, counted):
    return SimpleNamespace(
        id=1,
        cash_register_id=1,
        opening_balance_cents=opening,
        actual_amount_cents=counted,
        opened_at=None,
        closed_at=None,
    )


class TestBuildVarianceReport:

    def test_balanced_session(self):
        report = build_variance_report(
            closed_session(1000, 1100),
            [
                tx("opening_balance", 1000),
                tx("sale", 150),
                tx("cash_out", 50),
                tx("closing_balance", 1100),
            ],
        )

        assert report["expected_balance_cents"] == 1100
        assert report["variance_cents"] == 0
        assert report["status"] == "balanced"
        assert report["cash_in"]["sales_cents"] == 150
        assert report["cash_out"]["cash_out_cents"] == 50
        assert report["transactions_summary"]["count"] == 4
        assert report["transactions_summary"]["by_type"]["sale"] == 1
        assert report["transactions_summary"]["by_type"]["refund"] == 0

    def test_shortage_and_overage(self):
        movements = [tx("cash_in", 200), tx("refund", 30)]

        shortage = build_variance_report(closed_session(500, 660), movements)
        overage = build_variance_report(closed_session(500, 675), movements)

        assert shortage["expected_balance_cents"] == 670
        assert shortage["variance_cents"] == -10
        assert shortage["status"] == "shortage"
        assert overage["variance_cents"] == 5
        assert overage["status"] == "overage"

    def test_adjustments_follow_direction(self):
        report = build_variance_report(
            closed_session(100, 100),
            [tx("adjustment", 40, "increase"), tx("adjustment", 15, "decrease")],
        )

        assert report["cash_in"]["adjustments_cents"] == 40
        assert report["cash_out"]["adjustments_cents"] == 15
        assert report["expected_balance_cents"] == 125
        assert report["variance_cents"] == -25

    def test_variance_identity(self):
        movements = [
            tx("sale", 321), tx("sale", 79), tx("cash_in", 5), tx("refund", 60),
            tx("cash_out", 100), tx("adjustment", 3, "increase"),
        ]
        report = build_variance_report(closed_session(250, 480), movements)

        assert report["variance_cents"] == report["counted_balance_cents"] - (
            report["opening_balance_cents"] + report["cash_in"]["total_cents"] - report["cash_out"]["total_cents"]
        )


class TestGetVarianceReport:

    def test_report_for_latest_closed_session(self, db_session, open_register, cashier_user):
        register_service.cash_in(open_register.id, 150, cashier_user.id)
        register_service.cash_out(open_register.id, 50, cashier_user.id)
        _reg, session = register_service.close_register(open_register.id, cashier_user.id, 1100)

        report = get_variance_report(open_register.id)

        assert report["session_id"] == session.id
        assert report["opening_balance_cents"] == 1000
        assert report["expected_balance_cents"] == 1100
        assert report["counted_balance_cents"] == 1100
        assert report["status"] == "balanced"
        assert report["closed_at"] is not None

    def test_report_is_reproducible_after_reopen(self, db_session, open_register, cashier_user):
        register_service.cash_in(open_register.id, 150, cashier_user.id)
        _reg, first = register_service.close_register(open_register.id, cashier_user.id, 1140)
        before = get_variance_report(open_register.id, first.id)

        register_service.open_register(open_register.id, cashier_user.id, 1140)
        register_service.cash_out(open_register.id, 100, cashier_user.id)

        assert get_variance_report(open_register.id, first.id) == before
        assert before["variance_cents"] == -10

    def test_open_session_rejected(self, db_session, open_register):
        session = register_service.get_open_session(open_register.id)

        with pytest.raises(PreconditionError, match="only available for closed sessions"):
            get_variance_report(open_register.id, session.id)

    def test_never_closed(self, db_session, open_register):
        with pytest.raises(NotFoundError):
            get_variance_report(open_register.id)

    def test_unknown_session(self, db_session, open_register):
        with pytest.raises(NotFoundError):
            get_variance_report(open_register.id, 999999)
