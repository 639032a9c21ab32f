import unittest
from datetime import date, datetime
from decimal import Decimal

from ledgerlens.ledger_aggregator import (
    FinancialProfile,
    Transaction,
    aggregate,
    apply_transaction_to_profile,
    check_record,
    compute_rate,
    filter_by_window,
    net_flow,
    normalize_transactions,
    percentage_change,
    sum_by_category,
    sum_by_period,
    sync_monthly_expenditure,
)


def make_txn(
    txn_id: str,
    amount: str,
    txn_type: str,
    day: date,
    category: str = "Food",
    status: str = "success",
) -> Transaction:
    return Transaction(
        id=txn_id,
        amount=Decimal(amount),
        type=txn_type,
        date=day,
        category=category,
        status=status,
    )


class CategoryTotalsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.transactions = [
            make_txn("1", "100", "withdrawal", date(2024, 5, 1)),
            make_txn("2", "50", "withdrawal", date(2024, 5, 2)),
            make_txn("3", "25", "withdrawal", date(2024, 5, 3)),
            make_txn("4", "1000", "deposit", date(2024, 5, 1), category="Salary"),
        ]

    def test_expense_and_income_are_summed_separately(self) -> None:
        self.assertEqual(
            sum_by_category(self.transactions, "expense"), {"Food": Decimal("175")}
        )
        self.assertEqual(
            sum_by_category(self.transactions, "income"), {"Salary": Decimal("1000")}
        )

    def test_payments_count_as_expenses(self) -> None:
        transactions = self.transactions + [
            make_txn("5", "80", "payment", date(2024, 5, 4), category="Utilities")
        ]

        totals = sum_by_category(transactions, "expense")

        self.assertEqual(totals["Utilities"], Decimal("80"))
        self.assertEqual(totals["Food"], Decimal("175"))

    def test_non_successful_transactions_never_count(self) -> None:
        transactions = [
            make_txn("1", "500", "withdrawal", date(2024, 5, 1), status="pending"),
            make_txn("2", "70", "withdrawal", date(2024, 5, 1), status="failed"),
        ]

        self.assertEqual(sum_by_category(transactions, "expense"), {})

    def test_missing_category_folds_into_other(self) -> None:
        check = check_record(
            {"id": "9", "amount": "12.50", "type": "withdrawal", "date": "2024-05-01", "category": "  "}
        )

        self.assertTrue(check.ok)
        self.assertEqual(check.value.category, "Other")

    def test_rejects_unknown_direction(self) -> None:
        with self.assertRaises(ValueError):
            sum_by_category(self.transactions, "transfers")


class WindowFilterTests(unittest.TestCase):
    def test_pending_rows_only_appear_when_requested(self) -> None:
        pending = make_txn("1", "500", "withdrawal", date(2024, 5, 2), status="pending")

        hidden = filter_by_window([pending], date(2024, 5, 1), date(2024, 5, 8))
        shown = filter_by_window(
            [pending], date(2024, 5, 1), date(2024, 5, 8), include_non_successful=True
        )

        self.assertEqual(hidden, [])
        self.assertEqual(shown, [pending])
        self.assertEqual(sum_by_category(shown, "expense"), {})

    def test_window_is_half_open(self) -> None:
        transactions = [
            make_txn("1", "10", "withdrawal", date(2024, 5, 1)),
            make_txn("2", "20", "withdrawal", date(2024, 5, 8)),
        ]

        filtered = filter_by_window(transactions, date(2024, 5, 1), date(2024, 5, 8))

        self.assertEqual([txn.id for txn in filtered], ["1"])

    def test_reversed_window_raises(self) -> None:
        with self.assertRaises(ValueError):
            filter_by_window([], date(2024, 5, 8), date(2024, 5, 1))


class PeriodBucketTests(unittest.TestCase):
    def test_empty_week_yields_seven_zero_buckets(self) -> None:
        buckets = sum_by_period(
            [], "calendar-day", "expense", date(2024, 5, 1), date(2024, 5, 8)
        )

        self.assertEqual(len(buckets), 7)
        self.assertTrue(all(bucket.total == Decimal("0") for bucket in buckets))
        self.assertEqual(buckets[0].label, "2024-05-01")
        self.assertEqual(buckets[-1].label, "2024-05-07")

    def test_day_of_week_runs_sunday_to_saturday(self) -> None:
        transactions = [
            # 2024-05-05 is a Sunday, 2024-05-04 a Saturday.
            make_txn("1", "30", "withdrawal", date(2024, 5, 5)),
            make_txn("2", "12", "payment", date(2024, 5, 4)),
            make_txn("3", "8", "withdrawal", date(2024, 5, 11)),
        ]

        buckets = sum_by_period(
            transactions, "day_of_week", "expense", date(2024, 5, 1), date(2024, 5, 15)
        )

        self.assertEqual(
            [bucket.label for bucket in buckets],
            ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"],
        )
        self.assertEqual(buckets[0].total, Decimal("30"))
        self.assertEqual(buckets[6].total, Decimal("20"))
        self.assertEqual(buckets[0].start, date(2024, 5, 5))

    def test_month_buckets_cover_partial_months(self) -> None:
        transactions = [
            make_txn("1", "40", "deposit", date(2024, 1, 20), category="Salary"),
            make_txn("2", "60", "deposit", date(2024, 3, 2), category="Salary"),
        ]

        buckets = sum_by_period(
            transactions, "month", "income", date(2024, 1, 15), date(2024, 3, 10)
        )

        self.assertEqual([bucket.label for bucket in buckets], ["2024-01", "2024-02", "2024-03"])
        self.assertEqual(
            [bucket.total for bucket in buckets],
            [Decimal("40"), Decimal("0"), Decimal("60")],
        )

    def test_week_buckets_start_on_sunday(self) -> None:
        buckets = sum_by_period(
            [make_txn("1", "15", "withdrawal", date(2024, 5, 9))],
            "week",
            "expense",
            date(2024, 5, 1),
            date(2024, 5, 15),
        )

        self.assertEqual(
            [bucket.start for bucket in buckets],
            [date(2024, 4, 28), date(2024, 5, 5), date(2024, 5, 12)],
        )
        self.assertEqual(buckets[1].total, Decimal("15"))

    def test_rejects_unknown_granularity(self) -> None:
        with self.assertRaises(ValueError):
            sum_by_period([], "fortnight", "expense", date(2024, 5, 1), date(2024, 5, 8))


class AggregateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.records = [
            {"id": "a", "amount": "100", "type": "withdrawal", "date": "2024-05-01", "category": "Food"},
            {"id": "b", "amount": 45.5, "type": "payment", "date": "2024-05-03T18:30:00Z", "category": "Rent"},
            {"id": "c", "amount": "500", "type": "withdrawal", "date": "2024-05-02", "status": "pending"},
            {"id": "d", "amount": "900", "type": "deposit", "date": "2024-05-02", "category": "Salary"},
            {"id": "e", "amount": "70", "type": "withdrawal", "date": "2024-04-30", "category": "Food"},
        ]

    def test_totals_are_conserved_across_views(self) -> None:
        result = aggregate(
            self.records, date(2024, 5, 1), date(2024, 5, 8), "expense", "calendar_day"
        )

        self.assertEqual(result.total_for_window, Decimal("145.5"))
        self.assertEqual(sum(result.by_category.values()), result.total_for_window)
        self.assertEqual(
            sum(bucket.total for bucket in result.by_period), result.total_for_window
        )
        self.assertEqual(len(result.by_period), 7)
        self.assertEqual(result.diagnostics, ())

    def test_unparseable_date_is_skipped_with_diagnostic(self) -> None:
        records = [
            {"id": "ok-1", "amount": "10", "type": "withdrawal", "date": "2024-05-01"},
            {"id": "bad", "amount": "999", "type": "withdrawal", "date": "not a date"},
            {"id": "ok-2", "amount": "15", "type": "withdrawal", "date": "2024-05-02"},
        ]

        with self.assertLogs("ledgerlens.ledger_aggregator", level="WARNING"):
            result = aggregate(
                records, date(2024, 5, 1), date(2024, 5, 8), "expense", "calendar_day"
            )

        self.assertEqual(result.total_for_window, Decimal("25"))
        self.assertEqual(len(result.diagnostics), 1)
        self.assertEqual(result.diagnostics[0].record_id, "bad")
        self.assertEqual(result.diagnostics[0].index, 1)
        self.assertIn("date", result.diagnostics[0].reason)

    def test_date_with_trailing_text_is_skipped(self) -> None:
        records = [
            {"id": "ok", "amount": "10", "type": "withdrawal", "date": "2024-05-01"},
            {"id": "junk", "amount": "999", "type": "withdrawal", "date": "2024-05-02 not a date"},
            {"id": "glued", "amount": "999", "type": "withdrawal", "date": "2024-05-02xyz"},
            {"id": "nanos", "amount": "5", "type": "withdrawal", "date": "2024-05-02T10:15:30.123456789Z"},
        ]

        with self.assertLogs("ledgerlens.ledger_aggregator", level="WARNING"):
            result = aggregate(
                records, date(2024, 5, 1), date(2024, 5, 8), "expense", "calendar_day"
            )

        self.assertEqual(result.total_for_window, Decimal("15"))
        self.assertEqual([item.record_id for item in result.diagnostics], ["junk", "glued"])
        self.assertEqual(result.by_period[1].total, Decimal("5"))

    def test_negative_amount_and_unknown_type_are_reported(self) -> None:
        records = [
            {"id": "neg", "amount": "-5", "type": "withdrawal", "date": "2024-05-01"},
            {"id": "odd", "amount": "5", "type": "transfer", "date": "2024-05-01"},
            {"id": "nan", "amount": "NaN", "type": "withdrawal", "date": "2024-05-01"},
        ]

        with self.assertLogs("ledgerlens.ledger_aggregator", level="WARNING"):
            transactions, diagnostics = normalize_transactions(records)

        self.assertEqual(transactions, [])
        self.assertEqual([item.record_id for item in diagnostics], ["neg", "odd", "nan"])

    def test_empty_input_returns_zero_filled_result(self) -> None:
        result = aggregate([], date(2024, 5, 1), date(2024, 5, 8), "income", "calendar_day")

        self.assertEqual(result.by_category, {})
        self.assertEqual(result.total_for_window, Decimal("0"))
        self.assertEqual(len(result.by_period), 7)

    def test_repeated_calls_are_identical(self) -> None:
        first = aggregate(self.records, date(2024, 4, 1), date(2024, 6, 1), "expense", "month")
        second = aggregate(self.records, date(2024, 4, 1), date(2024, 6, 1), "expense", "month")

        self.assertEqual(first, second)

    def test_accepts_transaction_instances(self) -> None:
        txn = make_txn("1", "20", "withdrawal", date(2024, 5, 1))

        result = aggregate([txn], date(2024, 5, 1), date(2024, 5, 2), "expense", "calendar_day")

        self.assertEqual(result.total_for_window, Decimal("20"))


class RateTests(unittest.TestCase):
    def test_zero_denominator_returns_zero(self) -> None:
        self.assertEqual(compute_rate(Decimal("4200"), Decimal("0")), Decimal("0"))
        self.assertEqual(compute_rate(Decimal("0"), Decimal("0")), Decimal("0"))

    def test_rate_is_a_percentage(self) -> None:
        self.assertEqual(compute_rate(Decimal("4200"), Decimal("5000")), Decimal("84"))

    def test_non_finite_operands_return_zero(self) -> None:
        self.assertEqual(compute_rate(Decimal("100"), float("nan")), Decimal("0"))
        self.assertEqual(compute_rate(Decimal("Infinity"), Decimal("5000")), Decimal("0"))
        self.assertEqual(compute_rate(Decimal("100"), Decimal("-Infinity")), Decimal("0"))
        self.assertTrue(compute_rate(Decimal("1"), Decimal("3")).is_finite())

    def test_percentage_change_without_baseline_is_none(self) -> None:
        self.assertIsNone(percentage_change(Decimal("10"), Decimal("0")))
        self.assertEqual(percentage_change(Decimal("150"), Decimal("100")), Decimal("50"))
        self.assertEqual(percentage_change(Decimal("50"), Decimal("-100")), Decimal("150"))

    def test_net_flow_uses_signed_amounts(self) -> None:
        transactions = [
            make_txn("1", "1000", "deposit", date(2024, 5, 1)),
            make_txn("2", "300", "withdrawal", date(2024, 5, 2)),
            make_txn("3", "200", "payment", date(2024, 5, 3)),
            make_txn("4", "50", "withdrawal", date(2024, 5, 3), status="failed"),
        ]

        self.assertEqual(net_flow(transactions), Decimal("500"))


class ProfilePolicyTests(unittest.TestCase):
    def test_deposit_increases_savings_and_withdrawal_expenditure(self) -> None:
        profile = FinancialProfile(
            monthly_salary=Decimal("5000"),
            total_savings=Decimal("1000"),
            monthly_expenditure=Decimal("200"),
        )

        after_deposit = apply_transaction_to_profile(
            profile, make_txn("1", "300", "deposit", date(2024, 5, 1))
        )
        after_withdrawal = apply_transaction_to_profile(
            after_deposit, make_txn("2", "50", "withdrawal", date(2024, 5, 2))
        )
        after_pending = apply_transaction_to_profile(
            after_withdrawal,
            make_txn("3", "999", "payment", date(2024, 5, 2), status="pending"),
        )

        self.assertEqual(after_deposit.total_savings, Decimal("1300"))
        self.assertEqual(after_withdrawal.monthly_expenditure, Decimal("250"))
        self.assertEqual(after_pending, after_withdrawal)
        self.assertEqual(profile.total_savings, Decimal("1000"))

    def test_sync_recomputes_current_month_expenditure(self) -> None:
        profile = FinancialProfile(monthly_salary=Decimal("5000"), monthly_expenditure=Decimal("1"))
        transactions = [
            make_txn("1", "120", "withdrawal", date(2024, 5, 3)),
            make_txn("2", "30", "payment", date(2024, 5, 10)),
            make_txn("3", "400", "withdrawal", date(2024, 4, 29)),
            make_txn("4", "60", "withdrawal", date(2024, 5, 11)),
        ]

        synced = sync_monthly_expenditure(profile, transactions, date(2024, 5, 10))

        self.assertEqual(synced.monthly_expenditure, Decimal("150"))
        self.assertEqual(synced.monthly_salary, Decimal("5000"))

    def test_sync_returns_same_profile_when_unchanged(self) -> None:
        profile = FinancialProfile(monthly_expenditure=Decimal("0"))

        self.assertIs(sync_monthly_expenditure(profile, [], date(2024, 5, 10)), profile)


class RecordParsingTests(unittest.TestCase):
    def test_datetime_values_keep_calendar_date(self) -> None:
        check = check_record(
            {"id": 7, "amount": 10, "type": "Deposit", "date": datetime(2024, 5, 1, 23, 59)}
        )

        self.assertTrue(check.ok)
        self.assertEqual(check.value.date, date(2024, 5, 1))
        self.assertEqual(check.value.type, "deposit")
        self.assertEqual(check.value.id, "7")
        self.assertEqual(check.value.status, "success")

    def test_missing_date_fails(self) -> None:
        check = check_record({"id": "x", "amount": "1", "type": "deposit", "date": None})

        self.assertFalse(check.ok)
        self.assertIsNone(check.value)

    def test_unknown_status_fails(self) -> None:
        check = check_record(
            {"id": "x", "amount": "1", "type": "deposit", "date": "2024-05-01", "status": "queued"}
        )

        self.assertFalse(check.ok)


if __name__ == "__main__":
    unittest.main()
