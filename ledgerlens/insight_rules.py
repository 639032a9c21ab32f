from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Union

from ledgerlens.ledger_aggregator import (
    HUNDRED,
    ZERO,
    AggregationResult,
    FinancialProfile,
    compute_rate,
)

INSIGHT_KINDS = {"warning", "success", "info"}


@dataclass(frozen=True)
class InsightRecord:
    kind: str
    title: str
    message: str


@dataclass(frozen=True)
class RatioRule:
    """Threshold rule over ``numerator / denominator``.

    Templates are formatted with ``rate`` (a percentage Decimal). When
    ``threshold`` is set and the ratio exceeds it, the ``above_*`` fields are
    used; otherwise the ``kind``/``title``/``message`` fields are. The rule
    emits nothing when either metric is missing or the denominator is zero.
    """

    name: str
    numerator: str
    denominator: str
    kind: str
    title: str
    message: str
    threshold: Optional[Decimal] = None
    above_kind: str = "warning"
    above_title: str = ""
    above_message: str = ""

    def __call__(
        self, profile: FinancialProfile, aggregation: AggregationResult
    ) -> Optional[InsightRecord]:
        metrics = collect_metrics(profile, aggregation)
        numerator = metrics.get(self.numerator)
        denominator = metrics.get(self.denominator)
        if numerator is None or denominator is None or denominator == ZERO:
            return None
        rate = compute_rate(numerator, denominator)
        if self.threshold is not None and rate > self.threshold * HUNDRED:
            return InsightRecord(
                kind=self.above_kind,
                title=self.above_title,
                message=self.above_message.format(rate=rate),
            )
        return InsightRecord(
            kind=self.kind,
            title=self.title,
            message=self.message.format(rate=rate),
        )


@dataclass(frozen=True)
class TopCategoryRule:
    name: str = "top_category"
    title: str = "Top Spending Category"
    message: str = "{category} accounts for {share:.1f}% of your spending this period."

    def __call__(
        self, profile: FinancialProfile, aggregation: AggregationResult
    ) -> Optional[InsightRecord]:
        if aggregation.direction != "expense" or not aggregation.by_category:
            return None
        # Ties resolve alphabetically so the output is stable.
        category, amount = min(
            aggregation.by_category.items(), key=lambda item: (-item[1], item[0])
        )
        share = compute_rate(amount, aggregation.total_for_window)
        return InsightRecord(
            kind="info",
            title=self.title,
            message=self.message.format(category=category, share=share),
        )


InsightRule = Union[
    RatioRule,
    TopCategoryRule,
    Callable[[FinancialProfile, AggregationResult], Optional[InsightRecord]],
]

SPENDING_RATIO_RULE = RatioRule(
    name="spending_ratio",
    numerator="expense_total",
    denominator="monthly_salary",
    threshold=Decimal("0.8"),
    above_kind="warning",
    above_title="Spending Alert",
    above_message=(
        "You have spent {rate:.1f}% of your monthly salary. Consider budgeting!"
    ),
    kind="success",
    title="Spending On Track",
    message="You have spent {rate:.1f}% of your monthly salary. Keep up the savings!",
)

SAVINGS_RATE_RULE = RatioRule(
    name="savings_rate",
    numerator="total_savings",
    denominator="monthly_salary",
    kind="info",
    title="Savings Rate",
    message="Your savings equal {rate:.1f}% of your monthly salary.",
)

TOP_CATEGORY_RULE = TopCategoryRule()

DEFAULT_RULES = (SPENDING_RATIO_RULE, SAVINGS_RATE_RULE)


def collect_metrics(
    profile: FinancialProfile, aggregation: AggregationResult
) -> Dict[str, Decimal]:
    metrics = {
        "monthly_salary": profile.monthly_salary,
        "total_savings": profile.total_savings,
        "monthly_expenditure": profile.monthly_expenditure,
    }
    metrics[f"{aggregation.direction}_total"] = aggregation.total_for_window
    return metrics


def evaluate_insights(
    profile: FinancialProfile,
    aggregation: AggregationResult,
    rules: Iterable[InsightRule] = DEFAULT_RULES,
) -> List[InsightRecord]:
    """Run each rule once, in the order given, and keep the records produced."""
    records: List[InsightRecord] = []
    for rule in rules:
        record = rule(profile, aggregation)
        if record is None:
            continue
        if record.kind not in INSIGHT_KINDS:
            raise ValueError(f"Unsupported insight kind: {record.kind}")
        records.append(record)
    return records
