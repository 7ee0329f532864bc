"""
Payrecon - Reconciliation Matcher

Pairs internal salary payments with external settlement rows.

Matching runs in two passes:
1. Reference pass - internal reference equals the settlement reference
   (case-sensitive, empty references never match).
2. Amount/date pass - for each remaining internal payment in input order,
   candidates are unclaimed rows on the same calendar date whose amount
   differs by less than `auto_match_threshold` of the internal amount.
   The smallest difference wins; ties go to the earlier feed position.

Each settlement row is claimed at most once, even when two loaded
statements reuse the same positions. Matching is pure and
deterministic: the same inputs always produce the same outcomes.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

from payrecon.config import Settings
from payrecon.models.reconciliation import MatchStatus, MatchType
from payrecon.utils.error_handling import DuplicateSettlementReferenceException
from payrecon.utils.money import calendar_date, round_money, to_decimal

VARIANCE_AMOUNT_MISMATCH = "amount_mismatch"
VARIANCE_MISSING_IN_EXTERNAL = "missing_in_external"

INFINITY = Decimal("Infinity")
CONFIDENCE_PLACES = Decimal("0.0001")


@dataclass(frozen=True)
class MatchingTolerance:
    """Matching tolerances, all relative to the internal amount except epsilon."""
    auto_match_threshold: Decimal = Decimal("0.01")
    exact_epsilon: Decimal = Decimal("0.01")
    minor_variance_ratio: Decimal = Decimal("0.01")
    
    @classmethod
    def from_settings(cls, config: Settings) -> "MatchingTolerance":
        return cls(
            auto_match_threshold=config.reconciliation_auto_match_threshold,
            exact_epsilon=config.reconciliation_exact_epsilon,
            minor_variance_ratio=config.reconciliation_minor_variance_ratio,
        )


@dataclass(frozen=True)
class InternalPayment:
    """A salary payment recorded by payroll."""
    id: uuid.UUID
    amount: Decimal
    payment_date: Union[date, datetime]
    reference: Optional[str] = None
    employee_id: Optional[uuid.UUID] = None
    payroll_record_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class SettlementRow:
    """One row of the external settlement feed."""
    reference: Optional[str]
    amount: Decimal
    settlement_date: Union[date, datetime]
    position: int
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "reference": self.reference,
            "amount": str(round_money(self.amount)),
            "settlement_date": calendar_date(self.settlement_date).isoformat(),
            "position": self.position,
        }


@dataclass(frozen=True)
class MatchOutcome:
    """Result for one internal payment."""
    internal: InternalPayment
    settlement: Optional[SettlementRow]
    match_type: MatchType
    match_status: MatchStatus
    variance_amount: Decimal
    variance_reason: Optional[str] = None
    
    @property
    def is_matched(self) -> bool:
        return self.settlement is not None


@dataclass
class MatchResult:
    outcomes: List[MatchOutcome] = field(default_factory=list)
    orphaned_settlements: List[SettlementRow] = field(default_factory=list)
    
    def count(self, status: MatchStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.match_status == status)


@dataclass(frozen=True)
class ReferenceSuggestion:
    """A settlement reference proposed for an unreferenced payment."""
    internal: InternalPayment
    settlement: SettlementRow
    confidence: Decimal


@dataclass
class SuggestionResult:
    suggestions: List[ReferenceSuggestion] = field(default_factory=list)
    unmatched: List[InternalPayment] = field(default_factory=list)


def relative_difference(difference: Decimal, base: Decimal) -> Decimal:
    """difference / base, with a zero base only matching a zero difference."""
    if base == 0:
        return Decimal("0") if difference == 0 else INFINITY
    return difference / abs(base)


def check_duplicate_references(rows: Sequence[SettlementRow]) -> None:
    """Raise if a non-empty reference is claimed by more than one row."""
    positions: Dict[str, List[int]] = defaultdict(list)
    for row in rows:
        if row.reference:
            positions[row.reference].append(row.position)
    for reference, claimed in positions.items():
        if len(claimed) > 1:
            raise DuplicateSettlementReferenceException(reference, claimed)


def classify(
    internal_amount: Decimal,
    external_amount: Decimal,
    tolerance: MatchingTolerance,
) -> MatchStatus:
    variance = abs(internal_amount - external_amount)
    if variance < tolerance.exact_epsilon:
        return MatchStatus.EXACT_MATCH
    if relative_difference(variance, internal_amount) < tolerance.minor_variance_ratio:
        return MatchStatus.MINOR_VARIANCE
    return MatchStatus.MAJOR_VARIANCE


class ReconciliationMatcher:
    """Two-pass matcher over one company and period."""
    
    def __init__(self, tolerance: Optional[MatchingTolerance] = None):
        self.tolerance = tolerance or MatchingTolerance()
    
    def _matched(
        self,
        internal: InternalPayment,
        row: SettlementRow,
        match_type: MatchType,
    ) -> MatchOutcome:
        internal_amount = to_decimal(internal.amount)
        external_amount = to_decimal(row.amount)
        status = classify(internal_amount, external_amount, self.tolerance)
        return MatchOutcome(
            internal=internal,
            settlement=row,
            match_type=match_type,
            match_status=status,
            variance_amount=round_money(abs(internal_amount - external_amount)),
            variance_reason=None if status == MatchStatus.EXACT_MATCH else VARIANCE_AMOUNT_MISMATCH,
        )
    
    def _closest_by_amount(
        self,
        internal: InternalPayment,
        rows: Sequence[Tuple[int, SettlementRow]],
        claimed: Set[int],
    ) -> Optional[Tuple[int, SettlementRow]]:
        """Unclaimed same-day row within threshold with the smallest difference."""
        internal_amount = to_decimal(internal.amount)
        internal_day = calendar_date(internal.payment_date)
        
        candidates = []
        for index, row in rows:
            if index in claimed or calendar_date(row.settlement_date) != internal_day:
                continue
            difference = abs(to_decimal(row.amount) - internal_amount)
            if relative_difference(difference, internal_amount) < self.tolerance.auto_match_threshold:
                candidates.append((difference, row.position, index, row))
        
        if not candidates:
            return None
        candidates.sort(key=lambda candidate: (candidate[0], candidate[1], candidate[2]))
        _, _, index, row = candidates[0]
        return index, row
    
    def match(
        self,
        internal_payments: Sequence[InternalPayment],
        settlement_rows: Sequence[SettlementRow],
    ) -> MatchResult:
        check_duplicate_references(settlement_rows)
        
        # Rows are claimed by their index in the feed; positions only order them
        rows = sorted(enumerate(settlement_rows), key=lambda pair: (pair[1].position, pair[0]))
        by_reference = {row.reference: index for index, row in rows if row.reference}
        claimed: Set[int] = set()
        paired: Dict[int, MatchOutcome] = {}
        
        # Pass 1: reference
        for number, internal in enumerate(internal_payments):
            if not internal.reference:
                continue
            index = by_reference.get(internal.reference)
            if index is None or index in claimed:
                continue
            claimed.add(index)
            paired[number] = self._matched(internal, settlement_rows[index], MatchType.REFERENCE)
        
        # Pass 2: same date, amount within threshold
        for number, internal in enumerate(internal_payments):
            if number in paired:
                continue
            best = self._closest_by_amount(internal, rows, claimed)
            if best is not None:
                index, row = best
                claimed.add(index)
                paired[number] = self._matched(internal, row, MatchType.AMOUNT_DATE)
        
        result = MatchResult()
        for number, internal in enumerate(internal_payments):
            outcome = paired.get(number)
            if outcome is None:
                outcome = MatchOutcome(
                    internal=internal,
                    settlement=None,
                    match_type=MatchType.NONE,
                    match_status=MatchStatus.UNMATCHED,
                    variance_amount=round_money(internal.amount),
                    variance_reason=VARIANCE_MISSING_IN_EXTERNAL,
                )
            result.outcomes.append(outcome)
        
        result.orphaned_settlements = [row for index, row in rows if index not in claimed]
        return result
    
    def suggest_references(
        self,
        internal_payments: Sequence[InternalPayment],
        settlement_rows: Sequence[SettlementRow],
    ) -> SuggestionResult:
        """
        Propose settlement references for payments recorded without one.
        
        Runs the same two passes as `match`, so rows already claimed by a
        referenced payment are never offered. Only referenced rows can be
        suggested. Confidence is 1 - |difference| / internal amount.
        """
        result = SuggestionResult()
        for outcome in self.match(internal_payments, settlement_rows).outcomes:
            internal = outcome.internal
            if internal.reference:
                continue
            row = outcome.settlement
            if row is None or not row.reference:
                result.unmatched.append(internal)
                continue
            internal_amount = to_decimal(internal.amount)
            difference = abs(to_decimal(row.amount) - internal_amount)
            result.suggestions.append(
                ReferenceSuggestion(
                    internal=internal,
                    settlement=row,
                    confidence=(Decimal("1") - relative_difference(difference, internal_amount)).quantize(
                        CONFIDENCE_PLACES, rounding=ROUND_HALF_UP,
                    ),
                )
            )
        return result
