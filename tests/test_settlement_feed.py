"""
Payrecon - Settlement Feed Tests

CSV statement parsing, JSON payloads and in-memory feeds.
"""

import io
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payrecon.models.reconciliation import MatchStatus
from payrecon.services.reconciliation_matcher import (
    InternalPayment, ReconciliationMatcher, SettlementRow,
)
from payrecon.services.settlement_feed import (
    StaticSettlementFeed, parse_settlement_csv, settlement_rows_from_payload,
)
from payrecon.utils.error_handling import ValidationException


class TestParseSettlementCsv:
    
    def test_parses_rows_in_file_order(self):
        rows = parse_settlement_csv(
            "Reference,Amount,Date\n"
            "UTR001,\"50,000.00\",2024-05-31\n"
            ",42000,2024-05-30\n"
        )
        
        assert rows == [
            SettlementRow(reference="UTR001", amount=Decimal("50000.00"), settlement_date=date(2024, 5, 31), position=0),
            SettlementRow(reference=None, amount=Decimal("42000"), settlement_date=date(2024, 5, 30), position=1),
        ]
    
    def test_header_aliases(self):
        rows = parse_settlement_csv("UTR_Number,Credit,Value_Date\nUTR9,100.50,31/05/2024\n", dayfirst=True)
        
        assert rows[0].reference == "UTR9"
        assert rows[0].amount == Decimal("100.50")
        assert rows[0].settlement_date == date(2024, 5, 31)
    
    def test_blank_lines_do_not_consume_positions(self):
        rows = parse_settlement_csv("reference,amount,date\nA,1,2024-05-01\n,,\nB,2,2024-05-02\n")
        
        assert [(row.reference, row.position) for row in rows] == [("A", 0), ("B", 1)]
    
    def test_accepts_file_objects(self):
        rows = parse_settlement_csv(io.StringIO("amount,date\n10,2024-05-01\n"))
        
        assert len(rows) == 1
        assert rows[0].reference is None
    
    def test_missing_amount_column(self):
        with pytest.raises(ValidationException) as exc_info:
            parse_settlement_csv("reference,date\nA,2024-05-01\n")
        assert exc_info.value.field == "amount"
    
    def test_missing_date_column(self):
        with pytest.raises(ValidationException):
            parse_settlement_csv("reference,amount\nA,10\n")
    
    def test_invalid_amount_reports_line(self):
        with pytest.raises(ValidationException) as exc_info:
            parse_settlement_csv("amount,date\n10,2024-05-01\nabc,2024-05-02\n")
        assert exc_info.value.details == {"line": 3}
    
    def test_invalid_date(self):
        with pytest.raises(ValidationException) as exc_info:
            parse_settlement_csv("amount,date\n10,not-a-date\n")
        assert exc_info.value.field == "settlement_date"
    
    def test_empty_file(self):
        with pytest.raises(ValidationException):
            parse_settlement_csv("")


class TestStaticSettlementFeed:
    
    async def test_default_rows(self):
        row = SettlementRow(reference="A", amount=Decimal("1"), settlement_date=date(2024, 5, 1), position=0)
        feed = StaticSettlementFeed([row])
        
        assert await feed.fetch(uuid4(), 5, 2024) == [row]
    
    async def test_rows_per_period(self):
        company_id = uuid4()
        row = SettlementRow(reference="B", amount=Decimal("2"), settlement_date=date(2024, 6, 1), position=0)
        feed = StaticSettlementFeed()
        feed.add_rows(company_id, 6, 2024, [row])
        
        assert await feed.fetch(company_id, 6, 2024) == [row]
        assert await feed.fetch(company_id, 5, 2024) == []
    
    async def test_positions_continue_across_statements(self):
        company_id = uuid4()
        feed = StaticSettlementFeed()
        feed.add_rows(company_id, 5, 2024, parse_settlement_csv("reference,amount,date\nA1,50000.00,2024-05-31\n"))
        feed.add_rows(company_id, 5, 2024, parse_settlement_csv("reference,amount,date\nB1,40000.00,2024-05-31\n"))
        
        rows = await feed.fetch(company_id, 5, 2024)
        
        assert [(row.reference, row.position) for row in rows] == [("A1", 0), ("B1", 1)]
    
    async def test_two_statements_reconcile_independently(self):
        company_id = uuid4()
        feed = StaticSettlementFeed()
        feed.add_rows(company_id, 5, 2024, parse_settlement_csv("reference,amount,date\nA1,50000.00,2024-05-31\n"))
        feed.add_rows(company_id, 5, 2024, parse_settlement_csv("reference,amount,date\nB1,40000.00,2024-05-31\n"))
        payments = [
            InternalPayment(id=uuid4(), amount=Decimal("50000.00"), payment_date=date(2024, 5, 31), reference="A1"),
            InternalPayment(id=uuid4(), amount=Decimal("40000.00"), payment_date=date(2024, 5, 31), reference="B1"),
        ]
        
        result = ReconciliationMatcher().match(payments, await feed.fetch(company_id, 5, 2024))
        
        assert [o.match_status for o in result.outcomes] == [MatchStatus.EXACT_MATCH, MatchStatus.EXACT_MATCH]


class TestSettlementRowsFromPayload:
    
    def test_builds_rows_in_payload_order(self):
        rows = settlement_rows_from_payload([
            {"reference": "UTR1", "amount": "50000.00", "settlement_date": "2024-05-31"},
            {"amount": 42000, "settlement_date": "2024-05-30"},
        ])
        
        assert rows == [
            SettlementRow(reference="UTR1", amount=Decimal("50000.00"), settlement_date=date(2024, 5, 31), position=0),
            SettlementRow(reference=None, amount=Decimal("42000"), settlement_date=date(2024, 5, 30), position=1),
        ]
    
    def test_blank_reference_is_none(self):
        rows = settlement_rows_from_payload([{"reference": "", "amount": "1", "settlement_date": "2024-05-01"}])
        
        assert rows[0].reference is None
    
    def test_invalid_row_reports_index(self):
        with pytest.raises(ValidationException) as exc_info:
            settlement_rows_from_payload([
                {"amount": "1", "settlement_date": "2024-05-01"},
                {"amount": "abc", "settlement_date": "2024-05-01"},
            ])
        assert exc_info.value.details["row"] == 1
