"""
Payrecon - Settlement Feeds

External settlement sources. A feed returns every settlement row for a
company and period in one call; the matcher never reads it incrementally.

CSV bank statements are parsed with `parse_settlement_csv`. Recognised
headers (case-insensitive):
    reference: reference, utr, utr_number, transaction_reference
    amount:    amount, credit, debit
    date:      date, settlement_date, value_date, transaction_date

JSON payloads (lists of objects) go through `settlement_rows_from_payload`.
"""

import csv
import io
import logging
import uuid
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, TextIO, Tuple, Union

from dateutil import parser as date_parser
from pydantic import ValidationError

from payrecon.schemas.reconciliation import SettlementRowSchema
from payrecon.services.reconciliation_matcher import SettlementRow
from payrecon.utils.error_handling import ValidationException

logger = logging.getLogger(__name__)

REFERENCE_HEADERS = ("reference", "utr", "utr_number", "transaction_reference")
AMOUNT_HEADERS = ("amount", "credit", "debit")
DATE_HEADERS = ("date", "settlement_date", "value_date", "transaction_date")


class SettlementFeed(Protocol):
    """Source of external settlement rows."""
    
    async def fetch(self, company_id: uuid.UUID, month: int, year: int) -> List[SettlementRow]:
        ...


class StaticSettlementFeed:
    """
    Feed backed by rows already in memory (e.g. an uploaded statement).
    
    Rows may be registered per (company, month, year); `default_rows` are
    returned for any period without its own entry.
    """
    
    def __init__(self, default_rows: Optional[Sequence[SettlementRow]] = None):
        self.default_rows = list(default_rows or [])
        self._rows: Dict[Tuple[uuid.UUID, int, int], List[SettlementRow]] = {}
    
    def add_rows(
        self,
        company_id: uuid.UUID,
        month: int,
        year: int,
        rows: Iterable[SettlementRow],
    ) -> None:
        """Append rows for a period; positions continue after the rows already loaded."""
        loaded = self._rows.setdefault((company_id, month, year), [])
        for row in rows:
            loaded.append(replace(row, position=len(loaded)))
    
    async def fetch(self, company_id: uuid.UUID, month: int, year: int) -> List[SettlementRow]:
        return list(self._rows.get((company_id, month, year), self.default_rows))


def _pick(row: Dict[str, str], headers: Sequence[str]) -> Optional[str]:
    for header in headers:
        value = row.get(header)
        if value is not None and value.strip() != "":
            return value.strip()
    return None


def parse_settlement_csv(source: Union[str, TextIO], dayfirst: bool = False) -> List[SettlementRow]:
    """
    Parse a CSV bank statement into settlement rows.
    
    Positions follow file order starting at 0. Amounts may carry thousands
    separators; dates are parsed with dateutil.
    
    Raises:
        ValidationException: missing columns or an unparsable row
    """
    stream = io.StringIO(source) if isinstance(source, str) else source
    reader = csv.DictReader(stream)
    if not reader.fieldnames:
        raise ValidationException("Settlement file has no header row", field="file")
    reader.fieldnames = [name.strip().lower() for name in reader.fieldnames]
    
    if not any(h in reader.fieldnames for h in AMOUNT_HEADERS):
        raise ValidationException("Settlement file has no amount column", field="amount")
    if not any(h in reader.fieldnames for h in DATE_HEADERS):
        raise ValidationException("Settlement file has no date column", field="settlement_date")
    
    rows: List[SettlementRow] = []
    for line_number, raw in enumerate(reader, start=2):
        if not any((value or "").strip() for value in raw.values() if isinstance(value, str)):
            continue
        
        amount_text = _pick(raw, AMOUNT_HEADERS)
        date_text = _pick(raw, DATE_HEADERS)
        if amount_text is None or date_text is None:
            raise ValidationException(
                f"Line {line_number}: amount and date are required",
                details={"line": line_number},
            )
        
        try:
            amount = Decimal(amount_text.replace(",", ""))
        except InvalidOperation:
            raise ValidationException(
                f"Line {line_number}: invalid amount '{amount_text}'",
                field="amount",
                details={"line": line_number},
            )
        
        try:
            settlement_date = date_parser.parse(date_text, dayfirst=dayfirst).date()
        except (ValueError, OverflowError):
            raise ValidationException(
                f"Line {line_number}: invalid date '{date_text}'",
                field="settlement_date",
                details={"line": line_number},
            )
        
        rows.append(
            SettlementRow(
                reference=_pick(raw, REFERENCE_HEADERS),
                amount=amount,
                settlement_date=settlement_date,
                position=len(rows),
            )
        )
    
    logger.info(f"Parsed {len(rows)} settlement rows")
    return rows


def settlement_rows_from_payload(payload: Iterable[Mapping[str, Any]]) -> List[SettlementRow]:
    """
    Build settlement rows from decoded JSON objects (e.g. a bank API response).
    
    Each object needs `amount` and `settlement_date`; `reference` is optional.
    Positions follow payload order.
    """
    rows: List[SettlementRow] = []
    for index, item in enumerate(payload):
        try:
            parsed = SettlementRowSchema.model_validate(item)
        except ValidationError as e:
            raise ValidationException(
                f"Settlement row {index}: {e.errors()[0]['msg']}",
                details={"row": index, "errors": e.errors(include_url=False)},
            )
        rows.append(
            SettlementRow(
                reference=parsed.reference or None,
                amount=parsed.amount,
                settlement_date=parsed.settlement_date,
                position=index,
            )
        )
    return rows
