import io
import logging
import os
import shutil
import tempfile
import zipfile
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

import openpyxl
from fastapi import UploadFile
from fastapi.responses import StreamingResponse
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy.orm import Session

from moneytracker.data.store import (
    CATEGORIES,
    EXCHANGE_RATES,
    TRANSACTIONS,
    clear_collection,
    insert_records,
    list_records,
)
from moneytracker.domain.helpers.timeutil import parse_calendar_date, parse_timestamp
from moneytracker.domain.helpers.validation import (
    validate_amount,
    validate_category_name,
    validate_new_category_name,
    validate_currency,
    validate_kind,
    validate_rate,
)
from moneytracker.domain.models import (
    DEFAULT_CATEGORY,
    Category,
    Currency,
    ExchangeRate,
    Transaction,
    TransactionKind,
)

logger = logging.getLogger(__name__)

SHEET_TITLE = "交易记录"
# Column header, attribute, column width
XLSX_COLUMNS = [
    ("日期", "date", 15),
    ("金额", "amount", 12),
    ("货币", "currency", 8),
    ("描述", "description", 25),
    ("分类", "category", 15),
    ("汇率", "recorded_rate", 10),
]
XLSX_DEFAULT_CURRENCY = Currency.MOP.value
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def export_file_name(extension: str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"money-tracker-export-{now.strftime('%Y-%m-%d')}.{extension}"


# --- JSON bundle ---


def _transaction_to_json(t: Transaction) -> Dict[str, Any]:
    data = {
        "id": t.id,
        "amount": t.amount,
        "currency": t.currency,
        "category": t.category,
        "description": t.description,
        "date": t.date.isoformat(),
        "exchangeRate": t.recorded_rate,
    }
    if t.kind is not None:
        data["kind"] = t.kind.value
    return data


def _transaction_from_json(item: Dict[str, Any]) -> Transaction:
    kind = validate_kind(item.get("kind") or item.get("type"))
    rate = item.get("exchangeRate")
    return Transaction(
        amount=validate_amount(item.get("amount")),
        currency=validate_currency(item.get("currency")),
        category=validate_category_name(item.get("category")),
        description=str(item.get("description") or "").strip(),
        date=parse_calendar_date(item.get("date")),
        recorded_rate=validate_rate(rate),
        kind=kind,
    )


def _category_from_json(item: Dict[str, Any]) -> Category:
    # Some older exports carry an icon instead of a type
    kind = validate_kind(item.get("type") or item.get("kind"))
    if kind is None:
        logger.warning(
            "Category %r has no type; importing it as expense", item.get("name")
        )
        kind = TransactionKind.EXPENSE
    return Category(name=validate_new_category_name(item.get("name")), kind=kind)


def _rate_from_json(item: Dict[str, Any]) -> ExchangeRate:
    # Rates saved by the add-transaction form only carry {date, rate},
    # entered as 1 CNY = ? MOP
    from_code = validate_currency(item.get("fromCurrency", Currency.CNY.value))
    to_code = validate_currency(item.get("toCurrency", Currency.MOP.value))
    if from_code == to_code:
        raise ValueError("Exchange rate currencies must differ")
    rate = validate_rate(item.get("rate"))
    if rate is None:
        raise ValueError("Exchange rate must be provided")
    return ExchangeRate(
        from_currency=from_code,
        to_currency=to_code,
        rate=rate,
        effective_at=parse_timestamp(item.get("updatedAt") or item.get("date")),
    )


def export_json_bundle(db: Session, now: datetime | None = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    return {
        "transactions": [
            _transaction_to_json(t) for t in list_records(db, TRANSACTIONS)
        ],
        "categories": [
            {"id": c.id, "name": c.name, "type": c.kind.value}
            for c in list_records(db, CATEGORIES)
        ],
        "exchangeRates": [
            {
                "id": r.id,
                "fromCurrency": r.from_currency.value,
                "toCurrency": r.to_currency.value,
                "rate": r.rate,
                "updatedAt": r.effective_at.isoformat(),
            }
            for r in list_records(db, EXCHANGE_RATES)
        ],
        "exportDate": now.isoformat(),
    }


def _parse_items(items: List[Any], parse, label: str, errors: List[str]) -> list:
    records = []
    for i, item in enumerate(items):
        try:
            if not isinstance(item, dict):
                raise ValueError("Record is not an object")
            records.append(parse(item))
        except ValueError as e:
            errors.append(f"{label}[{i}]: {e}")
            logger.warning("Skipping %s[%d] due to error: %s", label, i, e)
    return records


def import_json_bundle(db: Session, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replaces all three collections with the bundle's content. The bundle is
    fully parsed before anything is cleared.
    """
    if not isinstance(data, dict):
        raise ValueError("Invalid data format")
    missing = [
        key
        for key in ("transactions", "categories", "exchangeRates")
        if not isinstance(data.get(key), list)
    ]
    if missing:
        raise ValueError(f"Invalid data format: missing {', '.join(missing)}")

    errors: List[str] = []
    transactions = _parse_items(
        data["transactions"], _transaction_from_json, "transactions", errors
    )
    categories = _parse_items(
        data["categories"], _category_from_json, "categories", errors
    )
    rates = _parse_items(data["exchangeRates"], _rate_from_json, "exchangeRates", errors)

    for collection in (TRANSACTIONS, CATEGORIES, EXCHANGE_RATES):
        clear_collection(db, collection)
    imported = {
        TRANSACTIONS: insert_records(db, TRANSACTIONS, transactions),
        CATEGORIES: insert_records(db, CATEGORIES, categories),
        EXCHANGE_RATES: insert_records(db, EXCHANGE_RATES, rates),
    }
    logger.info("Imported JSON bundle: %s (%d skipped)", imported, len(errors))
    return {"imported": imported, "errors": errors}


# --- Spreadsheet ---


def export_transactions_xlsx(db: Session) -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append([header for header, _, _ in XLSX_COLUMNS])
    for index, (_, _, width) in enumerate(XLSX_COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(index)].width = width

    for t in list_records(db, TRANSACTIONS):
        ws.append(
            [
                t.date.isoformat(),
                t.amount,
                t.currency,
                t.description,
                t.category,
                t.recorded_rate if t.recorded_rate is not None else "",
            ]
        )

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def get_transactions_xlsx_stream(db: Session) -> StreamingResponse:
    output = io.BytesIO(export_transactions_xlsx(db))
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f"attachment; filename={export_file_name('xlsx')}"
        },
    )


def _row_to_transaction(row: Dict[str, Any]) -> Transaction:
    amount = row.get("amount")
    rate = row.get("recorded_rate")
    return Transaction(
        amount=validate_amount(amount if amount not in (None, "") else 0),
        currency=validate_currency(str(row.get("currency") or XLSX_DEFAULT_CURRENCY)),
        category=str(row.get("category") or DEFAULT_CATEGORY).strip(),
        description=str(row.get("description") or "").strip(),
        date=parse_calendar_date(row.get("date")),
        recorded_rate=validate_rate(rate),
    )


def parse_transactions_xlsx(filepath: str) -> Tuple[List[Transaction], List[str]]:
    """
    Reads the first sheet of an .xlsx file whose first row holds the
    localized headers. Returns the parsed transactions and per-row errors.
    """
    try:
        wb = openpyxl.load_workbook(filepath, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError) as e:
        raise ValueError(f"Not a readable .xlsx file: {e}")
    try:
        ws = wb.worksheets[0]
        rows = list(ws.iter_rows(values_only=True))
    finally:
        wb.close()

    if not rows:
        return [], []
    header_to_attr = {header: attr for header, attr, _ in XLSX_COLUMNS}
    columns = [
        header_to_attr.get(str(cell).strip()) if cell is not None else None
        for cell in rows[0]
    ]
    if "date" not in columns:
        raise ValueError("Spreadsheet has no 日期 column")

    transactions = []
    errors = []
    for line, values in enumerate(rows[1:], start=2):
        if values is None or all(v in (None, "") for v in values):
            continue
        row = {attr: value for attr, value in zip(columns, values) if attr}
        try:
            transactions.append(_row_to_transaction(row))
        except ValueError as e:
            errors.append(f"Row {line}: {e}")
            logger.warning("Skipping row %d due to parsing error: %s", line, e)
    return transactions, errors


def import_transactions_xlsx(db: Session, filepath: str) -> Dict[str, Any]:
    transactions, errors = parse_transactions_xlsx(filepath)
    imported = insert_records(db, TRANSACTIONS, transactions) if transactions else 0
    logger.info("Imported %d transactions from spreadsheet", imported)
    return {"imported": imported, "errors": errors}


def import_transactions_xlsx_upload(db: Session, file: UploadFile) -> Dict[str, Any]:
    filename = getattr(file, "filename", None) or "upload.xlsx"
    _, ext = os.path.splitext(filename)
    if ext.lower() != ".xlsx":
        raise ValueError(f"{filename}: only .xlsx files are supported")
    with tempfile.NamedTemporaryFile(delete=False, suffix=ext) as tmp:
        shutil.copyfileobj(file.file, tmp)
        tmp_path = tmp.name
    try:
        return import_transactions_xlsx(db, tmp_path)
    finally:
        os.remove(tmp_path)
