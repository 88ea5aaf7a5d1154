"""
Client Bulk Import

Shared bulk-import path for JSON rows (PUT /api/clients) and CSV uploads
(POST /api/clients/import-csv). CSV files are parsed with pandas; every row
then goes through bulk_import_clients, which skips company numbers that are
already stored or repeated earlier in the batch.
"""

import io
import logging
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from taxengine.accounting_periods import build_period_rows, generate_default_periods
from taxengine.models import AuditCategory
from taxengine.utils import utc_now_iso

logger = logging.getLogger(__name__)

# Normalised header -> row field
CSV_COLUMNS = {
    "companyname": "name",
    "companynumber": "number",
    "utr": "utr",
    "payereference": "payeReference",
    "contactname": "contactName",
    "contactemail": "contactEmail",
    "contactphone": "contactPhone",
}

REQUIRED_CSV_HEADERS = (
    "Company Name, Company Number, UTR, PAYE Reference, "
    "Contact Name, Contact Email, Contact Phone"
)

# PAYE reference is the only optional value in a CSV row
CSV_REQUIRED_VALUES = ("name", "number", "utr", "contactName", "contactEmail", "contactPhone")


class CSVImportError(ValueError):
    """The uploaded file cannot be read as a client CSV."""


def _normalise_header(header: str) -> str:
    return "".join(str(header).split()).lower()


def parse_clients_csv(content: bytes) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Parse a client CSV into bulk-import rows.

    Returns (rows, errors). Row numbers in errors count the header as row 1,
    matching what a user sees in a spreadsheet.
    """
    if not content or not content.strip():
        raise CSVImportError("CSV file is empty")

    try:
        df = pd.read_csv(io.BytesIO(content), dtype=str, keep_default_na=False, skipinitialspace=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        logger.info(f"Rejected unreadable client CSV: {e}")
        raise CSVImportError("Could not parse CSV file")

    columns = {_normalise_header(col): col for col in df.columns}
    missing = [key for key in CSV_COLUMNS if key not in columns]
    if missing:
        raise CSVImportError(f"CSV must have headers: {REQUIRED_CSV_HEADERS}")

    rows: List[Dict[str, Any]] = []
    errors: List[str] = []

    for position, (_, record) in enumerate(df.iterrows()):
        row = {
            field: str(record[columns[key]]).strip().strip('"')
            for key, field in CSV_COLUMNS.items()
        }
        if not any(row.values()):
            continue
        if not all(row[field] for field in CSV_REQUIRED_VALUES):
            errors.append(f"Row {position + 2}: Missing required fields")
            continue
        rows.append(row)

    return rows, errors


def bulk_import_clients(
    clients_repo,
    periods_repo,
    audit_repo,
    rows: List[Dict[str, Any]],
    user_id: Optional[int] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Insert each row whose company number is new.

    Rows are dicts keyed by the wire names (name, number, utr, payeReference,
    contactName, contactEmail, contactPhone, yearEndMonth, yearEndDay).
    Database errors on insert propagate; period generation failures do not.
    """
    created = 0
    skipped = 0
    errors: List[str] = []
    seen_numbers = set()

    for index, row in enumerate(rows):
        name = (row.get("name") or "").strip()
        number = (row.get("number") or "").strip()
        if not name or not number:
            errors.append(f"Row {index + 1}: Company name and number are required")
            continue

        if number in seen_numbers or clients_repo.find_by_company_number(number):
            skipped += 1
            errors.append(f"{name} ({number}) - already exists")
            continue
        seen_numbers.add(number)

        year_end_month = row.get("yearEndMonth")
        year_end_day = row.get("yearEndDay")

        client = clients_repo.create(
            company_name=name,
            company_number=number,
            utr=row.get("utr"),
            paye_reference=row.get("payeReference"),
            email=row.get("contactEmail"),
            phone=row.get("contactPhone"),
            contact_name=row.get("contactName"),
            year_end_month=year_end_month,
            year_end_day=year_end_day,
        )
        created += 1

        periods = generate_default_periods(year_end_month, year_end_day)
        if periods:
            try:
                periods_repo.insert_many(build_period_rows(client, periods, utc_now_iso()))
            except Exception as e:
                logger.error(f"Failed to create accounting periods for {number}: {e}")

    if created > 0:
        audit_repo.record(
            action="Bulk client import",
            category=AuditCategory.CLIENT,
            details=f"Imported {created} clients, skipped {skipped} duplicates",
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    logger.info(f"Bulk import finished: {created} created, {skipped} skipped, {len(errors)} errors")
    return {"created": created, "skipped": skipped, "errors": errors}
