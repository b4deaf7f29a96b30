"""Spreadsheet export of selected submissions."""
from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from io import BytesIO
from typing import Iterable

import pandas as pd
from openpyxl.utils import get_column_letter

from .exceptions import ValidationError
from .models import Submission

EXPORT_COLUMNS = [
    "Company Name",
    "Submission Date",
    "Status",
    "Account Type",
    "Institution Name",
    "Institution Address",
    "Account Number",
    "Currency",
    "Maximum Value",
    "USD Value",
    "Total Accounts",
]
SHEET_NAME = "FBAR Submissions"
EXPORT_FILENAME = "fbar_submissions.xlsx"
EXCEL_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def flatten_rows(submissions: Iterable[Submission]) -> list[dict[str, object]]:
    """Return one row per account, repeating the submission-level fields."""

    rows: list[dict[str, object]] = []
    for submission in submissions:
        for account in submission.accounts:
            rows.append(
                {
                    "Company Name": submission.company_name or "",
                    "Submission Date": format_timestamp(submission.submitted_at),
                    "Status": submission.status.value,
                    "Account Type": account.type,
                    "Institution Name": account.institution_name,
                    "Institution Address": account.mailing_address,
                    "Account Number": account.account_number,
                    "Currency": account.currency,
                    "Maximum Value": format_number(account.max_value),
                    "USD Value": f"${format_number(account.usd_value)}",
                    "Total Accounts": len(submission.accounts),
                }
            )
    return rows


def export_selected(submissions: Iterable[Submission], selected_ids: Collection[str]) -> bytes:
    """Build an ``.xlsx`` workbook for the selected submissions.

    Submissions keep the order they arrive in. Each column is as wide as its
    longest value or header.

    Raises:
        ValidationError: nothing is selected.
    """

    selected = [submission for submission in submissions if submission.id in selected_ids]
    if not selected_ids or not selected:
        raise ValidationError("Please select at least one submission to export", field="ids")

    rows = flatten_rows(selected)
    dataframe = pd.DataFrame(rows, columns=EXPORT_COLUMNS)

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        dataframe.to_excel(writer, sheet_name=SHEET_NAME, index=False)
        worksheet = writer.sheets[SHEET_NAME]
        for index, width in enumerate(column_widths(rows), start=1):
            worksheet.column_dimensions[get_column_letter(index)].width = width
    return buffer.getvalue()


def column_widths(rows: list[dict[str, object]]) -> list[int]:
    return [
        max([len(column)] + [len(str(row[column])) for row in rows])
        for column in EXPORT_COLUMNS
    ]


def format_number(value: float) -> str:
    """Group thousands with commas and keep at most three decimals."""

    text = f"{value:,.3f}"
    return text.rstrip("0").rstrip(".")


def format_timestamp(value: datetime) -> str:
    """Render as ``M/D/YYYY, h:mm:ss AM``."""

    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{value.month}/{value.day}/{value.year}, {hour}:{value:%M:%S} {meridiem}"


__all__ = [
    "EXCEL_MEDIA_TYPE",
    "EXPORT_COLUMNS",
    "EXPORT_FILENAME",
    "column_widths",
    "export_selected",
    "flatten_rows",
    "format_number",
    "format_timestamp",
]
