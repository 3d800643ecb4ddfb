"""Data analytics API for transaction analysis.

This module turns transaction lists into pandas DataFrames and computes the figures
shown by the dashboard, the reports and the search view: monthly filtering, income
and expense totals, expenses per payment mode and the filtered search.
"""
import datetime
import logging
import re
from typing import Dict, List, Optional, Union

import pandas as pd

from ..core import models

COLUMNS = ['id', 'type', 'amount', 'label', 'mode', 'bank_id', 'bank', 'date']

DateLike = Union[str, datetime.date, datetime.datetime, None]


def _wall_clock(value: str):
    """Parse an ISO 8601 string keeping its local wall-clock time."""
    try:
        return models.parse_date(value).replace(tzinfo=None)
    except ValueError:
        return pd.NaT


def _to_timestamp(value: DateLike) -> Optional[pd.Timestamp]:
    if value is None or value == '':
        return None
    if isinstance(value, str):
        value = models.parse_date(value).replace(tzinfo=None)
    return pd.Timestamp(value).normalize()


def to_dataframe(transactions: List[models.Transaction],
                 banks: Optional[List[models.Bank]] = None) -> pd.DataFrame:
    """Build a DataFrame with one row per transaction.

    The 'date' column holds naive datetimes in the transaction's own wall-clock time;
    rows with unparsable dates are dropped. The 'bank' column resolves bank ids to
    names, using 'Unknown Bank' for ids that no longer exist.

    Args:
        transactions: Transactions to convert.
        banks: Banks used to resolve names.

    Returns:
        pd.DataFrame: Columns as in COLUMNS, in the order of the input.
    """
    if not transactions:
        return pd.DataFrame(columns=COLUMNS)

    names = {b.id: b.name for b in banks or []}
    df = pd.DataFrame([
        {
            'id': t.id,
            'type': str(t.type),
            'amount': float(t.amount),
            'label': t.label,
            'mode': str(t.mode),
            'bank_id': t.bank_id,
            'bank': names.get(t.bank_id, models.UNKNOWN_BANK) if t.bank_id else None,
            'date': _wall_clock(t.date),
        }
        for t in transactions
    ], columns=COLUMNS)

    df['date'] = pd.to_datetime(df['date'], errors='coerce')
    clean_df = df.dropna(subset=['date'])
    if len(df) != len(clean_df):
        logging.warning(f'Dropped {len(df) - len(clean_df)} transaction(s) with an invalid date.')
    clean_df = clean_df.reset_index(drop=True)
    # Newer pandas stores missing strings as NaN; keep None for transactions without a bank
    for column in ('bank_id', 'bank'):
        clean_df[column] = clean_df[column].astype(object).where(clean_df[column].notna(), None)
    return clean_df


def _select(transactions: List[models.Transaction], ids) -> List[models.Transaction]:
    lookup = {t.id: t for t in transactions}
    return [lookup[i] for i in ids]


def filter_month(transactions: List[models.Transaction], yearmonth: str) -> List[models.Transaction]:
    """Return the transactions dated within a month.

    Args:
        yearmonth: Month in the format 'YYYY-MM'.

    Raises:
        ValueError: If yearmonth is not in the 'YYYY-MM' format.
    """
    if not isinstance(yearmonth, str) or not re.fullmatch(r'\d{4}-(0[1-9]|1[0-2])', yearmonth):
        raise ValueError(f'Invalid yearmonth format: {yearmonth!r}. Expected "YYYY-MM".')

    df = to_dataframe(transactions)
    if df.empty:
        return []
    df = df[df['date'].dt.strftime('%Y-%m') == yearmonth]
    return _select(transactions, df['id'])


def get_totals(transactions: List[models.Transaction]) -> Dict[str, float]:
    """Sum income and expenses.

    Returns:
        dict: 'income', 'expense' and 'balance' (income minus expense).
    """
    income = float(sum(t.amount for t in transactions if t.type == models.TransactionType.Income))
    expense = float(sum(t.amount for t in transactions if t.type == models.TransactionType.Expense))
    return {'income': income, 'expense': expense, 'balance': income - expense}


def get_expense_by_mode(transactions: List[models.Transaction]) -> pd.DataFrame:
    """Total expenses per payment mode, largest first.

    Returns:
        pd.DataFrame: Columns 'mode' and 'total'. Modes without expenses are omitted.
    """
    df = to_dataframe([t for t in transactions if t.type == models.TransactionType.Expense])
    if df.empty:
        return pd.DataFrame(columns=['mode', 'total'])
    summary = df.groupby('mode', as_index=False)['amount'].sum()
    summary = summary.rename(columns={'amount': 'total'})
    return summary.sort_values(by='total', ascending=False).reset_index(drop=True)


def search(transactions: List[models.Transaction],
           term: Optional[str] = None,
           type_: Optional[str] = None,
           mode: Optional[str] = None,
           bank_id: Optional[str] = None,
           start_date: DateLike = None,
           end_date: DateLike = None,
           min_amount: Optional[float] = None,
           max_amount: Optional[float] = None) -> List[models.Transaction]:
    """Filter transactions, newest first.

    None disables a filter. The label match is a case-insensitive substring match.
    Date bounds compare whole days and, like the amount bounds, are inclusive.

    Raises:
        ValueError: If a date bound is not a valid date.
    """
    df = to_dataframe(transactions)
    if df.empty:
        return []

    start, end = _to_timestamp(start_date), _to_timestamp(end_date)
    day = df['date'].dt.normalize()

    mask = pd.Series(True, index=df.index)
    if start is not None:
        mask &= day >= start
    if end is not None:
        mask &= day <= end
    if min_amount is not None:
        mask &= df['amount'] >= float(min_amount)
    if max_amount is not None:
        mask &= df['amount'] <= float(max_amount)
    if term:
        mask &= df['label'].str.lower().str.contains(term.lower(), regex=False)
    if type_ is not None:
        mask &= df['type'] == str(type_)
    if mode is not None:
        mask &= df['mode'] == str(mode)
    if bank_id is not None:
        mask &= df['bank_id'] == bank_id

    df = df[mask].sort_values(by='date', ascending=False, kind='mergesort')
    return _select(transactions, df['id'])
