import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, Optional, Union

import pandas as pd

from history import RawTransactionRecord

DateLike = Union[str, date]


@dataclass(frozen=True)
class StreakStats:
    current_streak: int
    longest_streak: int
    total_active_days: int


def _as_day(value: DateLike) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value)[:10]).isoformat()


def _timestamps_frame(records: Iterable[RawTransactionRecord]) -> pd.DataFrame:
    """One row per transaction hash with its UTC datetime"""
    rows = [(r.hash, r.timestamp) for r in records if r.timestamp is not None]
    tx_df = pd.DataFrame(rows, columns=['hash', 'timestamp'])
    if tx_df.empty:
        return tx_df
    tx_df = tx_df.drop_duplicates(subset='hash')
    tx_df['timestamp'] = pd.to_datetime(tx_df['timestamp'], unit='s', utc=True)
    return tx_df


def bucket_by_day(
    records: Iterable[RawTransactionRecord],
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None
) -> Dict[str, int]:
    """Count transactions per UTC day, optionally limited to [start_date, end_date]"""
    tx_df = _timestamps_frame(records)
    if tx_df.empty:
        return {}

    tx_df['day'] = tx_df['timestamp'].dt.strftime('%Y-%m-%d')
    if start_date is not None:
        tx_df = tx_df[tx_df['day'] >= _as_day(start_date)]
    if end_date is not None:
        tx_df = tx_df[tx_df['day'] <= _as_day(end_date)]

    daily_counts = tx_df.groupby('day').size()
    return {day: int(count) for day, count in daily_counts.items() if count > 0}


def compute_streaks(daily_activity: Dict[str, int], today: Optional[date] = None) -> StreakStats:
    active = sorted(date.fromisoformat(day) for day, count in daily_activity.items() if count > 0)
    if today is None:
        today = datetime.now(timezone.utc).date()

    present = set(active)
    current_streak = 0
    day = today
    while day in present:
        current_streak += 1
        day -= timedelta(days=1)

    longest_streak = 0
    streak = 0
    previous = None
    for day in active:
        if previous is not None and (day - previous).days == 1:
            streak += 1
        else:
            streak = 1
        longest_streak = max(longest_streak, streak)
        previous = day

    return StreakStats(
        current_streak=current_streak,
        longest_streak=longest_streak,
        total_active_days=len(active),
    )


def bucket_by_month(records: Iterable[RawTransactionRecord]) -> dict:
    month_counts = {month: 0 for month in range(1, 13)}

    tx_df = _timestamps_frame(records)
    if not tx_df.empty:
        for month, count in tx_df.groupby(tx_df['timestamp'].dt.month).size().items():
            month_counts[int(month)] = int(count)

    # Strict comparison keeps the earliest month on ties
    busiest_month = 1
    max_count = 0
    for month in range(1, 13):
        if month_counts[month] > max_count:
            max_count = month_counts[month]
            busiest_month = month

    return {
        'monthCounts': month_counts,
        'busiestMonth': busiest_month,
        'busiestMonthName': calendar.month_name[busiest_month],
        'busiestMonthCount': max_count,
    }
