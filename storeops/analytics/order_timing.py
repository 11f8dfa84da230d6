"""
Order Timing Analysis

When do customers order? Orders are bucketed by weekday, by time-of-day band
and by hour, each bucket carrying its count, share of orders, revenue and
average order value. Orders without a creation date are left out entirely,
including from the share denominator.
"""

from typing import List, Sequence, Tuple

import pandas as pd

from storeops.analytics.records import Order, round_half_up
from storeops.analytics.schemas import HourlyBucket, OrderTimingData, TimeOfDayBucket, WeekdayBucket

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

TIME_OF_DAY_BANDS: List[Tuple[str, Sequence[int]]] = [
    ("Morning (6-11)", range(6, 12)),
    ("Afternoon (12-17)", range(12, 18)),
    ("Evening (18-22)", range(18, 23)),
    ("Night (23-5)", [23, 0, 1, 2, 3, 4, 5]),
]

BEST_WORST_DAYS = 3
BEST_WORST_HOURS = 5


def hour_label(hour: int) -> str:
    suffix = "AM" if hour < 12 else "PM"
    return f"{hour % 12 or 12} {suffix}"


def timing_frame(orders: Sequence[Order]) -> pd.DataFrame:
    """One row per dated order with its weekday (0 = Sunday), hour and total."""
    rows = [(order.date_created, order.total) for order in orders if order.date_created is not None]
    frame = pd.DataFrame(rows, columns=["date_created", "total"])
    if frame.empty:
        return frame
    created = pd.to_datetime(frame["date_created"])
    frame["weekday"] = (created.dt.dayofweek + 1) % 7
    frame["hour"] = created.dt.hour
    return frame


def _totals(frame: pd.DataFrame, key: str, size: int) -> pd.DataFrame:
    return frame.groupby(key)["total"].agg(["count", "sum"]).reindex(range(size), fill_value=0)


def _stats(count: int, revenue: float, total_orders: int) -> dict:
    count = int(count)
    revenue = float(revenue)
    return {
        "count": count,
        "percentage": round_half_up(count / total_orders * 100),
        "revenue": round(revenue, 2),
        "average_order_value": round(revenue / count, 2) if count else 0.0,
    }


def _best_and_worst(buckets: list, size: int) -> Tuple[list, list]:
    ranked = sorted(buckets, key=lambda bucket: bucket.count, reverse=True)
    return ranked[:size], list(reversed(ranked))[:size]


def analyze_order_timing(orders: Sequence[Order]) -> OrderTimingData:
    frame = timing_frame(orders)
    if frame.empty:
        return OrderTimingData()

    total = len(frame)
    by_day = _totals(frame, "weekday", 7)
    by_hour = _totals(frame, "hour", 24)

    weekdays = [
        WeekdayBucket(day=DAY_NAMES[index], **_stats(row["count"], row["sum"], total))
        for index, row in by_day.iterrows()
    ]
    hours = [
        HourlyBucket(hour=hour_label(hour), **_stats(row["count"], row["sum"], total))
        for hour, row in by_hour.iterrows()
    ]
    bands = []
    for name, band_hours in TIME_OF_DAY_BANDS:
        band = by_hour.loc[list(band_hours)]
        bands.append(TimeOfDayBucket(time_range=name, **_stats(band["count"].sum(), band["sum"].sum(), total)))

    best_days, worst_days = _best_and_worst(weekdays, BEST_WORST_DAYS)
    best_hours, worst_hours = _best_and_worst(hours, BEST_WORST_HOURS)

    return OrderTimingData(
        weekday_distribution=weekdays,
        time_of_day_distribution=bands,
        hourly_distribution=hours,
        best_performing_days=best_days,
        best_performing_hours=best_hours,
        worst_performing_days=worst_days,
        worst_performing_hours=worst_hours,
    )
