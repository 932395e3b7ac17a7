import datetime
import functools

from keytable import Table
from keytable.compute import RowNumberAggregation, dcast, group_assign, merge


def d(day):
    """Parse an ISO date."""
    return datetime.date.fromisoformat(day)


def widen(events, prefix):
    """One row per uid with a column for each of its events, in date order."""
    events.set_key(["uid", "event_date"])
    group_assign(events, ["uid"], {"obs": RowNumberAggregation()})
    wide = dcast(events, "uid", "obs", "event_date")
    wide.add_prefix(prefix, exclude=["uid"])
    return wide


def test_events_wide():
    visits = Table.from_pydict(
        {
            "uid": [2, 1, 1, 3],
            "event_date": [d("2018-03-01"), d("2018-02-01"), d("2018-01-01"), d("2018-05-01")],
        }
    )
    labs = Table.from_pydict(
        {
            "uid": [1, 4, 4],
            "event_date": [d("2018-01-10"), d("2018-04-02"), d("2018-04-01")],
        }
    )
    surgeries = Table.from_pydict({"uid": [2], "event_date": [d("2018-06-01")]})

    wide_tables = [
        widen(visits, "visit_"),
        widen(labs, "lab_"),
        widen(surgeries, "surgery_"),
    ]
    assert visits["obs"].to_pylist() == [1, 2, 1, 1]
    assert wide_tables[0].column_names == ["uid", "visit_1", "visit_2"]

    events_wide = functools.reduce(
        lambda left, right: merge(left, right, on="uid", how="outer"), wide_tables
    )
    assert events_wide.to_pydict() == {
        "uid": [1, 2, 3, 4],
        "visit_1": [d("2018-01-01"), d("2018-03-01"), d("2018-05-01"), None],
        "visit_2": [d("2018-02-01"), None, None, None],
        "lab_1": [d("2018-01-10"), None, None, d("2018-04-01")],
        "lab_2": [None, None, None, d("2018-04-02")],
        "surgery_1": [None, d("2018-06-01"), None, None],
    }
