from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from .scoring import canonical_pair


@dataclass(frozen=True)
class MatchHistoryEntry:
    member_a: str
    member_b: str
    week: date


def week_start_of(day: date) -> date:
    return day - timedelta(days=day.weekday())


def get_week_start_date(now: datetime, tz: str = "UTC") -> date:
    return week_start_of(now.astimezone(ZoneInfo(tz)).date())


def weeks_between(earlier: date, later: date) -> int:
    return (later - earlier).days // 7


def cooldown_window_start(current_week: date, cooldown_weeks: int) -> date:
    return current_week - timedelta(days=7 * cooldown_weeks)


def history_entries_for_group(member_ids: Iterable[str], week: date) -> list[MatchHistoryEntry]:
    ids = list(member_ids)
    entries: list[MatchHistoryEntry] = []
    for i in range(len(ids)):
        for j in range(i + 1, len(ids)):
            a, b = canonical_pair(ids[i], ids[j])
            entries.append(MatchHistoryEntry(member_a=a, member_b=b, week=week))
    return entries


class HistoryGuard:
    """Answers "were these two grouped within the cooldown window?" in O(1).

    Only the most recent in-window week per unordered pair is kept, so the
    lookup stays bounded regardless of how long the history log grows.
    """

    def __init__(self, entries: Iterable[MatchHistoryEntry], current_week: date, cooldown_weeks: int) -> None:
        self.current_week = current_week
        self.cooldown_weeks = cooldown_weeks
        self._latest: dict[tuple[str, str], date] = {}
        for entry in entries:
            if entry.member_a == entry.member_b:
                continue
            if not self._in_window(entry.week):
                continue
            key = canonical_pair(entry.member_a, entry.member_b)
            prev = self._latest.get(key)
            if prev is None or entry.week > prev:
                self._latest[key] = entry.week

    def _in_window(self, week: date) -> bool:
        if week > self.current_week:
            return False
        return weeks_between(week, self.current_week) < self.cooldown_weeks

    def is_blocked(self, member_a: str, member_b: str) -> bool:
        return canonical_pair(member_a, member_b) in self._latest

    def last_matched_week(self, member_a: str, member_b: str) -> date | None:
        return self._latest.get(canonical_pair(member_a, member_b))

    def __len__(self) -> int:
        return len(self._latest)


def empty_guard(current_week: date, cooldown_weeks: int) -> HistoryGuard:
    return HistoryGuard((), current_week, cooldown_weeks)
