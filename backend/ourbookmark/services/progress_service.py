"""
OurBookmark Backend: Progress Service
======================================

What:  Read-only views computed from children and logs: the progress
       dashboard, the library ("Books" tab), the bookshelf, per-child stats,
       monthly share cards and the home header summary.
How:   Pure functions over validated records; ProgressService loads the
       records from a TrackerStore and hands them over.
Who:   Progress routes.

Conventions:
    - A week starts on Sunday.
    - "Books" on the dashboard and in child stats are distinct titles with
      any " by Author" suffix removed; share cards and the home header count
      the full entered title.
    - Log dates that do not parse are ignored by date-based views.
"""

import logging
from collections import Counter
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional

from ourbookmark.exceptions import NotFoundError
from ourbookmark.schemas.progress import (
    AuthorCount,
    ChildStats,
    CoverThumb,
    FamilyShareCard,
    HomeSummary,
    LibraryBook,
    Milestone,
    ProgressReport,
    ShareCard,
    ShelfEntry,
    WeekDay,
    WeeklyGoal,
    WeekTrend,
)
from ourbookmark.schemas.tracker import Child, ReadingLog
from ourbookmark.services.book_text import format_minutes, split_title_author, title_only
from ourbookmark.services.tracker_store import TrackerStore

logger = logging.getLogger(__name__)

DEFAULT_GOAL_MINUTES = 20
DEFAULT_GOAL_DAYS = 5
DAY_LABELS = ["S", "M", "T", "W", "T", "F", "S"]

BOOK_MILESTONES = [(50, "🏆"), (25, "⭐"), (10, "🎉"), (5, "📚")]
HOUR_MILESTONES = [(600, 10), (300, 5), (60, 1)]


def week_start(today: date) -> date:
    """The Sunday on or before `today`."""
    return today - timedelta(days=(today.weekday() + 1) % 7)


def log_date(log: ReadingLog) -> Optional[date]:
    try:
        return date.fromisoformat(log.date[:10])
    except (TypeError, ValueError):
        return None


def logs_since(logs: List[ReadingLog], start: date, end: Optional[date] = None) -> List[ReadingLog]:
    selected = []
    for log in logs:
        d = log_date(log)
        if d is None or d < start:
            continue
        if end is not None and d >= end:
            continue
        selected.append(log)
    return selected


def total_minutes(logs: List[ReadingLog]) -> int:
    return sum(log.minutes or 0 for log in logs)


def reading_streak(reading_days: set, today: date) -> int:
    """
    Consecutive days with reading, counted back from today.

    A day without reading yet (today) does not break the streak: counting
    starts from yesterday in that case.
    """
    cursor = today
    if cursor.isoformat() not in reading_days:
        cursor -= timedelta(days=1)
    streak = 0
    while cursor.isoformat() in reading_days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def milestones_for(logs: List[ReadingLog], streak: int) -> List[Milestone]:
    earned: List[Milestone] = []
    if logs:
        dated = [log for log in logs if log_date(log) is not None] or logs
        first = sorted(dated, key=lambda log: log_date(log) or date.max)[0]
        earned.append(Milestone(icon="📖", text=f'First Book Logged! "{title_only(first.book_title)}"'))

    books = len({title_only(log.book_title) for log in logs})
    for threshold, icon in BOOK_MILESTONES:
        if books >= threshold:
            earned.append(Milestone(icon=icon, text=f"{threshold} Books Read!"))
            break

    minutes = total_minutes(logs)
    for threshold, hours in HOUR_MILESTONES:
        if minutes >= threshold:
            label = "Hour" if hours == 1 else "Hours"
            earned.append(Milestone(icon="⏰", text=f"{hours} {label} of Reading!"))
            break

    if streak >= 3:
        earned.append(Milestone(icon="🔥", text=f"Reading Streak: {streak} days in a row!"))
    return earned


def top_authors(logs: List[ReadingLog], limit: int = 5) -> List[AuthorCount]:
    """Authors ranked by distinct titles, taken from "Title by Author" entries."""
    titles_by_author: Dict[str, set] = {}
    for log in logs:
        title, author = split_title_author(log.book_title)
        if author:
            titles_by_author.setdefault(author, set()).add(title)
    ranked = sorted(titles_by_author.items(), key=lambda item: -len(item[1]))
    return [AuthorCount(name=name, count=len(titles)) for name, titles in ranked[:limit]]


def emotional_line(total_books: int, favourite_count: int, minutes: int) -> str:
    if total_books == 0:
        return "Just getting started"
    if favourite_count >= 3:
        return "In a reread phase"
    if total_books >= 10:
        return "Loves storytime"
    if minutes >= 300:
        return "A devoted reader"
    return "Building the habit"


def build_progress_report(
    child: Child,
    logs: List[ReadingLog],
    today: date,
) -> ProgressReport:
    """
    Dashboard for one child.

    The weekly goal uses only the child's logs; the week calendar, streak,
    milestones, authors and trend cover the whole family, as on screen.
    """
    start = week_start(today)
    child_logs = [log for log in logs if log.child_id == child.id]

    # ── Weekly goal ──
    has_goal = "goal" in child.model_fields_set
    goal_minutes_per_day = child.goal.minutes_per_day if has_goal else DEFAULT_GOAL_MINUTES
    goal_days = child.goal.days_per_week if has_goal else DEFAULT_GOAL_DAYS
    week_child_logs = logs_since(child_logs, start)
    week_minutes = total_minutes(week_child_logs)
    goal_minutes = goal_minutes_per_day * goal_days
    progress = min(100, round(week_minutes / goal_minutes * 100)) if goal_minutes > 0 else 0
    child_days = len({log.date for log in week_child_logs})

    weekly_goal = WeeklyGoal(
        week_minutes=week_minutes,
        goal_minutes=goal_minutes,
        progress_percent=progress,
        days_read=child_days,
        days_needed=max(0, goal_days - child_days),
    )

    # ── This week, everyone ──
    week_all = logs_since(logs, start)
    reading_days = {log.date for log in logs}
    week_days = []
    for offset in range(7):
        day = start + timedelta(days=offset)
        week_days.append(
            WeekDay(
                label=DAY_LABELS[offset],
                date=day.isoformat(),
                has_reading=day.isoformat() in reading_days,
                is_today=day == today,
                is_past=day <= today,
            )
        )

    streak = reading_streak(reading_days, today)

    # ── Four-week trend ──
    trend = []
    for weeks_ago in range(3, -1, -1):
        ws = start - timedelta(days=7 * weeks_ago)
        trend.append(
            WeekTrend(
                label="This Week" if weeks_ago == 0 else f"{weeks_ago} wk ago",
                minutes=total_minutes(logs_since(logs, ws, ws + timedelta(days=7))),
            )
        )

    return ProgressReport(
        child_id=child.id,
        child_name=child.name,
        weekly_goal=weekly_goal,
        week_books=len({title_only(log.book_title) for log in week_all}),
        week_minutes_all=total_minutes(week_all),
        week_days=week_days,
        days_read_this_week=sum(1 for d in week_days if d.has_reading),
        streak=streak,
        total_books=len({title_only(log.book_title) for log in logs}),
        total_minutes=total_minutes(logs),
        milestones=milestones_for(logs, streak),
        top_authors=top_authors(logs),
        weekly_trend=trend,
    )


def build_library(logs: List[ReadingLog]) -> List[LibraryBook]:
    """
    Group sessions by the exact entered title, most recent group first.

    Args:
        logs: Newest-first, as the stores return them.
    """
    groups: Dict[str, dict] = {}
    for log in logs:
        group = groups.get(log.book_title)
        if group is None:
            group = groups[log.book_title] = {
                "book_title": log.book_title,
                "author": log.author or "",
                "cover_url": log.cover_url or None,
                "sessions": [],
                "total_minutes": 0,
                "total_times_read": 0,
                "last_read": log.date,
                "has_finished": False,
                "rating": None,
                "chapter_current": None,
                "chapter_total": None,
                "chapter_progress": None,
            }
        group["sessions"].append(log)
        group["total_minutes"] += log.minutes or 0
        group["total_times_read"] += log.times_read or 1
        if log.is_finished:
            group["has_finished"] = True
        if log.rating and not group["rating"]:
            group["rating"] = log.rating
        if log.chapter_current and log.chapter_current > 0 and log.chapter_total:
            group["chapter_current"] = max(group["chapter_current"] or 0, log.chapter_current)
            group["chapter_total"] = log.chapter_total
            group["chapter_progress"] = group["chapter_current"] / group["chapter_total"] * 100
        if log.cover_url and not group["cover_url"]:
            group["cover_url"] = log.cover_url

    ordered = sorted(
        groups.values(),
        key=lambda g: log_date(g["sessions"][0]) or date.min,
        reverse=True,
    )
    return [
        LibraryBook(
            **g,
            total_minutes_label=format_minutes(g["total_minutes"]),
            is_favorite=len(g["sessions"]) > 1 or g["total_times_read"] > 1,
        )
        for g in ordered
    ]


def build_bookshelf(logs: List[ReadingLog], child_id: Optional[str] = None) -> List[ShelfEntry]:
    """One entry per exact title; the last log seen for a title wins."""
    selected = logs if not child_id else [log for log in logs if log.child_id == child_id]
    by_title: Dict[str, ReadingLog] = {}
    for log in selected:
        by_title[log.book_title] = log
    return [
        ShelfEntry(
            book_title=log.book_title,
            author=log.author,
            cover_url=log.cover_url,
            child_id=log.child_id,
        )
        for log in by_title.values()
    ]


def build_child_stats(child: Child, logs: List[ReadingLog]) -> ChildStats:
    child_logs = [log for log in logs if log.child_id == child.id]
    counts = Counter(title_only(log.book_title) for log in child_logs)
    minutes = total_minutes(child_logs)
    favourite = counts.most_common(1)[0] if counts else None
    favourite_count = favourite[1] if favourite else 0

    return ChildStats(
        child_id=child.id,
        total_books=len(counts),
        total_minutes=minutes,
        hours=minutes // 60,
        mins=minutes % 60,
        favourite_title=favourite[0] if favourite else None,
        favourite_count=favourite_count,
        emotional_line=emotional_line(len(counts), favourite_count, minutes),
    )


def _month_logs(logs: List[ReadingLog], today: date) -> List[ReadingLog]:
    return logs_since(logs, today.replace(day=1))


def build_share_card(child: Child, logs: List[ReadingLog], today: date) -> ShareCard:
    month_logs = [log for log in _month_logs(logs, today) if log.child_id == child.id]
    counts = Counter(log.book_title for log in month_logs)

    covers: List[CoverThumb] = []
    seen = set()
    for log in month_logs:
        if log.cover_url and log.book_title not in seen:
            covers.append(CoverThumb(title=log.book_title, cover_url=log.cover_url))
            seen.add(log.book_title)
            if len(covers) >= 4:
                break

    return ShareCard(
        month=today.strftime("%B %Y"),
        child_id=child.id,
        child_name=child.name,
        total_minutes=total_minutes(month_logs),
        unique_books=len(counts),
        days_read=len({log.date for log in month_logs}),
        re_reads=sum(1 for c in counts.values() if c > 1),
        covers=covers,
    )


def build_family_share_card(
    children: List[Child],
    logs: List[ReadingLog],
    today: date,
    family_name: Optional[str] = None,
) -> FamilyShareCard:
    month_logs = _month_logs(logs, today)
    counts = Counter(log.book_title for log in month_logs)

    reader_minutes: Counter = Counter()
    for log in month_logs:
        reader_minutes[log.child_id] += log.minutes or 0
    top_reader_id = reader_minutes.most_common(1)[0][0] if reader_minutes else None
    top_reader = next((c for c in children if c.id == top_reader_id), None)
    most_read = counts.most_common(1)[0] if counts else None

    return FamilyShareCard(
        month=today.strftime("%B %Y"),
        family_name=family_name,
        total_minutes=total_minutes(month_logs),
        unique_books=len(counts),
        days_read=len({log.date for log in month_logs}),
        re_reads=sum(1 for c in counts.values() if c > 1),
        top_reader_id=top_reader.id if top_reader else None,
        top_reader_name=top_reader.name if top_reader else None,
        most_read_book=most_read[0] if most_read else None,
        most_read_count=most_read[1] if most_read else 0,
    )


def build_home_summary(
    logs: List[ReadingLog], today: date, family_name: Optional[str] = None
) -> HomeSummary:
    counts = Counter(log.book_title for log in logs)
    return HomeSummary(
        family_name=family_name,
        days_read_this_week=len({log.date for log in logs_since(logs, week_start(today))}),
        total_books=len(counts),
        reread_books=sum(1 for c in counts.values() if c > 1),
    )


# ══════════════════════════════════════════════════════════════════════════
# Service Facade
# ══════════════════════════════════════════════════════════════════════════

class ProgressService:
    """Loads records from a store and runs the builders above."""

    def __init__(self, today: Callable[[], date] = date.today):
        self.today = today

    async def _child(self, store: TrackerStore, child_id: Optional[str]) -> Child:
        children = await store.list_children()
        if not children:
            raise NotFoundError(resource="child")
        if not child_id:
            return children[0]
        for child in children:
            if child.id == child_id:
                return child
        raise NotFoundError(resource="child", resource_id=child_id)

    async def _family_name(self, store: TrackerStore) -> Optional[str]:
        family = await store.get_family()
        return family.get("familyName") if family else None

    async def report(self, store: TrackerStore, child_id: Optional[str] = None) -> ProgressReport:
        child = await self._child(store, child_id)
        return build_progress_report(child, await store.list_logs(), self.today())

    async def library(self, store: TrackerStore, child_id: Optional[str] = None) -> List[LibraryBook]:
        logs = await store.list_logs()
        if child_id:
            logs = [log for log in logs if log.child_id == child_id]
        return build_library(logs)

    async def bookshelf(self, store: TrackerStore, child_id: Optional[str] = None) -> List[ShelfEntry]:
        return build_bookshelf(await store.list_logs(), child_id)

    async def child_stats(self, store: TrackerStore) -> List[ChildStats]:
        logs = await store.list_logs()
        return [build_child_stats(child, logs) for child in await store.list_children()]

    async def share_card(self, store: TrackerStore, child_id: Optional[str] = None) -> ShareCard:
        child = await self._child(store, child_id)
        return build_share_card(child, await store.list_logs(), self.today())

    async def family_share_card(self, store: TrackerStore) -> FamilyShareCard:
        return build_family_share_card(
            await store.list_children(),
            await store.list_logs(),
            self.today(),
            await self._family_name(store),
        )

    async def home_summary(self, store: TrackerStore) -> HomeSummary:
        return build_home_summary(
            await store.list_logs(), self.today(), await self._family_name(store)
        )


progress_service = ProgressService()
