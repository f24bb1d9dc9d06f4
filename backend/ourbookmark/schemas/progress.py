"""OurBookmark Backend: Progress, Library and Share-Card Schemas"""

from typing import List, Optional

from ourbookmark.schemas.common import CamelModel
from ourbookmark.schemas.tracker import ReadingLog


class WeekDay(CamelModel):
    label: str
    date: str
    has_reading: bool
    is_today: bool
    is_past: bool


class WeeklyGoal(CamelModel):
    week_minutes: int
    goal_minutes: int
    progress_percent: int
    days_read: int
    days_needed: int


class Milestone(CamelModel):
    icon: str
    text: str


class AuthorCount(CamelModel):
    name: str
    count: int


class WeekTrend(CamelModel):
    label: str
    minutes: int


class ProgressReport(CamelModel):
    child_id: str
    child_name: str
    weekly_goal: WeeklyGoal
    week_books: int
    week_minutes_all: int
    week_days: List[WeekDay]
    days_read_this_week: int
    streak: int
    total_books: int
    total_minutes: int
    milestones: List[Milestone]
    top_authors: List[AuthorCount]
    weekly_trend: List[WeekTrend]


class LibraryBook(CamelModel):
    book_title: str
    author: str = ""
    cover_url: Optional[str] = None
    sessions: List[ReadingLog]
    total_minutes: int
    total_minutes_label: str
    total_times_read: int
    last_read: str
    has_finished: bool
    rating: Optional[int] = None
    chapter_current: Optional[int] = None
    chapter_total: Optional[int] = None
    chapter_progress: Optional[float] = None
    is_favorite: bool


class ShelfEntry(CamelModel):
    book_title: str
    author: Optional[str] = None
    cover_url: Optional[str] = None
    child_id: str


class ChildStats(CamelModel):
    child_id: str
    total_books: int
    total_minutes: int
    hours: int
    mins: int
    favourite_title: Optional[str] = None
    favourite_count: int = 0
    emotional_line: str


class CoverThumb(CamelModel):
    title: str
    cover_url: str


class ShareCard(CamelModel):
    month: str
    child_id: str
    child_name: str
    total_minutes: int
    unique_books: int
    days_read: int
    re_reads: int
    covers: List[CoverThumb]


class FamilyShareCard(CamelModel):
    month: str
    family_name: Optional[str] = None
    total_minutes: int
    unique_books: int
    days_read: int
    re_reads: int
    top_reader_id: Optional[str] = None
    top_reader_name: Optional[str] = None
    most_read_book: Optional[str] = None
    most_read_count: int = 0


class HomeSummary(CamelModel):
    family_name: Optional[str] = None
    days_read_this_week: int
    total_books: int
    reread_books: int
