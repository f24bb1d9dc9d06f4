"""
OurBookmark Backend: Reading Tracker Schemas
=============================================

Records (`Child`, `ReadingLog`, ...) are the canonical shapes stored in
the device document and returned by every tracker route. `*Create` and
`*Update` models are request bodies; business rules such as the minutes
range are checked in TrackerService so that the user sees the exact
wording of the form errors.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ourbookmark.schemas.common import CamelModel


# ── Children ──────────────────────────────────────────────────────────────

class ChildGoal(CamelModel):
    minutes_per_day: int = 0
    days_per_week: int = 0
    is_custom: bool = True


class Child(CamelModel):
    id: str
    name: str
    grade: Optional[str] = None
    child_type: str = "student"
    goal: ChildGoal = Field(default_factory=ChildGoal)
    milestones: list = Field(default_factory=list)
    archived: bool = False


class ChildCreate(CamelModel):
    name: str = ""
    grade: Optional[str] = None
    child_type: Optional[str] = None
    goal: Optional[ChildGoal] = None


class ChildUpdate(CamelModel):
    name: Optional[str] = None
    grade: Optional[str] = None
    child_type: Optional[str] = None
    goal: Optional[ChildGoal] = None
    milestones: Optional[list] = None


# ── Reading Logs ──────────────────────────────────────────────────────────

class ReadingLog(CamelModel):
    id: str
    child_id: str
    book_title: str
    author: Optional[str] = None
    minutes: int
    hours: float = 0
    date: str
    subject: Optional[str] = None
    genre: Optional[str] = None
    cover_url: Optional[str] = None
    times_read: int = 1
    is_finished: bool = False
    chapter_current: Optional[int] = None
    chapter_total: Optional[int] = None
    notes: Optional[str] = None
    loved: bool = False
    reading_type: str = "independent"
    rating: Optional[int] = None


class LogCreate(CamelModel):
    child_id: Optional[str] = None
    book_title: str = ""
    author: Optional[str] = None
    minutes: Optional[float] = None
    date: Optional[str] = None
    subject: Optional[str] = None
    genre: Optional[str] = None
    cover_url: Optional[str] = None
    times_read: Optional[int] = None
    is_finished: bool = False
    chapter_current: Optional[int] = None
    chapter_total: Optional[int] = None
    notes: Optional[str] = None
    reading_type: Optional[str] = None


class LogUpdate(CamelModel):
    notes: Optional[str] = None
    loved: Optional[bool] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    is_finished: Optional[bool] = None
    times_read: Optional[int] = Field(default=None, ge=1)
    chapter_current: Optional[int] = None
    chapter_total: Optional[int] = None


# ── Goals, Challenges, Class Groups ───────────────────────────────────────
# Free-form: only the fields the server reasons about are declared

class Goal(CamelModel):
    id: str
    child_id: Optional[str] = None
    created_date: str
    completed: bool = False
    completed_date: Optional[str] = None


class ChallengeParticipant(CamelModel):
    child_id: str
    joined_date: str
    show_on_leaderboard: bool = True


class Challenge(CamelModel):
    id: str
    participants: List[ChallengeParticipant] = Field(default_factory=list)
    created_date: str


class ChallengeJoin(CamelModel):
    child_id: str
    show_on_leaderboard: bool = True


class ClassStudent(CamelModel):
    child_id: str
    joined_date: str
    parent_consent: bool = False


class ClassGroup(CamelModel):
    id: str
    join_code: str
    students: List[ClassStudent] = Field(default_factory=list)
    created_date: str


class ClassGroupJoin(CamelModel):
    join_code: str
    child_id: str
    parent_consent: bool = False


class ChildRef(CamelModel):
    child_id: str


# ── Family & To-Read ──────────────────────────────────────────────────────

class FamilyProfile(CamelModel):
    family_name: Optional[str] = None
    baby_emoji: Optional[str] = None


class ToReadItem(CamelModel):
    id: str
    title: str
    author: Optional[str] = None
    cover_url: Optional[str] = None
    child_id: Optional[str] = None
    added_date: str


class ToReadCreate(CamelModel):
    title: str = ""
    author: Optional[str] = None
    cover_url: Optional[str] = None
    child_id: Optional[str] = None


# ── Aggregate State ───────────────────────────────────────────────────────

class TrackerState(CamelModel):
    scope: str = Field(description="'device' or 'account'")
    children: List[Child]
    logs: List[ReadingLog]
    goals: List[Goal]
    challenges: List[Challenge]
    class_groups: List[ClassGroup]
    family: Optional[FamilyProfile] = None
    to_read: List[ToReadItem]
    orphans_reassigned: int = 0


# ── Voice Entry ───────────────────────────────────────────────────────────

class VoiceEntryRequest(BaseModel):
    transcript: str
    selected_child_id: Optional[str] = None


class VoiceEntryResponse(CamelModel):
    child_id: Optional[str] = None
    book_title: Optional[str] = None
    minutes: Optional[int] = None
    understood: bool
