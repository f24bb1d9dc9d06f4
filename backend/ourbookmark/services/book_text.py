"""
OurBookmark Backend: Book Text Helpers
=======================================

What:  Small, pure string helpers shared by the tracker, search and
       reading-room services.

Contents:
    split_title_author   "Matilda by Roald Dahl" → ("Matilda", "Roald Dahl")
    hash_color           stable spine colour pair for a title
    spine_height         stable spine height (110-159px) for a title
    hi_res_cover         larger Google Books thumbnail
    best_cover           ISBNdb image, or Open Library when it is a placeholder
    looks_like_isbn      "978-0-14-241034-6" style queries
    looks_like_author    "roald dahl" style queries (2-3 name-like words)
    is_junk_edition      study guides, summaries, box sets...
    amazon/bookshop/libby_link   store links with affiliate tags
    parse_spoken_entry   "emma charlotte's web twenty minutes"
    format_minutes       95 → "1hr 35min"

Hashes use the same 32-bit signed arithmetic over UTF-16 code units as the
browser, so a title gets the same colour on both sides.
"""

import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote

from ourbookmark.config import settings

# ── Spine Palette ─────────────────────────────────────────────────────────
SPINE_COLORS: List[Tuple[str, str]] = [
    ("#C4873A", "#E8A85C"), ("#6B8F71", "#92B89A"), ("#D4826A", "#E8A090"),
    ("#8B6BAE", "#A98CC8"), ("#4A7FA5", "#6EA4C8"), ("#5C7A5C", "#7A9E7A"),
    ("#B5634A", "#D4846A"), ("#4A6A8B", "#6A8BAA"), ("#9B7B4A", "#C4A068"),
    ("#7A5C8B", "#9E7AAE"), ("#5C8B7A", "#7AAAA0"), ("#8B5C4A", "#AA7A68"),
]

# ── Search Heuristics ─────────────────────────────────────────────────────
ISBN_LIKE = re.compile(r"^[\d\-\s]{10,17}$")
NAME_WORD = re.compile(r"^[a-zA-Z'.()\-]+$")

JUNK_KEYWORDS = (
    "summary", "analysis", "guide", "workbook", "boxed set", "phenomenon",
    "biography", "study", "business", "leadership", "companion", "unofficial",
)
JUNK_CATEGORIES = ("business", "study")

COVER_PLACEHOLDER = "image_not_available"

# ── Voice Entry ───────────────────────────────────────────────────────────
NUMBER_WORDS: Dict[str, int] = {
    "five": 5, "ten": 10, "fifteen": 15, "twenty": 20,
    "thirty": 30, "forty": 40, "fifty": 50, "sixty": 60,
}

_MINUTE_PATTERNS = (
    re.compile(r"(\d+)\s*minutes?", re.IGNORECASE),
    re.compile(r"(\d+)\s*mins?", re.IGNORECASE),
    re.compile(r"(sixty|twenty|thirty|forty|fifty|fifteen|ten|five)\s*minutes?", re.IGNORECASE),
    re.compile(r"half\s*hour", re.IGNORECASE),
    re.compile(r"(\d+)"),
)


# ══════════════════════════════════════════════════════════════════════════
# Titles
# ══════════════════════════════════════════════════════════════════════════

def split_title_author(text: Optional[str]) -> Tuple[str, Optional[str]]:
    """
    Split free text on the first " by ".

    Everything after the first separator is the author, so
    "Stand by Me by Ben E. King" → ("Stand", "Me by Ben E. King"). That is
    the long-standing behaviour users' data was created with.
    """
    cleaned = (text or "").strip()
    parts = cleaned.split(" by ")
    title = parts[0].strip()
    if len(parts) > 1:
        author = " by ".join(parts[1:]).strip()
        return title, author or None
    return title, None


def title_only(text: Optional[str]) -> str:
    return split_title_author(text)[0]


def format_minutes(minutes: int) -> str:
    if minutes >= 60:
        rest = minutes % 60
        label = f"{minutes // 60}hr {f'{rest}min' if rest > 0 else ''}"
        return label.strip()
    return f"{minutes} min"


# ══════════════════════════════════════════════════════════════════════════
# Spine Decoration
# ══════════════════════════════════════════════════════════════════════════

def _utf16_units(text: str) -> Iterable[int]:
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _rolling_hash(text: Optional[str], multiplier: int) -> int:
    h = 0
    for unit in _utf16_units(text or ""):
        h = _to_int32(h * multiplier + unit)
    return h


def hash_color(title: Optional[str]) -> Tuple[str, str]:
    return SPINE_COLORS[abs(_rolling_hash(title, 31)) % len(SPINE_COLORS)]


def spine_height(title: Optional[str]) -> int:
    return 110 + abs(_rolling_hash(title, 17)) % 50


def hi_res_cover(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    return url.replace("zoom=1", "zoom=0", 1).replace("&edge=curl", "", 1)


def best_cover(
    image: Optional[str],
    isbn13: Optional[str] = None,
    isbn10: Optional[str] = None,
) -> Optional[str]:
    """ISBNdb image unless it is the placeholder; else Open Library by ISBN."""
    if image and COVER_PLACEHOLDER not in image:
        return image
    isbn = isbn13 or isbn10
    if isbn:
        return f"{settings.open_library_covers_host}/b/isbn/{isbn}-M.jpg"
    return None


# ══════════════════════════════════════════════════════════════════════════
# Query Classification & Result Filtering
# ══════════════════════════════════════════════════════════════════════════

def looks_like_isbn(query: str) -> bool:
    return bool(ISBN_LIKE.match(query.strip()))


def looks_like_author(query: str) -> bool:
    """Two or three name-like words and not an ISBN."""
    q = query.strip()
    if not q or looks_like_isbn(q):
        return False
    words = q.split()
    return 2 <= len(words) <= 3 and all(NAME_WORD.match(w) for w in words)


def is_junk_edition(title: str, categories: Sequence[str] = ()) -> bool:
    lowered = (title or "").lower()
    if any(keyword in lowered for keyword in JUNK_KEYWORDS):
        return True
    for category in categories:
        if any(junk in category.lower() for junk in JUNK_CATEGORIES):
            return True
    return False


def dedupe_by_title(items: Iterable[dict], key: str = "title") -> List[dict]:
    seen = set()
    unique = []
    for item in items:
        normalized = (item.get(key) or "").strip().lower()
        if normalized in seen:
            continue
        seen.add(normalized)
        unique.append(item)
    return unique


# ══════════════════════════════════════════════════════════════════════════
# Store Links
# ══════════════════════════════════════════════════════════════════════════

def _encode(value: str) -> str:
    """Percent-encode like the browser's encodeURIComponent."""
    return quote(value, safe="!~*'()")


def amazon_link(
    title: Optional[str],
    isbn13: Optional[str] = None,
    isbn10: Optional[str] = None,
    tag: Optional[str] = None,
) -> str:
    q = isbn13 or isbn10 or title or ""
    affiliate = tag or settings.amazon_fallback_tag
    return f"https://www.amazon.com/s?k={_encode(q)}&tag={_encode(affiliate)}"


def bookshop_link(title: Optional[str], tag: Optional[str] = None) -> str:
    base = f"https://bookshop.org/search?keywords={_encode(title or '')}"
    return f"{base}&a_aid={_encode(tag)}" if tag else base


def libby_link(title: Optional[str]) -> str:
    return f"https://www.overdrive.com/search?q={_encode(title or '')}"


# ══════════════════════════════════════════════════════════════════════════
# Voice Entry
# ══════════════════════════════════════════════════════════════════════════

def _spoken_minutes(transcript: str) -> Optional[int]:
    for pattern in _MINUTE_PATTERNS:
        match = pattern.search(transcript)
        if not match:
            continue
        if "half" in match.group(0).lower():
            return 30
        token = match.group(1).lower()
        return NUMBER_WORDS.get(token) or int(token)
    return None


def parse_spoken_entry(
    transcript: str,
    children: Sequence[Tuple[str, str]],
    selected_child_id: Optional[str] = None,
) -> Tuple[Optional[str], Optional[str], Optional[int]]:
    """
    Pull (child_id, title, minutes) out of a dictated phrase.

    Args:
        transcript: Speech-to-text output, e.g. "emma read charlotte's web for 20 minutes"
        children: (id, name) pairs to match names against
        selected_child_id: Returned when no name is heard
    """
    spoken = transcript.lower().strip()
    minutes = _spoken_minutes(spoken)

    child_id = selected_child_id
    for cid, name in children:
        if name and name.lower() in spoken:
            child_id = cid
            break

    title = spoken
    for _, name in children:
        if name:
            title = title.replace(name.lower(), "", 1)
    title = re.sub(r"\d+\s*minutes?", "", title, flags=re.IGNORECASE)
    title = re.sub(r"\d+\s*mins?", "", title, flags=re.IGNORECASE)
    title = re.sub(
        r"(sixty|twenty|thirty|forty|fifty|fifteen|ten|five)\s*minutes?", "", title,
        flags=re.IGNORECASE,
    )
    title = re.sub(r"half\s*hour", "", title, flags=re.IGNORECASE)
    title = re.sub(r"\bfor\s*$", "", title.strip(), flags=re.IGNORECASE)
    title = re.sub(r"\bread\b\s*", "", title, flags=re.IGNORECASE)
    title = " ".join(title.split())

    if title:
        title = " ".join(word[:1].upper() + word[1:] for word in title.split(" "))

    return child_id, title or None, minutes
