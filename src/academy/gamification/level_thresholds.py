"""Level thresholds and computation.

Level N requires sum(i * 100 for i in 1..N-1) cumulative XP (triangular growth).
These values are served to the frontend through GET /api/v1/gamification/config,
so the dashboard never hardcodes its own copy.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

LEVEL_THRESHOLDS: list[dict] = [
    {"level": 1, "name": "Beginner", "icon": "\U0001F331", "min_xp": 0},
    {"level": 2, "name": "Explorer", "icon": "\U0001F50D", "min_xp": 100},
    {"level": 3, "name": "Coder", "icon": "\U0001F4BB", "min_xp": 300},
    {"level": 4, "name": "Builder", "icon": "\U0001F6E0", "min_xp": 600},
    {"level": 5, "name": "Expert", "icon": "\U0001F680", "min_xp": 1000},
    {"level": 6, "name": "Architect", "icon": "\U0001F3D7", "min_xp": 1500},
    {"level": 7, "name": "Hacker", "icon": "⚡", "min_xp": 2100},
    {"level": 8, "name": "Mentor", "icon": "\U0001F9ED", "min_xp": 2800},
    {"level": 9, "name": "Master", "icon": "\U0001F451", "min_xp": 3600},
    {"level": 10, "name": "Legend", "icon": "⭐", "min_xp": 4500},
]

MAX_LEVEL: int = LEVEL_THRESHOLDS[-1]["level"]


@dataclass(frozen=True)
class LevelInfo:
    level: int
    name: str
    icon: str
    min_xp: int
    next_level: int | None
    next_level_min_xp: int | None
    xp_to_next: int
    progress_percent: int

    def to_dict(self) -> dict:
        return asdict(self)


def validate_thresholds(table: list[dict] = LEVEL_THRESHOLDS) -> None:
    """Raise ValueError unless levels are 1..N with strictly increasing min_xp starting at 0."""
    if not table or table[0]["min_xp"] != 0:
        raise ValueError("Level table must start at 0 XP")
    for i, entry in enumerate(table):
        if entry["level"] != i + 1:
            raise ValueError(f"Level table has a gap at position {i}: level {entry['level']}")
        if i and entry["min_xp"] <= table[i - 1]["min_xp"]:
            raise ValueError(f"Level {entry['level']} threshold is not above level {entry['level'] - 1}")


validate_thresholds()


def level_for_xp(total_xp: int) -> LevelInfo:
    """Compute level info from cumulative XP. Pure: same XP, same answer."""
    xp = max(0, total_xp)

    index = 0
    for i, entry in enumerate(LEVEL_THRESHOLDS):
        if xp >= entry["min_xp"]:
            index = i
        else:
            break

    current = LEVEL_THRESHOLDS[index]

    # Max level: nothing left to earn
    if index == len(LEVEL_THRESHOLDS) - 1:
        return LevelInfo(
            level=current["level"],
            name=current["name"],
            icon=current["icon"],
            min_xp=current["min_xp"],
            next_level=None,
            next_level_min_xp=None,
            xp_to_next=0,
            progress_percent=100,
        )

    nxt = LEVEL_THRESHOLDS[index + 1]
    span = nxt["min_xp"] - current["min_xp"]
    progress = (100 * (xp - current["min_xp"])) // span

    return LevelInfo(
        level=current["level"],
        name=current["name"],
        icon=current["icon"],
        min_xp=current["min_xp"],
        next_level=nxt["level"],
        next_level_min_xp=nxt["min_xp"],
        xp_to_next=nxt["min_xp"] - xp,
        progress_percent=min(100, max(0, progress)),
    )


def level_number(total_xp: int) -> int:
    """Shortcut for callers that only need the level number."""
    return level_for_xp(total_xp).level
