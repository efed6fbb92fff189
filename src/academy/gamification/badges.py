"""Badge catalog: the complete, inspectable rule table evaluated by badge_service.

Every rule is independent and idempotent: it only looks at the BadgeContext,
so evaluation order never changes the outcome. Adding a badge means adding a
row here; the reward engine never special-cases badges.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

# Rule kinds
FIRST_EVENT = "first_event"
COUNTER_THRESHOLD = "counter_threshold"
STREAK_THRESHOLD = "streak_threshold"
LEVEL_THRESHOLD = "level_threshold"
CONTEXT = "context"

TRIGGER_LESSON = "lesson_complete"
TRIGGER_QUIZ = "quiz_complete"
TRIGGER_COURSE = "course_complete"

LEARNING_TRIGGERS = frozenset({TRIGGER_LESSON, TRIGGER_QUIZ})

SPEEDSTER_MAX_DAYS = 7
RISING_STAR_LESSONS_PER_DAY = 3


@dataclass(frozen=True)
class BadgeContext:
    """Everything a badge rule may look at, taken after the event's updates."""

    total_lessons_completed: int
    total_quizzes_completed: int
    total_perfect_quizzes: int
    total_courses_completed: int
    current_streak: int
    level: int
    trigger: str
    local_time: datetime
    lessons_today: int = 0
    course_days_taken: int | None = None


@dataclass(frozen=True)
class BadgeRule:
    slug: str
    name: str
    description: str
    icon: str
    kind: str
    xp_reward: int
    predicate: Callable[[BadgeContext], bool]
    threshold: int | None = None

    def is_satisfied(self, ctx: BadgeContext) -> bool:
        return bool(self.predicate(ctx))

    def to_dict(self) -> dict:
        return {
            "id": self.slug,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "kind": self.kind,
            "threshold": self.threshold,
            "xp_reward": self.xp_reward,
        }


def _counter(slug: str, name: str, description: str, icon: str, field: str,
             threshold: int, xp_reward: int) -> BadgeRule:
    kind = FIRST_EVENT if threshold == 1 else COUNTER_THRESHOLD
    return BadgeRule(
        slug=slug, name=name, description=description, icon=icon, kind=kind,
        xp_reward=xp_reward, threshold=threshold,
        predicate=lambda ctx: getattr(ctx, field) >= threshold,
    )


def _streak(slug: str, name: str, description: str, icon: str, days: int, xp_reward: int) -> BadgeRule:
    return BadgeRule(
        slug=slug, name=name, description=description, icon=icon, kind=STREAK_THRESHOLD,
        xp_reward=xp_reward, threshold=days,
        predicate=lambda ctx: ctx.current_streak >= days,
    )


def _level(slug: str, name: str, description: str, icon: str, level: int, xp_reward: int) -> BadgeRule:
    return BadgeRule(
        slug=slug, name=name, description=description, icon=icon, kind=LEVEL_THRESHOLD,
        xp_reward=xp_reward, threshold=level,
        predicate=lambda ctx: ctx.level >= level,
    )


def _is_night(ctx: BadgeContext) -> bool:
    return ctx.trigger in LEARNING_TRIGGERS and (ctx.local_time.hour >= 21 or ctx.local_time.hour < 5)


def _is_early(ctx: BadgeContext) -> bool:
    return ctx.trigger in LEARNING_TRIGGERS and 5 <= ctx.local_time.hour < 8


def _is_rising_star(ctx: BadgeContext) -> bool:
    return ctx.trigger == TRIGGER_LESSON and ctx.lessons_today >= RISING_STAR_LESSONS_PER_DAY


def _is_speedster(ctx: BadgeContext) -> bool:
    return (
        ctx.trigger == TRIGGER_COURSE
        and ctx.course_days_taken is not None
        and ctx.course_days_taken <= SPEEDSTER_MAX_DAYS
    )


BADGE_CATALOG: list[BadgeRule] = [
    # Lessons
    _counter("first_lesson", "First Step", "Completed your first lesson", "\U0001F476",
             "total_lessons_completed", 1, 0),
    _counter("five_lessons", "Diligent Student", "Completed 5 lessons", "\U0001F4DA",
             "total_lessons_completed", 5, 50),
    _counter("bookworm", "Bookworm", "Completed 50 lessons", "\U0001F41B",
             "total_lessons_completed", 50, 300),
    # Quizzes
    _counter("first_quiz", "First Quiz", "Passed your first quiz", "✅",
             "total_quizzes_completed", 1, 0),
    _counter("perfect_quiz", "Perfect!", "Scored 100% on a quiz", "\U0001F4AF",
             "total_perfect_quizzes", 1, 0),
    _counter("five_perfect", "Sharpshooter", "Scored 100% on 5 quizzes", "\U0001F3AF",
             "total_perfect_quizzes", 5, 150),
    # Streaks
    _streak("streak_3", "On a Roll", "Learned 3 days in a row", "\U0001F525", 3, 25),
    _streak("streak_7", "Week Warrior", "Learned 7 days in a row", "⭐", 7, 100),
    _streak("streak_30", "Unstoppable", "Learned 30 days in a row", "\U0001F3C6", 30, 500),
    # Levels
    _level("level_5", "Advanced", "Reached level 5", "\U0001F3C5", 5, 100),
    _level("level_10", "Legendary", "Reached level 10", "\U0001F451", 10, 250),
    # Courses
    _counter("first_course", "Course Graduate", "Completed a whole course", "\U0001F393",
             "total_courses_completed", 1, 200),
    BadgeRule(
        slug="speedster", name="Speedster", description="Finished a course within a week of starting",
        icon="⚡", kind=CONTEXT, xp_reward=200, threshold=SPEEDSTER_MAX_DAYS, predicate=_is_speedster,
    ),
    # Habits
    BadgeRule(
        slug="rising_star", name="Rising Star", description="Completed 3 lessons in one day",
        icon="\U0001F31F", kind=CONTEXT, xp_reward=75, threshold=RISING_STAR_LESSONS_PER_DAY,
        predicate=_is_rising_star,
    ),
    BadgeRule(
        slug="night_owl", name="Night Owl", description="Learned after 21:00",
        icon="\U0001F989", kind=CONTEXT, xp_reward=30, predicate=_is_night,
    ),
    BadgeRule(
        slug="early_bird", name="Early Bird", description="Learned before 08:00",
        icon="\U0001F305", kind=CONTEXT, xp_reward=30, predicate=_is_early,
    ),
]

BADGES_BY_SLUG: dict[str, BadgeRule] = {b.slug: b for b in BADGE_CATALOG}

if len(BADGES_BY_SLUG) != len(BADGE_CATALOG):
    raise RuntimeError("Duplicate badge slug in BADGE_CATALOG")


def get_badge(slug: str) -> BadgeRule | None:
    return BADGES_BY_SLUG.get(slug)
