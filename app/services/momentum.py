from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from app.services.streak_record import DayRecord


@dataclass(frozen=True)
class MilestoneConfig:
    threshold: int
    message: str
    countdown: bool = True


MILESTONE_CONFIG = [
    MilestoneConfig(1, "Great start! Learning something new every day builds powerful habits. 🚀", countdown=False),
    MilestoneConfig(2, "Two days in a row! You're building momentum. Keep going! 💪", countdown=False),
    MilestoneConfig(3, "3-day streak! You're forming a solid learning routine. 🌟", countdown=False),
    MilestoneConfig(5, "5 days! You're becoming a consistent learner. Amazing work! 🎯", countdown=False),
    MilestoneConfig(7, "One week streak! You've built a strong learning habit. 🏆"),
    MilestoneConfig(14, "Two weeks! Your dedication is inspiring. Keep crushing it! 🔥"),
    MilestoneConfig(21, "21 days! You've officially formed a learning habit. Legend! ⚡"),
    MilestoneConfig(30, "30 DAY STREAK! You're a learning machine! Incredible! 🎉"),
    MilestoneConfig(50, "50 days! You're in the top 1% of consistent learners! 🌈"),
    MilestoneConfig(100, "100 DAY STREAK! You're a learning superstar! Unstoppable! 💎"),
]

MILESTONE_MESSAGES = {milestone.threshold: milestone.message for milestone in MILESTONE_CONFIG}
COUNTDOWN_MILESTONES = [milestone.threshold for milestone in MILESTONE_CONFIG if milestone.countdown]

GENERIC_MESSAGES = [
    "Keep the streak alive! Every day counts. 🌟",
    "Your consistency is paying off! 🚀",
    "Learning every day is the secret to mastery. 💪",
    "You're building an incredible skill - consistency! 🔥",
    "The compound effect of daily learning is powerful! ⚡",
]


def next_milestone(current_streak: int) -> int | None:
    return next((m for m in COUNTDOWN_MILESTONES if m > current_streak), None)


def motivational_message(current_streak: int, rng: random.Random | None = None) -> str:
    if current_streak in MILESTONE_MESSAGES:
        return MILESTONE_MESSAGES[current_streak]

    milestone = next_milestone(current_streak)
    if milestone is not None:
        days_to_go = milestone - current_streak
        unit = "day" if days_to_go == 1 else "days"
        return f"Only {days_to_go} {unit} until your {milestone}-day streak! Keep going! 🎯"

    return (rng or random).choice(GENERIC_MESSAGES)


def last_n_days(today: date, n: int) -> list[date]:
    return [today - timedelta(days=offset) for offset in range(n - 1, -1, -1)]


def weekly_pattern(history: Iterable[DayRecord], today: date) -> list[dict]:
    by_date = {entry.date: entry for entry in history}
    pattern = []
    for day in last_n_days(today, 7):
        entry = by_date.get(day)
        pattern.append(
            {
                "date": day.isoformat(),
                "day": day.strftime("%a"),
                "learned": entry is not None,
                "duration": entry.duration if entry is not None else 0,
            }
        )
    return pattern
