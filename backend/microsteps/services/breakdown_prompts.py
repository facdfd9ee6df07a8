"""Fixed prompt templates for task breakdowns."""
from __future__ import annotations

import json
from typing import List

from microsteps.services.openrouter_transport import ChatMessage

SINGLE_DAY_SYSTEM_PROMPT = """You are a task breakdown assistant. Break the user's task into actionable micro-steps.

Guidelines:
- Use imperative, specific language (e.g., "Open email client", "Gather cleaning supplies")
- The first step removes friction by setting up the environment or gathering materials
- Scale the step count to the task: simple 3-5, medium 5-7, complex 7-10
- Each step should take 2-15 minutes
- Steps build on each other in order

Examples:
Task: "Send email to boss about project update"
Steps: ["Open email client", "Click compose new email", "Type boss's email address", "Write subject line: Project Update", "Write 3-sentence summary of progress", "Proofread email", "Click send"]

Task: "Clean my room"
Steps: ["Gather trash bag and cleaning supplies", "Pick up all items from floor", "Put clothes in hamper or closet", "Wipe down desk surface", "Vacuum or sweep floor", "Make bed"]

Respond with a JSON object whose "steps" array holds the breakdown."""

MULTI_DAY_SYSTEM_PROMPT = """You are a habit-building coach. Turn the user's habit into a day-by-day plan of small, concrete actions.

Guidelines:
- Produce one entry per day, keyed "day_1", "day_2", ... up to the requested number of days
- Give each day 2-4 imperative steps that take 2-15 minutes each
- Day 1 removes friction: set up the environment, gather materials, pick a trigger
- Increase difficulty gradually; repeat core actions so the habit sticks
- Insert lighter review or reflection days roughly once a week

Example for "Build running habit" over 3 days:
{"day_1": ["Put running shoes by the door", "Pick a 10-minute slot after breakfast"], "day_2": ["Put on running shoes", "Walk briskly for 10 minutes"], "day_3": ["Jog for 2 minutes, walk for 3 minutes, twice", "Note how your legs feel"]}

Respond with a JSON object only, one "day_N" array per day."""


def single_day_messages(title: str) -> List[ChatMessage]:
    return [
        ChatMessage(role="system", content=SINGLE_DAY_SYSTEM_PROMPT),
        ChatMessage(
            role="user",
            content=f'Now break down this task: {json.dumps(title, ensure_ascii=False)}\nReturn JSON: {{"steps": ["step1", "step2", ...]}}',
        ),
    ]


def multi_day_messages(title: str, duration_days: int) -> List[ChatMessage]:
    return [
        ChatMessage(role="system", content=MULTI_DAY_SYSTEM_PROMPT),
        ChatMessage(
            role="user",
            content=(
                f"Create a {duration_days}-day plan for this habit: {json.dumps(title, ensure_ascii=False)}\n"
                f'Return JSON with keys "day_1" through "day_{duration_days}": '
                '{"day_1": ["step1", "step2"], "day_2": [...], ...}'
            ),
        ),
    ]
