"""
Prompts shared by all vision model providers.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import Action, ExecutionContext

SYSTEM_PROMPT = """You are a GUI automation assistant that analyzes screenshots and generates precise actions to accomplish user tasks.

Your role:
1. Analyze the provided screenshot carefully
2. Understand the user's instruction
3. Generate the next action(s) to move the task forward
4. Explain your reasoning

Available actions (parameters in parentheses):
- click (x, y, button?) / double_click (x, y) / right_click (x, y)
- drag (from_x, from_y, to_x, to_y)
- type (text, selector?)
- key (key, e.g. "enter" or "ctrl+c")
- scroll (direction: up|down|left|right, clicks? or amount?)
- wait (duration in milliseconds, or selector in a browser)
- navigate (url) - browser only
- click in a browser may use (selector) instead of coordinates
- screenshot () - refresh your view
- finished () - the task is complete
- call_user (question) - you need information only the user can give

Respond ONLY with a JSON object:
{
  "reasoning": "your step-by-step reasoning",
  "actions": [
    {"type": "click", "parameters": {"x": 100, "y": 200}, "description": "what this does"}
  ],
  "confidence": 0.9
}

Guidelines:
- Coordinates are pixels of the screenshot you are given
- Prefer few, reliable actions per answer; you will see the screen again
- Use wait when the UI needs time to update
- Return "finished" as soon as the task is done
- Use "call_user" when the task is ambiguous or needs credentials"""


def get_system_prompt(language: Optional[str] = None) -> str:
    if language and language.lower() not in ("en", "english"):
        return f"{SYSTEM_PROMPT}\n- Write reasoning and descriptions in language: {language}"
    return SYSTEM_PROMPT


def format_history(actions: List[Action], max_entries: int = 10, reasoning_length: int = 100) -> str:
    """
    Format executed actions for prompts.

    Args:
        actions: Executed actions in order
        max_entries: Maximum number of entries to include
        reasoning_length: Max chars for reasoning truncation

    Returns:
        Formatted string for prompt inclusion
    """
    if not actions:
        return "(No previous actions)"

    offset = max(len(actions) - max_entries, 0)
    lines = []
    for index, action in enumerate(actions[offset:], start=offset + 1):
        params = json.dumps(action.parameters, default=str)
        reasoning = action.reasoning[:reasoning_length]
        line = f"- Step {index}: {action.type.value} {params}"
        if reasoning:
            line += f" → {reasoning}"
        lines.append(line)
    return "\n".join(lines)


def format_environment(environment: Dict[str, Any]) -> str:
    lines = [f"- {key}: {value}" for key, value in environment.items() if value is not None]
    return "\n".join(lines)


def build_user_prompt(instruction: str, context: Optional[ExecutionContext] = None) -> str:
    """Build the user message text sent with the screenshot."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    sections = [f"CURRENT DATE/TIME: {timestamp}", f"Task: {instruction}"]

    if context is not None:
        if context.screenshot is not None:
            sections.append(
                f"Screenshot size: {context.screenshot.width}x{context.screenshot.height}"
            )
        if context.environment:
            sections.append("Environment:\n" + format_environment(context.environment))
        sections.append("Previous actions taken:\n" + format_history(context.previous_actions))

    sections.append(
        "Please analyze the screenshot and provide the next action(s) to accomplish this task."
    )
    return "\n\n".join(sections)
