"""
Prompt and context serialization for the remote backend.
"""

import json
from datetime import datetime

from dayplanner import config
from dayplanner.models import Utterance
from dayplanner.store import MindSnapshot

INTERPRETER_PROMPT = """You are the planning engine of a personal day planner. Read the user's
message and decide what they want: schedule an event, create a goal, pillar or chain,
edit an existing goal or pillar, get activity suggestions, or just chat.

Context (JSON):
{context}

Reply with a short sentence for the user, followed by ONE JSON object:
{{
  "response": "text shown to the user",
  "action_type": "create_event | create_goal | create_pillar | create_chain | suggest_activities | general_chat | edit_mind",
  "confidence": 0.0-1.0,
  "summary": "one line describing the changes",
  "suggestions": [{{"title": "...", "explanation": "...", "duration_minutes": 30, "energy": "sunrise | daylight | moonlight", "emoji": "...", "confidence": 0.8}}],
  "event": {{"title": "...", "duration_minutes": 60, "energy": "daylight", "emoji": "...", "start": "ISO-8601 or null"}},
  "goal": {{"title": "...", "description": "...", "emoji": "...", "importance": 1-5, "pillar_names": []}},
  "pillar": {{"name": "...", "description": "...", "emoji": "...", "frequency": "daily | weekly | monthly | as_needed | Nx per week", "wisdom": "...", "values": [], "habits": [], "constraints": [], "quiet_hours": [{{"start": "HH:MM", "end": "HH:MM"}}]}},
  "chain": {{"name": "...", "emoji": "...", "flow_pattern": "waterfall | spiral | wave | ripple", "blocks": [{{"title": "...", "duration_minutes": 25, "energy": "daylight", "emoji": "..."}}]}},
  "commands": [
    {{"type": "update_goal", "goal_id": "...", "goal_title": "...", "updates": {{"title": "...", "description": "...", "emoji": "...", "importance": 3, "focus": "..."}}}},
    {{"type": "update_pillar", "pillar_id": "...", "pillar_name": "...", "updates": {{"values": [], "habits": [], "constraints": [], "quiet_hours": [], "wisdom": "...", "frequency": "..."}}}},
    {{"type": "add_node", "goal_id": "...", "node": {{"title": "...", "type": "subgoal | task | note | resource | metric", "detail": "...", "pinned": false}}, "link_to_title": null}},
    {{"type": "link_nodes", "goal_id": "...", "from_title": "...", "to_title": "...", "label": "..."}},
    {{"type": "pin_node", "goal_id": "...", "node_title": "...", "pinned": true}},
    {{"type": "ask_clarification", "question": "..."}}
  ]
}}

Rules:
- Include only the keys that apply. Durations are minutes.
- Use ids from the context when referring to existing goals and pillars.
- If a deadline is mentioned ("by October"), put it in the goal description.
- If the request is unclear, use a single ask_clarification command.

User message:
---
{message}
---"""


def build_context(
    utterance: Utterance,
    snapshot: MindSnapshot,
    pending_clarification: str | None = None,
    energy: str | None = None,
    mood: str | None = None,
) -> dict:
    """Compact, JSON-serializable view of the planner state."""
    reference = utterance.reference
    context = {
        "current_date": reference.strftime("%A, %B %d, %Y"),
        "current_time": reference.strftime("%H:%M"),
        "energy": energy or config.DEFAULT_ENERGY,
        "mood": mood or config.DEFAULT_MOOD,
        "goals": [
            {
                "id": goal.id,
                "title": goal.title,
                "description": goal.description,
                "emoji": goal.emoji,
                "importance": goal.importance,
                "pinned_nodes": goal.pinned_node_titles,
                "nodes": [node.title for node in goal.nodes][:10],
            }
            for goal in snapshot.goals
        ],
        "pillars": [
            {
                "id": pillar.id,
                "name": pillar.name,
                "description": pillar.description,
                "frequency": pillar.frequency,
                "wisdom": pillar.wisdom,
                "values": pillar.values,
                "habits": pillar.habits,
                "constraints": pillar.constraints,
                "quiet_hours": [window.format() for window in pillar.quiet_hours],
            }
            for pillar in snapshot.pillars
        ],
        "chains": [
            {"id": chain.id, "name": chain.name, "blocks": len(chain.blocks), "flow_pattern": chain.flow_pattern.value}
            for chain in snapshot.chains
        ],
        "todays_blocks": [
            {"title": block.title, "start": block.start.strftime("%H:%M"), "end": block.end.strftime("%H:%M")}
            for block in snapshot.blocks_on(reference.date())
        ],
    }
    if pending_clarification:
        context["answering_question"] = pending_clarification
    if utterance.insights:
        context["insights"] = list(utterance.insights)
    return context


def build_prompt(
    utterance: Utterance,
    snapshot: MindSnapshot,
    pending_clarification: str | None = None,
) -> str:
    context = build_context(utterance, snapshot, pending_clarification)
    return INTERPRETER_PROMPT.format(
        context=json.dumps(context, indent=2, ensure_ascii=False, default=_json_default),
        message=utterance.text[:2000],
    )


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
