"""System prompt construction and history shaping for the completion call."""

from __future__ import annotations

from typing import Dict, List, Sequence

from mftgateway.api.schemas import ChatMessage, PersonalityTraits

TRAIT_THRESHOLD = 3
MAX_HISTORY_MESSAGES = 10

_PROMPTS: Dict[str, Dict[str, str]] = {
    "english": {
        "base": "You are a helpful and friendly teacher assistant helping students learn.",
        "humor": " Use humor to make learning more enjoyable.",
        "seriousness": " Focus on academic content and accuracy.",
        "professionalism": " Maintain a formal and professional tone.",
        "closing": " Always respond in English.",
    },
    "hebrew": {
        "base": "אתה מורה עוזר וידידותי שעוזר לתלמידים ללמוד.",
        "humor": " השתמש בהומור כדי להפוך את הלמידה למהנה יותר.",
        "seriousness": " התמקד בתוכן הלימודי ובדיוק.",
        "professionalism": " שמור על טון פורמלי ומקצועי.",
        "closing": " תמיד ענה בעברית.",
    },
}

# Evaluation order of the trait gates. mockery has no fragment.
GATED_TRAITS = ("humor", "seriousness", "professionalism")


def build_system_prompt(language: str, personality: PersonalityTraits) -> str:
    fragments = _PROMPTS[language]
    parts = [fragments["base"]]
    for trait in GATED_TRAITS:
        if getattr(personality, trait) > TRAIT_THRESHOLD:
            parts.append(fragments[trait])
    parts.append(fragments["closing"])
    return "".join(parts)


def shape_history(
    messages: Sequence[ChatMessage],
    system_prompt: str,
    *,
    limit: int = MAX_HISTORY_MESSAGES,
) -> List[dict]:
    """Keep the most recent ``limit`` turns, mapped to provider roles."""
    shaped = [{"role": "system", "content": system_prompt}]
    for message in list(messages)[-limit:]:
        shaped.append(
            {
                "role": "user" if message.is_user else "assistant",
                "content": message.content,
            }
        )
    return shaped
