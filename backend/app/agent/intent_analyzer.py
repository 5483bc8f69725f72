"""
Intent Analyzer - Lexical buying-intent scoring

Architecture:
1. Normalize the message (lowercase, no accents)
2. Buying intent = weighted sum of keyword-category hits, capped at 1.0
3. Concerns = categories whose keywords appear as substrings
4. Topics = questions the customer asked
5. Suggest the next step (express checkout when this message alone shows high intent)

Stateless per call: the caller passes the session's accumulated intent and
keeps the running max. No model, no I/O; every score can be explained by
the keywords that produced it.

Returns MessageAnalysis:
{
    "buying_intent": float,        # this message, 0..1
    "concerns": ["price", ...],
    "topics": ["Combien coûte la livraison ?"],
    "ready_to_buy": bool,          # accumulated intent > READY_TO_BUY_THRESHOLD
    "needs_more_info": bool,
    "suggested_next_step": ConversationStep,
    "matched_keywords": [...]
}
"""
import re
import logging
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field

from .conversation_state import (
    BUYING_INTENT_KEYWORDS,
    CONCERN_KEYWORDS,
    ENGAGEMENT_STEPS,
    INTENT_WEIGHTS,
    QUANTITY_WORDS,
    QUESTION_OPENERS,
    ConversationStep,
)
from app.services.text_utils import contains_phrase, normalize_text

logger = logging.getLogger(__name__)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")


@dataclass(frozen=True)
class IntentThresholds:
    ready_to_buy: float = 0.7
    express_checkout: float = 0.3


class MessageAnalysis(BaseModel):
    buying_intent: float
    concerns: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    ready_to_buy: bool = False
    needs_more_info: bool = False
    suggested_next_step: ConversationStep
    matched_keywords: List[str] = Field(default_factory=list)


def analyze_message(
    text: str,
    current_step: ConversationStep = ConversationStep.INITIAL_ENGAGEMENT,
    prior_intent: float = 0.0,
    thresholds: Optional[IntentThresholds] = None,
) -> MessageAnalysis:
    """Score one customer message against the keyword tables."""
    thresholds = thresholds or IntentThresholds()
    normalized = normalize_text(text)

    score, matched = score_buying_intent(normalized)
    concerns = detect_concerns(normalized)
    topics = extract_questions(text)

    accumulated = max(prior_intent, score)
    ready_to_buy = accumulated > thresholds.ready_to_buy
    needs_more_info = bool(concerns) or bool(topics)

    # This message's own score, not the running max
    if current_step in ENGAGEMENT_STEPS and score >= thresholds.express_checkout:
        suggested = ConversationStep.COLLECT_NAME
    elif current_step == ConversationStep.INITIAL_ENGAGEMENT:
        suggested = ConversationStep.PRODUCT_ENGAGEMENT
    else:
        suggested = current_step

    logger.debug(
        f"[IntentAnalyzer] score={score:.2f} accumulated={accumulated:.2f} "
        f"concerns={concerns} matched={matched}"
    )

    return MessageAnalysis(
        buying_intent=score,
        concerns=concerns,
        topics=topics,
        ready_to_buy=ready_to_buy,
        needs_more_info=needs_more_info,
        suggested_next_step=suggested,
        matched_keywords=matched,
    )


def score_buying_intent(normalized: str) -> tuple:
    """Each trigger phrase counts once; returns (score, matched phrases)."""
    score = 0.0
    matched = []
    for level, keywords in BUYING_INTENT_KEYWORDS.items():
        weight = INTENT_WEIGHTS[level]
        for kw in keywords:
            if contains_phrase(normalized, kw):
                score += weight
                matched.append(kw)
    return min(round(score, 4), 1.0), matched


def detect_concerns(normalized: str) -> List[str]:
    return [
        category
        for category, keywords in CONCERN_KEYWORDS.items()
        if any(normalize_text(kw) in normalized for kw in keywords)
    ]


def extract_questions(text: str) -> List[str]:
    """Sentences ending with '?' or opening with a question word."""
    questions = []
    for sentence in _SENTENCE_SPLIT.split(text or ""):
        sentence = sentence.strip()
        if not sentence:
            continue
        normalized = normalize_text(sentence)
        if sentence.endswith("?") or any(
            normalized.startswith(normalize_text(opener) + " ") for opener in QUESTION_OPENERS
        ):
            questions.append(sentence)
    return questions


def extract_quantity(text: str) -> Optional[int]:
    """Extract a quantity from text ("2", "deux boîtes", "j'en veux 3")."""
    normalized = normalize_text(text)

    match = re.search(r"\b(\d{1,4})\b", normalized)
    if match:
        return int(match.group(1))

    # Use word boundaries to prevent false matches ("une" in "aucune")
    for word, num in QUANTITY_WORDS.items():
        if contains_phrase(normalized, word):
            return num

    return None
