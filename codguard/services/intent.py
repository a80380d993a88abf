"""Keyword classifier for what a customer said (or keyed) on a confirmation call."""
import re
from typing import Optional

from ..domain.states import CallIntent

CONFIRM_DIGIT = "1"
CANCEL_DIGIT = "2"
MIN_CONFIDENCE = 0.6

# Spanish, Italian and English.
CONFIRM_KEYWORDS = frozenset({
    "sí", "si", "yes", "confirmo", "confirmar", "correcto", "vale", "ok",
    "de acuerdo", "perfecto", "adelante", "bueno",
    "no cancelar", "no cancele",
    "sì", "confermo", "confermare", "corretto", "va bene", "esatto", "giusto",
    "non annullare",
})

CANCEL_KEYWORDS = frozenset({
    "no", "cancelar", "cancelo", "cancele", "rechazar", "no quiero", "no gracias",
    "annullare", "annullo", "non voglio", "rifiutare",
    "cancel",
})

def _compile(keywords):
    # whole words / phrases only, so "bueno" never counts as "no"
    alternatives = sorted((re.escape(k) for k in keywords), key=len, reverse=True)
    return re.compile(r"(?<!\w)(?:%s)(?!\w)" % "|".join(alternatives))

_CONFIRM_RE = _compile(CONFIRM_KEYWORDS)
_CANCEL_RE = _compile(CANCEL_KEYWORDS)

def normalize_speech(speech: Optional[str]) -> str:
    return " ".join((speech or "").lower().split())

def classify_intent(digits: Optional[str], speech: Optional[str], confidence: float,
                    min_confidence: float = MIN_CONFIDENCE) -> CallIntent:
    """
    Keypad beats speech; low-confidence speech is never trusted; speech
    that matches both keyword sets (or neither) is unclear.
    """
    d = (digits or "").strip()
    if d == CONFIRM_DIGIT:
        return CallIntent.CONFIRMED
    if d == CANCEL_DIGIT:
        return CallIntent.CANCELLED

    if (confidence or 0.0) < min_confidence:
        return CallIntent.UNCLEAR

    text = normalize_speech(speech)
    has_confirm = bool(_CONFIRM_RE.search(text))
    has_cancel = bool(_CANCEL_RE.search(text))

    if has_confirm and not has_cancel:
        return CallIntent.CONFIRMED
    if has_cancel and not has_confirm:
        return CallIntent.CANCELLED
    return CallIntent.UNCLEAR
