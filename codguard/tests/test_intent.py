# codguard/tests/test_intent.py
from codguard.domain.states import CallIntent
from codguard.services.intent import classify_intent

def test_keypad_wins():
    assert classify_intent("1", "no cancelar nada", 0.1) is CallIntent.CONFIRMED
    assert classify_intent("2", "sí, confirmo", 0.99) is CallIntent.CANCELLED

def test_confirm_speech():
    assert classify_intent(None, "sí, confirmo", 0.9) is CallIntent.CONFIRMED
    assert classify_intent("", "Va bene, confermo", 0.8) is CallIntent.CONFIRMED

def test_cancel_speech():
    assert classify_intent(None, "no, quiero cancelar", 0.9) is CallIntent.CANCELLED
    assert classify_intent(None, "annullare per favore", 0.7) is CallIntent.CANCELLED

def test_both_sets_match_is_unclear():
    assert classify_intent(None, "no cancelar", 0.9) is CallIntent.UNCLEAR

def test_low_confidence_is_unclear():
    assert classify_intent(None, "sí, confirmo", 0.4) is CallIntent.UNCLEAR

def test_no_keyword_is_unclear():
    assert classify_intent(None, "hola quién es", 0.95) is CallIntent.UNCLEAR

def test_whole_words_only():
    # "bueno" must not count as "no"
    assert classify_intent(None, "bueno", 0.9) is CallIntent.CONFIRMED
