"""
Tests for evidence quote validation.
"""

from feedback_agent.grading.evidence import bigram_dice, fuzzy_contains, normalize_match_text, validate_evidence_quote

ESSAY = (
    "Inledningsvis beskriver jag hur fotosyntesen fungerar i växternas blad. "
    "Klorofyllet fångar ljuset och energin används för att bygga glukos av koldioxid och vatten. "
    "Därefter diskuterar jag varför syre frigörs som en biprodukt och hur det påverkar atmosfären. "
) * 4


def test_normalize_match_text_folds_quotes_and_case():
    assert normalize_match_text("  “Hej”  ‘du’\n\tDär ") == "\"hej\" 'du' där"


def test_bigram_dice_bounds():
    assert bigram_dice("abcdef", "abcdef") == 1.0
    assert bigram_dice("abc", "xyz") == 0.0
    assert bigram_dice("a", "a") == 1.0
    assert bigram_dice("", "abc") == 0.0


def test_exact_quote_is_valid():
    assert validate_evidence_quote(ESSAY, "Klorofyllet fångar ljuset och energin används för att bygga glukos")


def test_exact_match_ignores_case_and_whitespace():
    assert validate_evidence_quote(ESSAY, "KLOROFYLLET  fångar ljuset\noch energin används")


def test_quote_with_small_drift_is_valid():
    drifted = "Klorofyllet fångar ljuset, och energin används för att bygga glukos av koldioxid o vatten"
    assert drifted.lower() not in ESSAY.lower()
    assert validate_evidence_quote(ESSAY, drifted)


def test_invented_quote_is_rejected():
    assert not validate_evidence_quote(ESSAY, "Mitokondrierna producerar ATP genom oxidativ fosforylering i cellen")


def test_short_quote_is_rejected_even_if_present():
    assert not validate_evidence_quote(ESSAY, "fotosyntesen")
    assert not validate_evidence_quote(ESSAY, "")


def test_fuzzy_contains_short_needle_exact_only():
    assert fuzzy_contains(ESSAY, "fotosyntesen")
    assert not fuzzy_contains(ESSAY, "fotosyntezen")


def test_match_near_end_of_long_text():
    text = ("Utfyllnad om något helt annat. " * 60) + "Slutligen sammanfattar jag att ljusreaktionen kräver vatten."
    assert validate_evidence_quote(text, "Slutligen sammanfattar jag att ljusreaktionen kräver vatten")
    assert validate_evidence_quote(text, "Slutligen sammanfattar jag att ljusreaktionen kraver vatten")
