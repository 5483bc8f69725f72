from app.payments.currency import format_fcfa, is_valid_amount, to_minor_units, xof_to_eur_cents
from app.services.text_utils import contains_phrase, matches_any, normalize_text


class TestNormalizeText:
    def test_accents_case_and_whitespace(self):
        assert normalize_text("  Thiès ") == "thies"
        assert normalize_text("SAINT-LOUIS") == "saint-louis"
        assert normalize_text("Je  veux   l’acheter") == "je veux l'acheter"

    def test_empty(self):
        assert normalize_text("") == ""
        assert normalize_text(None) == ""


class TestPhraseMatching:
    def test_whole_word_only(self):
        assert contains_phrase("je veux acheter", "acheter")
        assert not contains_phrase("aucune idee", "une")

    def test_keywords_are_normalized(self):
        assert contains_phrase("c'est interessant, je suis interessee", "intéressée")
        assert matches_any("paiement a la livraison", ["carte", "à la livraison"])


class TestCurrency:
    def test_fcfa_formatting(self):
        assert format_fcfa(2500) == "2 500 FCFA"
        assert format_fcfa(0) == "0 FCFA"
        assert format_fcfa(14900.4) == "14 900 FCFA"

    def test_xof_to_eur_cents(self):
        assert xof_to_eur_cents(655.957, rate=655.957) == 100
        assert to_minor_units(6559.57, "XOF", rate=655.957) == 1000
        assert to_minor_units(12.5, "eur") == 1250

    def test_amount_range(self):
        assert is_valid_amount(1)
        assert not is_valid_amount(0)
        assert not is_valid_amount(-5)
        assert not is_valid_amount(None)
        assert not is_valid_amount(10_000_001)
