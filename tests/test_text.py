"""Tests for text utilities."""

from consilium.utils.text import contains_any, extract_json_block, is_negated, keywords


class TestKeywords:

    def test_drops_stopwords_and_short_tokens(self):
        assert keywords("Is the patient at risk of a fall?") == frozenset({"risk", "fall"})

    def test_word_order_and_case_do_not_matter(self):
        assert keywords("Central sensitization likely") == keywords("likely central SENSITIZATION.")

    def test_hyphens_split(self):
        assert "injury" in keywords("fear of re-injury")


class TestNegation:

    def test_negation_cues(self):
        assert is_negated("Radiculopathy ruled out")
        assert is_negated("No nerve involvement")
        assert not is_negated("Nerve involvement likely")

    def test_cues_match_whole_words_only(self):
        assert not is_negated("Nonetheless improving")
        assert not is_negated("Casino trip last week")
        assert not is_negated("Cannot sit for long")
        assert is_negated("Not improving")

    def test_phrase_cues_tolerate_extra_spaces(self):
        assert is_negated("Fracture ruled   out")


def test_contains_any_preserves_term_order():
    assert contains_any("Pain and stiffness", ["stiff", "pain", "gait"]) == ["stiff", "pain"]


class TestExtractJsonBlock:

    def test_fenced_json(self):
        content = 'Here you go:\n```json\n{"urgency": "urgent"}\n```'
        assert extract_json_block(content) == {"urgency": "urgent"}

    def test_bare_object(self):
        assert extract_json_block('Opinion: {"risk_level": "low"} done') == {"risk_level": "low"}

    def test_invalid_json(self):
        assert extract_json_block("{not json}") is None

    def test_no_object(self):
        assert extract_json_block("no structure here") is None
