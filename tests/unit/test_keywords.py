"""Tests for keyword extraction and prompt fingerprinting."""

from roadmap_app.services.keywords import extract_keywords, fingerprint, merge_keywords, normalize_prompt


class TestExtractKeywords:
    def test_drops_stopwords_and_short_words(self):
        assert extract_keywords("I want to learn React for the web") == ['react', 'web']

    def test_strips_punctuation_but_keeps_hyphens(self):
        assert extract_keywords("Node.js, back-end & APIs!") == ['node', 'back-end', 'apis']

    def test_distinct_in_first_occurrence_order(self):
        assert extract_keywords("python flask python django flask") == ['python', 'flask', 'django']

    def test_limit(self):
        text = "alpha bravo charlie delta echo foxtrot golf hotel india juliet kilo lima"
        assert len(extract_keywords(text)) == 10
        assert extract_keywords(text, limit=3) == ['alpha', 'bravo', 'charlie']

    def test_empty_inputs(self):
        assert extract_keywords('') == []
        assert extract_keywords(None) == []
        assert extract_keywords("how to learn a roadmap") == []


class TestFingerprint:
    def test_word_order_and_filler_do_not_matter(self):
        assert fingerprint("React hooks guide") == fingerprint("hooks REACT")

    def test_sorted_keywords(self):
        assert fingerprint("kubernetes docker basics") == 'basics docker kubernetes'

    def test_falls_back_to_normalized_prompt(self):
        assert fingerprint("  How   TO  ") == 'how to'
        assert normalize_prompt("  A \n B ") == 'a b'


def test_merge_keywords_lowercases_and_dedupes():
    assert merge_keywords(['React', 'hooks'], ['react', 'Redux'], None) == ['react', 'hooks', 'redux']
    assert merge_keywords(['a1', 'b2', 'c3'], limit=2) == ['a1', 'b2']
