"""
Tests for the word-level diff engine.
"""
import pytest

from bookwatch.services.word_diff import DiffSegment, count_words, diff_words, texts_differ, tokenize


def _rebuild(segments, kinds):
    return "".join(seg.text for seg in segments if seg.kind in kinds)


class TestDiffWords:
    """Word diff behaviour."""

    def test_identical_texts_single_equal_segment(self):
        """Identical input yields one equal segment."""
        assert diff_words("El cielo es azul.", "El cielo es azul.") == [DiffSegment("equal", "El cielo es azul.")]

    def test_empty_old_text_is_pure_insert(self):
        assert diff_words("", "Nuevo texto") == [DiffSegment("insert", "Nuevo texto")]

    def test_empty_new_text_is_pure_delete(self):
        assert diff_words("Texto viejo", "") == [DiffSegment("delete", "Texto viejo")]

    def test_inserted_word(self):
        """A single inserted word shows up as an insert between equal runs."""
        segments = diff_words("El cielo es azul.", "El cielo es muy azul.")
        assert [s.kind for s in segments] == ["equal", "insert", "equal"]
        assert segments[1].text.strip() == "muy"
        assert count_words(segments, "insert") == 1
        assert count_words(segments, "delete") == 0

    def test_replaced_word_is_delete_then_insert(self):
        segments = diff_words("la casa blanca", "la casa roja")
        kinds = [s.kind for s in segments]
        assert kinds.index("delete") < kinds.index("insert")
        assert "blanca" in _rebuild(segments, {"delete"})
        assert "roja" in _rebuild(segments, {"insert"})

    def test_adjacent_segments_of_same_kind_are_merged(self):
        segments = diff_words("uno dos tres", "cuatro cinco seis")
        for first, second in zip(segments, segments[1:]):
            assert first.kind != second.kind

    @pytest.mark.parametrize(
        "old, new",
        [
            ("El cielo es azul.", "El cielo es muy azul."),
            ("  espacios   raros ", "espacios raros"),
            ("Y dijo Dios: Sea la luz.", "Y Dios dijo: Sea la luz; y fue la luz."),
            ("línea uno\nlínea dos", "línea uno\n\nlínea tres"),
        ],
    )
    def test_segments_rebuild_both_texts(self, old, new):
        """equal+insert rebuilds the new text; equal+delete rebuilds the old one."""
        segments = diff_words(old, new)
        assert _rebuild(segments, {"equal", "insert"}) == new
        assert _rebuild(segments, {"equal", "delete"}) == old


class TestHelpers:
    def test_tokenize_keeps_whitespace_tokens(self):
        assert tokenize("a  b\nc") == ["a", "  ", "b", "\n", "c"]

    def test_texts_differ_ignores_surrounding_whitespace(self):
        assert not texts_differ("  hola mundo ", "hola mundo")
        assert texts_differ("hola mundo", "hola  mundo")
