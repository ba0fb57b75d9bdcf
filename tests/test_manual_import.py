"""
Tests for manual historical imports: extraction, matching, validation and import.
"""
import pytest
from fastapi import HTTPException

from bookwatch.models import BookComparison, BookVersion, Paragraph
from bookwatch.schemas.manual_import import CodeAssignment, ManualImportRequest
from bookwatch.services import manual_import as manual_service
from bookwatch.services.books import import_book

EXISTING = {"CS 1.1", "CS 1.2", "CS 3.1", "CS 3.2", "CS 3.3"}


def _assign(*codes, status="manual"):
    return [CodeAssignment(index=i, text=f"texto {i}", assignedCode=code, status=status) for i, code in enumerate(codes)]


class TestExtraction:
    def test_splits_on_blank_lines(self):
        content = "Primer párrafo\ncontinúa.\n\n  \nSegundo párrafo.\r\n\r\nTercero.\n\n\n"
        assert manual_service.extract_paragraphs_from_text(content) == [
            "Primer párrafo\ncontinúa.",
            "Segundo párrafo.",
            "Tercero.",
        ]

    def test_empty_content(self):
        assert manual_service.extract_paragraphs_from_text("   \n\n ") == []


class TestSimilarity:
    def test_levenshtein_distance(self):
        assert manual_service.levenshtein_distance("kitten", "sitting") == 3
        assert manual_service.levenshtein_distance("", "abc") == 3
        assert manual_service.levenshtein_distance("igual", "igual") == 0

    def test_similarity_ratio_bounds(self):
        assert manual_service.similarity_ratio("", "") == 1.0
        assert manual_service.similarity_ratio("abc", "xyz") == 0.0

    def test_find_matches_ranks_suggestions(self, db_session, cs_book):
        book = import_book(db_session, cs_book)

        matches = manual_service.find_paragraph_matches(
            db_session, book, ["el  CIELO es azul", "Texto que no se parece a nada de lo que hay."]
        )

        assert matches[0].bestMatch is not None
        assert matches[0].bestMatch.code == "CS 3.2"
        assert len(matches[0].suggestions) == 5
        similarities = [s.similarity for s in matches[0].suggestions]
        assert similarities == sorted(similarities, reverse=True)
        assert matches[1].bestMatch is None

    def test_compare_structure(self, db_session, cs_book):
        book = import_book(db_session, cs_book)
        assert manual_service.compare_structure(db_session, book, 5).match == "exact"
        extra = manual_service.compare_structure(db_session, book, 7)
        assert (extra.match, extra.extraCount) == ("extra", 2)
        missing = manual_service.compare_structure(db_session, book, 2)
        assert (missing.match, missing.missingCount) == ("missing", 3)


class TestValidation:
    def test_valid_sequence_has_no_errors(self):
        errors = manual_service.validate_code_assignments(
            _assign("CS 1.1", "CS 1.2", "CS 3.1", "CS 3.2"), "CS", EXISTING
        )
        assert errors == []

    def test_each_error_type_is_reported(self):
        assignments = _assign("CS 1.1", "cs 1.2", "PP 1.1", "CS 9.9", "CS 1.1", "CS 3.1", "CS 3.3")
        assignments.append(CodeAssignment(index=7, text="sin código", assignedCode="", status="pending"))

        errors = manual_service.validate_code_assignments(assignments, "CS", EXISTING)

        by_index = {e.affectedIndex: e.type for e in errors}
        assert by_index == {
            1: "format",
            2: "format",
            3: "non_existent",
            4: "duplicate",
            6: "sequence",
            7: "missing_required",
        }

    def test_missing_marker_resets_sequence(self):
        errors = manual_service.validate_code_assignments(_assign("CS 3.1", "FALTA", "CS 3.3"), "CS", EXISTING)
        assert errors == []

    def test_chapter_change_does_not_break_sequence(self):
        errors = manual_service.validate_code_assignments(_assign("CS 1.2", "CS 3.2"), "CS", EXISTING)
        assert errors == []


class TestImportManualVersion:
    def test_regular_import_creates_non_baseline_version(self, db_session, book_locks, cs_book):
        book = import_book(db_session, cs_book)
        request = ManualImportRequest(
            versionType="regular",
            versionNotes="Edición impresa de 1911",
            assignments=[
                CodeAssignment(index=0, text="El cielo era azul.", assignedCode="CS 3.2", status="auto"),
                CodeAssignment(index=1, text="Párrafo sin equivalente.", assignedCode="FALTA", status="missing"),
                CodeAssignment(index=2, text="Y dijo Dios: Hágase la luz.", assignedCode="CS 3.3", status="manual"),
            ],
        )

        result = manual_service.import_manual_version(db_session, book, request, book_locks)

        assert result.success is True
        assert result.versionNumber == 2
        assert result.snapshotsCreated == 2
        assert result.isBaseline is False
        version = db_session.get(BookVersion, result.versionId)
        assert version.sourceType == "manual_historical"
        assert version.notes == "Edición impresa de 1911"
        paragraph = db_session.query(Paragraph).filter(Paragraph.refcode == "CS 3.2").one()
        assert paragraph.baseText == "El cielo es azul."
        assert paragraph.latestText == "El cielo es azul."
        assert db_session.query(BookComparison).filter(BookComparison.comparisonType == "manual_historical").count() == 1

    def test_physical_baseline_import_becomes_baseline(self, db_session, book_locks, cs_book):
        book = import_book(db_session, cs_book)
        request = ManualImportRequest(
            versionType="physical_baseline",
            assignments=[CodeAssignment(index=0, text="El cielo era azul.", assignedCode="CS 3.2", status="auto")],
        )

        result = manual_service.import_manual_version(db_session, book, request, book_locks)

        baselines = db_session.query(BookVersion).filter(BookVersion.isBaseline.is_(True)).all()
        assert [b.id for b in baselines] == [result.versionId]
        paragraph = db_session.query(Paragraph).filter(Paragraph.refcode == "CS 3.2").one()
        assert paragraph.baseText == "El cielo era azul."
        types = {r.comparisonType for r in db_session.query(BookComparison).all()}
        assert {"baseline_change", "manual_historical"} <= types

    def test_validation_errors_block_the_import(self, db_session, book_locks, cs_book):
        book = import_book(db_session, cs_book)
        request = ManualImportRequest(assignments=_assign("CS 3.2", "CS 3.2"))

        with pytest.raises(HTTPException) as exc_info:
            manual_service.import_manual_version(db_session, book, request, book_locks)

        assert exc_info.value.status_code == 422
        assert exc_info.value.detail["errors"][0]["type"] == "duplicate"
        assert db_session.query(BookVersion).count() == 1
        assert db_session.query(BookComparison).filter(BookComparison.comparisonType == "manual_historical").count() == 0
