"""
Tests for the book monitoring HTTP endpoints.
"""
from fastapi.testclient import TestClient


def _import(client: TestClient, payload):
    return client.post("/api/books", json={"code": payload.code, "book": payload.model_dump()})


def _changed(payload, refcode, text):
    updated = payload.model_copy(deep=True)
    for chapter in updated.chapters:
        for paragraph in chapter.paragraphs:
            if paragraph.refcode == refcode:
                paragraph.content = text
    return updated


class TestHealth:
    def test_root_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_api_health_checks(self, client: TestClient):
        assert client.get("/api/health").json()["status"] == "healthy"
        assert client.get("/api/health/ready").json() == {"ready": True}
        assert client.get("/api/health/live").json() == {"alive": True}


class TestBookImport:
    def test_import_with_payload(self, client: TestClient, cs_book):
        response = _import(client, cs_book)
        assert response.status_code == 201
        data = response.json()
        assert data["code"] == "CS"
        assert data["totalChanges"] == 0
        assert data["lastCheckDate"] is not None

    def test_import_from_provider(self, client: TestClient, provider, cs_book):
        provider.publish(cs_book)
        response = client.post("/api/books", json={"code": "cs"})
        assert response.status_code == 201
        assert response.json()["code"] == "CS"
        assert provider.calls == ["CS"]

    def test_duplicate_code_is_rejected_before_fetching(self, client: TestClient, provider, cs_book):
        provider.publish(cs_book)
        _import(client, cs_book)
        response = client.post("/api/books", json={"code": "CS"})
        assert response.status_code == 409
        assert provider.calls == []

    def test_book_without_chapters_is_rejected(self, client: TestClient):
        response = client.post("/api/books", json={"code": "XX", "book": {"title": "Vacío", "code": "XX", "chapters": []}})
        assert response.status_code == 422
        assert client.get("/api/books").json() == []

    def test_provider_failure_is_reported(self, client: TestClient):
        response = client.post("/api/books", json={"code": "NOPE"})
        assert response.status_code == 502


class TestBookQueries:
    def test_list_and_get(self, client: TestClient, cs_book, make_book):
        _import(client, cs_book)
        _import(client, make_book("AA", "A primero", {1: [("AA 1.1", "Texto.")]}))

        titles = [b["title"] for b in client.get("/api/books").json()]
        assert titles == ["A primero", "El Conflicto de los Siglos"]

        detail = client.get("/api/books/cs").json()
        assert [c["number"] for c in detail["chapters"]] == [1, 3]

    def test_unknown_book_is_404(self, client: TestClient):
        assert client.get("/api/books/ZZZ").status_code == 404

    def test_monitoring_stats(self, client: TestClient, cs_book):
        _import(client, cs_book)
        client.post("/api/books/CS/recheck", json={"book": _changed(cs_book, "CS 3.2", "El cielo es muy azul.").model_dump()})

        stats = client.get("/api/books/stats").json()
        assert stats["totalBooks"] == 1
        assert stats["booksWithChanges"] == 1
        assert stats["booksNeedingReview"] == 0
        assert stats["totalChanges"] == 1
        assert stats["lastReviewedBook"]["code"] == "CS"


class TestRecheck:
    def test_recheck_with_payload_reports_changes(self, client: TestClient, cs_book):
        _import(client, cs_book)
        response = client.post(
            "/api/books/CS/recheck",
            json={"book": _changed(cs_book, "CS 3.2", "El cielo es muy azul.").model_dump()},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["totalChanges"] == 1
        assert data["changedParagraphs"] == 1
        assert data["partial"] is False
        assert data["versionNumber"] == 2
        assert data["chapters"][0]["chapter_number"] == 3

    def test_recheck_from_provider(self, client: TestClient, provider, cs_book):
        _import(client, cs_book)
        provider.publish(_changed(cs_book, "CS 1.1", "En el principio era la Palabra."))

        response = client.post("/api/books/CS/recheck")

        assert response.status_code == 200
        assert response.json()["totalChanges"] == 1
        assert provider.calls == ["CS"]

    def test_recheck_while_running_is_409(self, client: TestClient, book_locks, cs_book):
        book_id = _import(client, cs_book).json()["id"]
        with book_locks.hold(book_id):
            response = client.post("/api/books/CS/recheck", json={"book": cs_book.model_dump()})
        assert response.status_code == 409

    def test_chapter_view_includes_diff(self, client: TestClient, cs_book):
        _import(client, cs_book)
        client.post("/api/books/CS/recheck", json={"book": _changed(cs_book, "CS 3.2", "El cielo es muy azul.").model_dump()})

        chapter = client.get("/api/books/CS/chapters/3").json()
        assert [p["paragraphNumber"] for p in chapter["paragraphs"]] == [1, 2, 3]
        changed = chapter["paragraphs"][1]
        assert changed["hasChanged"] is True
        assert any(seg["kind"] == "insert" and "muy" in seg["text"] for seg in changed["diff"])
        assert chapter["paragraphs"][0]["diff"] is None

        diff = client.get(f"/api/books/CS/paragraphs/{changed['id']}/diff").json()
        assert diff["insertedWords"] == 1
        assert diff["deletedWords"] == 0

        history = client.get(f"/api/books/CS/paragraphs/{changed['id']}/history").json()
        assert [(h["old_text"], h["new_text"]) for h in history] == [("El cielo es azul.", "El cielo es muy azul.")]

    def test_missing_chapter_is_404(self, client: TestClient, cs_book):
        _import(client, cs_book)
        assert client.get("/api/books/CS/chapters/42").status_code == 404


class TestDelete:
    def test_delete_requires_matching_confirmation(self, client: TestClient, cs_book):
        _import(client, cs_book)
        response = client.delete("/api/books/CS", params={"confirm": "PP"})
        assert response.status_code == 400
        assert client.get("/api/books/CS").status_code == 200

    def test_delete_cascades(self, client: TestClient, cs_book):
        _import(client, cs_book)
        response = client.delete("/api/books/CS", params={"confirm": "CS"})
        assert response.status_code == 200
        assert response.json() == {"code": "CS", "deleted": True}
        assert client.get("/api/books/CS").status_code == 404
        assert client.get("/api/comparisons").json() == []


class TestVersionsAndLedger:
    def test_version_listing_and_baseline_switch(self, client: TestClient, cs_book):
        _import(client, cs_book)
        client.post("/api/books/CS/recheck", json={"book": _changed(cs_book, "CS 3.2", "El cielo es muy azul.").model_dump()})

        versions = client.get("/api/books/CS/versions").json()
        assert [(v["versionNumber"], v["isBaseline"], v["snapshotCount"]) for v in versions] == [
            (2, False, 1),
            (1, True, 5),
        ]

        response = client.post(f"/api/books/CS/versions/{versions[0]['id']}/baseline")
        assert response.status_code == 200
        data = response.json()
        assert data["baselineVersionNumber"] == 2
        assert data["previousVersionNumber"] == 1
        assert data["paragraphsUncovered"] == 4

        baseline_flags = [v["isBaseline"] for v in client.get("/api/books/CS/versions").json()]
        assert baseline_flags == [True, False]

    def test_ledger_filters_and_notes(self, client: TestClient, cs_book):
        _import(client, cs_book)
        client.post("/api/books/CS/recheck", json={"book": cs_book.model_dump()})

        records = client.get("/api/comparisons", params={"book_code": "CS"}).json()
        assert {r["comparisonType"] for r in records} == {"initial_import", "periodic_recheck"}

        rechecks = client.get("/api/comparisons", params={"comparison_type": "periodic_recheck"}).json()
        assert len(rechecks) == 1
        record_id = rechecks[0]["id"]

        response = client.patch(f"/api/comparisons/{record_id}", json={"notes": "revisado a mano"})
        assert response.status_code == 200
        assert response.json()["notes"] == "revisado a mano"
        assert response.json()["totalChanges"] == 0

        found = client.get("/api/comparisons", params={"search": "a mano"}).json()
        assert [r["id"] for r in found] == [record_id]

    def test_unknown_record_is_404(self, client: TestClient):
        assert client.patch("/api/comparisons/missing", json={"notes": "x"}).status_code == 404


class TestManualImportApi:
    def test_manual_import_flow(self, client: TestClient, cs_book):
        _import(client, cs_book)

        extracted = client.post(
            "/api/manual-import/extract", json={"content": "El cielo era azul.\n\nY dijo Dios: Sea la luz; y fue la luz."}
        ).json()
        assert extracted["count"] == 2

        structure = client.post("/api/manual-import/CS/structure", json={"paragraphs": extracted["paragraphs"]}).json()
        assert structure["match"] == "missing"

        matches = client.post("/api/manual-import/CS/matches", json={"paragraphs": extracted["paragraphs"]}).json()
        codes = [m["bestMatch"]["code"] for m in matches["matches"]]
        assert codes == ["CS 3.2", "CS 3.3"]

        assignments = [
            {"index": i, "text": text, "assignedCode": code, "status": "auto"}
            for i, (text, code) in enumerate(zip(extracted["paragraphs"], codes))
        ]
        validation = client.post("/api/manual-import/CS/validate", json={"assignments": assignments}).json()
        assert validation == {"valid": True, "errors": []}

        response = client.post(
            "/api/manual-import/CS/import",
            json={"versionType": "regular", "editionDate": "1911-01-01", "assignments": assignments},
        )
        assert response.status_code == 200
        assert response.json()["snapshotsCreated"] == 2

    def test_invalid_assignments_return_typed_errors(self, client: TestClient, cs_book):
        _import(client, cs_book)
        assignments = [{"index": 0, "text": "x", "assignedCode": "CS 99.1", "status": "manual"}]

        response = client.post("/api/manual-import/CS/import", json={"assignments": assignments})

        assert response.status_code == 422
        assert response.json()["detail"]["errors"][0]["type"] == "non_existent"


class TestCatalogApi:
    def test_sync_toggle_and_cache_invalidation(self, client: TestClient, book_cache, db_session):
        response = client.post(
            "/api/catalog/sync",
            json={"entries": [{"bookCode": "dtg", "providerBookId": 174, "title": "El Deseado"}]},
        )
        assert response.json() == {"totalFound": 1, "inserted": 1, "updated": 0}

        book_cache.resolve(db_session, "DTG")
        assert client.get("/api/catalog/cache").json()["stale"] is False

        response = client.post(
            "/api/catalog/sync",
            json={"entries": [{"bookCode": "DTG", "providerBookId": 175, "title": "El Deseado"}]},
        )
        assert response.json()["updated"] == 1
        assert client.get("/api/catalog/cache").json()["stale"] is True

        toggled = client.patch("/api/catalog/DTG", json={"isActive": False}).json()
        assert toggled["isActive"] is False
        assert client.get("/api/catalog", params={"active_only": True}).json() == []


class TestSeedApi:
    def test_seed_endpoint(self, client: TestClient, make_book):
        text = "Entonces el pueblo de Israel salió de la tierra de Egipto con gran alegría."
        source = make_book("PP", "Patriarcas y Profetas", {1: [(f"PP 1.{i}", text) for i in range(1, 6)]})

        response = client.post("/api/test-seed", json={"book": source.model_dump(), "errorCount": 4, "seed": 11})

        assert response.status_code == 200
        data = response.json()
        assert data["code"] == "PP_TEST"
        assert data["totalParagraphs"] == 5
        assert client.get("/api/books/PP_TEST").json()["isTestSeed"] is True

    def test_seed_needs_a_source(self, client: TestClient):
        assert client.post("/api/test-seed", json={}).status_code == 400
