import asyncio

from starlette.testclient import TestClient

from edna_quiz import server

from conftest import all_answers


def test_score_tool_is_pure():
    payload = asyncio.run(server.quiz_score(all_answers()))
    assert payload["layer1"]["type"] == "Strong Architect"
    assert payload["layer2"]["subtype"] == "Planner"


def test_app_shares_one_backend_between_http_and_mcp(backend, settings, monkeypatch):
    # create_app rebinds server.backend; restore it after the test.
    monkeypatch.setattr(server, "backend", server.backend)

    app = server.create_app(backend)
    assert server.backend is backend

    with TestClient(app) as client:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["service"] == "edna-quiz"
        assert backend.reaper.running is True

        submitted = client.post(
            "/api/quiz/submit",
            json={"email": "ada@example.com", "name": "Ada", "answers": all_answers()},
        ).json()
        found = client.portal.call(server.quiz_results_by_email, "ADA@example.com")
        assert found["found"] is True
        assert found["result_id"] == submitted["resultId"]

        status = client.portal.call(server.quiz_pdf_status, submitted["resultId"])
        assert status["result_id"] == submitted["resultId"]

    assert backend.reaper.running is False
    assert settings.temp_dir.is_dir()
