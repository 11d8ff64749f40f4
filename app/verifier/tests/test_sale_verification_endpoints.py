from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from verifier import main

DOE_LINES = [
    "P<USADOE<<JOHN".ljust(44, "<"),
    "L898902C36USA9001011M3001015".ljust(44, "<"),
]


@pytest.fixture
def client(monkeypatch, store):
    monkeypatch.setattr(main, "STORE", store)
    monkeypatch.setattr(main.app.state, "pos_finalizer", None)
    monkeypatch.setattr(main.app.state, "compliance_recorder", None)
    return TestClient(main.app)


class RecordingCollaborator:
    def __init__(self, fail: bool = False, fail_record: bool = False) -> None:
        self.calls = []
        self.fail = fail
        self.fail_record = fail_record

    def finalize(self, transaction_id, identity, session) -> None:
        if self.fail:
            raise RuntimeError("POS unavailable")
        self.calls.append((transaction_id, identity, session.status))

    def record(self, transaction_id, identity, session) -> None:
        if self.fail_record:
            raise RuntimeError("compliance store unavailable")
        self.calls.append((transaction_id, identity, session.status))


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_poll_flow(client, clock) -> None:
    resp = client.post("/sale-verifications/SALE-1", json={"register_id": "REG-1"})
    assert resp.status_code == 201
    assert resp.json()["status"] == "pending"

    body = client.get("/sale-verifications/SALE-1").json()
    assert body["remote_scanner_active"] is False

    resp = client.post("/sale-verifications/SALE-1/heartbeat")
    assert resp.json()["remote_scanner_active"] is True

    resp = client.post("/sale-verifications/SALE-1/logs", json={"message": "Camera ready", "level": "info"})
    assert resp.json() == {"ok": True}

    body = client.get("/sale-verifications/SALE-1").json()
    assert body["remote_scanner_active"] is True
    assert body["logs"][-1]["message"] == "Camera ready"

    clock.advance(seconds=11)
    body = client.get("/sale-verifications/SALE-1").json()
    assert body["remote_scanner_active"] is False


def test_result_then_complete(client) -> None:
    client.post("/sale-verifications/SALE-2")
    scan = client.post("/scan/mrz", json={"lines": DOE_LINES}).json()
    identity = scan["identity"]
    assert identity["document_type"] == "passport"

    resp = client.post(
        "/sale-verifications/SALE-2/result",
        json={"approved": True, "customer_name": "John Doe", "identity": identity},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "approved"
    assert body["result"]["age"] == scan["age"]

    collaborator = RecordingCollaborator()
    main.app.state.pos_finalizer = collaborator
    main.app.state.compliance_recorder = collaborator
    resp = client.post(
        "/sale-verifications/SALE-2/complete",
        json={"identity": identity, "note": "Regular customer\n@ANSI 636014080002DL"},
    )
    assert resp.status_code == 200
    assert resp.json()["completed"] is True
    assert resp.json()["age_note"] == f"Age: {scan['age']}"
    assert resp.json()["note"] == f"Regular customer\nAge: {scan['age']}"
    assert [call[0] for call in collaborator.calls] == ["SALE-2", "SALE-2"]
    assert collaborator.calls[0][1].last_name == "DOE"
    assert client.get("/sale-verifications/SALE-2").status_code == 404


def test_complete_keeps_session_when_pos_fails(client) -> None:
    client.post("/sale-verifications/SALE-3")
    client.post("/sale-verifications/SALE-3/result", json={"approved": False, "reason": "Underage"})
    main.app.state.pos_finalizer = RecordingCollaborator(fail=True)
    resp = client.post("/sale-verifications/SALE-3/complete")
    assert resp.status_code == 502
    assert client.get("/sale-verifications/SALE-3").json()["status"] == "rejected"


def test_complete_removes_session_when_compliance_record_fails(client) -> None:
    client.post("/sale-verifications/SALE-7")
    client.post("/sale-verifications/SALE-7/result", json={"approved": True, "age": 30})
    pos = RecordingCollaborator()
    main.app.state.pos_finalizer = pos
    main.app.state.compliance_recorder = RecordingCollaborator(fail_record=True)

    resp = client.post("/sale-verifications/SALE-7/complete")
    assert resp.status_code == 500
    assert resp.json()["error"] == "Compliance record failed"
    assert resp.json()["finalized"] is True
    assert resp.json()["age_note"] == "Age: 30"

    assert client.post("/sale-verifications/SALE-7/complete").status_code == 404
    assert len(pos.calls) == 1
    assert client.get("/sale-verifications/SALE-7").status_code == 404


def test_complete_pending_is_conflict(client) -> None:
    client.post("/sale-verifications/SALE-4")
    assert client.post("/sale-verifications/SALE-4/complete").status_code == 409


def test_unknown_and_expired_are_not_found(client, clock) -> None:
    resp = client.get("/sale-verifications/NOPE")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"
    assert resp.json()["reason"] == "not_found"

    client.post("/sale-verifications/SALE-5")
    clock.advance(minutes=16)
    resp = client.get("/sale-verifications/SALE-5")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"
    assert resp.json()["reason"] == "expired"

    assert client.post("/sale-verifications/NOPE/heartbeat").status_code == 404
    assert client.post("/sale-verifications/NOPE/logs", json={"message": "x"}).status_code == 404
    assert client.post("/sale-verifications/NOPE/result", json={"approved": True}).status_code == 404

    client.post("/sale-verifications/SALE-8")
    clock.advance(minutes=15, seconds=1)
    assert client.post("/sale-verifications/SALE-8/heartbeat").status_code == 404
    assert client.get("/sale-verifications/SALE-8").json()["reason"] == "not_found"


def test_invalid_transaction_id(client) -> None:
    resp = client.post("/sale-verifications/bad id!")
    assert resp.status_code == 400


def test_result_validation_errors(client) -> None:
    client.post("/sale-verifications/SALE-6")
    resp = client.post(
        "/sale-verifications/SALE-6/result",
        json={"approved": True, "age": 200, "identity": {"date_of_birth": "2999-01-01"}},
    )
    assert resp.status_code == 400
    rules = {issue["rule"] for issue in resp.json()["issues"]}
    assert rules == {"range", "future"}
    assert client.get("/sale-verifications/SALE-6").json()["status"] == "pending"


def test_stats(client) -> None:
    client.post("/sale-verifications/A")
    client.post("/sale-verifications/B")
    client.post("/sale-verifications/B/result", json={"approved": True})
    stats = client.get("/sale-verifications/stats").json()
    assert stats["total"] == 2
    assert stats["pending"] == 1
    assert stats["approved"] == 1


def test_scan_endpoints(client) -> None:
    resp = client.post("/scan/mrz", json={"lines": ["noise", "more noise"]})
    assert resp.status_code == 422
    assert resp.json()["error"] == "mrz_not_recognized"

    tree = {"ResultInfo": [{"FieldName": "lastName", "Value": "Roe"}, {"FieldName": "dob", "Value": "19800101"}]}
    body = client.post("/scan/barcode", json={"parsed_info": tree}).json()
    assert body["identity"]["last_name"] == "Roe"
    assert body["identity"]["date_of_birth"] == "1980-01-01"
    assert body["age"] >= 45


def test_field_registry(client) -> None:
    payload = client.get("/field_registry").json()
    assert "first_name" in payload["order"]
