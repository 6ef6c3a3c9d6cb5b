import time

import pytest
from fastapi.testclient import TestClient
from settlement_service.config import Settings
from settlement_service.server import create_app
from trade_protocol import sha256_hex

H1 = sha256_hex(b"alice-finish-line.jpg")
H2 = sha256_hex(b"bob-finish-line.mp4")


def _due_in(ms: int) -> int:
    return int(time.time() * 1000) + ms


@pytest.fixture
def client(tmp_path):
    settings = Settings(sqlite_path=str(tmp_path / "api.db"), dry_run=True, sweep_enabled=False)
    with TestClient(create_app(settings)) as c:
        yield c


def _register(client: TestClient, challenge_id: str = "ch-api", due_at: int | None = None) -> dict:
    resp = client.post(
        "/challenges",
        json={
            "challengeId": challenge_id,
            "challenger": "alice",
            "challenged": "bob",
            "stakeAmount": "10",
            "dueAt": due_at if due_at is not None else _due_in(3_600_000),
        },
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_health(client: TestClient) -> None:
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["dispatch"]["dryRun"] is True
    assert body["sweepEnabled"] is False


def test_full_flow_auto_release(client: TestClient) -> None:
    created = _register(client)
    assert created["status"] == "awaiting_proofs"

    resp = client.post(
        "/challenges/ch-api/proofs",
        json={"submitterId": "alice", "contentUri": "https://cdn.example/p1.jpg", "contentHash": H1},
    )
    assert resp.status_code == 200
    assert resp.json()["sequence"] == 0

    pending = client.get("/challenges/ch-api/settlement").json()
    assert pending["outcome"] == "pending"
    assert pending["state"] == "awaiting_votes"

    for voter in ("alice", "bob"):
        resp = client.post(
            "/challenges/ch-api/votes",
            json={"voterId": voter, "choice": "challenger", "referencedProofHash": H1},
        )
        assert resp.status_code == 200

    votes = client.get("/challenges/ch-api/votes").json()
    assert votes["count"] == 2
    assert set(votes["items"]) == {"alice", "bob"}

    decision = client.get("/challenges/ch-api/settlement").json()
    assert decision["outcome"] == "auto_released"
    assert decision["winnerId"] == "alice"
    assert decision["transfers"] == [{"to": "alice", "amount": "20", "reason": "votes_converged"}]

    assert client.get("/challenges/ch-api").json()["status"] == "auto_released"
    assert client.get("/challenges/ch-api/decisions").json()["count"] == 1
    assert client.get("/challenges/ch-api/dispute").status_code == 404

    events = client.get("/challenges/ch-api/events").json()
    assert events["chain"] == {"valid": True, "errors": []}
    assert events["count"] == 5


def test_error_codes(client: TestClient) -> None:
    _register(client)

    resp = client.get("/challenges/missing/settlement")
    assert resp.status_code == 404
    assert resp.json()["error"] == "unknown_challenge"

    resp = client.post("/challenges", json={
        "challengeId": "ch-api",
        "challenger": "carol",
        "challenged": "dave",
        "stakeAmount": "1",
        "dueAt": _due_in(1_000),
    })
    assert resp.status_code == 409
    assert resp.json()["error"] == "challenge_exists"

    resp = client.post(
        "/challenges/ch-api/proofs",
        json={"submitterId": "alice", "contentUri": "https://cdn.example/p1.jpg", "contentHash": "not-a-hash"},
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "invalid_hash"

    resp = client.post(
        "/challenges/ch-api/votes",
        json={"voterId": "alice", "choice": "challenger", "referencedProofHash": H1},
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "proof_not_found"

    client.post(
        "/challenges/ch-api/proofs",
        json={"submitterId": "alice", "contentUri": "https://cdn.example/p1.jpg", "contentHash": H1},
    )
    resp = client.post(
        "/challenges/ch-api/votes",
        json={"voterId": "mallory", "choice": "challenger", "referencedProofHash": H1},
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "not_a_participant"

    client.post(
        "/challenges/ch-api/votes",
        json={"voterId": "alice", "choice": "challenger", "referencedProofHash": H1},
    )
    resp = client.post(
        "/challenges/ch-api/votes",
        json={"voterId": "alice", "choice": "challenged", "referencedProofHash": H1},
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "already_voted"

    resp = client.post("/challenges/ch-api/resolve", json={"arbiterId": "arbiter-1", "winnerId": "alice"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "dispute_not_open"


def test_request_validation(client: TestClient) -> None:
    resp = client.post("/challenges", json={
        "challenger": "alice",
        "challenged": "alice",
        "stakeAmount": "10",
        "dueAt": _due_in(1_000),
    })
    assert resp.status_code == 422

    resp = client.post("/challenges", json={
        "challenger": "alice",
        "challenged": "bob",
        "stakeAmount": "-1",
        "dueAt": _due_in(1_000),
    })
    assert resp.status_code == 422


def test_deadline_passed_opens_dispute(client: TestClient) -> None:
    _register(client, "ch-late", due_at=_due_in(-1_000))

    decision = client.get("/challenges/ch-late/settlement").json()
    assert decision["outcome"] == "dispute_opened"
    assert decision["reason"] == "expired"

    dispute = client.get("/challenges/ch-late/dispute").json()
    assert dispute["reason"] == "expired"
    assert dispute["status"] == "open"

    resp = client.post(
        "/challenges/ch-late/proofs",
        json={"submitterId": "alice", "contentUri": "https://cdn.example/p1.jpg", "contentHash": H1},
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "challenge_already_settled"


def test_dispute_and_resolve(client: TestClient) -> None:
    _register(client)

    resp = client.post("/challenges/ch-api/dispute", json={"callerId": "bob"})
    assert resp.status_code == 200
    assert resp.json()["reason"] == "participant_initiated"

    again = client.post("/challenges/ch-api/dispute", json={"callerId": "alice"})
    assert again.status_code == 200
    assert again.json()["disputeId"] == resp.json()["disputeId"]

    listed = client.get("/disputes").json()
    assert listed["count"] == 1
    assert listed["items"][0]["challengeId"] == "ch-api"

    resp = client.post("/challenges/ch-api/resolve", json={"arbiterId": "arbiter-1"})
    assert resp.status_code == 422
    assert resp.json()["error"] == "invalid_resolution"

    resp = client.post("/challenges/ch-api/resolve", json={"arbiterId": "arbiter-1", "split": True})
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "resolved"

    assert client.get("/disputes").json()["count"] == 0
    assert client.get("/disputes", params={"status": "resolved"}).json()["count"] == 1
    assert client.get("/challenges/ch-api/settlement").json()["outcome"] == "resolved"


def test_outbox_redrive_endpoint(client: TestClient) -> None:
    resp = client.post("/outbox/redrive", params={"challengeId": "ch-api"})
    assert resp.status_code == 200
    assert resp.json() == {"requeued": 0, "delivered": 0}
    assert client.get("/health").json()["dispatch"]["failed"] == 0
