from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any


def _dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"))


class SettlementStorage:
    """sqlite3 persistence for challenges, proofs, votes, decisions, disputes, audit events and the outbox.

    One connection is shared across request threads. ``transaction()`` holds the
    connection lock for the duration of one commit-or-rollback unit; reads take
    the same lock for a single query.
    """

    def __init__(self, db_path: str) -> None:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self) -> None:
        self.conn.executescript(
            """
            PRAGMA journal_mode=WAL;

            CREATE TABLE IF NOT EXISTS challenges (
              challenge_id TEXT PRIMARY KEY,
              challenger TEXT NOT NULL,
              challenged TEXT NOT NULL,
              status TEXT NOT NULL,
              due_at INTEGER NOT NULL,
              payload_json TEXT NOT NULL,
              created_at INTEGER NOT NULL DEFAULT (unixepoch())
            );

            CREATE INDEX IF NOT EXISTS idx_challenges_status_due
              ON challenges(status, due_at);

            CREATE TABLE IF NOT EXISTS proofs (
              proof_id TEXT PRIMARY KEY,
              challenge_id TEXT NOT NULL,
              sequence INTEGER NOT NULL,
              submitter_id TEXT NOT NULL,
              content_hash TEXT NOT NULL,
              payload_json TEXT NOT NULL
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_proofs_challenge_sequence
              ON proofs(challenge_id, sequence);

            CREATE INDEX IF NOT EXISTS idx_proofs_challenge_hash
              ON proofs(challenge_id, content_hash);

            CREATE TABLE IF NOT EXISTS votes (
              challenge_id TEXT NOT NULL,
              voter_id TEXT NOT NULL,
              round INTEGER NOT NULL,
              cast_at INTEGER NOT NULL,
              payload_json TEXT NOT NULL,
              PRIMARY KEY (challenge_id, voter_id, round)
            );

            CREATE TABLE IF NOT EXISTS decisions (
              decision_id TEXT PRIMARY KEY,
              challenge_id TEXT NOT NULL,
              sequence INTEGER NOT NULL,
              outcome TEXT NOT NULL,
              payload_json TEXT NOT NULL
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_decisions_challenge_sequence
              ON decisions(challenge_id, sequence);

            CREATE TABLE IF NOT EXISTS disputes (
              dispute_id TEXT PRIMARY KEY,
              challenge_id TEXT NOT NULL,
              status TEXT NOT NULL,
              payload_json TEXT NOT NULL
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_disputes_challenge
              ON disputes(challenge_id);

            CREATE TABLE IF NOT EXISTS events (
              event_id TEXT PRIMARY KEY,
              challenge_id TEXT NOT NULL,
              sequence INTEGER NOT NULL,
              event_hash TEXT NOT NULL,
              payload_json TEXT NOT NULL
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_events_challenge_sequence
              ON events(challenge_id, sequence);

            CREATE TABLE IF NOT EXISTS outbox (
              decision_id TEXT NOT NULL,
              topic TEXT NOT NULL,
              challenge_id TEXT NOT NULL,
              status TEXT NOT NULL DEFAULT 'pending',
              attempts INTEGER NOT NULL DEFAULT 0,
              last_error TEXT,
              payload_json TEXT NOT NULL,
              created_at INTEGER NOT NULL DEFAULT (unixepoch()),
              PRIMARY KEY (decision_id, topic)
            );

            CREATE INDEX IF NOT EXISTS idx_outbox_status
              ON outbox(status, challenge_id);
            """
        )
        self.conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            with self.conn:
                yield self.conn

    def _fetchone(self, query: str, args: tuple[Any, ...]) -> sqlite3.Row | None:
        with self._lock:
            return self.conn.execute(query, args).fetchone()

    def _fetchall(self, query: str, args: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(query, args).fetchall()

    def _next_sequence(self, table: str, challenge_id: str) -> int:
        row = self._fetchone(
            f"SELECT COALESCE(MAX(sequence), -1) + 1 AS nxt FROM {table} WHERE challenge_id = ?",
            (challenge_id,),
        )
        return int(row["nxt"])

    # challenges

    def insert_challenge(self, challenge: dict[str, Any]) -> None:
        self.conn.execute(
            """
            INSERT INTO challenges
              (challenge_id, challenger, challenged, status, due_at, payload_json)
            VALUES
              (?, ?, ?, ?, ?, ?)
            """,
            (
                challenge["challengeId"],
                challenge["challenger"],
                challenge["challenged"],
                challenge["status"],
                challenge["dueAt"],
                _dumps(challenge),
            ),
        )

    def update_challenge_status(self, challenge: dict[str, Any], status: str) -> dict[str, Any]:
        updated = dict(challenge, status=status)
        self.conn.execute(
            "UPDATE challenges SET status = ?, payload_json = ? WHERE challenge_id = ?",
            (status, _dumps(updated), challenge["challengeId"]),
        )
        return updated

    def get_challenge(self, challenge_id: str) -> dict[str, Any] | None:
        row = self._fetchone("SELECT payload_json FROM challenges WHERE challenge_id = ?", (challenge_id,))
        if not row:
            return None
        return json.loads(row["payload_json"])

    def list_challenge_ids(self, *, statuses: Iterable[str], due_at_or_before: int | None = None) -> list[str]:
        wanted = list(statuses)
        if not wanted:
            return []
        query = f"SELECT challenge_id FROM challenges WHERE status IN ({','.join('?' * len(wanted))})"
        args: list[Any] = list(wanted)
        if due_at_or_before is not None:
            query += " AND due_at <= ?"
            args.append(due_at_or_before)
        query += " ORDER BY due_at ASC"
        return [r["challenge_id"] for r in self._fetchall(query, tuple(args))]

    # proofs

    def next_proof_sequence(self, challenge_id: str) -> int:
        return self._next_sequence("proofs", challenge_id)

    def insert_proof(self, proof: dict[str, Any]) -> None:
        self.conn.execute(
            """
            INSERT INTO proofs
              (proof_id, challenge_id, sequence, submitter_id, content_hash, payload_json)
            VALUES
              (?, ?, ?, ?, ?, ?)
            """,
            (
                proof["proofId"],
                proof["challengeId"],
                proof["sequence"],
                proof["submitterId"],
                proof["contentHash"],
                _dumps(proof),
            ),
        )

    def list_proofs(self, challenge_id: str) -> list[dict[str, Any]]:
        rows = self._fetchall(
            "SELECT payload_json FROM proofs WHERE challenge_id = ? ORDER BY sequence ASC",
            (challenge_id,),
        )
        return [json.loads(r["payload_json"]) for r in rows]

    def has_proof_hash(self, challenge_id: str, content_hash: str) -> bool:
        row = self._fetchone(
            "SELECT 1 FROM proofs WHERE challenge_id = ? AND content_hash = ? LIMIT 1",
            (challenge_id, content_hash),
        )
        return row is not None

    # votes

    def insert_vote(self, vote: dict[str, Any]) -> None:
        self.conn.execute(
            """
            INSERT INTO votes
              (challenge_id, voter_id, round, cast_at, payload_json)
            VALUES
              (?, ?, ?, ?, ?)
            """,
            (vote["challengeId"], vote["voterId"], vote["round"], vote["castAt"], _dumps(vote)),
        )

    def get_vote(self, challenge_id: str, voter_id: str, round_: int) -> dict[str, Any] | None:
        row = self._fetchone(
            "SELECT payload_json FROM votes WHERE challenge_id = ? AND voter_id = ? AND round = ?",
            (challenge_id, voter_id, round_),
        )
        if not row:
            return None
        return json.loads(row["payload_json"])

    def list_votes(self, challenge_id: str, round_: int) -> list[dict[str, Any]]:
        rows = self._fetchall(
            "SELECT payload_json FROM votes WHERE challenge_id = ? AND round = ? ORDER BY cast_at ASC, rowid ASC",
            (challenge_id, round_),
        )
        return [json.loads(r["payload_json"]) for r in rows]

    # decisions

    def next_decision_sequence(self, challenge_id: str) -> int:
        return self._next_sequence("decisions", challenge_id)

    def insert_decision(self, decision: dict[str, Any]) -> None:
        self.conn.execute(
            """
            INSERT INTO decisions
              (decision_id, challenge_id, sequence, outcome, payload_json)
            VALUES
              (?, ?, ?, ?, ?)
            """,
            (
                decision["decisionId"],
                decision["challengeId"],
                decision["sequence"],
                decision["outcome"],
                _dumps(decision),
            ),
        )

    def list_decisions(self, challenge_id: str) -> list[dict[str, Any]]:
        rows = self._fetchall(
            "SELECT payload_json FROM decisions WHERE challenge_id = ? ORDER BY sequence ASC",
            (challenge_id,),
        )
        return [json.loads(r["payload_json"]) for r in rows]

    def get_latest_decision(self, challenge_id: str) -> dict[str, Any] | None:
        row = self._fetchone(
            "SELECT payload_json FROM decisions WHERE challenge_id = ? ORDER BY sequence DESC LIMIT 1",
            (challenge_id,),
        )
        if not row:
            return None
        return json.loads(row["payload_json"])

    # disputes

    def insert_dispute(self, dispute: dict[str, Any]) -> None:
        self.conn.execute(
            "INSERT INTO disputes (dispute_id, challenge_id, status, payload_json) VALUES (?, ?, ?, ?)",
            (dispute["disputeId"], dispute["challengeId"], dispute["status"], _dumps(dispute)),
        )

    def update_dispute(self, dispute: dict[str, Any]) -> None:
        self.conn.execute(
            "UPDATE disputes SET status = ?, payload_json = ? WHERE dispute_id = ?",
            (dispute["status"], _dumps(dispute), dispute["disputeId"]),
        )

    def get_dispute(self, challenge_id: str) -> dict[str, Any] | None:
        row = self._fetchone("SELECT payload_json FROM disputes WHERE challenge_id = ?", (challenge_id,))
        if not row:
            return None
        return json.loads(row["payload_json"])

    def list_disputes(self, status: str | None = None, limit: int = 200) -> list[dict[str, Any]]:
        query = "SELECT payload_json FROM disputes"
        args: list[Any] = []
        if status:
            query += " WHERE status = ?"
            args.append(status)
        query += " ORDER BY rowid ASC LIMIT ?"
        args.append(limit)
        return [json.loads(r["payload_json"]) for r in self._fetchall(query, tuple(args))]

    # audit events

    def get_last_event(self, challenge_id: str) -> dict[str, Any] | None:
        row = self._fetchone(
            "SELECT payload_json FROM events WHERE challenge_id = ? ORDER BY sequence DESC LIMIT 1",
            (challenge_id,),
        )
        if not row:
            return None
        return json.loads(row["payload_json"])

    def insert_event(self, event: dict[str, Any]) -> None:
        self.conn.execute(
            """
            INSERT INTO events
              (event_id, challenge_id, sequence, event_hash, payload_json)
            VALUES
              (?, ?, ?, ?, ?)
            """,
            (event["eventId"], event["challengeId"], event["sequence"], event["eventHash"], _dumps(event)),
        )

    def list_events(self, challenge_id: str) -> list[dict[str, Any]]:
        rows = self._fetchall(
            "SELECT payload_json FROM events WHERE challenge_id = ? ORDER BY sequence ASC",
            (challenge_id,),
        )
        return [json.loads(r["payload_json"]) for r in rows]

    # outbox

    def enqueue_outbox(self, decision: dict[str, Any], topic: str) -> None:
        self.conn.execute(
            """
            INSERT OR IGNORE INTO outbox
              (decision_id, topic, challenge_id, payload_json)
            VALUES
              (?, ?, ?, ?)
            """,
            (decision["decisionId"], topic, decision["challengeId"], _dumps(decision)),
        )

    def list_outbox(
        self, *, max_attempts: int, challenge_id: str | None = None, limit: int = 100
    ) -> list[dict[str, Any]]:
        query = "SELECT decision_id, topic, attempts, payload_json FROM outbox WHERE status = 'pending' AND attempts < ?"
        args: list[Any] = [max_attempts]
        if challenge_id:
            query += " AND challenge_id = ?"
            args.append(challenge_id)
        query += " ORDER BY created_at ASC, rowid ASC LIMIT ?"
        args.append(limit)
        return [
            {
                "decisionId": r["decision_id"],
                "topic": r["topic"],
                "attempts": r["attempts"],
                "decision": json.loads(r["payload_json"]),
            }
            for r in self._fetchall(query, tuple(args))
        ]

    def get_outbox_entry(self, decision_id: str, topic: str) -> dict[str, Any] | None:
        row = self._fetchone(
            "SELECT status, attempts, last_error FROM outbox WHERE decision_id = ? AND topic = ?",
            (decision_id, topic),
        )
        if not row:
            return None
        return {"status": row["status"], "attempts": row["attempts"], "lastError": row["last_error"]}

    def mark_outbox_delivered(self, decision_id: str, topic: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                "UPDATE outbox SET status = 'delivered', attempts = attempts + 1, last_error = NULL "
                "WHERE decision_id = ? AND topic = ?",
                (decision_id, topic),
            )

    def mark_outbox_failed(self, decision_id: str, topic: str, error: str, *, max_attempts: int) -> None:
        # The last allowed attempt moves the entry to the dead-letter status.
        with self.transaction() as conn:
            conn.execute(
                """
                UPDATE outbox
                SET attempts = attempts + 1,
                    last_error = ?,
                    status = CASE WHEN attempts + 1 >= ? THEN 'failed' ELSE status END
                WHERE decision_id = ? AND topic = ?
                """,
                (error[:500], max_attempts, decision_id, topic),
            )

    def requeue_failed_outbox(self, challenge_id: str | None = None) -> int:
        query = "UPDATE outbox SET status = 'pending', attempts = 0 WHERE status = 'failed'"
        args: tuple[Any, ...] = ()
        if challenge_id:
            query += " AND challenge_id = ?"
            args = (challenge_id,)
        with self.transaction() as conn:
            return conn.execute(query, args).rowcount

    def count_outbox(self, status: str) -> int:
        row = self._fetchone("SELECT COUNT(*) AS n FROM outbox WHERE status = ?", (status,))
        return row["n"] if row else 0
