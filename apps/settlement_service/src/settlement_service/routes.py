from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from trade_protocol import ChallengeCreate, DisputeCreate, ProofCreate, ResolveCreate, VoteCreate

from .server_state import ServerState, get_state

router = APIRouter()


def _schedule_dispatch(background: BackgroundTasks, state: ServerState, challenge_id: str) -> None:
    background.add_task(state.dispatcher.dispatch_pending, challenge_id)


@router.post("/challenges")
def register_challenge(payload: ChallengeCreate, state: ServerState = Depends(get_state)) -> dict[str, Any]:
    challenge = state.engine.register_challenge(
        challenger=payload.challenger,
        challenged=payload.challenged,
        stake_amount=payload.stakeAmount,
        due_at=payload.dueAt,
        challenge_id=payload.challengeId,
    )
    return challenge.model_dump()


@router.get("/challenges/{challenge_id}")
def get_challenge(challenge_id: str, state: ServerState = Depends(get_state)) -> dict[str, Any]:
    return state.engine.get_challenge(challenge_id).model_dump()


@router.post("/challenges/{challenge_id}/proofs")
def submit_proof(
    challenge_id: str,
    payload: ProofCreate,
    background: BackgroundTasks,
    state: ServerState = Depends(get_state),
) -> dict[str, Any]:
    proof = state.engine.submit_proof(challenge_id, payload.submitterId, payload.contentUri, payload.contentHash)
    _schedule_dispatch(background, state, challenge_id)
    return proof.model_dump()


@router.get("/challenges/{challenge_id}/proofs")
def list_proofs(challenge_id: str, state: ServerState = Depends(get_state)) -> dict[str, Any]:
    items = [p.model_dump() for p in state.engine.list_proofs(challenge_id)]
    return {"count": len(items), "items": items}


@router.post("/challenges/{challenge_id}/votes")
def cast_vote(
    challenge_id: str,
    payload: VoteCreate,
    background: BackgroundTasks,
    state: ServerState = Depends(get_state),
) -> dict[str, Any]:
    vote = state.engine.cast_vote(challenge_id, payload.voterId, payload.choice, payload.referencedProofHash)
    _schedule_dispatch(background, state, challenge_id)
    return vote.model_dump()


@router.get("/challenges/{challenge_id}/votes")
def get_votes(challenge_id: str, state: ServerState = Depends(get_state)) -> dict[str, Any]:
    votes = {voter_id: v.model_dump() for voter_id, v in state.engine.get_votes(challenge_id).items()}
    return {"count": len(votes), "items": votes}


@router.post("/challenges/{challenge_id}/dispute")
def open_dispute(
    challenge_id: str,
    payload: DisputeCreate,
    background: BackgroundTasks,
    state: ServerState = Depends(get_state),
) -> dict[str, Any]:
    record = state.engine.open_dispute(challenge_id, payload.callerId)
    _schedule_dispatch(background, state, challenge_id)
    return record.model_dump()


@router.get("/challenges/{challenge_id}/dispute")
def get_dispute(challenge_id: str, state: ServerState = Depends(get_state)) -> dict[str, Any]:
    record = state.engine.get_dispute(challenge_id)
    if record is None:
        raise HTTPException(status_code=404, detail="dispute not found")
    return record.model_dump()


@router.post("/challenges/{challenge_id}/resolve")
def resolve_dispute(
    challenge_id: str,
    payload: ResolveCreate,
    background: BackgroundTasks,
    state: ServerState = Depends(get_state),
) -> dict[str, Any]:
    decision = state.engine.resolve(
        challenge_id,
        payload.arbiterId,
        winner_id=payload.winnerId,
        split=payload.split,
    )
    _schedule_dispatch(background, state, challenge_id)
    return decision.model_dump()


@router.get("/challenges/{challenge_id}/settlement")
def get_settlement(
    challenge_id: str,
    background: BackgroundTasks,
    state: ServerState = Depends(get_state),
) -> dict[str, Any]:
    decision = state.engine.get_settlement(challenge_id)
    if not decision.is_pending:
        _schedule_dispatch(background, state, challenge_id)
    return decision.model_dump()


@router.get("/challenges/{challenge_id}/decisions")
def list_decisions(challenge_id: str, state: ServerState = Depends(get_state)) -> dict[str, Any]:
    items = [d.model_dump() for d in state.engine.list_decisions(challenge_id)]
    return {"count": len(items), "items": items}


@router.get("/challenges/{challenge_id}/events")
def list_events(challenge_id: str, state: ServerState = Depends(get_state)) -> dict[str, Any]:
    state.engine.get_challenge(challenge_id)
    events = state.engine.audit.list(challenge_id)
    chain = state.engine.audit.verify(challenge_id)
    return {
        "challengeId": challenge_id,
        "count": len(events),
        "items": events,
        "chain": {
            "valid": chain.ok,
            "errors": chain.errors,
        },
    }


@router.get("/disputes")
def list_disputes(
    status: str | None = Query(default="open"),
    limit: int = Query(default=200, ge=1, le=2000),
    state: ServerState = Depends(get_state),
) -> dict[str, Any]:
    items = [d.model_dump() for d in state.engine.disputes.list(status, limit)]
    return {"count": len(items), "items": items}


@router.post("/outbox/redrive")
def redrive_outbox(
    challenge_id: str | None = Query(default=None, alias="challengeId"),
    state: ServerState = Depends(get_state),
) -> dict[str, Any]:
    return state.dispatcher.redrive(challenge_id)
