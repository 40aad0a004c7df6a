# tests/test_concurrency.py
"""
Contention tests against a file-backed SQLite database.

Every worker opens its own session (its own pooled connection), the same way
concurrent HTTP requests do.
"""
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from invite_service.models import InviteToken
from invite_service.services.token_store import (
    ConsumeError,
    VerifyReason,
    consume_token,
    generate_tokens,
    verify_token,
)

WORKERS = 10


@pytest.fixture()
def Session(file_engine):
    return sessionmaker(bind=file_engine, autoflush=False)


def _consume_race(Session, token: str, workers: int):
    barrier = threading.Barrier(workers)

    def attempt(i: int):
        barrier.wait()
        with Session() as s:
            return consume_token(s, token, f"worker-{i}")

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(attempt, range(workers)))


def test_exactly_one_concurrent_consume_wins(Session):
    with Session() as s:
        [issued] = generate_tokens(s, 1)

    results = _consume_race(Session, issued.token, WORKERS)

    winners = [r for r in results if r.success]
    losers = [r for r in results if not r.success]
    assert len(winners) == 1
    assert len(losers) == WORKERS - 1
    assert all(r.error is ConsumeError.ALREADY_USED for r in losers)

    with Session() as s:
        status, identity = s.execute(
            select(InviteToken.status, InviteToken.consumer_identity).where(
                InviteToken.token == issued.token
            )
        ).one()
    assert status == "used"
    assert identity.startswith("worker-")


def test_each_token_is_won_once_when_many_tokens_race(Session):
    with Session() as s:
        issued = generate_tokens(s, 4)

    tokens = [t.token for t in issued] * 3  # three contenders per token
    barrier = threading.Barrier(len(tokens))

    def attempt(token: str):
        barrier.wait()
        with Session() as s:
            return token, consume_token(s, token)

    with ThreadPoolExecutor(max_workers=len(tokens)) as pool:
        outcomes = list(pool.map(attempt, tokens))

    for t in issued:
        mine = [r for tok, r in outcomes if tok == t.token]
        assert sum(r.success for r in mine) == 1
        assert sum(r.error is ConsumeError.ALREADY_USED for r in mine) == 2


def test_concurrent_verify_sees_only_whole_states(Session):
    with Session() as s:
        [issued] = generate_tokens(s, 1)

    stop = threading.Event()
    observed: list[list] = [[] for _ in range(3)]

    def verifier(idx: int):
        with Session() as s:
            while not stop.is_set():
                observed[idx].append(verify_token(s, issued.token))
            observed[idx].append(verify_token(s, issued.token))

    threads = [threading.Thread(target=verifier, args=(i,)) for i in range(3)]
    for t in threads:
        t.start()

    with Session() as s:
        assert consume_token(s, issued.token).success is True
    stop.set()
    for t in threads:
        t.join(timeout=30)

    for seq in observed:
        assert seq, "verifier never ran"
        for r in seq:
            assert r.valid or r.reason is VerifyReason.USED
        # Monotonic: once used, never valid again
        first_used = next(i for i, r in enumerate(seq) if not r.valid)
        assert all(not r.valid for r in seq[first_used:])
        assert seq[-1].reason is VerifyReason.USED


def test_concurrent_generate_keeps_tokens_unique(Session):
    per_worker = 20
    workers = 4
    barrier = threading.Barrier(workers)

    def produce(_):
        barrier.wait()
        with Session() as s:
            return [t.token for t in generate_tokens(s, per_worker)]

    with ThreadPoolExecutor(max_workers=workers) as pool:
        batches = list(pool.map(produce, range(workers)))

    tokens = [t for batch in batches for t in batch]
    assert len(tokens) == per_worker * workers
    assert len(set(tokens)) == len(tokens)

    with Session() as s:
        assert s.execute(select(func.count()).select_from(InviteToken)).scalar_one() == len(tokens)


def test_concurrent_generate_in_tiny_keyspace_never_duplicates(Session):
    workers = 4
    barrier = threading.Barrier(workers)

    def produce(_):
        barrier.wait()
        with Session() as s:
            return [t.token for t in generate_tokens(s, 5, alphabet="XY", length=2, max_attempts=6)]

    with ThreadPoolExecutor(max_workers=workers) as pool:
        batches = list(pool.map(produce, range(workers)))

    tokens = [t for batch in batches for t in batch]
    assert len(tokens) <= 4
    assert len(set(tokens)) == len(tokens)
