"""
Tests for bounded resolution of pending writes.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import OWNER_A, FakeSleep, FixedSigner
from proofseal.errors import IndexingTimeout, LedgerError, ResolutionError, TransactionNotIndexedError
from proofseal.identity import derive_policy_id
from proofseal.ledger.memory import InMemoryLedger
from proofseal.records import LedgerRecordManager, PendingWrite
from proofseal.resolver import RetryPolicy, TransactionIndexResolver

PACKAGE = "0x" + "5e" * 32
PROOF_TYPE = f"{PACKAGE}::truth_nft::Proof"


def indexed(record_id="0xrecord", status="success"):
    return {
        "digest": "D1",
        "effects": {"status": {"status": status}},
        "objectChanges": [
            {"type": "mutated", "objectType": "0x2::coin::Coin<0x2::sui::SUI>", "objectId": "0xgas"},
            {"type": "created", "objectType": PROOF_TYPE, "objectId": record_id},
        ],
    }


class FlakyReader:
    """Not indexed for the first `misses` lookups, then answers."""

    def __init__(self, misses, answer=None, error=None):
        self.misses = misses
        self.answer = answer if answer is not None else indexed()
        self.error = error
        self.lookups = 0

    async def get_transaction(self, digest):
        self.lookups += 1
        if self.lookups <= self.misses:
            raise TransactionNotIndexedError(digest)
        if self.error is not None:
            raise self.error
        return self.answer


def resolver_for(reader, sleep, attempts=30):
    return TransactionIndexResolver(PACKAGE, reader, RetryPolicy(attempts=attempts, interval=2.0, sleep=sleep))


@pytest.mark.asyncio
async def test_resolves_immediately_when_indexed():
    sleep = FakeSleep()
    assert await resolver_for(FlakyReader(0), sleep).resolve("D1") == "0xrecord"
    assert sleep.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("misses", [1, 5, 29])
async def test_resolves_after_indexing_delay(misses):
    """K not-indexed answers cost K sleeps, then the record id comes back."""
    sleep = FakeSleep()
    reader = FlakyReader(misses)

    record_id = await resolver_for(reader, sleep).resolve(PendingWrite("D1", OWNER_A, 0.0))
    assert record_id == "0xrecord"
    assert reader.lookups == misses + 1
    assert sleep.calls == [2.0] * misses


@pytest.mark.asyncio
async def test_gives_up_after_ceiling():
    """Never indexed: exactly 30 lookups, then None (not an error)."""
    sleep = FakeSleep()
    reader = FlakyReader(misses=10_000)

    assert await resolver_for(reader, sleep).resolve("D1") is None
    assert reader.lookups == 30
    assert len(sleep.calls) == 29


@pytest.mark.asyncio
async def test_require_raises_timeout():
    reader = FlakyReader(misses=10_000)
    with pytest.raises(IndexingTimeout) as exc:
        await resolver_for(reader, FakeSleep(), attempts=3).require("D1")
    assert exc.value.digest == "D1"
    assert exc.value.attempts == 3


@pytest.mark.asyncio
async def test_non_retryable_error_aborts():
    sleep = FakeSleep()
    reader = FlakyReader(misses=2, error=LedgerError("node exploded"))

    with pytest.raises(ResolutionError, match="node exploded") as exc:
        await resolver_for(reader, sleep).resolve("D1")
    assert isinstance(exc.value.__cause__, LedgerError)
    assert reader.lookups == 3
    assert len(sleep.calls) == 2


@pytest.mark.asyncio
async def test_failed_transaction_is_an_error():
    reader = FlakyReader(0, answer=indexed(status="failure"))
    with pytest.raises(ResolutionError, match="transaction failed"):
        await resolver_for(reader, FakeSleep()).resolve("D1")


@pytest.mark.asyncio
async def test_transaction_without_proof_is_an_error():
    answer = {"digest": "D1", "effects": {"status": {"status": "success"}}, "objectChanges": []}
    with pytest.raises(ResolutionError, match="no .*Proof created"):
        await resolver_for(FlakyReader(0, answer=answer), FakeSleep()).resolve("D1")


@pytest.mark.asyncio
async def test_resolves_against_in_memory_ledger():
    ledger = InMemoryLedger(PACKAGE, index_delay=4)
    records = LedgerRecordManager(PACKAGE, ledger)
    policy_id = derive_policy_id(OWNER_A)
    pending = await records.mint(FixedSigner(OWNER_A, ledger), "b", policy_id, "r", policy_id, "h")

    sleep = FakeSleep()
    record_id = await resolver_for(ledger, sleep).resolve(pending)
    assert record_id is not None
    assert len(sleep.calls) == 4
    assert (await records.query(record_id)).owner == OWNER_A


def test_retry_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(interval=-1)
    assert RetryPolicy().is_retryable(TransactionNotIndexedError("D"))
    assert not RetryPolicy().is_retryable(LedgerError("x"))
