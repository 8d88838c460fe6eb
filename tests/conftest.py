"""
Shared fixtures: a local network, wallets, a fake clock and a fake model.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from proofseal.client import InferenceResult
from proofseal.devnet import local_network
from proofseal.events import EventBus
from proofseal.transactions import TransactionResult

OWNER_A = "0x" + "aa" * 32
VIEWER_B = "0x" + "bb" * 32
VIEWER_C = "0x" + "cc" * 32


class FakeSleep:
    """Records requested delays instead of waiting."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class FakeInference:
    def __init__(self):
        self.documents = []

    async def infer(self, document):
        self.documents.append(document)
        return InferenceResult(
            text=f"VERDICT: authentic ({len(document)} chars reviewed)",
            attestation=f"attestation-{len(self.documents)}",
        )


class FixedSigner:
    """
    Signer with a chosen address that submits straight to a ledger.

    Cannot sign personal messages; use LocalWallet for sessions.
    """

    def __init__(self, address, ledger):
        self.address = address
        self.ledger = ledger
        self.submitted = []

    async def sign_personal_message(self, message):
        raise RuntimeError("FixedSigner cannot sign messages")

    async def sign_and_submit_transaction(self, tx):
        self.submitted.append(tx)
        return self.ledger.execute(tx, sender=self.address)


class RejectingSigner(FixedSigner):
    async def sign_and_submit_transaction(self, tx):
        self.submitted.append(tx)
        return TransactionResult(digest="rejected-digest", status="failure", error="InsufficientGas")


@pytest.fixture
def net():
    return local_network()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def client(net, fake_sleep, events):
    return net.client(events=events, sleep=fake_sleep)


@pytest.fixture
def owner(net):
    return net.wallet()


@pytest.fixture
def viewer(net):
    return net.wallet()


@pytest.fixture
def stranger(net):
    return net.wallet()


@pytest.fixture
def inference():
    return FakeInference()


@pytest.fixture
def owner_a(net):
    return FixedSigner(OWNER_A, net.ledger)
