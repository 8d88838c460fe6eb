"""
proofseal — Basic Usage Example

Runs the whole protocol on the local development network:
seal a document, mint a Proof, share it with a viewer, revoke the viewer.
The ciphertext never moves; only the Proof's viewer list changes.
"""

import asyncio
import logging
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from proofseal import InferenceResult
from proofseal.devnet import local_network
from proofseal.errors import AuthorizationError


class KeywordModel:
    """Stand-in for the AI service: flags documents that mention a signature."""

    async def infer(self, document: str) -> InferenceResult:
        verdict = "signed" if "signed" in document.lower() else "unsigned"
        return InferenceResult(text=f"VERDICT: {verdict}", attestation=f"kw-model:{len(document)}")


async def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 50)
    print("  proofseal — Encrypted Proofs, Revocable Access")
    print("=" * 50)

    net = local_network()
    client = net.client()
    owner = net.wallet()
    viewer = net.wallet()

    document = "Lease agreement for unit 4B, signed 2026-02-11 by both parties."

    # seal document → infer → seal result → mint → resolve
    minted = await client.prove(document, owner, KeywordModel())
    print(f"\nOwner:     {owner.address}")
    print(f"Policy:    {minted.document.policy_id}")
    print(f"Document:  blob {minted.document.blob_id}")
    print(f"Result:    blob {minted.result.blob_id}")
    print(f"Record:    {minted.record_id}")

    owner_session = await client.create_session(owner)
    opened = await client.open(minted.record_id, owner_session)
    print(f"\nOwner reads: {opened.document.decode()!r}")
    print(f"Result:      {opened.result.decode()!r}")

    viewer_session = await client.create_session(viewer)
    print(f"\nViewer {viewer.address[:10]}… before grant:")
    try:
        await client.open(minted.record_id, viewer_session)
        print("  ERROR: Should have failed!")
    except AuthorizationError:
        print("  Correctly rejected: not the owner or an approved viewer")

    await client.grant(owner, minted.record_id, viewer.address)
    snapshot = await client.settle(minted.record_id)
    print(f"\nGranted. Approved viewers: {sorted(snapshot.approved_viewers)}")
    opened = await client.open(minted.record_id, viewer_session)
    print(f"  Viewer reads: {opened.document.decode()!r}")

    await client.revoke(owner, minted.record_id, viewer.address)
    snapshot = await client.settle(minted.record_id)
    print(f"\nRevoked. Approved viewers: {sorted(snapshot.approved_viewers)}")
    try:
        await client.orchestrator.decrypt(minted.document.blob_id, minted.document.policy_id, viewer_session)
        print("  ERROR: Should have failed!")
    except AuthorizationError:
        print("  Key servers refuse the same ciphertext: revocation is effective")

    served = {ks.object_id[:10]: ks.requests_served for ks in net.key_servers}
    print(f"\nKeys released per server: {served}")
    await net.http.aclose()


if __name__ == "__main__":
    asyncio.run(main())
