"""
Tests for key-server authorized decryption.
"""

import json
import sys
import time
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from proofseal.decrypt import DecryptionOrchestrator, build_predicate
from proofseal.devnet import local_network
from proofseal.errors import (
    AuthorizationError,
    DecryptionError,
    InvalidIdentifierError,
    KeyServerError,
    SessionExpiredError,
)
from proofseal.keyservers.base import KeyRequest
from proofseal.keyservers.http import HttpKeyServer
from proofseal.policy import EncryptedObject
from proofseal.session import SessionAuthorizer

DOCUMENT = "Lab report #42: sample matches reference within tolerance."


@pytest.mark.asyncio
async def test_owner_round_trip(client, owner, inference):
    minted = await client.prove(DOCUMENT, owner, inference)
    session = await client.create_session(owner)

    plaintext = await client.orchestrator.decrypt(minted.document.blob_id, minted.document.policy_id, session)
    assert plaintext == DOCUMENT.encode()
    text = await client.orchestrator.decrypt_text(minted.result.blob_id, minted.result.policy_id, session)
    assert text.startswith("VERDICT")


@pytest.mark.asyncio
async def test_unminted_ciphertext_is_not_decryptable(client, owner):
    """The predicate needs a Proof record; sealing alone grants nothing."""
    sealed = await client.seal_document(DOCUMENT, owner.address)
    session = await client.create_session(owner)

    with pytest.raises(AuthorizationError):
        await client.orchestrator.decrypt(sealed.blob_id, sealed.policy_id, session)


@pytest.mark.asyncio
async def test_revocation_is_effective(client, owner, viewer, inference):
    """After revoke + settle the same ciphertext no longer opens for the viewer."""
    minted = await client.prove(DOCUMENT, owner, inference)
    viewer_session = await client.create_session(viewer)

    with pytest.raises(AuthorizationError):
        await client.orchestrator.decrypt(minted.document.blob_id, minted.document.policy_id, viewer_session)

    await client.grant(owner, minted.record_id, viewer.address)
    await client.settle(minted.record_id)
    assert await client.orchestrator.decrypt(
        minted.document.blob_id, minted.document.policy_id, viewer_session
    ) == DOCUMENT.encode()

    await client.revoke(owner, minted.record_id, viewer.address)
    await client.settle(minted.record_id)
    with pytest.raises(AuthorizationError) as exc:
        await client.orchestrator.decrypt(minted.document.blob_id, minted.document.policy_id, viewer_session)
    assert exc.value.address == viewer.address


@pytest.mark.asyncio
async def test_session_bound_to_caller(client, owner, viewer, inference):
    minted = await client.prove(DOCUMENT, owner, inference)
    session = await client.create_session(owner)

    with pytest.raises(SessionExpiredError, match="bound to"):
        await client.orchestrator.decrypt(
            minted.document.blob_id, minted.document.policy_id, session, caller=viewer.address
        )
    assert await client.orchestrator.decrypt(
        minted.document.blob_id, minted.document.policy_id, session, caller=owner.address.upper().replace("0X", "0x")
    ) == DOCUMENT.encode()


@pytest.mark.asyncio
async def test_key_server_rejects_predicate_for_other_sender(net, client, owner, viewer, stranger, inference):
    """A session cannot carry a predicate built for another approved address."""
    minted = await client.prove(DOCUMENT, owner, inference)
    await client.grant(owner, minted.record_id, viewer.address)
    await client.grant(owner, minted.record_id, stranger.address)
    viewer_session = await client.create_session(viewer)

    obj = EncryptedObject.from_bytes(net.walrus.blobs[minted.document.blob_id])
    slot = obj.shares[0]
    request = KeyRequest(
        package_id=obj.package_id,
        policy_id=obj.policy_id,
        ptb=build_predicate(obj.package_id, obj.policy_id, stranger.address).to_bytes(),
        encapsulation=slot.encapsulation,
        enc_key=b"\x00" * 32,
        certificate=viewer_session.certificate(),
    )
    request.request_signature = viewer_session.sign_request(request.signing_payload())

    with pytest.raises(AuthorizationError, match="built for"):
        await net.key_servers[0].fetch_key(request)


@pytest.mark.asyncio
async def test_key_server_rejects_bad_request_signature(net, client, owner, inference):
    minted = await client.prove(DOCUMENT, owner, inference)
    session = await client.create_session(owner)
    obj = EncryptedObject.from_bytes(net.walrus.blobs[minted.document.blob_id])

    request = KeyRequest(
        package_id=obj.package_id,
        policy_id=obj.policy_id,
        ptb=build_predicate(obj.package_id, obj.policy_id, owner.address).to_bytes(),
        encapsulation=obj.shares[0].encapsulation,
        enc_key=b"\x00" * 32,
        certificate=session.certificate(),
        request_signature=session.sign_request(b"a different request"),
    )
    with pytest.raises(AuthorizationError, match="request signature"):
        await net.key_servers[0].fetch_key(request)


@pytest.mark.asyncio
async def test_expired_session_rejected(net, client, owner, inference):
    minted = await client.prove(DOCUMENT, owner, inference)
    past = SessionAuthorizer(net.settings.package_id, ttl_min=1, clock=lambda: time.time() - 3600)
    session = await past.create_session(owner.address, owner.sign_personal_message)

    with pytest.raises(SessionExpiredError):
        await client.orchestrator.decrypt(minted.document.blob_id, minted.document.policy_id, session)


@pytest.mark.asyncio
async def test_wrong_policy_rejected(client, owner, viewer, inference):
    minted = await client.prove(DOCUMENT, owner, inference)
    session = await client.create_session(owner)
    other_policy = "0x" + viewer.address[2:34]

    with pytest.raises(DecryptionError, match="encrypted under policy"):
        await client.orchestrator.decrypt(minted.document.blob_id, other_policy, session)


@pytest.mark.asyncio
async def test_malformed_blob_rejected(client, owner):
    blob_id = await client.blob_store.upload(b"this is not an encrypted object")
    session = await client.create_session(owner)

    with pytest.raises(DecryptionError) as exc:
        await client.orchestrator.decrypt(blob_id, "0x" + owner.address[2:34], session)
    assert exc.value.blob_id == blob_id


@pytest.mark.asyncio
@pytest.mark.parametrize("blob_id", ["undefined", ""])
async def test_placeholder_blob_id_rejected(client, owner, blob_id):
    session = await client.create_session(owner)
    with pytest.raises(InvalidIdentifierError):
        await client.orchestrator.decrypt(blob_id, "0x" + owner.address[2:34], session)


@pytest.mark.asyncio
async def test_threshold_two_of_three():
    net = local_network(num_key_servers=3, threshold=2)
    client = net.client()
    owner = net.wallet()
    sealed = await client.seal_document(b"\x00\xffbinary", owner.address)
    await client.records.mint(owner, sealed.blob_id, sealed.policy_id, sealed.blob_id, sealed.policy_id, "h")
    session = await client.create_session(owner)

    assert await client.orchestrator.decrypt(sealed.blob_id, sealed.policy_id, session) == b"\x00\xffbinary"
    served = [ks.requests_served for ks in net.key_servers]
    assert sum(served) == 2


def http_front(key_server, fail=False):
    """An httpx transport serving key_server.handle over HTTP."""
    async def handler(request):
        if fail:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path == "/v1/service":
            return httpx.Response(200, json=key_server.get_info())
        status, body = await key_server.handle(json.loads(request.content))
        return httpx.Response(status, json=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def http_servers(net, failing=()):
    return [
        HttpKeyServer(
            f"http://ks{i}.local", ks.object_id, ks.public_key, http_front(ks, fail=i in failing)
        )
        for i, ks in enumerate(net.key_servers)
    ]


@pytest.mark.asyncio
async def test_http_key_servers(net, client, owner, stranger, inference):
    minted = await client.prove(DOCUMENT, owner, inference)
    orchestrator = DecryptionOrchestrator(client.blob_store, http_servers(net))

    session = await client.create_session(owner)
    assert await orchestrator.decrypt(minted.document.blob_id, minted.document.policy_id, session) == DOCUMENT.encode()

    stranger_session = await client.create_session(stranger)
    with pytest.raises(AuthorizationError):
        await orchestrator.decrypt(minted.document.blob_id, minted.document.policy_id, stranger_session)


@pytest.mark.asyncio
async def test_unreachable_key_server_falls_through(net, client, owner, inference):
    """With K = 1, one reachable server is enough."""
    minted = await client.prove(DOCUMENT, owner, inference)
    session = await client.create_session(owner)

    orchestrator = DecryptionOrchestrator(client.blob_store, http_servers(net, failing={0}))
    assert await orchestrator.decrypt(minted.document.blob_id, minted.document.policy_id, session) == DOCUMENT.encode()

    orchestrator = DecryptionOrchestrator(client.blob_store, http_servers(net, failing={0, 1}))
    with pytest.raises(KeyServerError, match="0 of 1"):
        await orchestrator.decrypt(minted.document.blob_id, minted.document.policy_id, session)


@pytest.mark.asyncio
async def test_http_key_server_availability(net):
    up, down = http_servers(net, failing={1})
    assert await up.is_available()
    assert not await down.is_available()
    assert up.get_info()["url"] == "http://ks0.local"


@pytest.mark.asyncio
async def test_handle_maps_errors_to_status(net):
    status, body = await net.key_servers[0].handle({"package_id": "x"})
    assert status == 400
    assert "Malformed" in body["error"]


def garbled_server(key_server):
    """An HttpKeyServer whose endpoint answers 200 with an unusable body."""
    def handler(request):
        return httpx.Response(200, json={"oops": 1})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpKeyServer("http://garbled.local", key_server.object_id, key_server.public_key, client)


@pytest.mark.asyncio
async def test_malformed_key_server_response_is_typed(net, client, owner, inference):
    minted = await client.prove(DOCUMENT, owner, inference)
    session = await client.create_session(owner)
    blob_id, policy_id = minted.document.blob_id, minted.document.policy_id

    orchestrator = DecryptionOrchestrator(client.blob_store, [garbled_server(ks) for ks in net.key_servers])
    with pytest.raises(KeyServerError, match="malformed response"):
        await orchestrator.decrypt(blob_id, policy_id, session)

    first, second = net.key_servers
    orchestrator = DecryptionOrchestrator(client.blob_store, [garbled_server(first), second])
    assert await orchestrator.decrypt(blob_id, policy_id, session) == DOCUMENT.encode()
