"""
Move-call transactions.

A Transaction is a list of Move calls with typed arguments. Pure arguments
carry their Move type; byte vectors stay independent arguments and are
never concatenated, so no field can bleed into its neighbour.

Transactions serialize to canonical JSON bytes. A transaction built with
only_transaction_kind=True omits the sender and is what key servers
dry-run to evaluate an access predicate; it is never executed.
"""

import base64
import json
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Pure:
    """A pure (non-object) Move argument."""
    type: str       # "vector<u8>", "address", "u64"
    value: object

    def to_dict(self) -> dict:
        value = self.value
        if self.type == "vector<u8>":
            value = base64.b64encode(bytes(value)).decode()
        return {"kind": "pure", "type": self.type, "value": value}

    @classmethod
    def vector_u8(cls, data: bytes | str) -> "Pure":
        if isinstance(data, str):
            data = data.encode("utf-8")
        return cls("vector<u8>", bytes(data))

    @classmethod
    def address(cls, address: str) -> "Pure":
        return cls("address", address)

    @classmethod
    def u64(cls, value: int) -> "Pure":
        if not 0 <= value < 2 ** 64:
            raise ValueError(f"u64 out of range: {value}")
        return cls("u64", int(value))


@dataclass(frozen=True)
class ObjectArg:
    """Reference to an on-chain object by id."""
    object_id: str

    def to_dict(self) -> dict:
        return {"kind": "object", "object_id": self.object_id}


def _arg_from_dict(data: dict):
    if data["kind"] == "object":
        return ObjectArg(data["object_id"])
    value = data["value"]
    if data["type"] == "vector<u8>":
        value = base64.b64decode(value)
    return Pure(data["type"], value)


@dataclass(frozen=True)
class MoveCall:
    target: str                 # "<package>::<module>::<function>"
    arguments: tuple = ()

    @property
    def package(self) -> str:
        return self.target.split("::")[0]

    @property
    def module(self) -> str:
        return self.target.split("::")[1]

    @property
    def function(self) -> str:
        return self.target.split("::")[2]

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "arguments": [a.to_dict() for a in self.arguments],
        }


@dataclass
class Transaction:
    calls: list[MoveCall] = field(default_factory=list)
    sender: str | None = None

    def move_call(self, target: str, arguments: list) -> "Transaction":
        if target.count("::") != 2:
            raise ValueError(f"Move call target must be package::module::function, got {target!r}")
        self.calls.append(MoveCall(target, tuple(arguments)))
        return self

    def to_bytes(self, only_transaction_kind: bool = False) -> bytes:
        body = {"calls": [c.to_dict() for c in self.calls]}
        if not only_transaction_kind:
            body["sender"] = self.sender
        return json.dumps(body, sort_keys=True, separators=(",", ":")).encode()

    @classmethod
    def from_bytes(cls, data: bytes) -> "Transaction":
        body = json.loads(data)
        calls = [
            MoveCall(c["target"], tuple(_arg_from_dict(a) for a in c["arguments"]))
            for c in body["calls"]
        ]
        return cls(calls=calls, sender=body.get("sender"))


@dataclass(frozen=True)
class TransactionResult:
    """
    Outcome of a submitted write, returned by the signer.

    status is "success" or "failure"; a failed write still has a digest.
    """
    digest: str
    status: str = "success"
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"
