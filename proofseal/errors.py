"""
Error taxonomy for the access-control protocol.

Every error carries enough context (record id, address, blob id, digest)
to diagnose a failure without re-deriving state.

Retry policy by family:
  ValidationError      — caller must fix input, never retried
  NetworkError         — transport failure, retried with fallback endpoint
  LedgerError          — write rejected, or indexing still in progress
  AuthorizationError   — predicate rejected the address, needs a new grant
  SessionError         — session could not be created or has lapsed
  Encryption/Decryption — cryptographic failure, surfaced verbatim
"""


class ProofSealError(Exception):
    """Base class for all protocol errors."""


class ValidationError(ProofSealError, ValueError):
    """Malformed identifier, address or parameter."""


class InvalidIdentifierError(ValidationError):
    """A blob, policy or record identifier is empty or unusable."""

    def __init__(self, kind: str, value):
        self.kind = kind
        self.value = value
        super().__init__(f"Invalid {kind}: {value!r}")


class OwnershipError(ValidationError):
    """The signer does not own the record it is trying to mutate."""

    def __init__(self, record_id: str, address: str, owner: str):
        self.record_id = record_id
        self.address = address
        self.owner = owner
        super().__init__(
            f"{address} is not the owner of record {record_id} (owner: {owner})"
        )


class NetworkError(ProofSealError):
    """Transport-level failure talking to an external endpoint."""


class UploadError(NetworkError):
    def __init__(self, status: int | None, body: str, endpoint: str = ""):
        self.status = status
        self.body = body
        self.endpoint = endpoint
        super().__init__(f"Blob upload to {endpoint} failed ({status}): {body}")


class FetchError(NetworkError):
    def __init__(self, blob_id: str, failures: list[str]):
        self.blob_id = blob_id
        self.failures = failures
        super().__init__(
            f"Failed to fetch blob {blob_id}: " + "; ".join(failures)
        )


class KeyServerError(NetworkError):
    """Not enough key servers answered to reach the threshold."""


class LedgerError(ProofSealError):
    """Base class for ledger write/read failures."""


class TransactionRejectedError(LedgerError):
    def __init__(self, digest: str | None, reason: str):
        self.digest = digest
        self.reason = reason
        super().__init__(f"Transaction {digest or '<unsubmitted>'} rejected: {reason}")


class TransactionNotIndexedError(LedgerError):
    """The write was accepted but is not yet visible to readers."""

    def __init__(self, digest: str):
        self.digest = digest
        super().__init__(f"Could not find the referenced transaction {digest}")


class ResolutionError(LedgerError):
    def __init__(self, digest: str, reason: str):
        self.digest = digest
        self.reason = reason
        super().__init__(f"Could not resolve transaction {digest}: {reason}")


class IndexingTimeout(LedgerError):
    """
    Retry ceiling reached before the write became visible.
    Not a "does not exist" signal; resolving again later may succeed.
    """

    def __init__(self, digest: str, attempts: int):
        self.digest = digest
        self.attempts = attempts
        super().__init__(
            f"Transaction {digest} still not indexed after {attempts} attempts"
        )


class AuthorizationError(ProofSealError):
    def __init__(self, message: str, address: str = "", policy_id: str = ""):
        self.address = address
        self.policy_id = policy_id
        super().__init__(message)


class SessionError(ProofSealError):
    pass


class SessionCreationError(SessionError):
    pass


class SessionExpiredError(SessionError):
    def __init__(self, message: str, address: str = ""):
        self.address = address
        super().__init__(message)


class MalformedRecordError(ProofSealError):
    def __init__(self, record_id: str, raw):
        self.record_id = record_id
        self.raw = raw
        super().__init__(
            f"Unrecognized approved_viewers encoding on record {record_id}: {raw!r}"
        )


class EncryptionError(ProofSealError):
    pass


class DecryptionError(ProofSealError):
    def __init__(self, message: str, blob_id: str = ""):
        self.blob_id = blob_id
        super().__init__(message)
