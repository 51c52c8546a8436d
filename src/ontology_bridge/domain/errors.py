"""Error taxonomy for ontology ingestion and synchronization."""


class BridgeError(Exception):
    """Base class for all bridge errors."""

    pass


class NoUpdateError(BridgeError):
    """Raised when the remote ontology version equals the last synced one.

    Not a failure: it short-circuits the rebuild pipeline.
    """

    def __init__(self, version: int):
        super().__init__(f"no new ontology version available (version {version})")
        self.version = version


class LookupMissError(BridgeError):
    """Raised when a template, type or unit id cannot be resolved."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} {identifier!r} not found")
        self.kind = kind
        self.identifier = identifier


class TransportError(BridgeError):
    """Raised when talking to the vendor API or the asset platform fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DataInconsistencyError(BridgeError):
    """Raised when a single value does not fit the attributes it targets."""

    pass
