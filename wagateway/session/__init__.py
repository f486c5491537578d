"""
Session layer for wagateway.

This package owns the single chat-protocol session of the gateway: the
adapter contract, credential persistence, pairing QR artifacts, the
connection lifecycle state machine and outbound dispatch.

Public API:
    - SessionAdapter: Protocol implemented by chat session backends
    - SessionEvent types: PairingCodeIssued, Connecting, ConnectionOpened,
      ConnectionClosed, CredentialsRotated, MessageReceived
    - MemorySession: In-process session for development and tests

    - CredentialStore, FileCredentialStore, InMemoryCredentialStore
    - QRArtifactManager, PairingArtifact

    - ConnectionLifecycleManager, ConnectionState, StatusSnapshot,
      ActionResult, ReconnectPolicy

    - OutboundDispatcher, MessageKind, RecipientKind, Recipient,
      normalize_recipient, FilePayload

    - Errors: GatewayError, ConfigurationError, ServiceUnavailable,
      InitializationFailure, TransientDisconnect, InvalidPayload,
      SessionError, CredentialStoreError
"""

from .base import (
    GROUP_SUFFIX,
    INDIVIDUAL_SUFFIX,
    CloseReason,
    ConnectionClosed,
    ConnectionOpened,
    Connecting,
    CredentialsRotated,
    MessageReceived,
    PairingCodeIssued,
    SessionAdapter,
    SessionEvent,
    SessionFactory,
)

from .errors import (
    ConfigurationError,
    GatewayError,
    InitializationFailure,
    InvalidPayload,
    ServiceUnavailable,
    SessionError,
    TransientDisconnect,
)

from .credentials import (
    CredentialStore,
    CredentialStoreError,
    FileCredentialStore,
    InMemoryCredentialStore,
)

from .qr import PairingArtifact, QRArtifactManager

from .lifecycle import (
    ActionResult,
    ConnectionLifecycleManager,
    ConnectionState,
    ReconnectPolicy,
    StatusSnapshot,
)

from .payloads import FilePayload, decode_base64_file

from .dispatcher import (
    DispatchResult,
    DocumentMessage,
    ImageMessage,
    MessageKind,
    OutboundDispatcher,
    OutboundMessage,
    Recipient,
    RecipientKind,
    TextMessage,
    normalize_recipient,
)

from .memory import MemorySession


__all__ = [
    # Session contract
    "GROUP_SUFFIX",
    "INDIVIDUAL_SUFFIX",
    "CloseReason",
    "ConnectionClosed",
    "ConnectionOpened",
    "Connecting",
    "CredentialsRotated",
    "MessageReceived",
    "PairingCodeIssued",
    "SessionAdapter",
    "SessionEvent",
    "SessionFactory",
    "MemorySession",

    # Errors
    "ConfigurationError",
    "GatewayError",
    "InitializationFailure",
    "InvalidPayload",
    "ServiceUnavailable",
    "SessionError",
    "TransientDisconnect",

    # Storage
    "CredentialStore",
    "CredentialStoreError",
    "FileCredentialStore",
    "InMemoryCredentialStore",
    "PairingArtifact",
    "QRArtifactManager",

    # Lifecycle
    "ActionResult",
    "ConnectionLifecycleManager",
    "ConnectionState",
    "ReconnectPolicy",
    "StatusSnapshot",

    # Dispatch
    "DispatchResult",
    "DocumentMessage",
    "FilePayload",
    "ImageMessage",
    "MessageKind",
    "OutboundDispatcher",
    "OutboundMessage",
    "Recipient",
    "RecipientKind",
    "TextMessage",
    "decode_base64_file",
    "normalize_recipient",
]
