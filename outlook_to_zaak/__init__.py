"""Upload Outlook e-mails, attachments and office documents to a zaak."""

from .backoff import BackoffExecutor
from .case_client import CaseClient
from .content import GraphContentFetcher, OfficeDocumentFetcher
from .credentials import CredentialCache
from .errors import (
    AuthenticationError,
    BatchUploadError,
    ClientRequestError,
    ContentTooLargeError,
    ErrorKind,
    OrchestrationError,
    PerItemSubmissionError,
    RateLimitedError,
    TransientServerError,
    TranslationError,
    UploadError,
)
from .graph_client import GraphClient
from .models import (
    AggregateResult,
    Credential,
    DocumentMetadata,
    ItemKind,
    MutationRecord,
    MutationStatus,
    RunResult,
    UploadItem,
)
from .orchestrator import RunState, UploadOrchestrator
from .status import StatusRegistry
from .translator import IdentifierTranslator

__version__ = "0.1.0"
__all__ = [
    "AggregateResult",
    "AuthenticationError",
    "BackoffExecutor",
    "BatchUploadError",
    "CaseClient",
    "ClientRequestError",
    "ContentTooLargeError",
    "Credential",
    "CredentialCache",
    "DocumentMetadata",
    "ErrorKind",
    "GraphClient",
    "GraphContentFetcher",
    "IdentifierTranslator",
    "ItemKind",
    "MutationRecord",
    "MutationStatus",
    "OfficeDocumentFetcher",
    "OrchestrationError",
    "PerItemSubmissionError",
    "RateLimitedError",
    "RunResult",
    "RunState",
    "StatusRegistry",
    "TransientServerError",
    "TranslationError",
    "UploadError",
    "UploadItem",
    "UploadOrchestrator",
]
