"""Error definitions and error bookkeeping for the Pageshift translator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional, Sequence

from .logger import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Categorises runtime errors so they can be reported consistently."""

    CAPABILITY_UNAVAILABLE = auto()
    UNSUPPORTED_PAIR = auto()
    TRANSLATION = auto()
    DETECTION = auto()
    RESTORE = auto()
    CONFIGURATION = auto()
    FILE_IO = auto()
    OTHER = auto()


class PageshiftError(Exception):
    """Base exception for all custom errors."""


class CapabilityUnavailableError(PageshiftError):
    """Raised when the translator or detector does not exist in this context."""


class UnsupportedLanguagePairError(PageshiftError):
    """Raised when a translator cannot be built for a language pair."""

    def __init__(self, source: str | None, target: str | None, message: str | None = None):
        self.source = source
        self.target = target
        super().__init__(
            message or f"The language pair is unsupported: {source} -> {target}."
        )


class LanguagePairExhaustedError(PageshiftError):
    """Raised once every fallback target has been rejected."""

    def __init__(self, source: str | None, target: str | None, attempted: Sequence[str]):
        self.source = source
        self.target = target
        self.attempted = list(attempted)
        super().__init__(
            f"Failed to translate after {len(self.attempted)} attempts with different "
            f"target languages ({source} -> {', '.join(self.attempted) or target})."
        )


class TranslationProviderConfigurationError(PageshiftError):
    """Raised when the translation provider is misconfigured."""


class TranslationProviderError(PageshiftError):
    """Raised when a single translation call fails."""


class UnsupportedFileTypeError(PageshiftError):
    """Raised when a given file extension is not supported."""


class OverwriteRefusedError(PageshiftError):
    """Raised when attempting to overwrite an output without consent."""


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None


class ErrorLog:
    """Collects contained failures so they can be summarised later."""

    def __init__(self) -> None:
        self.records: List[ErrorRecord] = []

    def record(
        self,
        category: ErrorCategory,
        message: str,
        details: Optional[str] = None,
    ) -> ErrorRecord:
        record = ErrorRecord(category=category, message=message, details=details)
        self.records.append(record)
        if details:
            logger.warning("%s (%s)", message, details)
        else:
            logger.warning(message)
        return record

    @property
    def messages(self) -> List[str]:
        return [record.message for record in self.records]

    def __len__(self) -> int:
        return len(self.records)
