"""seasonalndvi exception hierarchy.

All exceptions follow a three-part message pattern: what failed,
likely cause, and suggested fix.
"""

from __future__ import annotations


class SeasonalNdviError(Exception):
    """Base exception for all seasonalndvi errors.

    Args:
        what: Description of what failed.
        cause: Likely cause of the failure.
        fix: Suggested action to resolve the issue.

    Example:
        >>> raise SeasonalNdviError(
        ...     what="Operation failed",
        ...     cause="Unexpected internal state",
        ...     fix="Please report this issue",
        ... )
    """

    def __init__(
        self,
        what: str,
        cause: str = "",
        fix: str = "",
    ) -> None:
        """Initialize with structured error context.

        Args:
            what: Description of what failed.
            cause: Likely cause of the failure.
            fix: Suggested action to resolve the issue.
        """
        self.what = what
        self.cause = cause
        self.fix = fix
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Build the multi-line error message from parts.

        Returns:
            Formatted message with optional Cause and Fix lines.
        """
        parts = [self.what]
        if self.cause:
            parts.append(f"Cause: {self.cause}")
        if self.fix:
            parts.append(f"Fix: {self.fix}")
        return "\n".join(parts)


class ConfigurationError(SeasonalNdviError):
    """Raised for invalid settings, arguments and credential errors.

    Example:
        >>> raise ConfigurationError(
        ...     what="Cannot read credentials file",
        ...     cause="File not found: ~/.seasonalndvi/drive-service-account.json",
        ...     fix="Set SEASONALNDVI_CREDENTIALS or pass drive_credentials",
        ... )
    """


class NotFoundError(SeasonalNdviError):
    """Raised when a boundary, collection or band identifier matches nothing.

    Example:
        >>> raise NotFoundError(
        ...     what="No features matched ADMIN == 'Indai'",
        ...     cause="Dataset naturalearth/admin0 has no such feature",
        ...     fix="Check the attribute value spelling",
        ... )
    """


class AmbiguousRegionError(SeasonalNdviError):
    """Raised when a region filter matches several features under the
    ``"error"`` multi-match policy."""


class SourceUnavailableError(SeasonalNdviError):
    """Raised when a backing dataset or service cannot be reached.

    Raised only after retries are exhausted.

    Example:
        >>> raise SourceUnavailableError(
        ...     what="STAC catalog search failed",
        ...     cause="HTTP 503 after 3 retries",
        ...     fix="Check https://planetarycomputer.microsoft.com/ status",
        ... )
    """


class CollectionNotFoundError(SourceUnavailableError, NotFoundError):
    """Raised when a named dataset does not exist at its source."""


class ExportFailureError(SeasonalNdviError):
    """Reported through an ``ExportHandle`` when an export job fails.

    Export jobs never raise this at submission time; it is attached to
    the handle's ``error`` attribute.
    """
