"""Error types raised by the qm-ingest pipeline."""

from __future__ import annotations

EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_NETWORK_FAILED = 3


class QmIngestError(Exception):
    exit_code = EXIT_COMMAND_ERROR


class NetworkError(QmIngestError):
    """Non-2xx response or transport failure while fetching a source."""

    exit_code = EXIT_NETWORK_FAILED

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class NotFoundError(QmIngestError, FileNotFoundError):
    exit_code = EXIT_COMMAND_ERROR


class NoSheetError(QmIngestError):
    exit_code = EXIT_PARSE_FAILED


class WorkbookError(QmIngestError, ValueError):
    exit_code = EXIT_PARSE_FAILED


class ConfigError(QmIngestError, ValueError):
    exit_code = EXIT_COMMAND_ERROR
