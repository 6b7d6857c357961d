"""Exception hierarchy shared by the generation pipeline."""

from __future__ import annotations


class GenerationError(RuntimeError):
    """Base class for every failure that aborts a batch."""


class ShapeError(GenerationError):
    """Raised when the prompt service reply cannot be parsed into five prompts."""


class OutputShapeError(GenerationError):
    """Raised when a finished render job carries no usable result locator."""


class RenderError(GenerationError):
    """Raised when the rendering service reports a failed job."""


class RenderCanceledError(RenderError):
    """Raised when a render job was canceled upstream."""


class RenderTimeoutError(RenderError):
    """Raised when a render job does not finish within the polling budget."""


class ArityError(GenerationError):
    """Raised when prompt and image counts do not form a full batch."""


class PersistenceError(GenerationError):
    """Raised when the batch could not be written to the database."""


class StorageError(GenerationError):
    """Raised when image bytes could not be written to the image store."""


class TransportError(GenerationError):
    """Raised when an external service responds with an error or is unreachable."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class DownloadError(TransportError):
    """Raised when rendered image bytes cannot be downloaded."""


class BatchProductionError(GenerationError):
    """Wraps a stage failure with the date and position it happened at."""

    def __init__(self, stage: str, date: str, cause: Exception, position: int | None = None) -> None:
        self.stage = stage
        self.date = date
        self.position = position
        where = f"{date} position {position}" if position is not None else date
        super().__init__(f"{stage} failed for {where}: {cause}")
