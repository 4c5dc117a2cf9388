"""Exceptions raised across the responsive image pipeline."""

from __future__ import annotations

from typing import Optional


class ResponsivePictureError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigError(ResponsivePictureError):
    """Options are invalid; raised before any document is processed."""


class MalformedDirectiveError(ResponsivePictureError):
    """An inline directive does not follow the property mini-language."""


class InvalidViewportNameError(ResponsivePictureError):
    """A transformation key is not a bare integer once aliases are resolved."""


class UnsupportedSourceTypeError(ResponsivePictureError):
    """The byte signature of an image is unknown or not supported."""


class AdapterFailure(ResponsivePictureError):
    """An adapter call failed while generating one derivative."""

    def __init__(self, uri: str, cause: Optional[BaseException] = None) -> None:
        message = f"Could not generate {uri}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.uri = uri
        self.cause = cause
