from __future__ import annotations


class ConversionError(Exception):
    """Base class for everything webpify raises on purpose."""


class EnvironmentCheckError(ConversionError):
    """
    Fatal pre-flight failure: missing WebP codec, bad input root, or an
    output root that cannot be created/written. Aborts the run before any
    file is touched.
    """


class DecodeError(ConversionError):
    """A single input could not be read as an image."""


class EncodeError(ConversionError):
    """The WebP encoder rejected a decoded image."""
