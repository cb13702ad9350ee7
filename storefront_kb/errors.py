"""Exceptions raised across component boundaries for hard failures."""


class StorefrontKBError(Exception):
    """Base class for errors raised by this package."""


class IndexingError(StorefrontKBError):
    """Embedding generation or the vector-store upsert failed for one record."""


class EmbeddingUnavailableError(StorefrontKBError):
    """The embedding model could not be loaded."""
