"""
Base exceptions for failures of the external collaborators.

Client wrappers subclass these so callers can handle a failure class
without knowing which concrete service produced it.
"""


class BackendError(Exception):
    """A storage backend call failed."""
    pass


class EmbeddingError(Exception):
    """An embedding call failed."""
    pass


class LanguageModelError(Exception):
    """A language model call failed."""
    pass
