"""Exception hierarchy for the RAG core.

Each class maps to one failure kind callers are expected to tell apart:
bad input is the caller's to fix, a model that failed to load needs an
operator, persistence errors propagate, and dimension mismatches are
recovered chunk by chunk during scoring.
"""


class RAGError(Exception):
    """Base class for every error raised by the RAG core."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(RAGError):
    """Empty or malformed input handed to the chunker, embedder or a pipeline."""

    status_code = 422


class ModelInitializationError(RAGError):
    """The embedding model could not be loaded.

    Every later embedding call will fail the same way until the cause
    (missing package, download failure, memory/disk exhaustion) is fixed.
    """

    status_code = 503


class EmbeddingError(RAGError):
    """Inference failed on a loaded model."""


class DimensionMismatchError(RAGError):
    """Two vectors that must be compared have different lengths."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class PersistenceError(RAGError):
    """A database read or write failed."""


class DocumentNotFoundError(RAGError):
    status_code = 404

    def __init__(self, document_id: int) -> None:
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id
