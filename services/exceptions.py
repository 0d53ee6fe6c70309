"""Exceptions for the document question-answering pipeline."""


class RAGError(Exception):
    """Base exception for RAG pipeline errors."""

    def __init__(self, message: str, stage: str, http_status: int = 500):
        self.message = message
        self.stage = stage
        self.http_status = http_status
        super().__init__(message)


class EmptyDocument(RAGError):
    """Document text is empty or whitespace-only."""

    def __init__(self, message: str = "Document text is empty"):
        super().__init__(message, "chunking", 422)


class EmbeddingFailure(RAGError):
    """Error while loading the embedding model or embedding text."""

    def __init__(self, message: str):
        super().__init__(message, "embedding", 500)


class IndexNotReady(RAGError):
    """Similarity search attempted before any successful index build."""

    def __init__(self, message: str = "No document chunks available. Process a document first."):
        super().__init__(message, "retrieval", 409)


class GenerationFailure(RAGError):
    """Error while loading the generation model or generating an answer."""

    def __init__(self, message: str):
        super().__init__(message, "generation", 500)


class NoDocumentsError(RAGError):
    """A chat message was sent without any document content to ground it."""

    def __init__(self, message: str = "No document content available"):
        super().__init__(message, "precondition", 400)
