"""Exception hierarchy shared by the services."""


class MdChatError(Exception):
    """Base class for all errors raised by mdchat."""


class InvalidInputError(MdChatError):
    """Rejected input: bad file type, oversize upload, empty chat content."""


class ProviderError(MdChatError):
    """The embedding or completion provider failed."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class DimensionMismatchError(MdChatError):
    """Two vectors of different length were compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Vectors must have the same length (got {left} and {right})")
        self.left = left
        self.right = right


class DocumentNotFoundError(MdChatError):
    """No document exists with the requested id."""

    def __init__(self, document_id) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id
