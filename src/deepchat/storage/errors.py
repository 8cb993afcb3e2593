from enum import Enum


class PersistenceErrorKind(str, Enum):
    """Failure taxonomy shared by every chat store backend."""

    CONNECTION = "connection"
    QUERY = "query"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class PersistenceError(Exception):
    """Base class for chat store failures."""

    kind: PersistenceErrorKind

    def __init__(self, message: str):
        super().__init__(f"{self.kind.value} error: {message}")


class StoreConnectionError(PersistenceError):
    """The store is not connected or the connection failed."""

    kind = PersistenceErrorKind.CONNECTION


class QueryError(PersistenceError):
    kind = PersistenceErrorKind.QUERY


class InsertError(PersistenceError):
    kind = PersistenceErrorKind.INSERT


class UpdateError(PersistenceError):
    kind = PersistenceErrorKind.UPDATE


class DeleteError(PersistenceError):
    kind = PersistenceErrorKind.DELETE
