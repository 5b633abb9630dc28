"""Errors raised by the content store and mapped to HTTP status codes by the app."""


class StoreError(Exception):
    """Internal failure while talking to the database. Surfaces as 500."""

    status_code = 500


class SchemaError(StoreError):
    """The content table could not be verified or created."""


class IncompleteWriteError(StoreError):
    """The request body did not carry exactly the declared number of bytes."""

    def __init__(self, path: str, expected: int, received: int):
        super().__init__(f"{path}: expected {expected} bytes, received {received}")
        self.path = path
        self.expected = expected
        self.received = received


class BadRequestError(Exception):
    status_code = 400


class EntryNotFoundError(Exception):
    status_code = 404

    def __init__(self, path: str):
        super().__init__(f"No entry stored at {path!r}")
        self.path = path


class EntryConflictError(Exception):
    status_code = 409

    def __init__(self, path: str):
        super().__init__(f"An entry is already stored at {path!r}")
        self.path = path
