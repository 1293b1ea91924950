class OntoSyncError(Exception):
    """Base class for all errors raised by ontosync."""


class ConfigurationError(OntoSyncError):
    pass


class OntologyFormatError(ConfigurationError):
    """The ontology file can not be parsed."""


class UnsupportedHashError(ConfigurationError):
    def __init__(self, value: str):
        super().__init__(f"fixity hash {value!r} not implemented")
        self.value = value


class NotFound(OntoSyncError):
    def __init__(self, identifier: str):
        super().__init__(f"no repository resource with id {identifier}")
        self.identifier = identifier


class RemoteRequestError(OntoSyncError):
    """A single request to the repository failed."""

    def __init__(self, message: str, url: str = None, status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ReconciliationError(OntoSyncError):
    """Obsolete repository resources could not be removed."""

    def __init__(self, collection_id: str, outstanding: list[str], reason: str = None):
        msg = f"{len(outstanding)} obsolete resource(s) left in {collection_id}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.collection_id = collection_id
        self.outstanding = outstanding
