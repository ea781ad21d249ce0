from enum import Enum


class ProbeFailure(str, Enum):
    NO_ROOT_DIRECTORY = "the temporary directory doesn't exist"
    CANNOT_CREATE = "can't create a directory under the temporary directory"
    CANNOT_WRITE = "can't write to a file under the temporary directory"
    CANNOT_READ = "can't read a file under the temporary directory (or got back bad data)"
    CANNOT_DELETE = "can't delete a file/directory under the temporary directory"


class FlowUploadError(Exception):
    """Base class for every error raised by chunkflow."""


class ConfigurationError(FlowUploadError):
    def __init__(self, kind: ProbeFailure):
        self.kind = kind
        super().__init__(kind.value)


class ValidationError(FlowUploadError, ValueError):
    """A request field is missing, malformed or unsafe."""


class InvalidIdentifierError(ValidationError):
    pass


class StorageError(FlowUploadError):
    pass


class SizeMismatchError(FlowUploadError):
    pass


class SizeOverflowError(FlowUploadError):
    pass
