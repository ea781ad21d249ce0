import re
from pathlib import PurePosixPath

from .errors import InvalidIdentifierError, ValidationError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def check_identifier(identifier: str) -> str:
    """Reject identifiers that could escape the storage root or name a hidden entry."""
    if not identifier or not IDENTIFIER_PATTERN.match(identifier) or identifier.startswith("."):
        raise InvalidIdentifierError(f"Bad identifier: {identifier!r}")
    return identifier


def check_filename(filename: str) -> str:
    if not filename or "/" in filename or "\\" in filename or filename in (".", ".."):
        raise ValidationError(f"Bad filename: {filename!r}")
    return filename


def check_relative_path(relative_path: str) -> str:
    if not relative_path:
        raise ValidationError("Bad relativePath")
    path = PurePosixPath(relative_path.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        raise ValidationError(f"Bad relativePath: {relative_path!r}")
    return relative_path


def target_subdirectory(relative_path: str) -> PurePosixPath:
    # Directory part of the client's relative path; "" for a single file.
    parent = PurePosixPath(relative_path.replace("\\", "/")).parent
    return PurePosixPath() if str(parent) == "." else parent
