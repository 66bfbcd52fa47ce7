"""Domain errors. Messages are safe to return to the client."""
from nanocloud.models import SessionState


class NanoCloudError(Exception):
    status_code = 400
    message = "Request failed."

    def __init__(self, message: str = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# Validation

class InvalidUploadId(NanoCloudError):
    message = "Invalid upload ID."


class InvalidChunkParameters(NanoCloudError):
    message = "Invalid chunk parameters."


class InvalidName(NanoCloudError):
    message = "Invalid filename or path."


class MissingField(NanoCloudError):
    message = "Missing required parameters."


# Paths

class InvalidPath(NanoCloudError):
    status_code = 404
    message = "Target path not found."


class PathNotFound(InvalidPath):
    pass


class OutsideRoot(InvalidPath):
    pass


# Gate

class OperationNotAllowed(NanoCloudError):
    status_code = 403
    message = "Operation not allowed"


# Capacity

class FileTooLarge(NanoCloudError):
    status_code = 413
    message = "File exceeds the maximum allowed size."


class RequestTooLarge(NanoCloudError):
    status_code = 413
    message = "Upload exceeds the maximum allowed size for one request."


class InsufficientSpace(NanoCloudError):
    status_code = 507
    message = "Insufficient disk space on server."


# Conflicts

class DestinationExists(NanoCloudError):
    status_code = 409
    message = "A file with the same name already exists."


# Consistency

class MissingChunks(NanoCloudError):
    status_code = 409

    def __init__(self, missing, total_chunks: int):
        self.missing = sorted(missing)
        super().__init__(
            f"Upload incomplete: missing chunk {self.missing[0]} of {total_chunks}."
        )


class UnexpectedChunks(NanoCloudError):
    status_code = 409
    message = "Upload contains chunks beyond the declared total; start over."


class SizeMismatch(NanoCloudError):
    status_code = 422
    message = "File size mismatch after merge; the upload is corrupted, start over."


# Transient I/O

class StorageWriteError(NanoCloudError):
    status_code = 500
    message = "Failed to save uploaded data."


class MergeFailed(NanoCloudError):
    status_code = 500
    message = "Failed to assemble the uploaded file; retry the last chunk."


class SessionCleanupError(NanoCloudError):
    status_code = 500
    message = "Failed to clean up upload session."


# Client went away

class UploadAborted(NanoCloudError):
    status_code = 499
    message = "Upload aborted by client; rolled back."
    state = SessionState.ABORTED
