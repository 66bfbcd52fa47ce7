from enum import Enum
from typing import NamedTuple

from nanocloud.config import Settings
from nanocloud.errors import OperationNotAllowed


class Operation(str, Enum):
    UPLOAD = "upload"
    DELETE = "delete"
    RENAME = "rename"
    MOVE = "move"


# Operation -> (enabling setting, refusal message)
OPERATION_GATES = {
    Operation.UPLOAD: ("UPLOAD_ENABLED", "Uploads disabled by administrator"),
    Operation.DELETE: ("DELETE_ENABLED", "Deletion disabled by administrator"),
    Operation.RENAME: ("RENAME_ENABLED", "Renaming disabled by administrator"),
    Operation.MOVE: ("MOVE_ENABLED", "Moving disabled by administrator"),
}


class OperationCheck(NamedTuple):
    allowed: bool
    reason: str = ""


def is_operation_allowed(operation: Operation, settings: Settings) -> OperationCheck:
    if settings.READ_ONLY:
        return OperationCheck(False, "System is in read-only mode")
    flag, message = OPERATION_GATES[operation]
    if not getattr(settings, flag):
        return OperationCheck(False, message)
    return OperationCheck(True)


def require_operation(operation: Operation, settings: Settings) -> None:
    check = is_operation_allowed(operation, settings)
    if not check.allowed:
        raise OperationNotAllowed(check.reason)
