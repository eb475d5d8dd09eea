from chaosexp.common import (
    CODE_DATABASE_ERROR, CODE_EXEC_COMMAND_ERROR, CODE_ILLEGAL_PARAMETERS,
    CODE_NOT_FOUND, CODE_SERVER_ERROR
)
from chaosexp.execute.execute import Response


class ChaosExpError(Exception):
    """
    Base class of every error a chaosexp command reports to its caller.
    """
    code = CODE_SERVER_ERROR

    def __init__(self, message: str, code: int = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def response(self) -> Response:
        return Response.fail(self.code, self.message)


class InvalidArgument(ChaosExpError):
    code = CODE_ILLEGAL_PARAMETERS


class DatabaseError(ChaosExpError):
    code = CODE_DATABASE_ERROR


class ExecutionFailure(ChaosExpError):
    """
    The executor reported an unsuccessful outcome.
    """
    code = CODE_EXEC_COMMAND_ERROR

    def __init__(self, response: Response, uid: str = None):
        super().__init__(response.err, code=response.code)
        self.uid = uid
        self._response = response

    def response(self) -> Response:
        return self._response


class SchedulingFailure(ChaosExpError):
    code = CODE_SERVER_ERROR


class ExperimentNotFound(ChaosExpError):
    code = CODE_NOT_FOUND


class ActionNotFound(ChaosExpError):
    code = CODE_NOT_FOUND
