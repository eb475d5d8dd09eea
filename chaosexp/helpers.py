import shlex
import sys
import uuid

from chaosexp.common import DEFAULT_CHAOS_UID_LENGTH
from typing import List

UINT64_MAX = 2 ** 64 - 1


def parse_timeout(value: str) -> int:
    """
    Parse a timeout flag value as an unsigned 64-bit number of seconds.

    Only plain decimal digits are accepted: no sign, no whitespace, no
    underscores.

    :param value: The raw flag value. Must not be empty.
    :type value: str
    :return: int
    :raises ValueError: if value is not a decimal number in [0, 2**64-1]
    """
    if not value or not value.isascii() or not value.isdigit():
        raise ValueError("invalid syntax: {!r}".format(value))
    timeout = int(value)
    if timeout > UINT64_MAX:
        raise ValueError("value out of range: {!r}".format(value))
    return timeout


def generate_uid(length: int = DEFAULT_CHAOS_UID_LENGTH) -> str:
    return uuid.uuid4().hex[:length]


def get_program_command(global_args: List[str] = None) -> List[str]:
    """
    The command line used to invoke this program from a child process.

    :param global_args: Options placed before the sub-command, e.g.
        ["--db-file", "/tmp/chaosexp.db"], so the child process sees the same
        store and actions.
        Optional. (Default: None)
    :type global_args: List[str]
    :return: List[str]
    """
    return [sys.executable, "-m", "chaosexp"] + list(global_args or [])


def join_command(command: List[str]) -> str:
    return " ".join(shlex.quote(part) for part in command)
