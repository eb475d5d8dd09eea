from enum import Enum


class ExperimentStatus(Enum):
    """
    All lifecycle states an experiment record may be in.

    A record is written as CREATED before the executor runs and is moved to
    SUCCESS or ERROR exactly once afterward. DESTROYED is only ever set by
    the destroy command.
    """
    CREATED = "Created"
    SUCCESS = "Success"
    ERROR = "Error"
    DESTROYED = "Destroyed"


class Channel(Enum):
    """
    All supported communication channels an executor can be bound to.
    """
    # Commands run on the host the cli is running on
    LOCAL = "local"
    # Commands run on a remote host over ssh (Fabric)
    SSH = "ssh"

    @classmethod
    def has_value(cls, value):
        return any(value == item.value for item in cls)


# Response codes. Keep in ascending order.
CODE_OK = 200
CODE_NOT_FOUND = 404
CODE_ILLEGAL_PARAMETERS = 405
CODE_SERVER_ERROR = 500
CODE_EXEC_COMMAND_ERROR = 503
CODE_DATABASE_ERROR = 504

# Name of the flag every action recognizes.
TIMEOUT_FLAG = "timeout"
# Name of the flag used to override the generated uid.
UID_FLAG = "uid"

# Chaos defaults
# Please keep defaults in lexically acending order by name
DEFAULT_CHAOS_CHANNEL=Channel.LOCAL.value
DEFAULT_CHAOS_COMMAND_TIMEOUT=60
DEFAULT_CHAOS_DB_FILE="~/.chaosexp/chaosexp.db"
DEFAULT_CHAOS_PROGRAM="chaosexp"
DEFAULT_CHAOS_SCOPE="host"
DEFAULT_CHAOS_SPEC_FILE="~/.chaosexp/actions.json"
DEFAULT_CHAOS_SSH_CONFIG_FILE="~/.ssh/config"
DEFAULT_CHAOS_UID_LENGTH=16
