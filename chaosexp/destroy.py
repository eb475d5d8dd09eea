from logzero import logger

from chaosexp.actions import ActionSpecRegistry
from chaosexp.common import ExperimentStatus
from chaosexp.errors import ChaosExpError, DatabaseError, ExecutionFailure
from chaosexp.execute.execute import CommandChannel, LocalChannel, Response
from chaosexp.store import ExperimentStore, StoredExperiment, stored_to_dict


class DestroyCommand(object):
    """
    Reverse a previously created experiment, identified by its uid.

    This is what a scheduled destroy runs once its timeout expires.
    """

    def __init__(self, store: ExperimentStore, registry: ActionSpecRegistry):
        self.store = store
        self.registry = registry

    def query(self, uid: str) -> StoredExperiment:
        try:
            return self.store.query_by_uid(uid)
        except ChaosExpError:
            raise
        except Exception as e:
            logger.exception(e)
            raise DatabaseError(str(e)) from e

    def run(self, uid: str, channel: CommandChannel = None) -> Response:
        stored = self.query(uid)
        if stored.status == ExperimentStatus.DESTROYED:
            logger.info("Experiment %s is already destroyed", uid)
            return Response.ok(uid)

        model = stored.model
        action_spec = self.registry.lookup(model.target, model.scope,
                                           model.action_name)
        executor = action_spec.executor()
        executor.set_channel(channel or LocalChannel())
        response = executor.exec(uid, {'destroy': True}, model)
        if not response.success:
            logger.error("Failed to destroy experiment %s: %s", uid,
                         response.err)
            raise ExecutionFailure(response, uid=uid)

        try:
            self.store.update_status_by_uid(uid, ExperimentStatus.DESTROYED)
        except Exception as e:
            logger.error("Failed to mark experiment %s destroyed", uid)
            logger.exception(e)
        logger.info("Destroyed experiment %s", uid)
        return Response.ok(uid)

    def status(self, uid: str) -> Response:
        return Response.ok(stored_to_dict(self.query(uid)))
