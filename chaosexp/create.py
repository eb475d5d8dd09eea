"""
Create an experiment.

Creating runs strictly in order: build the model, record it (status
Created), execute it, record the outcome (Success or Error) and finally, if
the experiment was given a timeout, schedule its destroy. The destroy runs in
a detached process so it survives this process exiting right after the result
is printed.
"""
import shlex
import subprocess

from collections import namedtuple
from logzero import logger
from typing import Callable, Dict, List, Optional

from chaosexp.actions import ExpActionCommandSpec
from chaosexp.common import ExperimentStatus
from chaosexp.errors import DatabaseError, ExecutionFailure, SchedulingFailure
from chaosexp.execute.execute import CommandChannel, LocalChannel, Response
from chaosexp.helpers import get_program_command, join_command, parse_timeout
from chaosexp.model import ExperimentModel, build_exp_model
from chaosexp.store import ExperimentStore

DelayedAction = namedtuple('DelayedAction', ['target_uid', 'delay'])


class DestroyScheduler(object):
    """
    Schedules the destroy of an experiment in a detached shell.

    An outer shell starts ``sleep <delay>; <program> destroy <uid>`` in the
    background under nohup with all output discarded, then exits at once.
    The outer shell is reaped here; the background shell is left to init and
    outlives this process. A scheduled destroy cannot be cancelled from here.
    """

    def __init__(self, program_command: List[str] = None,
                 destroy_args: List[str] = None,
                 launcher: Callable = subprocess.run):
        self.program_command = program_command or get_program_command()
        self.destroy_args = list(destroy_args or [])
        self.launcher = launcher

    def delayed_action(self, model: ExperimentModel) -> Optional[DelayedAction]:
        """
        The destroy to schedule for a recorded model, if any.

        :param model: The model as returned by the store.
        :type model: ExperimentModel
        :return: Optional[DelayedAction] - None when the model has no timeout,
            a zero timeout, or no uid
        """
        timeout = model.timeout
        if timeout == "":
            return None
        try:
            delay = parse_timeout(timeout)
        except ValueError:
            # Validated when the model was built.
            logger.debug("Ignoring unparsable timeout >%s<", timeout)
            return None
        if delay > 0 and model.uid:
            return DelayedAction(model.uid, delay)
        return None

    def command(self, action: DelayedAction) -> List[str]:
        destroy = join_command(self.program_command + ["destroy", action.target_uid]
                               + self.destroy_args)
        script = "sleep {}; {}".format(action.delay, destroy)
        detached = "nohup /bin/sh -c {} > /dev/null 2>&1 &".format(
            shlex.quote(script))
        return ["/bin/sh", "-c", detached]

    def schedule(self, action: DelayedAction) -> None:
        command = self.command(action)
        logger.info("Scheduling destroy of experiment %s in %d seconds",
                    action.target_uid, action.delay)
        logger.debug("destroy command: %s", command)
        try:
            rtn = self.launcher(command,
                                stdin=subprocess.DEVNULL,
                                stdout=subprocess.DEVNULL,
                                stderr=subprocess.DEVNULL,
                                close_fds=True,
                                start_new_session=True)
            if rtn.returncode != 0:
                raise subprocess.SubprocessError(
                    "launcher exited with {}".format(rtn.returncode))
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.error("Failed to schedule destroy of experiment %s",
                         action.target_uid)
            logger.exception(e)
            raise SchedulingFailure(
                "unable to schedule destroy of {}: {}".format(
                    action.target_uid, e)) from e

    def post_run(self, model: ExperimentModel) -> Optional[DelayedAction]:
        action = self.delayed_action(model)
        if action is not None:
            self.schedule(action)
        return action


class CreateCommand(object):
    """
    Runs the lifecycle of one experiment.

    A CreateCommand holds no per-experiment state; everything an invocation
    needs is passed to run().
    """

    def __init__(self, store: ExperimentStore,
                 scheduler: DestroyScheduler = None):
        self.store = store
        self.scheduler = scheduler or DestroyScheduler()

    def run(self, target: str, scope: str, action_spec: ExpActionCommandSpec,
            command_flags: Dict[str, Callable[[], str]], command_path: str,
            uid: str = None, channel: CommandChannel = None) -> Response:
        """
        Create, record and execute an experiment.

        :param target: The fault domain, e.g. "cpu". Required.
        :type target: str
        :param scope: The execution scope, e.g. "host". Required.
        :type scope: str
        :param action_spec: The action to execute. Required.
        :type action_spec: ExpActionCommandSpec
        :param command_flags: Flag name to accessor, see
            chaosexp.flags.FlagBinder. Required.
        :type command_flags: Dict[str, Callable[[], str]]
        :param command_path: The command line recorded with the experiment.
            Required.
        :type command_path: str
        :param uid: Record the experiment under this uid instead of a
            generated one.
            Optional. (Default: None)
        :type uid: str
        :param channel: Where the executor runs its commands.
            Optional. (Default: LocalChannel())
        :type channel: CommandChannel
        :return: Response - result is the experiment's uid
        :raises InvalidArgument: the timeout flag is malformed
        :raises DatabaseError: the experiment could not be recorded
        :raises ExecutionFailure: the executor reported a failure
        :raises SchedulingFailure: the destroy could not be scheduled
        """
        exp_model = build_exp_model(target, scope, action_spec.name,
                                    command_flags)

        model = self.record(command_path, exp_model, uid=uid)
        logger.info("Created experiment %s (%s %s %s)", model.uid, target,
                    scope, action_spec.name)

        executor = action_spec.executor()
        executor.set_channel(channel or LocalChannel())
        response = executor.exec(model.uid, {'destroy': False}, model)

        if not response.success:
            logger.error("Experiment %s failed: %s", model.uid, response.err)
            self.update_status(model.uid, ExperimentStatus.ERROR, response.err)
            failure = ExecutionFailure(response, uid=model.uid)
            try:
                self.scheduler.post_run(model)
            except SchedulingFailure:
                logger.error("Experiment %s failed and its destroy could "
                             "not be scheduled", model.uid)
            raise failure

        self.update_status(model.uid, ExperimentStatus.SUCCESS, response.err)
        logger.info("Experiment %s succeeded", model.uid)
        self.scheduler.post_run(model)
        return response._replace(result=model.uid)

    def record(self, command_path: str, model: ExperimentModel,
               uid: str = None) -> ExperimentModel:
        try:
            return self.store.record_experiment(command_path, model, uid=uid)
        except DatabaseError:
            raise
        except Exception as e:
            logger.exception(e)
            raise DatabaseError(str(e)) from e

    def update_status(self, uid: str, status: ExperimentStatus, error: str = ""):
        """
        Record an outcome. Failing to do so is logged, never raised.
        """
        try:
            self.store.update_status_by_uid(uid, status, error)
        except Exception as e:
            logger.error("Failed to set status of experiment %s to %s", uid,
                         status.value)
            logger.exception(e)
