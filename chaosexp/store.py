"""
Experiment records.

The store assigns each experiment its uid when the experiment is first
recorded and owns the record from then on. Only two writes ever happen per
create: the insert (status Created) and one status update. No transaction
spans the executor, so a crash between the two leaves the record in Created.
"""
import abc
import threading

from collections import namedtuple
from contextlib import contextmanager
from datetime import datetime, timezone
from os import makedirs
from os.path import dirname, expanduser
from typing import Dict, Iterator, Optional

from logzero import logger
from sqlalchemy import JSON, DateTime, String, Text, create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from chaosexp.common import ExperimentStatus
from chaosexp.errors import DatabaseError, ExperimentNotFound
from chaosexp.helpers import generate_uid
from chaosexp.model import ExperimentModel

StoredExperiment = namedtuple('StoredExperiment', [
    'uid', 'command', 'model', 'status', 'error', 'create_time', 'update_time'
])


def _now() -> datetime:
    return datetime.now(timezone.utc)


def stored_to_dict(stored: StoredExperiment) -> Dict:
    rtn = stored.model.to_dict()
    rtn.update({
        'command': stored.command,
        'status': stored.status.value,
        'error': stored.error,
        'create_time': stored.create_time.isoformat(),
        'update_time': stored.update_time.isoformat(),
    })
    return rtn


class ExperimentStore(object, metaclass=abc.ABCMeta):
    """
    Durable experiment records.

    Implementations must make record_experiment (uid assignment) and
    update_status_by_uid atomic on their own; callers hold no locks.
    """

    @abc.abstractmethod
    def record_experiment(self, command_path: str, model: ExperimentModel,
                          uid: str = None) -> ExperimentModel:
        """
        Insert a new record with status Created.

        :param command_path: The command that created the experiment, e.g.
            "chaosexp create cpu host fullload".
        :type command_path: str
        :param model: The experiment model. Must not carry a uid yet.
        :type model: ExperimentModel
        :param uid: Use this uid instead of generating one.
            Optional. (Default: None)
        :type uid: str
        :return: ExperimentModel - a copy of model carrying its uid
        """
        raise NotImplementedError('users must define record_experiment to use this base class')

    @abc.abstractmethod
    def update_status_by_uid(self, uid: str, status: ExperimentStatus,
                             error: str = "") -> None:
        raise NotImplementedError('users must define update_status_by_uid to use this base class')

    @abc.abstractmethod
    def query_by_uid(self, uid: str) -> StoredExperiment:
        raise NotImplementedError('users must define query_by_uid to use this base class')


class InMemoryExperimentStore(ExperimentStore):
    """
    A process local store. Records do not survive the process.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._records = {}

    def record_experiment(self, command_path, model, uid=None):
        with self._lock:
            uid = uid or generate_uid()
            if uid in self._records:
                raise DatabaseError("experiment {} already exists".format(uid))
            recorded = model.with_uid(uid)
            now = _now()
            self._records[uid] = StoredExperiment(
                uid, command_path, recorded, ExperimentStatus.CREATED, "",
                now, now)
        logger.debug("recorded experiment %s in memory", uid)
        return recorded

    def update_status_by_uid(self, uid, status, error=""):
        with self._lock:
            if uid not in self._records:
                raise ExperimentNotFound("experiment {} not found".format(uid))
            self._records[uid] = self._records[uid]._replace(
                status=status, error=error or "", update_time=_now())

    def query_by_uid(self, uid):
        with self._lock:
            try:
                return self._records[uid]
            except KeyError:
                raise ExperimentNotFound("experiment {} not found".format(uid))


class Base(DeclarativeBase):
    """Declarative base for experiment tables."""

    pass


class ExperimentRecord(Base):
    __tablename__ = "experiment"

    uid: Mapped[str] = mapped_column(String(64), primary_key=True)
    command: Mapped[str] = mapped_column(Text, nullable=False, default="")
    target: Mapped[str] = mapped_column(String(255), nullable=False)
    scope: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    flags: Mapped[Dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    error: Mapped[str] = mapped_column(Text, nullable=False, default="")
    create_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    update_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_stored(self) -> StoredExperiment:
        model = ExperimentModel(self.target, self.scope, self.action,
                                self.flags, uid=self.uid)
        return StoredExperiment(self.uid, self.command, model,
                                ExperimentStatus(self.status), self.error,
                                self.create_time, self.update_time)


class SQLExperimentStore(ExperimentStore):
    """
    Experiment records kept in a SQL database (SQLite by default).
    """

    def __init__(self, db_file: str = None, url: str = None, echo=False):
        if url is None:
            if db_file is None:
                raise ValueError("either db_file or url is required")
            db_file = expanduser(db_file)
            if dirname(db_file):
                makedirs(dirname(db_file), exist_ok=True)
            url = "sqlite:///{}".format(db_file)
        self.url = url
        try:
            self.engine = create_engine(url, echo=echo, future=True)
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            logger.error("Unable to open experiment database %s", url)
            raise DatabaseError("unable to open database {}: {}".format(url, e)) from e
        self._sessions = sessionmaker(bind=self.engine, autoflush=False,
                                      expire_on_commit=False)
        logger.debug("experiment store ready at %s", url)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope for store operations."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            logger.debug("Session rollback triggered")
            raise
        finally:
            session.close()

    def record_experiment(self, command_path, model, uid=None):
        uid = uid or generate_uid()
        recorded = model.with_uid(uid)
        now = _now()
        try:
            with self.session_scope() as session:
                session.add(ExperimentRecord(
                    uid=uid, command=command_path, target=model.target,
                    scope=model.scope, action=model.action_name,
                    flags=dict(model.action_flags),
                    status=ExperimentStatus.CREATED.value, error="",
                    create_time=now, update_time=now))
        except IntegrityError as e:
            raise DatabaseError("experiment {} already exists".format(uid)) from e
        except SQLAlchemyError as e:
            raise DatabaseError("unable to record experiment: {}".format(e)) from e
        logger.debug("recorded experiment %s", uid)
        return recorded

    def update_status_by_uid(self, uid, status, error=""):
        try:
            with self.session_scope() as session:
                record = session.get(ExperimentRecord, uid)
                if record is None:
                    raise ExperimentNotFound("experiment {} not found".format(uid))
                record.status = status.value
                record.error = error or ""
                record.update_time = _now()
        except SQLAlchemyError as e:
            raise DatabaseError("unable to update experiment {}: {}".format(uid, e)) from e
        logger.debug("experiment %s is now %s", uid, status.value)

    def query_by_uid(self, uid) -> StoredExperiment:
        try:
            with self.session_scope() as session:
                record: Optional[ExperimentRecord] = session.get(ExperimentRecord, uid)
                if record is None:
                    raise ExperimentNotFound("experiment {} not found".format(uid))
                return record.to_stored()
        except SQLAlchemyError as e:
            raise DatabaseError("unable to query experiment {}: {}".format(uid, e)) from e
