# data/repo.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy import event, func, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from data.models import Device, Message, Thread


class StoreError(RuntimeError):
    """The store failed to serve a request."""


class StoreConflict(StoreError):
    """A transaction lost a race (unique key taken, database locked). Safe to retry."""


def make_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_conn, _record):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL")   # readers don't wait on the writer
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    return engine


# -----------------------------
# Repository
# -----------------------------
class Repo:
    """
    Transactional gateway over the device/thread/message tables.
    Every write method is one transaction: it either commits whole or raises.
    """

    def __init__(self, database_url: str = "sqlite:///./relay.db", engine: Optional[Engine] = None):
        self.engine = engine or make_engine(database_url)

    def init_db(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def _tx(self) -> Iterator[Session]:
        with Session(self.engine) as session:
            try:
                yield session
                session.commit()
            except (IntegrityError, OperationalError) as exc:
                session.rollback()
                raise StoreConflict(str(exc.orig or exc)) from exc
            except SQLAlchemyError as exc:
                session.rollback()
                raise StoreError(str(exc)) from exc

    @contextmanager
    def _read(self) -> Iterator[Session]:
        with Session(self.engine) as session:
            try:
                yield session
            except SQLAlchemyError as exc:
                raise StoreError(str(exc)) from exc

    # ===== Devices =====
    def register_device(
        self,
        device_id: str,
        name: Optional[str],
        token: str,
        pair_code: str,
        new_thread_id: str,
        now: int,
        create_only: bool = False,
    ) -> Tuple[str, bool]:
        """
        Rotate credentials of an existing device, or create device + empty thread.
        Returns (thread_id, created). The UPDATE runs first so the existence
        check already holds the write lock when it decides. With create_only an
        existing device_id is a conflict instead of a re-registration. Reusing
        the device's current token or pair code is a conflict too.
        """
        with self._tx() as session:
            values = {"token": token, "pair_code": pair_code, "updated_at": now}
            if name:
                values["name"] = name
            if not create_only:
                # a redraw equal to the live secret matches no row, falls through
                # to the insert and conflicts on the primary key
                res = session.exec(
                    update(Device)
                    .where(
                        Device.device_id == device_id,
                        Device.pair_code != pair_code,
                        Device.token != token,
                    )
                    .values(**values)
                )
                if res.rowcount:
                    dev = session.get(Device, device_id)
                    return dev.thread_id, False

            session.add(Thread(thread_id=new_thread_id, last_msg_id=0, created_at=now, updated_at=now))
            session.flush()
            session.add(Device(
                device_id=device_id,
                thread_id=new_thread_id,
                token=token,
                pair_code=pair_code,
                name=name or "Unknown Device",
                created_at=now,
                updated_at=now,
            ))
            return new_thread_id, True

    def device_by_token(self, token: str) -> Optional[Device]:
        with self._read() as session:
            return session.exec(select(Device).where(Device.token == token)).first()

    def device_by_pair(self, thread_id: str, pair_code: str) -> Optional[Device]:
        with self._read() as session:
            stmt = select(Device).where(Device.thread_id == thread_id, Device.pair_code == pair_code)
            return session.exec(stmt).first()

    def get_device(self, device_id: str) -> Optional[Device]:
        with self._read() as session:
            return session.get(Device, device_id)

    # ===== Threads / Messages =====
    def append_message(self, thread_id: str, sender: str, text: str, now: int) -> int:
        """
        Bump the thread counter and store the message under the new id, atomically.
        Raises KeyError if the thread does not exist.
        """
        with self._tx() as session:
            res = session.exec(
                update(Thread)
                .where(Thread.thread_id == thread_id)
                .values(last_msg_id=Thread.last_msg_id + 1, updated_at=now)
            )
            if not res.rowcount:
                raise KeyError(thread_id)
            msg_id = session.exec(select(Thread.last_msg_id).where(Thread.thread_id == thread_id)).one()
            session.add(Message(thread_id=thread_id, msg_id=msg_id, sender=sender, text=text, ts=now))
            return msg_id

    def messages_after(self, thread_id: str, after: int, limit: int) -> List[Message]:
        with self._read() as session:
            stmt = (
                select(Message)
                .where(Message.thread_id == thread_id, Message.msg_id > after)
                .order_by(Message.msg_id)
                .limit(limit)
            )
            return list(session.exec(stmt).all())

    def get_thread(self, thread_id: str) -> Optional[Thread]:
        with self._read() as session:
            return session.get(Thread, thread_id)

    # ===== Debug / Introspection =====
    def debug_counts(self) -> Dict[str, int]:
        with self._read() as session:
            return {
                "devices": session.exec(select(func.count()).select_from(Device)).one(),
                "threads": session.exec(select(func.count()).select_from(Thread)).one(),
                "messages": session.exec(select(func.count()).select_from(Message)).one(),
            }
