"""
SQLStorage implementation using SQLModel for flow persistence.

This module provides a durable key/value storage backend using
SQLModel/SQLAlchemy, suitable for SQLite files or a shared database.
"""
from typing import List, Optional

from sqlalchemy import Engine
from sqlmodel import Session, SQLModel, col, create_engine, select

from journeyflow.infra.flow.models import StorageAdapter, utcnow
from journeyflow.infra.flow.store.sql_models import FlowRecordModel


class SQLStorage(StorageAdapter):

    def __init__(self, connection_string: str = "sqlite:///flows.db", echo: bool = False):
        self.connection_string = connection_string
        self.echo = echo
        self.engine: Optional[Engine] = None

    # ---------- Lifecycle ----------

    def open(self):
        self.engine = create_engine(
            self.connection_string,
            echo=self.echo,
            connect_args={"check_same_thread": False} if "sqlite" in self.connection_string else {}
        )
        SQLModel.metadata.create_all(self.engine)

    def close(self):
        """Close the database engine and release resources."""
        if self.engine:
            self.engine.dispose()
            self.engine = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc_info):
        self.close()

    # ---------- Record CRUD ----------

    def get(self, key: str) -> Optional[bytes]:
        if not self.engine:
            raise RuntimeError("open() must be called before get()")

        with Session(self.engine) as session:
            record = session.get(FlowRecordModel, key)
            return record.value if record else None

    def set(self, key: str, value: bytes) -> None:
        if not self.engine:
            raise RuntimeError("open() must be called before set()")

        with Session(self.engine) as session:
            record = session.get(FlowRecordModel, key)
            if record:
                record.value = value
                record.updated_at = utcnow()
            else:
                record = FlowRecordModel(key=key, value=value, updated_at=utcnow())
            session.add(record)
            session.commit()

    def remove(self, key: str) -> None:
        if not self.engine:
            raise RuntimeError("open() must be called before remove()")

        with Session(self.engine) as session:
            record = session.get(FlowRecordModel, key)
            if record:
                session.delete(record)
                session.commit()

    def list_keys(self, prefix: str) -> List[str]:
        """
        List keys starting with a prefix.

        Args:
            prefix: Key prefix

        Returns:
            Matching keys ordered alphabetically
        """
        if not self.engine:
            raise RuntimeError("open() must be called before list_keys()")

        with Session(self.engine) as session:
            statement = select(FlowRecordModel.key).order_by(col(FlowRecordModel.key))
            if prefix:
                statement = statement.where(col(FlowRecordModel.key).startswith(prefix, autoescape=True))
            return list(session.exec(statement).all())
