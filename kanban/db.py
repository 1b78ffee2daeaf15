from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    Engine,
    ForeignKey,
    Integer,
    String,
    create_engine,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from .utils import ID_MAX_LENGTH


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


class Base(DeclarativeBase):
    pass


class BoardRow(Base):
    __tablename__ = "boards"
    id: Mapped[str] = mapped_column(String(ID_MAX_LENGTH), primary_key=True)
    title: Mapped[str] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    columns: Mapped[list[ColumnRow]] = relationship(
        back_populates="board", cascade="all, delete-orphan", passive_deletes=True
    )


class ColumnRow(Base):
    __tablename__ = "columns"
    id: Mapped[str] = mapped_column(String(ID_MAX_LENGTH), primary_key=True)
    title: Mapped[str] = mapped_column(String(50))
    order: Mapped[int] = mapped_column(Integer)
    board_id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), ForeignKey("boards.id", ondelete="CASCADE"), index=True
    )

    board: Mapped[BoardRow] = relationship(back_populates="columns")
    cards: Mapped[list[CardRow]] = relationship(
        back_populates="column", cascade="all, delete-orphan", passive_deletes=True
    )


class CardRow(Base):
    __tablename__ = "cards"
    id: Mapped[str] = mapped_column(String(ID_MAX_LENGTH), primary_key=True)
    content: Mapped[str] = mapped_column(String(500))
    order: Mapped[int] = mapped_column(Integer)
    column_id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), ForeignKey("columns.id", ondelete="CASCADE"), index=True
    )

    column: Mapped[ColumnRow] = relationship(back_populates="cards")


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for ``url``.

    SQLite connections get ``PRAGMA foreign_keys = ON`` so the cascade
    clauses above are enforced, and an explicit ``BEGIN`` so that reads made
    before the first write belong to the same transaction. In-memory SQLite
    shares a single connection so every session sees the same database.
    """
    kwargs: dict = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, connection_record) -> None:
            # let SQLAlchemy, not pysqlite, decide where transactions start
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _on_begin(connection) -> None:
            connection.exec_driver_sql("BEGIN")

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
