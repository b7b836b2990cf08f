# (c) Copyright Datacraft, 2026
from sqlalchemy import create_engine, Engine
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy.orm import sessionmaker, Session as SQLAlchemySession

from .base import Base


def create_db_engine(db_url: str) -> Engine:
	"""Create an engine for the audit database.

	In-memory SQLite keeps one shared connection so that every session
	sees the same database.
	"""
	if db_url.startswith("sqlite") and ":memory:" in db_url:
		return create_engine(
			db_url,
			poolclass=StaticPool,
			connect_args={"check_same_thread": False},
		)
	return create_engine(db_url, poolclass=NullPool)


def create_session_factory(
	db_url: str,
	create_tables: bool = True,
) -> sessionmaker[SQLAlchemySession]:
	engine = create_db_engine(db_url)
	if create_tables:
		Base.metadata.create_all(engine)
	return sessionmaker(engine, expire_on_commit=False)
