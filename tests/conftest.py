"""
Paranoid Test Configuration

Provides pytest fixtures for in-memory SQLite database and session management.
"""

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from sample_models import Base, Category, Gadget, Label, Part, Tag, Widget


@pytest.fixture(scope="session")
def db_engine():
    """Create an in-memory SQLite database for testing"""
    engine = create_engine("sqlite:///:memory:")

    # pysqlite defers BEGIN on its own; take it over so SAVEPOINTs nest correctly
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """
    Create a new database session for each test function.
    Rolls back all changes after the test completes.
    """
    connection = db_engine.connect()
    transaction = connection.begin()

    SessionLocal = sessionmaker(bind=connection)
    session = SessionLocal()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def widgets(db_session: Session):
    """Three widgets with ids 1, 2, 3"""
    rows = [
        Widget(id=1, title="Sprocket", price=10),
        Widget(id=2, title="Gear", price=20),
        Widget(id=3, title="Cog", price=30),
    ]
    db_session.add_all(rows)
    db_session.flush()
    return rows


@pytest.fixture
def catalog(db_session: Session):
    """
    Widgets with categories, parts, labels and tags.

    widget 1: category "tools", parts p1 (labels l1, l2) and p2, tags t1, t2
    widget 2: category "toys", part p3, tag t3
    """
    tools = Category(id=1, name="tools")
    toys = Category(id=2, name="toys")
    w1 = Widget(id=1, title="Sprocket", price=10, category=tools)
    w2 = Widget(id=2, title="Gear", price=20, category=toys)
    db_session.add_all([tools, toys, w1, w2])
    db_session.flush()

    p1 = Part(id=1, name="p1", widget_id=1)
    p2 = Part(id=2, name="p2", widget_id=1)
    p3 = Part(id=3, name="p3", widget_id=2)
    db_session.add_all([p1, p2, p3])
    db_session.flush()

    db_session.add_all(
        [
            Label(id=1, text="l1", part_id=1),
            Label(id=2, text="l2", part_id=1),
            Tag(id=1, name="t1", widget_id=1),
            Tag(id=2, name="t2", widget_id=1),
            Tag(id=3, name="t3", widget_id=2),
        ]
    )
    db_session.flush()
    return {"tools": tools, "toys": toys, "w1": w1, "w2": w2, "p1": p1, "p2": p2, "p3": p3}


@pytest.fixture
def gadgets(db_session: Session):
    rows = [Gadget(id=1, name="free"), Gadget(id=2, name="locked", locked=1)]
    db_session.add_all(rows)
    db_session.flush()
    return rows
