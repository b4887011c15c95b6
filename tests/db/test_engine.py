"""Tests for engine initialization and transactional scope (journey_kernel/db/engine.py)."""

import pytest
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from journey_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)
from journey_kernel.services.definition_service import JourneyDefinitionService
from tests.factories import JOURNEY_CODE, TENANT_ID, make_activation_definition

JOURNEY_TABLES = {
    "journey_definitions",
    "journey_instances",
    "journey_transition_logs",
    "journey_approval_requests",
}


@pytest.fixture
def file_engine(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'engine.db'}")
    yield engine
    reset_engine()


class TestInitialization:
    def test_accessors_require_initialization(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_sqlite_url(self, file_engine):
        assert get_engine() is file_engine
        assert not is_postgres()
        session = get_session_factory()()
        try:
            assert isinstance(session, Session)
            assert session.get_bind() is file_engine
        finally:
            session.close()

    def test_reset_clears_engine(self, file_engine):
        reset_engine()
        assert not is_postgres()
        with pytest.raises(RuntimeError):
            get_engine()


class TestSchema:
    def test_create_and_drop_tables(self, file_engine):
        create_tables()
        assert JOURNEY_TABLES <= set(inspect(file_engine).get_table_names())

        drop_tables()
        assert not JOURNEY_TABLES & set(inspect(file_engine).get_table_names())


class TestSessionScope:
    def test_commits_on_success(self, file_engine):
        create_tables()
        with session_scope() as session:
            JourneyDefinitionService(session).publish(make_activation_definition(), activate=True)

        with session_scope() as session:
            assert JourneyDefinitionService(session).find_active(TENANT_ID, JOURNEY_CODE) is not None

    def test_rolls_back_on_error(self, file_engine):
        create_tables()
        with pytest.raises(RuntimeError, match="abort"):
            with session_scope() as session:
                JourneyDefinitionService(session).publish(make_activation_definition(), activate=True)
                raise RuntimeError("abort")

        with session_scope() as session:
            assert JourneyDefinitionService(session).find_active(TENANT_ID, JOURNEY_CODE) is None
