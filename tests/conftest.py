"""
Pytest fixtures for the journey engine test suite.

Provides:
- A fresh in-memory SQLite database per test (SAVEPOINT-capable)
- Sessions, a deterministic clock and wired services
- Journey definition factories
- Captured structured logs

Every test gets its own database, so the process-wide graph cache is
cleared around each test as well.
"""

import json
import logging
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from journey_config.settings import EngineSettings
from journey_kernel.db.engine import build_engine, create_tables
from journey_kernel.domain.clock import DeterministicClock
from journey_kernel.domain.journey import JourneyDefinition
from journey_kernel.domain.ports import PolicyInfo
from journey_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from journey_kernel.services.approval_gate import ApprovalGate
from journey_kernel.services.definition_service import (
    JourneyDefinitionService,
    default_graph_cache,
)
from journey_kernel.services.transition_engine import TransitionEngine
from journey_services.adapters import RecordingBoardProjection, StaticPolicyLookup
from journey_services.journey_orchestrator import JourneyOrchestrator
from tests.factories import (
    ADVISORY_POLICY,
    ONBOARDING_PIPELINE,
    ONBOARDING_POLICY,
    TEST_ACTOR_ID,
    make_activation_definition,
    make_onboarding_definition,
)

# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture journey_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.execute_command(...)
            logs = captured_logs()
            assert any(r["message"] == "journey_instance_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("journey_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _clear_graph_cache():
    default_graph_cache().clear()
    yield
    default_graph_cache().clear()


@pytest.fixture
def engine():
    """A private in-memory database with all journey tables."""
    db_engine = build_engine("sqlite://")
    create_tables(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    db_session = Session(bind=engine, expire_on_commit=False)
    yield db_session
    db_session.rollback()
    db_session.close()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def definition_service(session, deterministic_clock) -> JourneyDefinitionService:
    return JourneyDefinitionService(session, deterministic_clock)


@pytest.fixture
def transition_engine(session, definition_service, deterministic_clock) -> TransitionEngine:
    return TransitionEngine(session, definition_service, deterministic_clock)


@pytest.fixture
def board() -> RecordingBoardProjection:
    return RecordingBoardProjection()


@pytest.fixture
def approval_gate(session, transition_engine, board, deterministic_clock) -> ApprovalGate:
    return ApprovalGate(session, transition_engine, board=board, clock=deterministic_clock)


@pytest.fixture
def policies() -> StaticPolicyLookup:
    return StaticPolicyLookup([
        PolicyInfo(ONBOARDING_POLICY, pipeline_id=ONBOARDING_PIPELINE, blocking=True),
        PolicyInfo(ADVISORY_POLICY, blocking=False),
    ])


@pytest.fixture
def orchestrator(session, deterministic_clock, policies, board) -> JourneyOrchestrator:
    return JourneyOrchestrator(
        session,
        clock=deterministic_clock,
        policies=policies,
        board=board,
        settings=EngineSettings(),
    )


# =============================================================================
# Published definitions
# =============================================================================


@pytest.fixture
def activation_definition(definition_service) -> JourneyDefinition:
    """Published and active DRAFT/ACTIVE journey."""
    return definition_service.publish(make_activation_definition(), TEST_ACTOR_ID, activate=True)


@pytest.fixture
def onboarding_definition(definition_service) -> JourneyDefinition:
    """Published and active approval-gated onboarding journey."""
    return definition_service.publish(make_onboarding_definition(), TEST_ACTOR_ID, activate=True)
