"""
End-to-end member journeys through JourneyOrchestrator.

Scenarios:
- DRAFT -> ACTIVE via a FIRE_TRIGGER command, replayed trigger rejected
- REVIEW -> ONBOARDED via approval, second resolution rejected
- Board card outcome drives the approval
- In-flight instances keep their pinned version across a new activation
- Board failure and failed forced transition are reported, not raised
- Work committed through session_scope() is visible to a new session
"""

import pytest

from journey_config.loader import load_definitions, load_policies
from journey_config.settings import EngineSettings
from journey_config import DEFAULT_SETS_DIR
from journey_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from journey_kernel.domain.approval import ApprovalStatus, CardOutcome
from journey_kernel.domain.dtos import CommandOutcome
from journey_kernel.domain.journey import TransitionDef, TransitionOrigin
from journey_kernel.exceptions import (
    ApprovalAlreadyResolvedError,
    IllegalTransitionError,
    UndeclaredStateError,
)
from journey_services.adapters import RecordingBoardProjection, StaticPolicyLookup
from journey_services.journey_orchestrator import JourneyOrchestrator
from tests.factories import TENANT_ID, TEST_ACTOR_ID, make_activation_definition

pytestmark = pytest.mark.integration


def _transitions(orchestrator, instance_id):
    return [e for e in orchestrator.transition_log.history(TENANT_ID, instance_id) if not e.is_creation]


class TestActivationScenario:
    def test_draft_to_active(self, orchestrator, activation_definition):
        created = orchestrator.execute_command(TENANT_ID, "m-1", "ENROLL", actor_id=TEST_ACTOR_ID)
        assert created.outcome == CommandOutcome.INSTANCE_CREATED
        assert created.instance.current_state == "DRAFT"

        fired = orchestrator.execute_command(TENANT_ID, "m-1", "ACTIVATE_CMD", actor_id=TEST_ACTOR_ID)
        assert fired.instance.current_state == "ACTIVE"

        (entry,) = _transitions(orchestrator, created.instance.id)
        assert (entry.from_state, entry.to_state, entry.trigger) == ("DRAFT", "ACTIVE", "ACTIVATE")

        with pytest.raises(IllegalTransitionError):
            orchestrator.execute_command(TENANT_ID, "m-1", "ACTIVATE_CMD")

        assert orchestrator.instances.get(TENANT_ID, created.instance.id).current_state == "ACTIVE"
        assert len(_transitions(orchestrator, created.instance.id)) == 1
        assert orchestrator.transition_log.replay_state(TENANT_ID, created.instance.id) == "ACTIVE"

    def test_trigger_by_instance_id(self, orchestrator, activation_definition):
        instance = orchestrator.execute_command(TENANT_ID, "m-2", "ENROLL").instance

        result = orchestrator.execute_trigger(TENANT_ID, instance.id, "ACTIVATE", actor_id=TEST_ACTOR_ID)

        assert result.outcome == CommandOutcome.TRANSITIONED
        assert result.events_emitted == ("MEMBER_ACTIVATED",)
        assert orchestrator.transition_log.get(TENANT_ID, result.transition_log_id).actor_id == TEST_ACTOR_ID


class TestApprovalScenario:
    def test_review_to_onboarded_via_approval(self, orchestrator, onboarding_definition):
        instance = orchestrator.execute_command(TENANT_ID, "m-1", "ENROLL").instance
        assert instance.current_state == "REVIEW"

        opened = orchestrator.open_approval(
            TENANT_ID, instance.id, "APPROVE_ONBOARDING", "ONBOARDING_REVIEW",
            actor_id=TEST_ACTOR_ID,
        )
        assert opened.request.is_pending

        resolution = orchestrator.resolve_approval(
            TENANT_ID, opened.request.id, ApprovalStatus.APPROVED, "reviewer-1",
            target_state="ONBOARDED",
        )

        assert resolution.transition.instance.current_state == "ONBOARDED"
        entry = orchestrator.transition_log.get_latest_by_instance(TENANT_ID, instance.id)
        assert entry.origin == TransitionOrigin.APPROVAL_ENGINE
        assert entry.approval_request_id == opened.request.id

        with pytest.raises(ApprovalAlreadyResolvedError):
            orchestrator.resolve_approval(
                TENANT_ID, opened.request.id, ApprovalStatus.REJECTED, "reviewer-2",
            )
        assert orchestrator.instances.get(TENANT_ID, instance.id).current_state == "ONBOARDED"

    def test_gated_command_then_card_outcome(self, orchestrator, board, onboarding_definition):
        instance = orchestrator.execute_command(TENANT_ID, "m-1", "ENROLL").instance
        requested = orchestrator.execute_command(TENANT_ID, "m-1", "REQUEST_ONBOARDING")
        assert requested.outcome == CommandOutcome.APPROVAL_REQUESTED

        pending = orchestrator.approvals.find_pending_by_member(TENANT_ID, "m-1")
        (card_id,) = board.cards
        assert pending[0].external_card_id == card_id

        result = orchestrator.handle_card_outcome(TENANT_ID, card_id, CardOutcome.APPROVE, moved_by="lead")

        assert result.processed
        assert result.resolution.transition.events_emitted == ("MEMBER_ONBOARDED",)
        assert orchestrator.instances.get(TENANT_ID, instance.id).current_state == "ONBOARDED"
        assert orchestrator.approvals.find_pending_by_member(TENANT_ID, "m-1") == []

    def test_failed_forced_transition_reported(self, orchestrator, onboarding_definition):
        instance = orchestrator.execute_command(TENANT_ID, "m-1", "ENROLL").instance
        request_id = orchestrator.execute_command(TENANT_ID, "m-1", "REQUEST_ONBOARDING").approval_request_id

        resolution = orchestrator.resolve_approval(
            TENANT_ID, request_id, "APPROVED", "reviewer-1", target_state="NOT_A_STATE",
        )

        assert isinstance(resolution.transition_error, UndeclaredStateError)
        assert orchestrator.approvals.get(TENANT_ID, request_id).status == ApprovalStatus.APPROVED
        assert orchestrator.instances.get(TENANT_ID, instance.id).current_state == "REVIEW"

    def test_board_failure_does_not_block_request(self, session, deterministic_clock, policies, onboarding_definition):
        orchestrator = JourneyOrchestrator(
            session,
            clock=deterministic_clock,
            policies=policies,
            board=RecordingBoardProjection(fail_with=RuntimeError("board offline")),
            settings=EngineSettings(),
        )
        orchestrator.execute_command(TENANT_ID, "m-1", "ENROLL")

        result = orchestrator.execute_command(TENANT_ID, "m-1", "REQUEST_ONBOARDING")

        assert result.outcome == CommandOutcome.APPROVAL_REQUESTED
        request = orchestrator.approvals.get(TENANT_ID, result.approval_request_id)
        assert request.status == ApprovalStatus.PENDING
        assert request.external_card_id is None


class TestPinnedVersions:
    def test_in_flight_instance_keeps_version(self, orchestrator, definition_service, deterministic_clock, activation_definition):
        old = orchestrator.execute_command(TENANT_ID, "m-old", "ENROLL").instance

        deterministic_clock.advance(60)
        definition_service.publish(
            make_activation_definition(
                version="2.0.0",
                states=("DRAFT", "ACTIVE", "PAUSED"),
                transitions=(
                    TransitionDef("DRAFT", "ACTIVATE", "PAUSED"),
                    TransitionDef("PAUSED", "RESUME", "ACTIVE"),
                ),
                events=("MEMBER_ENROLLED",),
            ),
            activate=True,
        )
        new = orchestrator.execute_command(TENANT_ID, "m-new", "ENROLL").instance

        assert old.journey_version == "1.0.0"
        assert new.journey_version == "2.0.0"
        assert orchestrator.execute_command(TENANT_ID, "m-old", "ACTIVATE_CMD").instance.current_state == "ACTIVE"
        assert orchestrator.execute_command(TENANT_ID, "m-new", "ACTIVATE_CMD").instance.current_state == "PAUSED"


class TestCommittedWork:
    @pytest.fixture
    def module_engine(self, tmp_path):
        engine = init_engine_from_url(f"sqlite:///{tmp_path / 'journeys.db'}")
        create_tables(engine)
        yield engine
        reset_engine()

    def test_bundled_journey_committed_through_session_scope(self, module_engine):
        policies = StaticPolicyLookup(load_policies(DEFAULT_SETS_DIR))

        with session_scope() as session:
            journeys = JourneyOrchestrator(session, policies=policies, settings=EngineSettings())
            for definition in load_definitions(DEFAULT_SETS_DIR, TENANT_ID):
                journeys.definitions.publish(definition, activate=True)
            member = journeys.execute_command(TENANT_ID, "m-1", "ENROLL").instance
            journeys.execute_command(TENANT_ID, "m-1", "SUBMIT_APPLICATION")

        with session_scope() as session:
            journeys = JourneyOrchestrator(session, policies=policies, settings=EngineSettings())
            assert journeys.instances.get(TENANT_ID, member.id).current_state == "REVIEW"
            gated = journeys.execute_command(TENANT_ID, "m-1", "REQUEST_ONBOARDING")
            assert gated.outcome == CommandOutcome.APPROVAL_REQUESTED

        with pytest.raises(IllegalTransitionError):
            with session_scope() as session:
                JourneyOrchestrator(session, settings=EngineSettings()).execute_command(
                    TENANT_ID, "m-1", "SUBMIT_APPLICATION",
                )

        session = get_session()
        try:
            log = JourneyOrchestrator(session, settings=EngineSettings()).transition_log
            assert log.replay_state(TENANT_ID, member.id) == "REVIEW"
        finally:
            session.close()
