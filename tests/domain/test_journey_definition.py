"""
Tests for journey definition validation and the indexed JourneyGraph
(journey_kernel.domain.journey).

Pure layer: no database.
"""

import pytest

from journey_kernel.domain.journey import (
    CommandAction,
    CommandDef,
    JourneyGraph,
    TransitionDef,
    validate_definition,
)
from tests.factories import make_activation_definition, make_onboarding_definition


class TestValidateDefinition:
    def test_reference_definitions_are_valid(self):
        assert validate_definition(make_activation_definition()) == []
        assert validate_definition(make_onboarding_definition()) == []

    def test_initial_state_must_be_declared(self):
        violations = validate_definition(make_activation_definition(initial_state="PENDING"))
        assert any("initial_state 'PENDING'" in v for v in violations)

    def test_transition_states_must_be_declared(self):
        defn = make_activation_definition(
            transitions=(TransitionDef("DRAFT", "ACTIVATE", "LIVE"),),
        )
        violations = validate_definition(defn)
        assert any("to_state 'LIVE'" in v for v in violations)

    def test_fire_trigger_command_needs_known_trigger(self):
        defn = make_activation_definition(
            commands=(CommandDef("GO", CommandAction.FIRE_TRIGGER, trigger="LAUNCH"),),
        )
        violations = validate_definition(defn)
        assert violations == ["command GO: trigger 'LAUNCH' matches no transition"]

    def test_fire_trigger_command_without_trigger(self):
        defn = make_activation_definition(commands=(CommandDef("GO"),))
        assert validate_definition(defn) == ["command GO: FIRE_TRIGGER without trigger"]

    def test_ambiguous_from_trigger_pair_rejected(self):
        defn = make_activation_definition(
            states=("DRAFT", "ACTIVE", "ARCHIVED"),
            transitions=(
                TransitionDef("DRAFT", "ACTIVATE", "ACTIVE"),
                TransitionDef("DRAFT", "ACTIVATE", "ARCHIVED", key="draft-archive"),
            ),
        )
        violations = validate_definition(defn)
        assert any("ambiguous transitions" in v for v in violations)

    def test_duplicate_transition_keys_rejected(self):
        defn = make_activation_definition(
            transitions=(
                TransitionDef("DRAFT", "ACTIVATE", "ACTIVE", key="k"),
                TransitionDef("ACTIVE", "PAUSE", "DRAFT", key="k"),
            ),
        )
        assert "duplicate transition key 'k'" in validate_definition(defn)

    def test_approval_requires_policy(self):
        defn = make_activation_definition(
            transitions=(TransitionDef("DRAFT", "ACTIVATE", "ACTIVE", requires_approval=True),),
        )
        violations = validate_definition(defn)
        assert any("requires_approval without approval_policy_code" in v for v in violations)

    def test_emitted_events_must_be_declared(self):
        defn = make_activation_definition(
            transitions=(TransitionDef("DRAFT", "ACTIVATE", "ACTIVE", emit_events=("NOPE",)),),
        )
        assert any("undeclared events NOPE" in v for v in validate_definition(defn))

    def test_unknown_command_action_rejected(self):
        defn = make_activation_definition(commands=(CommandDef("ARCHIVE", "ARCHIVE_INSTANCE"),))
        assert validate_definition(defn) == [
            "command ARCHIVE: unsupported action 'ARCHIVE_INSTANCE'"
        ]

    def test_duplicate_states_and_commands(self):
        defn = make_activation_definition(
            states=("DRAFT", "ACTIVE", "DRAFT"),
            commands=(
                CommandDef("ENROLL", CommandAction.CREATE_INSTANCE),
                CommandDef("ENROLL", CommandAction.CREATE_INSTANCE),
            ),
        )
        violations = validate_definition(defn)
        assert "duplicate states: DRAFT" in violations
        assert "duplicate command 'ENROLL'" in violations

    def test_all_violations_reported_at_once(self):
        defn = make_activation_definition(
            initial_state="NOWHERE",
            creation_events=("UNKNOWN_EVENT",),
        )
        assert len(validate_definition(defn)) == 2


class TestTransitionDef:
    def test_key_defaults_to_from_and_trigger(self):
        assert TransitionDef("A", "GO", "B").key == "A:GO"

    def test_dict_round_trip_keeps_approval_fields(self):
        t = TransitionDef(
            "A", "GO", "B",
            requires_approval=True,
            approval_policy_code="P",
            emit_events=["E"],
        )
        assert TransitionDef.from_dict(t.to_dict()) == t


class TestCommandDef:
    def test_action_defaults_to_fire_trigger(self):
        assert CommandDef.from_dict({"command": "GO", "trigger": "T"}).action == "FIRE_TRIGGER"

    def test_enum_action_stored_as_string(self):
        assert CommandDef("ENROLL", CommandAction.CREATE_INSTANCE).action == "CREATE_INSTANCE"


class TestContentHash:
    def test_hash_is_stable(self):
        assert (
            make_activation_definition().compute_content_hash()
            == make_activation_definition().compute_content_hash()
        )

    def test_hash_ignores_tenant_and_activation(self):
        a = make_activation_definition(tenant_id="t1")
        b = make_activation_definition(tenant_id="t2", is_active=True)
        assert a.compute_content_hash() == b.compute_content_hash()

    def test_hash_changes_with_graph(self):
        a = make_activation_definition()
        b = make_activation_definition(states=("DRAFT", "ACTIVE", "CLOSED"))
        assert a.compute_content_hash() != b.compute_content_hash()


class TestJourneyGraph:
    @pytest.fixture
    def graph(self):
        return JourneyGraph.build(make_onboarding_definition())

    def test_key(self, graph):
        assert graph.key == ("tenant-a", "MEMBER_LIFECYCLE", "1.0.0")

    def test_find_transition(self, graph):
        t = graph.find_transition("REVIEW", "APPROVE_ONBOARDING")
        assert t is not None
        assert t.to_state == "ONBOARDED"
        assert t.requires_approval

    def test_missing_edge(self, graph):
        assert graph.find_transition("ONBOARDED", "APPROVE_ONBOARDING") is None

    def test_triggers_from_in_declaration_order(self, graph):
        assert graph.triggers_from("REVIEW") == ("APPROVE_ONBOARDING", "REJECT")
        assert graph.triggers_from("REJECTED") == ()

    def test_states_and_commands(self, graph):
        assert graph.has_state("SUSPENDED")
        assert not graph.has_state("ACTIVE")
        assert graph.find_command("ENROLL").action == "CREATE_INSTANCE"
        assert graph.find_command("MISSING") is None

    def test_first_declared_edge_wins_for_ambiguous_data(self):
        defn = make_activation_definition(
            states=("DRAFT", "ACTIVE", "ARCHIVED"),
            transitions=(
                TransitionDef("DRAFT", "ACTIVATE", "ACTIVE"),
                TransitionDef("DRAFT", "ACTIVATE", "ARCHIVED", key="second"),
            ),
        )
        graph = JourneyGraph.build(defn)
        assert graph.find_transition("DRAFT", "ACTIVATE").to_state == "ACTIVE"
