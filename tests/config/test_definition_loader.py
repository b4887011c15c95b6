"""
Tests for the YAML journey loader (journey_config.loader).

Covers parsing of transitions, commands and policies, validation of the
parsed graph, and the bundled member_lifecycle reference definition.
"""

import pytest
import yaml

from journey_config import DEFAULT_SETS_DIR
from journey_config.loader import (
    load_definitions,
    load_policies,
    load_yaml_file,
    parse_command,
    parse_definition,
    parse_transition,
)
from journey_kernel.domain.journey import CommandAction, JourneyGraph
from journey_kernel.exceptions import DefinitionValidationError
from tests.factories import TENANT_ID

MINIMAL = {
    "code": "TRIAL",
    "version": 1,
    "initial_state": "NEW",
    "states": ["NEW", "DONE"],
    "transitions": [{"from": "NEW", "trigger": "FINISH", "to": "DONE"}],
    "commands": [{"command": "FINISH_CMD", "trigger": "FINISH"}],
}


class TestParsers:
    def test_transition_aliases(self):
        t = parse_transition({
            "from_state": "A",
            "trigger": "GO",
            "to_state": "B",
            "requires_approval": True,
            "approval_policy_code": "P",
        })
        assert (t.from_state, t.to_state, t.approval_policy_code) == ("A", "B", "P")
        assert t.requires_approval

    def test_transition_missing_target(self):
        with pytest.raises(KeyError):
            parse_transition({"from": "A", "trigger": "GO"})

    def test_command_action_normalized(self):
        assert parse_command({"command": "NEW", "action": "create_instance"}).action == (
            CommandAction.CREATE_INSTANCE.value
        )
        assert parse_command({"command": "GO", "trigger": "GO"}).action == "FIRE_TRIGGER"

    def test_minimal_definition(self):
        defn = parse_definition(MINIMAL, TENANT_ID)
        assert defn.tenant_id == TENANT_ID
        assert defn.version == "1"
        assert defn.name == "TRIAL"
        assert defn.transitions[0].key == "NEW:FINISH"

    def test_invalid_definition_rejected(self):
        data = dict(MINIMAL, initial_state="MISSING")
        with pytest.raises(DefinitionValidationError):
            parse_definition(data, TENANT_ID)

    def test_missing_required_key(self):
        data = {k: v for k, v in MINIMAL.items() if k != "states"}
        with pytest.raises(KeyError):
            parse_definition(data, TENANT_ID)


class TestDirectoryLoading:
    def test_loads_yaml_files_in_name_order(self, tmp_path):
        (tmp_path / "b.yaml").write_text(yaml.safe_dump(dict(MINIMAL, code="B")))
        (tmp_path / "a.yml").write_text(yaml.safe_dump(dict(MINIMAL, code="A")))
        (tmp_path / "notes.txt").write_text("ignored")

        codes = [d.code for d in load_definitions(tmp_path, TENANT_ID)]
        assert codes == ["A", "B"]

    def test_empty_file_is_empty_dict(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}


class TestBundledMemberLifecycle:
    @pytest.fixture
    def definition(self):
        (definition,) = load_definitions(DEFAULT_SETS_DIR, TENANT_ID)
        return definition

    def test_reference_definition_is_valid(self, definition):
        assert definition.code == "MEMBER_LIFECYCLE"
        assert definition.initial_state == "PROSPECT"
        assert definition.creation_events == ("MEMBER_ENROLLED",)

    def test_onboarding_is_approval_gated(self, definition):
        graph = JourneyGraph.build(definition)
        onboarding = graph.find_transition("REVIEW", "APPROVE_ONBOARDING")
        assert onboarding.requires_approval
        assert onboarding.approval_policy_code == "MEMBER_ONBOARDING"
        assert graph.find_command("RESOLVE_ONBOARDING").action == "RESOLVE_APPROVAL"

    def test_policies(self):
        policies = {p.code: p for p in load_policies(DEFAULT_SETS_DIR)}
        assert policies["MEMBER_ONBOARDING"].pipeline_id == "onboarding-review"
        assert policies["MEMBER_ONBOARDING"].blocking
        assert not policies["MEMBER_SUSPENSION"].blocking

    def test_publishable(self, definition_service, definition):
        stored = definition_service.publish(definition, activate=True)
        assert stored.is_active
        assert stored.content_hash == definition.compute_content_hash()
