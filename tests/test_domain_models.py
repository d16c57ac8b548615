#tests\test_domain_models.py

"""Test resource records, state transitions and references."""

import pytest

from provisioning_engine.core.errors import DependencyUnready, InvalidStateTransition, MissingInput
from provisioning_engine.core.models import (
    ResourceDescriptor,
    ResourceKind,
    ResourceRecord,
    ResourceState,
    RunReport,
    RunStatus,
)
from provisioning_engine.core.references import Fmt, Ref, SecretRef, collect_references, resolve
from provisioning_engine.core.state_machine import ResourceStateMachine
from provisioning_engine.core.validation import validate_descriptor, validate_stack
from provisioning_engine.stacks.workspace import build_workspace_stack, unique_resource_name


def _record(state=ResourceState.PENDING):
    return ResourceRecord(
        stack_name="s",
        logical_id="db",
        kind=ResourceKind.DATABASE,
        state=state,
    )


class TestResourceStateMachine:
    """Test record state transitions."""

    def test_full_lifecycle(self):
        """Test PENDING -> CREATING -> READY -> DELETING -> DELETED."""
        record = _record()
        for state in (
            ResourceState.CREATING,
            ResourceState.READY,
            ResourceState.DELETING,
            ResourceState.DELETED,
        ):
            ResourceStateMachine.transition(record, state)
        assert record.state == ResourceState.DELETED

    def test_invalid_transition(self):
        """Test PENDING cannot jump to READY."""
        with pytest.raises(InvalidStateTransition):
            ResourceStateMachine.transition(_record(), ResourceState.READY)

    def test_same_state_is_noop(self):
        """Test transitioning to the current state changes nothing."""
        record = _record(ResourceState.READY)
        ResourceStateMachine.transition(record, ResourceState.READY)
        assert record.state == ResourceState.READY

    def test_recreate_after_failure_clears_handle(self):
        """Test FAILED -> CREATING forgets the old physical id and error."""
        record = _record(ResourceState.FAILED)
        record.physical_id = "database-old"
        record.outputs = {"endpoint_address": "old"}
        record.error_message = "boom"

        ResourceStateMachine.transition(record, ResourceState.CREATING)

        assert record.physical_id is None
        assert record.outputs == {}
        assert record.error_message is None

    def test_deleted_clears_outputs(self):
        """Test outputs of a deleted resource are not kept."""
        record = _record(ResourceState.DELETING)
        record.outputs = {"endpoint_address": "x"}
        ResourceStateMachine.transition(record, ResourceState.DELETED)
        assert record.outputs == {}


class TestReferences:
    """Test reference collection and resolution."""

    outputs = {
        "lb": {"dns_name": "lb-1.elb.amazonaws.com"},
        "secret": {"secret_arn": "arn:aws:secretsmanager:r:a:secret:s", "username": "u"},
    }

    def test_resolve_nested(self):
        """Test references inside dicts, lists and templates are replaced."""
        value = {
            "callback_urls": [Fmt("https://{}/oauth2/idpresponse", Ref("lb", "dns_name"))],
            "password": SecretRef("secret"),
            "plain": 5,
        }

        resolved = resolve(value, self.outputs)

        assert resolved == {
            "callback_urls": ["https://lb-1.elb.amazonaws.com/oauth2/idpresponse"],
            "password": {"secret_arn": "arn:aws:secretsmanager:r:a:secret:s", "field": "password"},
            "plain": 5,
        }

    def test_secret_ref_never_resolves_to_value(self):
        """Test secret bindings only carry the ARN."""
        assert "value" not in resolve(SecretRef("secret"), self.outputs)

    def test_unready_dependency(self):
        """Test a missing attribute raises DependencyUnready."""
        with pytest.raises(DependencyUnready) as exc_info:
            resolve(Ref("lb", "arn"), self.outputs)
        assert exc_info.value.logical_id == "lb"

    def test_collect_references(self):
        """Test every referenced id is collected."""
        value = {"a": [Ref("x", "id")], "b": Fmt("{}-{}", Ref("y", "id"), SecretRef("z"))}
        assert set(collect_references(value)) == {"x", "y", "z"}

    def test_fmt_equality(self):
        """Test equal templates compare equal (descriptors stay comparable)."""
        assert Fmt("https://{}", Ref("lb", "dns_name")) == Fmt("https://{}", Ref("lb", "dns_name"))
        assert Fmt("https://{}", Ref("lb", "dns_name")) != Fmt("http://{}", Ref("lb", "dns_name"))


class TestValidation:
    """Test structural validation."""

    def test_missing_certificate(self, settings):
        """Test an empty certificate ARN is a missing input."""
        stack = build_workspace_stack(settings.model_copy(update={"certificate_arn": ""}))

        with pytest.raises(MissingInput) as exc_info:
            validate_stack(stack)
        assert exc_info.value.name == "certificate.certificate_arn"

    def test_missing_required_property(self):
        """Test required properties are enforced per kind."""
        descriptor = ResourceDescriptor("secret", ResourceKind.SECRET, {"name": "s"})
        with pytest.raises(MissingInput, match="secret.username"):
            validate_descriptor(descriptor)

    def test_workspace_stack_validates(self, workspace_stack):
        """Test the default stack is structurally valid."""
        graph = validate_stack(workspace_stack)
        assert len(graph) == 22


class TestRunReport:
    """Test run report summaries."""

    def test_failure_summary(self):
        """Test the summary names the failed resource and its chain."""
        report = RunReport(
            stack_name="workspace",
            operation="apply",
            status=RunStatus.FAILED,
            failed_resource="database",
            error_message="quota exceeded",
            blocked_chain=["vpc", "database"],
            blocked=["service"],
        )

        summary = report.summary()

        assert "failed resource: database" in summary
        assert "vpc -> database" in summary
        assert "blocked: service" in summary
        assert report.side_effect_count() == 0


class TestUniqueResourceName:
    """Test generated resource names."""

    def test_length_and_case(self):
        """Test names are lower case and at most 24 characters."""
        name = unique_resource_name("My-Very-Long-Stack-Name", "load-balancer")
        assert len(name) <= 24
        assert name == name.lower()

    def test_deterministic_and_unique(self):
        """Test the same inputs give the same name; different stacks differ."""
        assert unique_resource_name("a", "lb") == unique_resource_name("a", "lb")
        assert unique_resource_name("a", "lb") != unique_resource_name("b", "lb")
