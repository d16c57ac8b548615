#provisioning_engine\core\validation.py
from provisioning_engine.core.errors import MissingInput, StackValidationError
from provisioning_engine.core.graph import DependencyGraph
from provisioning_engine.core.models import ResourceDescriptor, ResourceKind, StackDefinition
from provisioning_engine.core.references import collect_references


# Properties a descriptor of each kind cannot be provisioned without.
REQUIRED_PROPERTIES = {
    ResourceKind.NETWORK: ("max_azs",),
    ResourceKind.SECRET: ("name", "username"),
    ResourceKind.DATABASE: ("engine", "database_name", "credentials_secret", "vpc_id"),
    ResourceKind.FILE_SYSTEM: ("vpc_id",),
    ResourceKind.ACCESS_POINT: ("file_system_id", "path"),
    ResourceKind.SECURITY_GROUP: ("vpc_id",),
    ResourceKind.INGRESS_RULE: ("source_security_group_id", "target_security_group_id", "port"),
    ResourceKind.CLUSTER: ("vpc_id",),
    ResourceKind.TASK_DEFINITION: ("cpu", "memory", "container"),
    ResourceKind.FILE_SYSTEM_GRANT: ("file_system_id", "principal_arn", "actions"),
    ResourceKind.SERVICE: ("cluster_arn", "task_definition_arn", "desired_count"),
    ResourceKind.LOAD_BALANCER: ("name", "vpc_id"),
    ResourceKind.CERTIFICATE: ("certificate_arn",),
    ResourceKind.USER_POOL: ("name",),
    ResourceKind.USER_POOL_DOMAIN: ("user_pool_id", "domain_prefix"),
    ResourceKind.USER_POOL_CLIENT: ("user_pool_id", "callback_urls"),
    ResourceKind.TARGET_GROUP: ("port", "protocol", "health_check"),
    ResourceKind.LISTENER: ("load_balancer_arn", "port", "certificate_arn", "default_action"),
    ResourceKind.ROLE: ("assumed_by", "actions", "resources"),
    ResourceKind.IDENTITY_USER: ("user_pool_id", "username", "capability"),
}


def validate_descriptor(descriptor: ResourceDescriptor) -> None:
    # -------------------------
    # Identity
    # -------------------------
    if not descriptor.logical_id:
        raise StackValidationError("logical_id is required")

    if not isinstance(descriptor.kind, ResourceKind):
        raise StackValidationError(
            f"{descriptor.logical_id}: unknown kind {descriptor.kind!r}"
        )

    # -------------------------
    # Properties
    # -------------------------
    if not isinstance(descriptor.properties, dict):
        raise StackValidationError(
            f"{descriptor.logical_id}: properties must be a dict"
        )

    for name in REQUIRED_PROPERTIES.get(descriptor.kind, ()):
        value = descriptor.properties.get(name)
        if value is None or value == "" or value == []:
            raise MissingInput(f"{descriptor.logical_id}.{name}")


def validate_stack(stack: StackDefinition) -> DependencyGraph:
    """
    Reject a malformed stack before any side effect.

    Returns the dependency graph so callers do not build it twice.
    """
    if not stack.name:
        raise StackValidationError("stack name is required")

    for descriptor in stack.resources:
        validate_descriptor(descriptor)

    graph = DependencyGraph(stack.resources)

    for output_name, value in stack.outputs.items():
        for logical_id in collect_references(value):
            if logical_id not in graph:
                raise StackValidationError(
                    f"output {output_name} references unknown resource {logical_id}"
                )

    return graph
