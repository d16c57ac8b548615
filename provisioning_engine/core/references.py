"""
Attribute references between resources.

A reference inside a descriptor's properties both creates an implicit
dependency edge and is replaced by the referenced output at apply time.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping

from provisioning_engine.core.errors import DependencyUnready


@dataclass(frozen=True)
class Ref:
    """Output attribute of another resource."""

    logical_id: str
    attribute: str

    def resolve(self, outputs: Mapping[str, Mapping[str, Any]]) -> Any:
        resource_outputs = outputs.get(self.logical_id)
        if resource_outputs is None or self.attribute not in resource_outputs:
            raise DependencyUnready(self.logical_id, self.attribute)
        return resource_outputs[self.attribute]


@dataclass(frozen=True)
class SecretRef:
    """
    Binding to one field of a generated secret.

    Resolves to a pointer (secret ARN + field), never to the secret value.
    """

    logical_id: str
    field: str = "password"

    def resolve(self, outputs: Mapping[str, Mapping[str, Any]]) -> Dict[str, str]:
        secret_arn = Ref(self.logical_id, "secret_arn").resolve(outputs)
        return {"secret_arn": secret_arn, "field": self.field}


class Fmt:
    """String template whose positional parts may be references."""

    def __init__(self, template: str, *parts: Any):
        self.template = template
        self.parts = parts

    def resolve(self, outputs: Mapping[str, Mapping[str, Any]]) -> str:
        return self.template.format(*(resolve(p, outputs) for p in self.parts))

    def __eq__(self, other) -> bool:
        return (
            isinstance(other, Fmt)
            and self.template == other.template
            and self.parts == other.parts
        )

    def __hash__(self) -> int:
        return hash((self.template, self.parts))

    def __repr__(self) -> str:
        return f"Fmt({self.template!r}, {', '.join(repr(p) for p in self.parts)})"


def collect_references(value: Any) -> Iterator[str]:
    """Yield every logical id referenced anywhere inside value."""
    if isinstance(value, (Ref, SecretRef)):
        yield value.logical_id
    elif isinstance(value, Fmt):
        for part in value.parts:
            yield from collect_references(part)
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from collect_references(item)
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            yield from collect_references(item)


def resolve(value: Any, outputs: Mapping[str, Mapping[str, Any]]) -> Any:
    """Replace every reference in value by the referenced output."""
    if isinstance(value, (Ref, SecretRef, Fmt)):
        return value.resolve(outputs)
    if isinstance(value, Mapping):
        return {k: resolve(v, outputs) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve(v, outputs) for v in value]
    return value
