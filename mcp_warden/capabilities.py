"""Capability kinds, transient capability records and the wire naming convention.

In prefix mode every capability a client sees is named
``<backendID>:<nativeName>`` (tools, prompts) or ``<backendID>:<nativeURI>``
(resources). :func:`encode_reference` is the only place that form is
produced and :func:`split_reference` the only place it is parsed, splitting
on the *first* separator so native names and URIs may contain colons.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple, Union

from mcp import types as mcp_types
from pydantic import AnyUrl

from mcp_warden.constants import ROUTING_SEPARATOR
from mcp_warden.errors import MalformedReferenceError

Capability = Union[mcp_types.Tool, mcp_types.Resource, mcp_types.Prompt]


class CapabilityKind(str, Enum):
    """The three capability families a backend can expose."""

    TOOL = "tools"
    RESOURCE = "resources"
    PROMPT = "prompts"

    @property
    def label(self) -> str:
        """Singular, human-readable name used in messages."""
        return {"tools": "tool", "resources": "resource", "prompts": "prompt"}[self.value]


@dataclass(frozen=True)
class CapabilityRecord:
    """One capability as discovered from one backend.

    Rebuilt on every discovery call and never cached.
    """

    kind: CapabilityKind
    native_name: str
    backend_id: str
    item: Any
    exposed_name: Optional[str] = None

    @property
    def reference(self) -> str:
        """The name or URI a client must use to invoke this record."""
        return self.exposed_name if self.exposed_name is not None else self.native_name

    def to_wire(self) -> Capability:
        """Return the MCP object to send to clients, renamed if needed."""
        if self.exposed_name is None:
            return self.item
        if self.kind is CapabilityKind.RESOURCE:
            return self.item.model_copy(update={"uri": AnyUrl(self.exposed_name)})
        return self.item.model_copy(update={"name": self.exposed_name})


def native_name_of(kind: CapabilityKind, item: Any) -> str:
    """Name used for policy matching: the URI for resources, else the name."""
    if kind is CapabilityKind.RESOURCE:
        return str(item.uri)
    return item.name


def encode_reference(backend_id: str, native_name: str) -> str:
    return f"{backend_id}{ROUTING_SEPARATOR}{native_name}"


def split_reference(kind: CapabilityKind, reference: str) -> Tuple[str, str]:
    """Split ``backendID:remainder`` on the first separator.

    Raises :class:`MalformedReferenceError` when the separator is absent.
    """
    backend_id, sep, remainder = reference.partition(ROUTING_SEPARATOR)
    if not sep:
        raise MalformedReferenceError(kind.label, reference)
    return backend_id, remainder


def make_record(
    kind: CapabilityKind,
    backend_id: str,
    item: Any,
    prefix_enabled: bool = False,
) -> CapabilityRecord:
    """Build a record for *item*, assigning the prefixed name when asked.

    Raises ``ValueError`` when the prefixed form of a resource URI is not a
    valid URI, or would not survive URI normalization unchanged (an
    upper-case backend id comes back lower-cased).
    """
    native = native_name_of(kind, item)
    exposed: Optional[str] = None
    if prefix_enabled:
        exposed = encode_reference(backend_id, native)
        if kind is CapabilityKind.RESOURCE and str(AnyUrl(exposed)) != exposed:
            raise ValueError(f"prefixed URI {exposed!r} is not preserved on the wire")
    return CapabilityRecord(
        kind=kind,
        native_name=native,
        backend_id=backend_id,
        item=item,
        exposed_name=exposed,
    )
