# journeyflow/infra/flow/store/keys.py
"""
Key formatting strategies mapping (flow_id, instance_id, variant_id) to
storage keys.

Default layout::

    {prefix}:{flow_id}                  shared instance
    {prefix}:{flow_id}:{instance_id}    named instance

The variant id does not participate in the default key: variants of one flow
share a namespace and are expected never to run concurrently for the same
instance id. With ``include_variant=True`` the variant is part of the key::

    {prefix}:{flow_id}@{variant_id}
    {prefix}:{flow_id}@{variant_id}:{instance_id}
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from journeyflow.infra.flow.models import DEFAULT_INSTANCE_ID

SEPARATOR = ":"
VARIANT_SEPARATOR = "@"


@dataclass(frozen=True)
class KeyParts:
    """Identity decoded from a storage key."""
    flow_id: str
    instance_id: str = DEFAULT_INSTANCE_ID
    variant_id: Optional[str] = None


class KeyFormatter(Protocol):
    """Pluggable key strategy used by the Persister."""

    prefix: str

    def format(self, flow_id: str, instance_id: Optional[str] = None, variant_id: Optional[str] = None) -> str:
        ...

    def flow_prefix(self, flow_id: str) -> str:
        """Prefix shared by every key of one flow, passed to StorageAdapter.list_keys()."""
        ...

    def parse(self, key: str) -> Optional[KeyParts]:
        """Decode a key, or None if the key was not produced by this formatter."""
        ...


class DefaultKeyFormatter:
    """
    ``prefix:flow_id[:instance_id]`` keys, variant-agnostic unless asked.

    Args:
        prefix: Namespace of every key (used by remove_all)
        include_variant: Whether the variant id is part of the key
    """

    def __init__(self, prefix: str = "journeyflow", include_variant: bool = False):
        _check_segment("prefix", prefix)
        self.prefix = prefix
        self.include_variant = include_variant

    def format(self, flow_id: str, instance_id: Optional[str] = None, variant_id: Optional[str] = None) -> str:
        _check_segment("flow_id", flow_id)
        key = f"{self.prefix}{SEPARATOR}{flow_id}"
        if self.include_variant and variant_id:
            _check_segment("variant_id", variant_id)
            key = f"{key}{VARIANT_SEPARATOR}{variant_id}"
        if instance_id and instance_id != DEFAULT_INSTANCE_ID:
            _check_segment("instance_id", instance_id)
            key = f"{key}{SEPARATOR}{instance_id}"
        return key

    def flow_prefix(self, flow_id: str) -> str:
        _check_segment("flow_id", flow_id)
        return f"{self.prefix}{SEPARATOR}{flow_id}"

    def parse(self, key: str) -> Optional[KeyParts]:
        head = f"{self.prefix}{SEPARATOR}"
        if not key.startswith(head):
            return None
        segments = key[len(head):].split(SEPARATOR)
        if len(segments) > 2 or not segments[0]:
            return None

        flow_id, variant_id = segments[0], None
        if VARIANT_SEPARATOR in flow_id:
            if not self.include_variant:
                return None
            flow_id, variant_id = flow_id.split(VARIANT_SEPARATOR, 1)

        instance_id = segments[1] if len(segments) == 2 else DEFAULT_INSTANCE_ID
        if not instance_id:
            return None
        return KeyParts(flow_id=flow_id, instance_id=instance_id, variant_id=variant_id)


def _check_segment(name: str, value: str) -> None:
    if not value:
        raise ValueError(f"{name} must be a non-empty string")
    if SEPARATOR in value or VARIANT_SEPARATOR in value:
        raise ValueError(
            f"{name} '{value}' must not contain '{SEPARATOR}' or '{VARIANT_SEPARATOR}'"
        )
