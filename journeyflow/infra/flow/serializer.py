# journeyflow/infra/flow/serializer.py
"""
Serializers converting persisted flow state to and from bytes.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from pydantic import ValidationError

from journeyflow.infra.flow.schemas import PersistedFlowState

logger = logging.getLogger(__name__)


class Serializer(Protocol):
    """Converts PersistedFlowState to and from the bytes a StorageAdapter holds."""

    def serialize(self, state: PersistedFlowState) -> bytes:
        """
        Encode a record.

        Raises:
            Exception: If the state cannot be encoded (e.g. non-JSON context)
        """
        ...

    def deserialize(self, data: bytes) -> Optional[PersistedFlowState]:
        """
        Decode a record.

        Returns:
            The record, or None if the data is malformed
        """
        ...


class JsonSerializer:
    """
    Default serializer: UTF-8 JSON through pydantic.

    Decoding validates the structure, so a corrupted or foreign value is
    reported as absent instead of producing a half-built state.
    """

    def serialize(self, state: PersistedFlowState) -> bytes:
        return state.model_dump_json().encode("utf-8")

    def deserialize(self, data: bytes) -> Optional[PersistedFlowState]:
        try:
            return PersistedFlowState.model_validate_json(data)
        except (ValidationError, ValueError) as e:
            logger.debug(f"Discarding malformed flow record: {e}")
            return None
