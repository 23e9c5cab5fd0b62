# journeyflow/infra/flow/persister.py
"""
Persistence of flow instance state.

The Persister wraps a StorageAdapter and adds key formatting, serialization,
TTL expiry, schema versioning with migration, and an error boundary: every
storage or serialization failure is caught here, reported through callbacks
and never propagated to navigation.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from journeyflow.infra.flow.errors import PersistenceError
from journeyflow.infra.flow.models import (
    DEFAULT_INSTANCE_ID,
    FlowState,
    MigrateFunction,
    StorageAdapter,
    utcnow,
)
from journeyflow.infra.flow.schemas import FlowInstanceRecord, PersistedFlowState
from journeyflow.infra.flow.serializer import JsonSerializer, Serializer
from journeyflow.infra.flow.store.keys import SEPARATOR, DefaultKeyFormatter, KeyFormatter

# Configure logger for persister
logger = logging.getLogger(__name__)

ErrorCallback = Callable[[PersistenceError], None]
StateCallback = Callable[[str, PersistedFlowState], None]


class Persister:
    """
    Load/save/remove/list contract for flow state keyed by
    (flow_id, instance_id, variant_id).

    Example:
        ```python
        persister = Persister(
            MemoryStorage(),
            ttl=timedelta(days=7),
            on_error=lambda e: print("persistence failed:", e),
        )
        persister.save("onboarding", instance.get_state(), instance_id="u-42")
        record = persister.load("onboarding", instance_id="u-42")
        ```
    """

    def __init__(
        self,
        storage: StorageAdapter,
        *,
        key_formatter: Optional[KeyFormatter] = None,
        serializer: Optional[Serializer] = None,
        ttl: Optional[timedelta] = None,
        validate: Optional[Callable[[PersistedFlowState], bool]] = None,
        on_save: Optional[StateCallback] = None,
        on_restore: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the persister.

        Args:
            storage: Key/value backend
            key_formatter: Key strategy (default: ``journeyflow:flow_id[:instance_id]``)
            serializer: Record codec (default: JSON)
            ttl: Records older than this are treated as absent on load
            validate: Read-only check on records loaded at the requested version;
                returning False rejects the record
            on_save: Called after a successful write
            on_restore: Called after a successful load
            on_error: Called with every PersistenceError
            clock: Time source for saved_at and expiry
        """
        self.storage = storage
        self.key_formatter = key_formatter or DefaultKeyFormatter()
        self.serializer = serializer or JsonSerializer()
        self.ttl = ttl
        self.validate = validate
        self.on_save = on_save
        self.on_restore = on_restore
        self.on_error = on_error
        self.clock = clock

    # ================================================================
    #                   SINGLE RECORD OPERATIONS
    # ================================================================

    def load(
        self,
        flow_id: str,
        *,
        instance_id: Optional[str] = None,
        variant_id: Optional[str] = None,
        version: Optional[str] = None,
        migrate: Optional[MigrateFunction] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Optional[PersistedFlowState]:
        """
        Load the persisted state of one instance.

        Args:
            flow_id: Flow identity
            instance_id: Instance identity (None for the shared instance)
            variant_id: Variant identity (only used by variant-aware key formatters)
            version: Current flow schema version; a mismatching record is
                migrated, or discarded when no migration is given
            migrate: ``(state, from_version) -> state | None``
            on_error: Extra error callback for this call

        Returns:
            The record, or None if absent, malformed, expired, not migratable
            or rejected by ``validate``
        """
        key = None
        try:
            key = self.key_formatter.format(flow_id, instance_id, variant_id)
            data = self.storage.get(key)
            if data is None:
                return None

            state = self.serializer.deserialize(data)
            if state is None:
                logger.warning(f"Ignoring malformed flow record at '{key}'")
                return None

            if self.is_expired(state):
                logger.debug(f"Flow record '{key}' expired (saved at {state.saved_at})")
                self.storage.remove(key)
                return None

            if version is not None and state.version != version:
                if migrate is None:
                    logger.info(
                        f"Discarding flow record '{key}': version {state.version!r} != {version!r} and no migration"
                    )
                    return None
                migrated = migrate(state, state.version)
                if migrated is None:
                    logger.info(f"Migration of flow record '{key}' from version {state.version!r} returned None")
                    return None
                state = migrated
            elif self.validate is not None and not self.validate(state):
                logger.debug(f"Flow record '{key}' rejected by validate()")
                return None
        except Exception as e:
            self._report(e, "load", flow_id, key, on_error)
            return None

        self._notify(self.on_restore, flow_id, state)
        return state

    def save(
        self,
        flow_id: str,
        state: Union[FlowState, PersistedFlowState],
        *,
        instance_id: Optional[str] = None,
        variant_id: Optional[str] = None,
        version: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Optional[PersistedFlowState]:
        """
        Serialize and write the state of one instance.

        Args:
            flow_id: Flow identity
            state: State to persist
            instance_id: Instance identity
            variant_id: Variant identity
            version: Flow schema version to stamp on the record
            on_error: Extra error callback for this call

        Returns:
            The written record (with saved_at), or None if the write failed
        """
        key = None
        meta = {
            "saved_at": self.clock(),
            "version": version,
            "instance_id": instance_id or DEFAULT_INSTANCE_ID,
            "variant_id": variant_id,
        }
        try:
            key = self.key_formatter.format(flow_id, instance_id, variant_id)
            if isinstance(state, PersistedFlowState):
                record = state.model_copy(update=meta, deep=True)
            else:
                record = PersistedFlowState.from_flow_state(state, **meta)
            self.storage.set(key, self.serializer.serialize(record))
        except Exception as e:
            self._report(e, "save", flow_id, key, on_error)
            return None

        logger.debug(f"Saved flow record '{key}' at step '{record.step_id}'")
        self._notify(self.on_save, flow_id, record)
        return record

    def remove(
        self,
        flow_id: str,
        *,
        instance_id: Optional[str] = None,
        variant_id: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """
        Remove the persisted state of one instance.

        Args:
            flow_id: Flow identity
            instance_id: Instance identity
            variant_id: Variant identity
            on_error: Extra error callback for this call
        """
        key = None
        try:
            key = self.key_formatter.format(flow_id, instance_id, variant_id)
            self.storage.remove(key)
        except Exception as e:
            self._report(e, "remove", flow_id, key, on_error)

    def is_expired(self, state: PersistedFlowState) -> bool:
        """Whether a record is older than the TTL. Records without saved_at never expire."""
        if self.ttl is None or state.saved_at is None:
            return False
        return state.saved_at + self.ttl < self.clock()

    # ================================================================
    #                   BULK OPERATIONS
    # ================================================================

    def list(self, flow_id: str, *, on_error: Optional[ErrorCallback] = None) -> List[FlowInstanceRecord]:
        """
        Enumerate every persisted instance of a flow.

        Malformed and expired records are skipped.

        Args:
            flow_id: Flow identity
            on_error: Extra error callback for this call

        Returns:
            Instance records ordered by storage key
        """
        records: List[FlowInstanceRecord] = []
        try:
            for key in sorted(self._flow_keys(flow_id)):
                data = self.storage.get(key)
                if data is None:
                    continue
                state = self.serializer.deserialize(data)
                if state is None or self.is_expired(state):
                    continue
                parts = self.key_formatter.parse(key)
                records.append(
                    FlowInstanceRecord(
                        instance_id=state.instance_id or parts.instance_id,
                        variant_id=state.variant_id if state.variant_id is not None else parts.variant_id,
                        key=key,
                        state=state,
                    )
                )
        except Exception as e:
            self._report(e, "list", flow_id, None, on_error)
            return []
        return records

    def remove_flow(self, flow_id: str, *, on_error: Optional[ErrorCallback] = None) -> None:
        """
        Remove every persisted instance of one flow.

        Args:
            flow_id: Flow identity
            on_error: Extra error callback for this call
        """
        try:
            for key in self._flow_keys(flow_id):
                self.storage.remove(key)
        except Exception as e:
            self._report(e, "remove_flow", flow_id, None, on_error)

    def remove_all(self, *, on_error: Optional[ErrorCallback] = None) -> None:
        """
        Remove every record under the key formatter prefix.

        Args:
            on_error: Extra error callback for this call
        """
        try:
            for key in self.storage.list_keys(f"{self.key_formatter.prefix}{SEPARATOR}"):
                self.storage.remove(key)
        except Exception as e:
            self._report(e, "remove_all", None, None, on_error)

    # ================================================================
    #                   INTERNAL HELPERS
    # ================================================================

    def _flow_keys(self, flow_id: str) -> List[str]:
        """Keys belonging to one flow (the raw prefix also matches 'flow_id2:...')."""
        keys = []
        for key in self.storage.list_keys(self.key_formatter.flow_prefix(flow_id)):
            parts = self.key_formatter.parse(key)
            if parts is not None and parts.flow_id == flow_id:
                keys.append(key)
        return keys

    def _report(
        self,
        error: Exception,
        operation: str,
        flow_id: Optional[str],
        key: Optional[str],
        on_error: Optional[ErrorCallback],
    ) -> None:
        if isinstance(error, PersistenceError):
            persistence_error = error
        else:
            persistence_error = PersistenceError(
                f"{operation} failed for flow '{flow_id}' (key={key!r}): {error}", flow_id=flow_id, key=key
            )
            persistence_error.__cause__ = error

        logger.error(str(persistence_error))
        for callback in (self.on_error, on_error):
            if callback is None:
                continue
            try:
                callback(persistence_error)
            except Exception:
                logger.exception("Persistence error callback raised")

    @staticmethod
    def _notify(callback: Optional[StateCallback], flow_id: str, state: PersistedFlowState) -> None:
        if callback is None:
            return
        try:
            callback(flow_id, state)
        except Exception:
            logger.exception(f"Persister callback raised for flow '{flow_id}'")
