"""
Registry of the flow definitions an application serves.

Definitions are keyed by (flow_id, variant_id) so that variants of one
logical flow can be served side by side.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from journeyflow.application.branching_flow import build_branching_flow
from journeyflow.application.onboarding_flow import (
    build_express_onboarding,
    build_simple_flow,
    build_standard_onboarding,
)
from journeyflow.application.survey_flow import build_survey_flow
from journeyflow.application.task_flow import build_task_flow
from journeyflow.infra.flow import FlowDefinition

logger = logging.getLogger(__name__)


class FlowRegistry:

    def __init__(self):
        self._definitions: Dict[Tuple[str, Optional[str]], FlowDefinition] = {}
        self._defaults: Dict[str, FlowDefinition] = {}

    def register(self, definition: FlowDefinition, default: bool = False) -> FlowRegistry:
        """
        Add a definition.

        The first registered variant of a flow is its default unless another
        one is registered with ``default=True``.
        """
        key = (definition.id, definition.variant_id)
        if key in self._definitions:
            raise ValueError(f"Flow '{definition.id}' variant '{definition.variant_id}' is already registered")
        self._definitions[key] = definition
        if default or definition.id not in self._defaults:
            self._defaults[definition.id] = definition
        logger.debug(f"Registered flow '{definition.id}' (variant={definition.variant_id})")
        return self

    def get(self, flow_id: str, variant_id: Optional[str] = None) -> FlowDefinition:
        """
        Get a definition.

        Raises:
            KeyError: If the flow or variant is unknown
        """
        if variant_id is None:
            if flow_id not in self._defaults:
                raise KeyError(f"Flow '{flow_id}' not found")
            return self._defaults[flow_id]
        if (flow_id, variant_id) not in self._definitions:
            raise KeyError(f"Flow '{flow_id}' has no variant '{variant_id}'")
        return self._definitions[(flow_id, variant_id)]

    def variants(self, flow_id: str) -> List[Optional[str]]:
        return [variant for (fid, variant) in self._definitions if fid == flow_id]

    def definitions(self) -> List[FlowDefinition]:
        return list(self._definitions.values())

    def __contains__(self, flow_id: object) -> bool:
        return flow_id in self._defaults


def build_registry() -> FlowRegistry:
    """Registry holding every flow of the application."""
    return (
        FlowRegistry()
        .register(build_simple_flow())
        .register(build_standard_onboarding(), default=True)
        .register(build_express_onboarding())
        .register(build_branching_flow())
        .register(build_task_flow())
        .register(build_survey_flow())
    )
