import logging
from typing import Optional

from fastapi import APIRouter, FastAPI

from journeyflow.api.flows_api import flow_router
from journeyflow.application.flow_registry import FlowRegistry, build_registry
from journeyflow.config import JourneyflowConfig, build_persister, load_config
from journeyflow.infra.flow import Persister

api_router = APIRouter(prefix="/api")

api_router.include_router(flow_router)


def create_app(
    persister: Optional[Persister] = None,
    registry: Optional[FlowRegistry] = None,
    config: Optional[JourneyflowConfig] = None,
) -> FastAPI:
    """
    Create the HTTP application.

    Args:
        persister: Persister holding server-side drafts (built from config when omitted)
        registry: Flows served (every application flow when omitted)
        config: Configuration used when no persister is given
    """
    if persister is None:
        config = config or load_config()
        logging.basicConfig(level=config.log_level)
        persister = build_persister(config)

    app = FastAPI(title="journeyflow")
    app.state.persister = persister
    app.state.registry = registry or build_registry()
    app.include_router(api_router)
    return app
