"""
Branching flow.

The user_type step is context-driven: its resolver picks business_details
for business users and setup_preference otherwise. The setup_preference step
is component-driven: the caller passes "preferences" or "complete" to next().

Paths:
- business + advanced: welcome, profile, user_type, business_details, setup_preference, preferences, complete
- personal + quick:    welcome, profile, user_type, setup_preference, complete
"""
from journeyflow.infra.flow import FlowDefinition, define_flow, step

BRANCHING_FLOW_ID = "branching-flow"


def resolve_user_type(context):
    return "business_details" if context.get("user_type") == "business" else "setup_preference"


def build_branching_flow() -> FlowDefinition:
    return define_flow(
        {
            "id": BRANCHING_FLOW_ID,
            "start": "welcome",
            "steps": {
                "welcome": {"next": "profile"},
                "profile": {"next": "user_type"},
                "user_type": step(next=["business_details", "setup_preference"], resolve=resolve_user_type),
                "business_details": {"next": "setup_preference"},
                "setup_preference": {"next": ["preferences", "complete"]},
                "preferences": {"next": "complete"},
                "complete": {},
            },
        }
    )
