"""
Onboarding flows.

- simple-flow: welcome -> profile -> preferences -> complete, where
  preferences is optional and meant to be skipped with skip().
- onboarding-flow: two variants of the same logical flow sharing step ids.
  "standard" verifies the email and collects preferences, "express" goes
  straight from account to profile to complete.
"""
from journeyflow.infra.flow import FlowBuilder, FlowDefinition

SIMPLE_FLOW_ID = "simple-flow"
ONBOARDING_FLOW_ID = "onboarding-flow"


def build_simple_flow() -> FlowDefinition:
    return (
        FlowBuilder(SIMPLE_FLOW_ID)
        .step("welcome", next="profile", label="Welcome")
        .step("profile", next="preferences", label="Your profile")
        .step("preferences", next="complete", label="Preferences", optional=True)
        .step("complete", label="All set")
        .build()
    )


def build_standard_onboarding() -> FlowDefinition:
    return (
        FlowBuilder(ONBOARDING_FLOW_ID)
        .variant("standard")
        .step("welcome", next="account")
        .step("account", next="verification")
        .step("verification", next="profile")
        .step("profile", next="preferences")
        .step("preferences", next="complete")
        .step("complete")
        .build()
    )


def build_express_onboarding() -> FlowDefinition:
    return (
        FlowBuilder(ONBOARDING_FLOW_ID)
        .variant("express")
        .step("welcome", next="account")
        .step("account", next="profile")
        .step("profile", next="complete")
        .step("complete")
        .build()
    )
