"""
Survey flow: four rating questions (1 to 5) followed by the results step.
"""
from typing import Any, Dict

from journeyflow.infra.flow import FlowBuilder, FlowDefinition

SURVEY_FLOW_ID = "survey-flow"
QUESTIONS = ("q1_satisfaction", "q2_recommend", "q3_features", "q4_support")


def build_survey_flow() -> FlowDefinition:
    builder = FlowBuilder(SURVEY_FLOW_ID).step("intro", next="question1")
    for index in range(1, len(QUESTIONS)):
        builder.step(f"question{index}", next=f"question{index + 1}", field=QUESTIONS[index - 1])
    builder.step(f"question{len(QUESTIONS)}", next="results", field=QUESTIONS[-1])
    return builder.step("results").build()


def score_answers(context: Dict[str, Any]) -> Dict[str, Any]:
    """
    Context updater storing the number of answered questions and the average rating.

    Example:
        ```python
        flow.next(score_answers)   # on the last question
        ```
    """
    answers = [context[q] for q in QUESTIONS if context.get(q) is not None]
    return {
        **context,
        "questions_answered": len(answers),
        "score": round(sum(answers) / len(answers), 2) if answers else None,
    }
