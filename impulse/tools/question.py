"""The ``question`` tool: structured multiple-choice questions for the user."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from impulse.bus import Bus, QuestionEvents
from impulse.interaction.gate import (
    DEFAULT_TIMEOUT,
    GateBusyError,
    GateCancelledError,
    GateTimeoutError,
    HumanSyncGate,
)
from impulse.tools.registry import Tool, ToolRegistry, ToolResult

DESCRIPTION = """Ask the user questions with structured options.

Use this tool when you need to:
- Gather user preferences or requirements
- Clarify ambiguous instructions
- Get decisions on implementation choices

Notes:
- Users can always select "Other" to provide custom text input
- Answers are returned as arrays of labels per question
- Set multiple: true to allow selecting more than one option
- Keep headers to max 12 characters and option labels to 1-5 words"""

CANCELLED_OUTPUT = "User cancelled the question. Proceed without this information or ask differently."


class QuestionOption(BaseModel):
    label: str = Field(..., description="Display text (1-5 words, concise)")
    description: str = Field(..., description="Explanation of choice")


class Question(BaseModel):
    question: str = Field(..., description="Complete question text")
    header: str = Field(..., max_length=12, description="Very short label (max 12 chars)")
    options: List[QuestionOption] = Field(..., description="Available choices")
    multiple: Optional[bool] = Field(None, description="Allow selecting multiple choices")


class QuestionInput(BaseModel):
    questions: List[Question] = Field(..., min_length=1, description="Questions to ask")


def create_question_gate(bus: Bus, timeout: float = DEFAULT_TIMEOUT) -> HumanSyncGate:
    """The gate the UI answers with ``resolve(answers)`` (one label list per question)."""
    return HumanSyncGate(bus, QuestionEvents.Asked, timeout=timeout, label="question", id_prefix="question")


def format_answers(questions: List[Question], answers: List[List[str]]) -> str:
    lines = []
    for i, question in enumerate(questions):
        selected = answers[i] if i < len(answers) else []
        lines.append(f"{question.header}: {', '.join(selected) or '(no selection)'}")
    return "User responded:\n" + "\n".join(lines)


def register_question_tool(registry: ToolRegistry, gate: HumanSyncGate) -> Tool:
    async def handler(params: QuestionInput) -> ToolResult:
        payload = {"questions": [q.model_dump() for q in params.questions]}
        for question in payload["questions"]:
            question["multiple"] = bool(question["multiple"])

        try:
            answers = await gate.ask(payload)
        except GateCancelledError:
            return ToolResult(success=False, output=CANCELLED_OUTPUT)
        except GateTimeoutError:
            return ToolResult(
                success=False,
                output="The user did not answer in time. Proceed without this information.",
            )
        except GateBusyError:
            return ToolResult(
                success=False,
                output="Another question is already waiting for the user. Ask again after it is answered.",
            )

        answers = [list(a) for a in (answers or [])]
        return ToolResult(
            success=True,
            output=format_answers(params.questions, answers),
            metadata={"answers": answers},
        )

    return registry.define("question", DESCRIPTION, QuestionInput, handler)
