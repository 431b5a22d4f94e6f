from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from pydantic import ValidationError

from heftcoder.utils.json_parser import extract_json_object
from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import ClarifyingQuestion, ProjectPlan

from .base import BaseAgent
from .heuristics import fallback_plan
from .prompts import ARCHITECT_QUESTION_PROMPT, PromptBuilder

LOGGER = get_logger(__name__)

OutputCallback = Callable[[str], Awaitable[None]]


@dataclass
class PlanningOutcome:
    plan: Optional[ProjectPlan] = None
    questions: List[ClarifyingQuestion] = field(default_factory=list)
    raw: str = ""
    used_fallback: bool = False

    @property
    def needs_clarification(self) -> bool:
        return self.plan is None and bool(self.questions)


class ArchitectAgent(BaseAgent):
    """Turns a user request into a ProjectPlan or a set of clarifying questions."""

    async def plan(self, message: str, on_output: Optional[OutputCallback] = None) -> PlanningOutcome:
        LOGGER.info("Architect planning (message length=%d)", len(message))
        raw = ""
        async for raw in self.stream(message):
            if on_output is not None:
                await on_output(raw)
        return self.interpret(raw, message)

    @staticmethod
    def interpret(raw: str, message: str) -> PlanningOutcome:
        """Parse the architect reply. Anything unusable yields the heuristic plan."""
        try:
            data = extract_json_object(raw)
        except ValueError as exc:
            LOGGER.warning("Architect reply is not JSON (%s); using heuristic plan", exc)
            return PlanningOutcome(plan=fallback_plan(message), raw=raw, used_fallback=True)

        questions = data.get("clarifyingQuestions") or data.get("clarifying_questions")
        if questions and not data.get("steps"):
            try:
                parsed = [ClarifyingQuestion.model_validate(q) for q in questions]
                return PlanningOutcome(questions=parsed, raw=raw)
            except (ValidationError, TypeError) as exc:
                LOGGER.warning("Discarding malformed clarifying questions: %s", exc)

        try:
            plan = ProjectPlan.model_validate(data)
        except ValidationError as exc:
            LOGGER.warning("Architect plan failed validation; using heuristic plan: %s", exc)
            return PlanningOutcome(plan=fallback_plan(message), raw=raw, used_fallback=True)

        if not plan.steps:
            LOGGER.warning("Architect plan has no steps; using heuristic plan")
            return PlanningOutcome(plan=fallback_plan(message), raw=raw, used_fallback=True)

        if not plan.description:
            plan.description = message
        return PlanningOutcome(plan=plan, raw=raw)

    async def answer(self, plan: ProjectPlan, message: str, question: str) -> str:
        prompt = PromptBuilder.build_question_prompt(plan, message, question)
        return (await self.complete(prompt, system_prompt=ARCHITECT_QUESTION_PROMPT)).strip()
