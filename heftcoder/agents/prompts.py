import json
from typing import Dict

from heftcoder.utils.schemas import ProjectPlan

ARCHITECT_SYSTEM_PROMPT = """You are a project planner for a code generation system. Analyze the user's request and create a project plan.

Respond with ONLY a JSON object, no prose and no markdown fences.

Plan format:
{
  "projectName": "string",
  "projectType": "landing" | "webapp" | "native",
  "description": "Brief description",
  "techStack": {
    "frontend": ["HTML", "CSS", "JavaScript"],
    "backend": ["None"],
    "database": "None"
  },
  "steps": [
    {"id": "1", "agent": "frontend", "task": "Create structure", "dependencies": []}
  ],
  "estimatedTime": "X minutes"
}

Valid step agents: frontend, backend, integrator, qa, devops.
Landing pages only need frontend and qa steps.

If the request is too vague to plan, respond instead with:
{"clarifyingQuestions": [{"id": "q1", "question": "...", "type": "text" | "choice", "options": ["..."]}]}"""

ARCHITECT_QUESTION_PROMPT = """You are a project planner answering a question about a project plan you wrote.
Answer briefly and concretely. Do not output a new plan."""

FRONTEND_SYSTEM_PROMPT = """You are a frontend developer. Generate complete, working code.

RULES:
1. Generate complete, runnable code - no placeholders
2. Use modern best practices and Tailwind CSS
3. Make it visually stunning and responsive
4. Output code blocks with language tags

For landing pages:
- Complete HTML with Tailwind CDN
- Modern, professional design
- Mobile-responsive layout
- Beautiful gradients and shadows
- Smooth animations

Format your code like:
```html
<!DOCTYPE html>
<html>
...complete code...
</html>
```

Put CSS in a ```css block and JavaScript in a ```javascript block. To choose a file
name, write it after the language tag, e.g. ```css theme.css"""

BACKEND_SYSTEM_PROMPT = """You are a backend developer. Design the APIs, database schema and server logic
the project needs. Describe each endpoint and table precisely and include the SQL and
function code the frontend will rely on."""

QA_SYSTEM_PROMPT = """You are a QA engineer. Review code for bugs and improvements."""


class PromptBuilder:
    """Builds the user-turn prompts sent to each agent."""

    @staticmethod
    def plan_json(plan: ProjectPlan) -> str:
        return json.dumps(plan.to_wire(), indent=2)

    @staticmethod
    def build_frontend_prompt(plan: ProjectPlan, message: str) -> str:
        tasks = "\n".join(
            f"- {step.task}" for step in plan.steps if step.agent == "frontend"
        ) or "- Build the complete user interface"
        return (
            f"Build this project:\n{PromptBuilder.plan_json(plan)}\n\n"
            f"Original request:\n{message}\n\n"
            f"Your tasks:\n{tasks}\n\n"
            "Return every file as a fenced code block."
        )

    @staticmethod
    def build_refine_prompt(plan: ProjectPlan, message: str, feedback: str, current_code: str) -> str:
        return (
            f"Project plan:\n{PromptBuilder.plan_json(plan)}\n\n"
            f"Original request:\n{message}\n\n"
            f"Current code:\n{current_code}\n\n"
            f"Requested changes:\n{feedback}\n\n"
            "Apply the changes and return EVERY file in full as fenced code blocks, "
            "including files that did not change."
        )

    @staticmethod
    def build_backend_prompt(plan: ProjectPlan, message: str) -> str:
        tasks = "\n".join(
            f"- {step.task}" for step in plan.steps if step.agent == "backend"
        )
        return (
            f"Build the backend for this project:\n{PromptBuilder.plan_json(plan)}\n\n"
            f"Original request:\n{message}\n\n"
            f"Your tasks:\n{tasks}"
        )

    @staticmethod
    def build_question_prompt(plan: ProjectPlan, message: str, question: str) -> str:
        return (
            f"Plan:\n{PromptBuilder.plan_json(plan)}\n\n"
            f"Original request:\n{message}\n\n"
            f"Question:\n{question}"
        )

    @staticmethod
    def build_answers_block(questions: Dict[str, str], answers: Dict[str, str]) -> str:
        """Fold clarifying answers into free text keyed by question wording."""
        lines = []
        for question_id, answer in answers.items():
            question = questions.get(question_id, question_id)
            lines.append(f"Q: {question}\nA: {answer}")
        return "Additional details:\n" + "\n".join(lines)
