from __future__ import annotations

import json
import re
from typing import AsyncIterator, Optional

from .adapter import BaseLLMAdapter

_MOCK_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Mock Project</title>
  <script src="https://cdn.tailwindcss.com"></script>
  <link rel="stylesheet" href="styles.css">
</head>
<body class="bg-slate-950 text-white">
  <main class="min-h-screen flex items-center justify-center">
    <h1 id="headline" class="text-5xl font-bold">Hello from the mock frontend</h1>
  </main>
  <script src="script.js"></script>
</body>
</html>"""

_MOCK_CSS = """#headline {
  background: linear-gradient(90deg, #38bdf8, #a855f7);
  -webkit-background-clip: text;
  color: transparent;
}"""

_MOCK_JS = """document.getElementById("headline").addEventListener("click", () => {
  console.log("headline clicked");
});"""


class MockLLMAdapter(BaseLLMAdapter):
    """Offline adapter that answers according to the calling agent's system prompt."""

    async def acomplete(
        self,
        prompt: str,
        system_prompt: str = "",
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> str:
        from heftcoder.agents import prompts

        if system_prompt == prompts.ARCHITECT_SYSTEM_PROMPT:
            return self._plan(prompt)
        if system_prompt == prompts.ARCHITECT_QUESTION_PROMPT:
            return "The plan keeps everything in a single responsive page, so no extra services are needed."
        if system_prompt == prompts.FRONTEND_SYSTEM_PROMPT:
            return self._frontend()
        if system_prompt == prompts.BACKEND_SYSTEM_PROMPT:
            return "Created a `projects` table with RLS policies and a `list-projects` edge function."
        return "Mock adapter response."

    async def astream(
        self,
        prompt: str,
        system_prompt: str = "",
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        text = await self.acomplete(prompt, system_prompt=system_prompt, model=model)
        # Three uneven chunks are enough to exercise cumulative streaming
        cut = max(1, len(text) // 3)
        for start in range(0, len(text), cut):
            yield text[start:start + cut]

    @staticmethod
    def _plan(prompt: str) -> str:
        from heftcoder.agents.heuristics import fallback_plan

        if len(re.findall(r"\w+", prompt)) < 3:
            return json.dumps(
                {
                    "clarifyingQuestions": [
                        {"id": "q1", "question": "What kind of project should this be?", "type": "choice",
                         "options": ["Landing page", "Web app", "Mobile app"]},
                        {"id": "q2", "question": "Who is the target audience?", "type": "text"},
                    ]
                }
            )
        return json.dumps(fallback_plan(prompt).to_wire())

    @staticmethod
    def _frontend() -> str:
        return (
            "Here is the complete site.\n\n"
            f"```html\n{_MOCK_HTML}\n```\n\n"
            f"```css\n{_MOCK_CSS}\n```\n\n"
            f"```javascript\n{_MOCK_JS}\n```\n"
        )
