"""Deterministic fallback plans used when the architect reply is unusable."""
from __future__ import annotations

import re
from typing import Dict, List

from heftcoder.utils.schemas import PlanStep, ProjectPlan, ProjectType, TechStack

_LANDING_KEYWORDS = ("landing", "homepage", "one page")
_NATIVE_KEYWORDS = ("mobile", "native", "ios", "android")

_STOPWORDS = {
    "a", "an", "the", "me", "my", "our", "for", "with", "and", "of", "to", "i",
    "please", "create", "build", "make", "generate", "want", "need", "would",
    "like", "some", "that", "this", "can", "you",
}


def infer_project_type(message: str) -> ProjectType:
    """Keywords match anywhere in the message, case-insensitively; landing wins over native."""
    text = message.lower()
    if any(keyword in text for keyword in _LANDING_KEYWORDS):
        return "landing"
    if any(keyword in text for keyword in _NATIVE_KEYWORDS):
        return "native"
    return "webapp"


def derive_project_name(message: str, max_words: int = 3) -> str:
    words = [w for w in re.findall(r"[A-Za-z0-9]+", message) if w.lower() not in _STOPWORDS]
    if not words:
        return "Untitled Project"
    return " ".join(w.capitalize() for w in words[:max_words])


def _steps(*specs: tuple) -> List[PlanStep]:
    return [
        PlanStep(id=str(idx), agent=agent, task=task, dependencies=list(deps))
        for idx, (agent, task, deps) in enumerate(specs, start=1)
    ]


_DEFAULTS: Dict[str, Dict] = {
    "landing": {
        "tech_stack": TechStack(frontend=["HTML", "Tailwind CSS", "JavaScript"], backend=[], database="None"),
        "steps": lambda: _steps(
            ("frontend", "Design the hero section and page layout", []),
            ("frontend", "Build responsive content sections with styling and animations", ["1"]),
            ("qa", "Review responsiveness and accessibility", ["2"]),
        ),
        "estimated_time": "2-3 minutes",
    },
    "webapp": {
        "tech_stack": TechStack(
            frontend=["React", "TypeScript", "Tailwind CSS"],
            backend=["Edge Functions"],
            database="PostgreSQL",
        ),
        "steps": lambda: _steps(
            ("backend", "Design the data model and API endpoints", []),
            ("frontend", "Build the UI components and pages", []),
            ("integrator", "Connect the frontend to the API", ["1", "2"]),
            ("qa", "Test the core user flows", ["3"]),
        ),
        "estimated_time": "5-8 minutes",
    },
    "native": {
        "tech_stack": TechStack(frontend=["React Native", "Expo", "TypeScript"], backend=[], database="None"),
        "steps": lambda: _steps(
            ("frontend", "Scaffold the app screens and navigation", []),
            ("frontend", "Implement screen components and styling", ["1"]),
            ("qa", "Check layouts on iOS and Android form factors", ["2"]),
        ),
        "estimated_time": "4-6 minutes",
    },
}


def fallback_plan(message: str) -> ProjectPlan:
    project_type = infer_project_type(message)
    defaults = _DEFAULTS[project_type]
    return ProjectPlan(
        project_name=derive_project_name(message),
        project_type=project_type,
        description=message,
        tech_stack=defaults["tech_stack"].model_copy(deep=True),
        steps=defaults["steps"](),
        estimated_time=defaults["estimated_time"],
    )
