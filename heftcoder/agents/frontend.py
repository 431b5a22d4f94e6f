from __future__ import annotations

import posixpath
import re
from typing import Awaitable, Callable, Iterable, List, Optional, Set, Tuple

from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import GeneratedFile, ProjectPlan

from .base import BaseAgent
from .prompts import PromptBuilder

LOGGER = get_logger(__name__)

OutputCallback = Callable[[str], Awaitable[None]]

_CODE_BLOCK = re.compile(r"```([\w+#-]*)[ \t]*([^\n`]*)\n([\s\S]*?)```")
_FILENAME_HINT = re.compile(r"^[\w./-]+\.\w+$")
_MIN_BLOCK_LENGTH = 10
_FILE_HEADER = re.compile(r"^// File: (.+)$", re.MULTILINE)

DEFAULT_FILENAMES = {
    "html": "index.html",
    "css": "styles.css",
    "javascript": "script.js",
    "js": "script.js",
    "typescript": "app.ts",
    "ts": "app.ts",
    "tsx": "App.tsx",
    "jsx": "App.jsx",
    "json": "data.json",
    "sql": "schema.sql",
}

EXTENSION_LANGUAGES = {
    ".html": "html",
    ".css": "css",
    ".js": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".jsx": "jsx",
    ".json": "json",
    ".sql": "sql",
}


def _unique_name(name: str, used: Set[str]) -> str:
    if name not in used:
        return name
    stem, ext = posixpath.splitext(name)
    counter = 2
    while f"{stem}-{counter}{ext}" in used:
        counter += 1
    return f"{stem}-{counter}{ext}"


def extract_code_blocks(content: str, taken: Iterable[str] = ()) -> List[GeneratedFile]:
    """Turn fenced code blocks into files.

    The first block of a language gets the default name for that language; later
    blocks mapping to the same name are numbered (``script-2.js``).
    """
    files: List[GeneratedFile] = []
    used: Set[str] = set(taken)
    for match in _CODE_BLOCK.finditer(content or ""):
        language = (match.group(1) or "text").lower()
        hint = match.group(2).strip()
        code = match.group(3).strip()
        if len(code) < _MIN_BLOCK_LENGTH:
            continue

        if hint and _FILENAME_HINT.match(hint):
            name = hint[2:] if hint.startswith("./") else hint
        else:
            name = DEFAULT_FILENAMES.get(language, "code.txt")
        name = _unique_name(name, used)
        used.add(name)
        files.append(GeneratedFile(path=name, content=code, language=language))
        LOGGER.debug("Extracted %s block as %s (%d chars)", language, name, len(code))

    LOGGER.info("Extracted %d files from agent output", len(files))
    return files


def split_code_blob(blob: str) -> List[GeneratedFile]:
    """Inverse of the client's "current code" blob: one file per ``// File: <path>`` header."""
    headers = list(_FILE_HEADER.finditer(blob or ""))
    files: List[GeneratedFile] = []
    for index, header in enumerate(headers):
        end = headers[index + 1].start() if index + 1 < len(headers) else len(blob)
        path = header.group(1).strip()
        content = blob[header.end() + 1:end].rstrip("\n")
        language = EXTENSION_LANGUAGES.get(posixpath.splitext(path)[1].lower(), "text")
        files.append(GeneratedFile(path=path, content=content, language=language))
    return files


def merge_files(existing: Iterable[GeneratedFile], updates: Iterable[GeneratedFile]) -> List[GeneratedFile]:
    """Replace files by path, keeping their position; new paths are appended."""
    merged = list(existing)
    positions = {file.path: index for index, file in enumerate(merged)}
    for file in updates:
        if file.path in positions:
            merged[positions[file.path]] = file
        else:
            positions[file.path] = len(merged)
            merged.append(file)
    return merged


class FrontendAgent(BaseAgent):

    async def generate(
        self, plan: ProjectPlan, message: str, on_output: Optional[OutputCallback] = None
    ) -> Tuple[List[GeneratedFile], str]:
        prompt = PromptBuilder.build_frontend_prompt(plan, message)
        return await self._run(prompt, on_output)

    async def refine(
        self,
        plan: ProjectPlan,
        message: str,
        feedback: str,
        current_code: str,
        on_output: Optional[OutputCallback] = None,
    ) -> Tuple[List[GeneratedFile], str]:
        prompt = PromptBuilder.build_refine_prompt(plan, message, feedback, current_code)
        return await self._run(prompt, on_output)

    async def _run(self, prompt: str, on_output: Optional[OutputCallback]) -> Tuple[List[GeneratedFile], str]:
        output = ""
        async for output in self.stream(prompt):
            if on_output is not None:
                await on_output(output)
        return extract_code_blocks(output), output
