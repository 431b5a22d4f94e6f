"""Assemble a single self-contained HTML document for the preview iframe."""
from __future__ import annotations

import html
import posixpath
import re
from typing import List, Optional

from heftcoder.utils.schemas import GeneratedFile

TAILWIND_CDN = '<script src="https://cdn.tailwindcss.com"></script>'

_SHELL = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
  {tailwind}
  <style>
{css}
  </style>
</head>
<body>
  <div id="root"></div>
  <script>
{js}
  </script>
</body>
</html>"""


def _by_suffix(files: List[GeneratedFile], suffix: str) -> List[GeneratedFile]:
    return [f for f in files if f.path.lower().endswith(suffix)]


def _strip_local_references(document: str, files: List[GeneratedFile]) -> str:
    """Remove <link>/<script src> tags pointing at files that get inlined."""
    for file in files:
        for name in {file.path, posixpath.basename(file.path)}:
            target = r"""["'](?:\./)?""" + re.escape(name) + r"""["']"""
            document = re.sub(r"<link\b[^>]*href=" + target + r"[^>]*>\s*", "", document, flags=re.IGNORECASE)
            document = re.sub(
                r"<script\b[^>]*src=" + target + r"[^>]*>\s*</script>\s*", "", document, flags=re.IGNORECASE
            )
    return document


def _insert_before(document: str, closing_tag: str, snippet: str, last: bool = False) -> str:
    lowered = document.lower()
    index = lowered.rfind(closing_tag) if last else lowered.find(closing_tag)
    if index == -1:
        return document + snippet if last else snippet + document
    return document[:index] + snippet + document[index:]


def build_preview_html(files: List[GeneratedFile], title: str = "Preview") -> Optional[str]:
    """Inline CSS and JS into the first HTML file, or synthesise a Tailwind shell."""
    if not files:
        return None

    styles = _by_suffix(files, ".css")
    scripts = _by_suffix(files, ".js")
    css = "\n\n".join(f.content for f in styles)
    js = "\n\n".join(f.content for f in scripts)

    html_file = next((f for f in files if f.path.lower().endswith(".html")), None)
    if html_file is None:
        return _SHELL.format(title=html.escape(title), tailwind=TAILWIND_CDN, css=css, js=js)

    document = _strip_local_references(html_file.content, styles + scripts)
    if css:
        document = _insert_before(document, "</head>", f"<style>\n{css}\n</style>\n")
    if js:
        document = _insert_before(document, "</body>", f"<script>\n{js}\n</script>\n", last=True)
    return document
