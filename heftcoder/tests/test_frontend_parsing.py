import asyncio

from heftcoder.agents.frontend import FrontendAgent, extract_code_blocks, merge_files, split_code_blob
from heftcoder.agents.heuristics import fallback_plan
from heftcoder.agents.registry import build_registry


def test_language_tags_map_to_default_names():
    content = (
        "```html\n<!DOCTYPE html><html></html>\n```\n"
        "```css\nbody { margin: 0; }\n```\n"
        "```js\nconsole.log('hello');\n```\n"
        "```tsx\nexport const App = () => null;\n```\n"
        "```python\nprint('hello world')\n```\n"
    )
    files = extract_code_blocks(content)
    assert [f.path for f in files] == ["index.html", "styles.css", "script.js", "App.tsx", "code.txt"]
    assert files[1].content == "body { margin: 0; }"
    assert files[2].language == "js"


def test_short_blocks_are_skipped():
    files = extract_code_blocks("```css\na{}\n```\n```html\n<p>long enough</p>\n```")
    assert [f.path for f in files] == ["index.html"]


def test_duplicate_names_are_suffixed():
    content = (
        "```javascript\nconst a = 1; // first\n```\n"
        "```javascript\nconst b = 2; // second\n```\n"
        "```js\nconst c = 3; // third\n```\n"
    )
    files = extract_code_blocks(content)
    assert [f.path for f in files] == ["script.js", "script-2.js", "script-3.js"]
    assert "second" in files[1].content


def test_filename_on_fence_line_overrides_default():
    content = "```css theme.css\n:root { --bg: #000; }\n```\n```js ./src/main.js\nconsole.log('main');\n```"
    files = extract_code_blocks(content)
    assert [f.path for f in files] == ["theme.css", "src/main.js"]


def test_taken_names_are_respected():
    files = extract_code_blocks("```html\n<main>hello</main>\n```", taken=["index.html"])
    assert files[0].path == "index-2.html"


def test_generate_returns_files_and_streams_output():
    async def inner():
        class Adapter:
            async def astream(self, prompt, system_prompt="", model=None):
                yield "Here is the page:\n```html\n<h1>Hello there</h1>\n"
                yield "```\n```css\nh1 { color: red; }\n```"

        seen = []

        async def on_output(text):
            seen.append(text)

        agent = FrontendAgent(build_registry()["frontend"], adapter=Adapter())
        files, output = await agent.generate(fallback_plan("a landing page"), "a landing page", on_output)
        assert [f.path for f in files] == ["index.html", "styles.css"]
        assert seen[-1] == output

    asyncio.run(inner())


def test_split_code_blob_restores_files():
    blob = (
        "// File: index.html\n<h1>Hi</h1>\n\n"
        "// File: supabase/functions/send/index.ts\nexport default 1;\n"
    )
    files = split_code_blob(blob)
    assert [(f.path, f.language) for f in files] == [
        ("index.html", "html"),
        ("supabase/functions/send/index.ts", "typescript"),
    ]
    assert files[0].content == "<h1>Hi</h1>"
    assert files[1].content == "export default 1;"
    assert split_code_blob("") == []


def test_merge_files_replaces_by_path_and_appends_new():
    current = extract_code_blocks("```html\n<h1>Old headline</h1>\n```\n```css\nh1 { color: red; }\n```")
    updates = extract_code_blocks("```css\nh1 { color: blue; }\n```\n```javascript\nconsole.log('hi');\n```")
    merged = merge_files(current, updates)
    assert [f.path for f in merged] == ["index.html", "styles.css", "script.js"]
    assert merged[1].content == "h1 { color: blue; }"
    assert [f.path for f in current] == ["index.html", "styles.css"]
