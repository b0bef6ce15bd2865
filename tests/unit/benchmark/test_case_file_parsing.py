from __future__ import annotations

from pathlib import Path

import pytest

from specrunner.benchmark import case_key, parse_case_file, read_case_files

ARRAY_MD = """# Array ops

Setup and teardown come before the first case.

```js
var data = [1, 2, 3];
```

```js
data = null;
```

## push

```js
data.push(4);
```

## pop

```javascript
data.pop();
```

```css
body { color: red; }
```

```html
<div id="fixture"></div>
```
"""


def test_markdown_headings_and_fences_become_cases() -> None:
    parsed = parse_case_file(ARRAY_MD)

    assert parsed.title == "Array ops"
    assert parsed.setup == "var data = [1, 2, 3];"
    assert parsed.teardown == "data = null;"
    assert [case.name for case in parsed.cases] == ["push", "pop"]
    assert parsed.cases[0].js == ("data.push(4);",)
    assert parsed.cases[1].js == ("data.pop();",)
    assert parsed.assets.style_blocks == ("body { color: red; }",)
    assert parsed.assets.markup == ('<div id="fixture"></div>',)


def test_missing_title_uses_default() -> None:
    parsed = parse_case_file("## only\n```js\nx();\n```\n", default_title="fallback")

    assert parsed.title == "fallback"
    assert parsed.setup is None
    assert parsed.teardown is None


def test_unterminated_fence_is_rejected() -> None:
    with pytest.raises(ValueError, match="unterminated"):
        parse_case_file("# T\n## a\n```js\nx();\n")


def test_case_keys_are_root_relative(tmp_path: Path) -> None:
    bench = tmp_path / "bench"
    bench.mkdir()
    (bench / "array.md").write_text(ARRAY_MD, encoding="utf-8")
    (bench / "string.md").write_text(
        "# Strings\n## concat\n```js\n'a' + 'b';\n```\n", encoding="utf-8"
    )

    parsed = read_case_files(tmp_path, ["bench/string.md", str(bench / "array.md")])

    assert list(parsed) == ["bench/string.md", "bench/array.md"]
    assert parsed["bench/string.md"].title == "Strings"
    assert case_key(tmp_path, bench / "array.md") == "bench/array.md"


def test_missing_case_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        read_case_files(tmp_path, ["bench/absent.md"])
