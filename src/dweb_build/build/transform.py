"""Client-variant source transform: strip the server-only ``load`` export.

A route module may export ``load`` (a function run on the server before
rendering). The client variant is bundled from a copy of the source with
that export removed, together with every static import used only inside
it, so server-only dependencies never reach the browser bundle.

The transform is lexical, not a parser: string literals and comments are
masked before searching so that text inside them is never mistaken for
code.
"""

from __future__ import annotations

import re

LOAD_EXPORT_PATTERN = re.compile(
    r"export\s+(?:const\s+load\s*=|(?:async\s+)?function\s*\*?\s*load\s*\()"
)

_STATIC_IMPORT = re.compile(
    r"""^[ \t]*import\s+(?P<clause>[^'";]+?)\s+from\s*(['"])(?P<source>[^'"]+)\2[ \t]*;?[ \t]*$""",
    re.MULTILINE,
)

_CONTINUATION_CHARS = "=>,(+-*/&|?:.[{"


def _mask(source: str) -> str:
    """Blank out string literals and comments, keeping offsets and newlines."""
    out = list(source)
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        nxt = source[i + 1] if i + 1 < n else ""
        if ch == "/" and nxt == "/":
            end = source.find("\n", i)
            end = n if end == -1 else end
            for j in range(i, end):
                out[j] = " "
            i = end
        elif ch == "/" and nxt == "*":
            end = source.find("*/", i + 2)
            end = n if end == -1 else end + 2
            for j in range(i, end):
                if out[j] != "\n":
                    out[j] = " "
            i = end
        elif ch in "\"'`":
            j = i + 1
            while j < n and source[j] != ch:
                if source[j] == "\\":
                    j += 1
                elif ch != "`" and source[j] == "\n":
                    break
                j += 1
            end = min(j + 1, n)
            for k in range(i + 1, end - 1):
                if out[k] != "\n":
                    out[k] = " "
            i = end
        else:
            i += 1
    return "".join(out)


def _match_close(masked: str, open_index: int) -> int:
    """Return the index of the bracket closing the one at ``open_index``."""
    pairs = {"(": ")", "{": "}", "[": "]"}
    opener = masked[open_index]
    closer = pairs[opener]
    depth = 0
    for i in range(open_index, len(masked)):
        if masked[i] == opener:
            depth += 1
        elif masked[i] == closer:
            depth -= 1
            if depth == 0:
                return i
    return -1


def _statement_end(masked: str, start: int) -> int:
    """Return the end offset of an expression statement beginning at ``start``."""
    depth = 0
    last = ""
    for i in range(start, len(masked)):
        ch = masked[i]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif depth == 0 and ch == ";":
            return i + 1
        elif depth == 0 and ch == "\n" and last and last not in _CONTINUATION_CHARS:
            return i
        if not ch.isspace():
            last = ch
    return len(masked)


def _extend_to_line_end(source: str, end: int) -> int:
    while end < len(source) and source[end] in " \t":
        end += 1
    if end < len(source) and source[end] == ";":
        end += 1
    if end < len(source) and source[end] == "\n":
        end += 1
    return end


def find_load_range(source: str) -> tuple[int, int] | None:
    """Return the ``(start, end)`` offsets of the exported ``load``, if any."""
    masked = _mask(source)
    match = LOAD_EXPORT_PATTERN.search(masked)
    if match is None:
        return None

    start = match.start()
    if match.group(0).rstrip().endswith("("):
        params_close = _match_close(masked, match.end() - 1)
        if params_close == -1:
            return None
        body_open = masked.find("{", params_close)
        if body_open == -1:
            return None
        body_close = _match_close(masked, body_open)
        if body_close == -1:
            return None
        return start, _extend_to_line_end(source, body_close + 1)

    end = _statement_end(masked, match.end())
    return start, _extend_to_line_end(source, end)


def has_load_export(source: str) -> bool:
    """Return True when ``source`` exports a ``load`` function."""
    return LOAD_EXPORT_PATTERN.search(_mask(source)) is not None


def _imported_names(clause: str) -> list[str]:
    clause = re.sub(r"^type\s+", "", clause.strip())
    names: list[str] = []
    braces = re.search(r"\{([^}]*)\}", clause)
    if braces:
        for specifier in braces.group(1).split(","):
            specifier = re.sub(r"^type\s+", "", specifier.strip())
            if not specifier:
                continue
            names.append(specifier.split(" as ")[-1].strip())
        clause = clause[: braces.start()] + clause[braces.end() :]
    namespace = re.search(r"\*\s*as\s+([A-Za-z_$][\w$]*)", clause)
    if namespace:
        names.append(namespace.group(1))
        clause = clause[: namespace.start()] + clause[namespace.end() :]
    default = clause.strip().strip(",").strip()
    if default and re.fullmatch(r"[A-Za-z_$][\w$]*", default):
        names.append(default)
    return names


def _count(name: str, text: str) -> int:
    return len(re.findall(rf"(?<![\w$]){re.escape(name)}(?![\w$])", text))


def remove_load_only_imports(source: str) -> str:
    """Remove the exported ``load`` and the static imports only it uses.

    Sources without a ``load`` export are returned unchanged.

    Example:
        >>> code = (
        ...     'import { db } from "./db.ts";\\n'
        ...     'import { Card } from "./card.tsx";\\n'
        ...     "export async function load() { return db.all(); }\\n"
        ...     "export default function Page() { return <Card />; }\\n"
        ... )
        >>> print(remove_load_only_imports(code))
        import { Card } from "./card.tsx";
        export default function Page() { return <Card />; }
        <BLANKLINE>
    """
    load_range = find_load_range(source)
    if load_range is None:
        return source

    masked = _mask(source)
    start, end = load_range
    load_body = masked[start:end]
    imports = list(_STATIC_IMPORT.finditer(masked))

    # Usage outside import statements only
    without_imports = _STATIC_IMPORT.sub("", masked)

    removed: list[tuple[int, int]] = [(start, end)]
    for imp in imports:
        clause = source[imp.start("clause") : imp.end("clause")]
        names = _imported_names(clause)
        if not names:
            continue
        in_load = sum(_count(name, load_body) for name in names)
        in_file = sum(_count(name, without_imports) for name in names)
        if in_load > 0 and in_load == in_file:
            line_end = imp.end() + 1 if source[imp.end() : imp.end() + 1] == "\n" else imp.end()
            removed.append((imp.start(), line_end))

    result = source
    for cut_start, cut_end in sorted(removed, reverse=True):
        result = result[:cut_start] + result[cut_end:]

    return re.sub(r"\n[ \t]*\n(?:[ \t]*\n)+", "\n\n", result)
