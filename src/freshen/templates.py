'''Inline templates kept at the end of a source file.

A Python file can carry templates in a trailing string after a line
holding only ``__END__``::

    """
    __END__
    @@ index
    Hello $name
    @@ layout
    <html>$body</html>
    """

Each ``@@ name`` line starts a template that runs until the next one.
'''

import re
from pathlib import Path

END_MARKER = re.compile(r"^__END__[ \t]*\r?$", re.MULTILINE)
TEMPLATE_HEADER = re.compile(r"^@@\s*(\S+)\s*$")
STRING_DELIMITER = re.compile(r'^\s*("""|\'\'\')\s*$')


def parse_inline_templates(source: str) -> dict[str, str]:
    """Extract the templates following ``__END__`` in ``source``."""
    marker = END_MARKER.search(source)
    if marker is None:
        return {}

    templates: dict[str, str] = {}
    name: str | None = None
    lines: list[str] = []
    for line in source[marker.end():].splitlines():
        if STRING_DELIMITER.match(line):
            break
        header = TEMPLATE_HEADER.match(line)
        if header:
            if name is not None:
                templates[name] = "\n".join(lines)
            name, lines = header.group(1), []
        elif name is not None:
            lines.append(line)
    if name is not None:
        templates[name] = "\n".join(lines)
    return templates


def read_inline_templates(path: Path) -> dict[str, str]:
    return parse_inline_templates(path.read_text(encoding="utf-8"))
