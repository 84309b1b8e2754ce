"""Pattern compiler for trigger templates.

Trigger templates are regular expressions extended with a small capture
syntax:

- ``(<<name>>pattern)``  named group ``name`` matching ``pattern``
- ``<<name>>``           named group matching ``[^\\s]+``
- ``(<<name>pattern)``   shorthand with a single closing bracket
- ``@<<name>>@``         (MULTI only) the literal value captured earlier by
                         the same instance

Compilation never raises. A template that does not compile carries the
``re`` error message and never matches.
"""

import re
from dataclasses import dataclass, field

BACKREFERENCE_PATTERN = re.compile(r"@<<(\w+)>>@")
GROUP_WITH_PATTERN = re.compile(r"\(<<(\w+)>>([^)]*)\)")
STANDALONE_GROUP = re.compile(r"<<(\w+)>>")
SHORTHAND_GROUP = re.compile(r"\(<<(\w+)>")

DEFAULT_GROUP_PATTERN = r"[^\s]+"


@dataclass(frozen=True)
class CompiledPattern:
    """A trigger template compiled to a Python regular expression."""

    template: str
    expanded: str
    regex: re.Pattern[str] | None = None
    group_names: tuple[str, ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.regex is not None

    def fullmatch(self, line: str) -> re.Match[str] | None:
        """Match the whole line."""
        if self.regex is None:
            return None
        return self.regex.fullmatch(line)

    def search(self, line: str) -> re.Match[str] | None:
        """Match anywhere in the line."""
        if self.regex is None:
            return None
        return self.regex.search(line)


def substitute_captures(template: str, captures: dict[str, str | None] | None) -> str:
    """Replace ``@<<name>>@`` references with escaped captured values.

    Names without a captured value are left unchanged.
    """
    if not template:
        return ""
    if not captures:
        return template

    def _replace(match: re.Match[str]) -> str:
        value = captures.get(match.group(1))
        if value is None:
            return match.group(0)
        return re.escape(str(value))

    return BACKREFERENCE_PATTERN.sub(_replace, template)


def expand_template(template: str) -> str:
    """Rewrite ``<<name>>`` capture syntax into Python named groups."""
    if not template:
        return template

    result = GROUP_WITH_PATTERN.sub(
        lambda m: f"(?P<{m.group(1)}>{m.group(2)})", template
    )
    result = STANDALONE_GROUP.sub(
        lambda m: f"(?P<{m.group(1)}>{DEFAULT_GROUP_PATTERN})", result
    )
    result = SHORTHAND_GROUP.sub(lambda m: f"(?P<{m.group(1)}>", result)
    return result


def referenced_captures(template: str) -> list[str]:
    """Names referenced through ``@<<name>>@`` in a template."""
    return BACKREFERENCE_PATTERN.findall(template or "")


def compile_template(
    template: str,
    captures: dict[str, str | None] | None = None,
) -> CompiledPattern:
    """Compile a trigger template.

    Args:
        template: Trigger pattern template
        captures: Values captured by a MULTI instance, substituted into
            ``@<<name>>@`` references before expansion

    Returns:
        CompiledPattern; ``error`` is set when the expansion is not a valid
        regular expression
    """
    source = template or ""
    if captures is not None:
        source = substitute_captures(source, captures)
    expanded = expand_template(source)

    try:
        regex = re.compile(expanded)
    except re.error as e:
        return CompiledPattern(template=template, expanded=expanded, error=str(e))

    return CompiledPattern(
        template=template,
        expanded=expanded,
        regex=regex,
        group_names=tuple(regex.groupindex),
    )
