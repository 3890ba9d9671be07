"""
Template Resolver - Resolves {{path}} placeholders against a variable store

Supports:
- {{vars.count}} - Values written by SetVariable nodes
- {{http1.result.data}} - Output of an earlier node
- Nested paths and indices: {{http1.result.data[0].name}}
- Lengths: {{http1.result.data.length}}
- Nested placeholders: {{http1.result.data[{{loop.index}}]}} (up to 3 levels)

Resolution never raises. Unresolved placeholders are reported as
ResolutionError values next to the resolved result.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

from flowbuilder.expressions.errors import PathSyntaxError
from flowbuilder.expressions.paths import NOT_FOUND, parse_path
from flowbuilder.expressions.values import stringify
from flowbuilder.flow_engine.errors import ResolutionError

logger = logging.getLogger(__name__)

OPEN = '{{'
CLOSE = '}}'


class _Undefined:
    """Result of a single-placeholder template whose path is missing."""

    def __repr__(self):
        return 'UNDEFINED'

    def __bool__(self):
        return False


UNDEFINED = _Undefined()


@dataclass
class _Placeholder:
    parts: List[Union[str, '_Placeholder']] = field(default_factory=list)
    raw: str = ''

    @property
    def depth(self) -> int:
        children = [part.depth for part in self.parts if isinstance(part, _Placeholder)]
        return 1 + max(children, default=0)


def _append_text(parts: list, text: str):
    if parts and isinstance(parts[-1], str):
        parts[-1] += text
    else:
        parts.append(text)


class TemplateResolver:
    """
    Materializes node configuration against the current variables.

    Examples:
        "{{vars.count}}"                 -> 2 (type preserved)
        "Total: {{vars.count}} items"    -> "Total: 2 items"
        "{{vars.missing}}"               -> UNDEFINED + missing_path error
        "Hi {{vars.missing}}"            -> "Hi {{vars.missing}}" + missing_path error
    """

    MAX_NESTING = 3

    def resolve(self, template: Any, store) -> Tuple[Any, Optional[ResolutionError]]:
        """
        Resolve one template.

        Args:
            template: Template text; non-strings are returned unchanged
            store: VariableStore (or overlay) to read from

        Returns:
            (value, first ResolutionError or None)
        """
        value, errors = self._resolve_string(template, store) if isinstance(template, str) else (template, [])
        return value, (errors[0] if errors else None)

    def resolve_value(self, value: Any, store) -> Tuple[Any, List[ResolutionError]]:
        """
        Resolve templates recursively through dicts and lists.

        UNDEFINED results inside containers become None.

        Returns:
            (resolved value, all ResolutionErrors)
        """
        errors: List[ResolutionError] = []
        resolved = self._resolve_nested(value, store, errors)
        return resolved, errors

    def _resolve_nested(self, value: Any, store, errors: List[ResolutionError]) -> Any:
        if isinstance(value, str):
            resolved, found = self._resolve_string(value, store)
            errors.extend(found)
            return None if resolved is UNDEFINED else resolved
        if isinstance(value, dict):
            return {key: self._resolve_nested(item, store, errors) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._resolve_nested(item, store, errors) for item in value]
        return value

    def has_placeholders(self, value: Any) -> bool:
        if isinstance(value, str):
            return any(isinstance(part, _Placeholder) for part in self._scan(value))
        if isinstance(value, dict):
            return any(self.has_placeholders(item) for item in value.values())
        if isinstance(value, (list, tuple)):
            return any(self.has_placeholders(item) for item in value)
        return False

    def find_references(self, value: Any) -> List[str]:
        """
        List the placeholder paths used in a value.

        Paths containing nested placeholders are reported by their
        innermost references only.
        """
        references: List[str] = []

        def walk_parts(parts):
            for part in parts:
                if not isinstance(part, _Placeholder):
                    continue
                if any(isinstance(child, _Placeholder) for child in part.parts):
                    walk_parts(part.parts)
                else:
                    references.append(''.join(part.parts).strip())

        def walk(item):
            if isinstance(item, str):
                walk_parts(self._scan(item))
            elif isinstance(item, dict):
                for child in item.values():
                    walk(child)
            elif isinstance(item, (list, tuple)):
                for child in item:
                    walk(child)

        walk(value)
        return references

    def _resolve_string(self, text: str, store) -> Tuple[Any, List[ResolutionError]]:
        parts = self._scan(text)
        errors: List[ResolutionError] = []

        # Entire string is a single placeholder: return the actual value
        if len(parts) == 1 and isinstance(parts[0], _Placeholder):
            value = self._resolve_placeholder(parts[0], store, errors)
            return (UNDEFINED if value is NOT_FOUND else value), errors

        output = []
        for part in parts:
            if isinstance(part, _Placeholder):
                value = self._resolve_placeholder(part, store, errors)
                output.append(part.raw if value is NOT_FOUND else stringify(value))
            else:
                output.append(part)
        return ''.join(output), errors

    def _resolve_placeholder(self, placeholder: _Placeholder, store, errors: List[ResolutionError]) -> Any:
        """Resolve one placeholder; NOT_FOUND when it cannot be resolved."""
        if placeholder.depth > self.MAX_NESTING:
            errors.append(ResolutionError(
                kind='nesting_too_deep',
                path=placeholder.raw,
                message=f"Placeholder nesting deeper than {self.MAX_NESTING} levels: {placeholder.raw}"
            ))
            return NOT_FOUND

        body = []
        for part in placeholder.parts:
            if isinstance(part, _Placeholder):
                value = self._resolve_placeholder(part, store, errors)
                if value is NOT_FOUND:
                    return NOT_FOUND
                body.append(stringify(value))
            else:
                body.append(part)

        path = ''.join(body).strip()
        try:
            segments = parse_path(path)
        except PathSyntaxError as e:
            errors.append(ResolutionError(kind='invalid_path', path=path, message=str(e)))
            return NOT_FOUND

        value = store.lookup(segments)
        if value is NOT_FOUND:
            logger.debug(f"Variable not found: {path}")
            errors.append(ResolutionError(
                kind='missing_path',
                path=path,
                message=f"Variable not found: {path}"
            ))
        return value

    @staticmethod
    def _next_delimiter(text: str, start: int, closing: bool) -> int:
        candidates = [text.find(OPEN, start)]
        if closing:
            candidates.append(text.find(CLOSE, start))
        found = [index for index in candidates if index != -1]
        return min(found) if found else len(text)

    def _scan(self, text: str) -> List[Union[str, _Placeholder]]:
        """Split text into literal runs and (possibly nested) placeholders."""
        root: list = []
        stack = []
        current = root
        pos = 0

        while pos < len(text):
            if text.startswith(OPEN, pos):
                stack.append((current, pos))
                current = []
                pos += len(OPEN)
            elif text.startswith(CLOSE, pos) and stack:
                parent, start = stack.pop()
                parent.append(_Placeholder(parts=current, raw=text[start:pos + len(CLOSE)]))
                current = parent
                pos += len(CLOSE)
            else:
                end = self._next_delimiter(text, pos + 1, closing=bool(stack))
                _append_text(current, text[pos:end])
                pos = end

        # Unclosed {{ is literal text
        while stack:
            parent, _ = stack.pop()
            _append_text(parent, OPEN)
            for part in current:
                if isinstance(part, _Placeholder):
                    parent.append(part)
                else:
                    _append_text(parent, part)
            current = parent

        return current
