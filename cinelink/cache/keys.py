"""
Cache key derivation.

Keys look like ``family:name1:value1|name2:value2`` with parameter names in
sorted order, so the same parameter set always produces the same key and a
whole family can be removed with a single ``family:*`` pattern. Backslashes
and ``|`` inside values are backslash-escaped.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

PARAM_DELIMITER = "|"

_GLOB_SPECIAL = "\\*?[]"


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    # Distinct parameter sets must never render alike
    return str(value).replace("\\", "\\\\").replace(PARAM_DELIMITER, "\\" + PARAM_DELIMITER)


def _present(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not params:
        return {}
    return {name: value for name, value in params.items() if value is not None}


def build_key(family: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Build a deterministic cache key for a family and a parameter bag.

    ``None`` values are treated as absent, so ``{"page": 1}`` and
    ``{"page": 1, "type": None}`` map to the same key.
    """
    present = _present(params)
    if not present:
        return family

    rendered = PARAM_DELIMITER.join(
        f"{name}:{_render(present[name])}" for name in sorted(present)
    )
    return f"{family}:{rendered}"


def escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in text)


def family_patterns(family: str) -> Tuple[str, str]:
    """Pattern for every parameterized key of a family, plus its bare key."""
    return f"{escape_glob(family)}:*", family


def scope_patterns(family: str, **scope: Any) -> List[str]:
    """
    Patterns matching every key of ``family`` carrying all ``scope`` pairs.

    The scoped parameters can sit anywhere in the sorted parameter list, so
    each pair is matched either at the start of the parameter section or after
    a delimiter, and either before a delimiter or at the end of the key.
    """
    present = _present(scope)
    if not present:
        pattern, _ = family_patterns(family)
        return [pattern]

    # Keys carrying exactly the scope and nothing else
    exact = build_key(family, present)
    patterns = [escape_glob(exact)]

    fragments = [
        escape_glob(f"{name}:{_render(present[name])}") for name in sorted(present)
    ]
    # Other parameters may sort between scoped pairs. The wildcards can
    # over-match on multi-pair scopes, never under-match.
    middle = "*".join(fragments)
    prefix = f"{escape_glob(family)}:"
    for lead in ("", f"*{PARAM_DELIMITER}"):
        for tail in (PARAM_DELIMITER + "*", ""):
            candidate = f"{prefix}{lead}{middle}{tail}"
            if candidate not in patterns:
                patterns.append(candidate)
    return patterns
