"""
Field-name heuristics shared by the mock provider and dummy-mode templates.

Field names are split into lowercase tokens (camelCase, snake_case, kebab-case)
and compared token by token, allowing prefix abbreviations such as
``f_name`` ~ ``firstName``.
"""

import re
from typing import Dict, List, Optional, Tuple

from ..core.schema import FieldSpec

_SPLIT_RE = re.compile(r"[^A-Za-z0-9]+|(?<=[a-z0-9])(?=[A-Z])")

SYNONYMS = {
    "given": "first",
    "forename": "first",
    "family": "last",
    "surname": "last",
    "uid": "id",
    "identifier": "id",
    "key": "id",
}

FIRST_NAME_TOKENS = {"first"}
LAST_NAME_TOKENS = {"last"}

MATCH_THRESHOLD = 0.6


def field_tokens(name: str) -> List[str]:
    """Lowercase tokens of a field name with synonyms folded."""
    tokens = [t.lower() for t in _SPLIT_RE.split(name) if t]
    return [SYNONYMS.get(t, t) for t in tokens]


def _token_match(a: str, b: str) -> bool:
    return a == b or a.startswith(b) or b.startswith(a)


def name_similarity(a: str, b: str) -> float:
    """Similarity in 0..1 between two field names."""
    ta, tb = field_tokens(a), field_tokens(b)
    if not ta or not tb:
        return 0.0
    if ta == tb:
        return 1.0
    if len(ta) == len(tb) and all(_token_match(x, y) for x, y in zip(ta, tb)):
        return 0.9

    shorter, longer = (ta, tb) if len(ta) <= len(tb) else (tb, ta)
    if set(shorter) <= set(longer):
        return 0.3 + 0.7 * len(shorter) / len(longer)
    return 0.0


def _is_name_field(tokens: List[str]) -> bool:
    return "name" in tokens


def _name_order(name: str) -> int:
    tokens = set(field_tokens(name))
    if tokens & FIRST_NAME_TOKENS:
        return 0
    if tokens & LAST_NAME_TOKENS:
        return 2
    return 1


def propose_rules(source: Dict[str, FieldSpec], target: Dict[str, FieldSpec]) -> List[Dict[str, object]]:
    """
    Propose declarative field rules mapping ``source`` fields onto ``target``.

    Direct renames are assigned greedily by similarity. Remaining name-like
    targets are built by concatenating or splitting name-like sources.
    """
    pairs: List[Tuple[float, str, str]] = []
    for t_name in target:
        for s_name in source:
            score = name_similarity(t_name, s_name)
            if score >= MATCH_THRESHOLD:
                pairs.append((score, t_name, s_name))

    # Highest score first; stable on declaration order for equal scores
    target_order = {name: i for i, name in enumerate(target)}
    source_order = {name: i for i, name in enumerate(source)}
    pairs.sort(key=lambda p: (-p[0], target_order[p[1]], source_order[p[2]]))

    assigned: Dict[str, Dict[str, object]] = {}
    used_sources = set()
    for _, t_name, s_name in pairs:
        if t_name in assigned or s_name in used_sources:
            continue
        assigned[t_name] = {"target": t_name, "op": "copy", "sources": [s_name]}
        used_sources.add(s_name)

    name_sources = [s for s in source if _is_name_field(field_tokens(s)) and source[s].type in ("string", "any")]

    for t_name, spec in target.items():
        if t_name in assigned or spec.type not in ("string", "any"):
            continue
        t_tokens = field_tokens(t_name)
        if not _is_name_field(t_tokens):
            continue

        rule = _name_rule(t_name, t_tokens, name_sources)
        if rule:
            assigned[t_name] = rule

    return [assigned[t] for t in target if t in assigned]


def _name_rule(t_name: str, t_tokens: List[str], name_sources: List[str]) -> Optional[Dict[str, object]]:
    parts = [s for s in name_sources if set(field_tokens(s)) & (FIRST_NAME_TOKENS | LAST_NAME_TOKENS)]
    whole = [s for s in name_sources if s not in parts]

    wants_first = bool(set(t_tokens) & FIRST_NAME_TOKENS)
    wants_last = bool(set(t_tokens) & LAST_NAME_TOKENS)

    if not wants_first and not wants_last and len(parts) >= 2:
        ordered = sorted(parts, key=_name_order)
        return {"target": t_name, "op": "concat", "sources": ordered, "separator": " "}

    if (wants_first or wants_last) and whole:
        return {"target": t_name, "op": "split", "sources": [whole[0]], "separator": " ",
                "index": 0 if wants_first else -1}

    return None
