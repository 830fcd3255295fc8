"""Maps free-form model vocabulary onto the stored entity types and predicates."""

import json
import re
from typing import Any, Dict, Optional

from factgraph.services.graph.constants import ALLOWED_EDGE_TYPES

ENTITY_TYPES = ("company", "instrument", "sector", "country", "event", "concept", "indicator")

ENTITY_TYPE_SYNONYMS = {
    "company": ["org", "organization", "corp", "corporation", "issuer", "entity"],
    "instrument": ["stock", "security", "bond", "equity", "etf", "index"],
    "sector": ["industry", "vertical"],
    "country": ["nation", "region", "geography"],
    "indicator": ["metric", "kpi", "financial_metric"],
}

PREDICATE_SYNONYMS = {
    "IMPACTS": ["AFFECTS", "AFFECTS_NEGATIVELY", "AFFECTS_POSITIVELY", "IMPACT", "IMPACTS_ON", "AFFECTS_ON"],
    "BENEFITS_FROM": ["BENEFITS", "PROFITS_FROM", "GAINS_FROM"],
    "EXPOSED_TO": ["EXPOSED", "RISK_FROM", "RISK_OF", "DEPENDENT_ON", "DEPENDENCE_ON", "SUBJECT_TO"],
    "SUPPLIES_TO": ["SUPPLIES", "SUPPLIER_TO", "PROVIDES_TO", "SELLS_TO", "SERVES"],
}

_ENTITY_TYPE_LOOKUP = {syn: canonical for canonical, syns in ENTITY_TYPE_SYNONYMS.items() for syn in syns}
_PREDICATE_LOOKUP = {syn: canonical for canonical, syns in PREDICATE_SYNONYMS.items() for syn in syns}

_SEPARATORS = re.compile(r"[\s-]+")


def _slug(raw: str) -> str:
    return _SEPARATORS.sub("_", (raw or "").strip())


def normalize_entity_type(raw: str) -> str:
    """Known type, mapped synonym, or `concept`."""
    t = _slug(raw).lower()
    if t in ENTITY_TYPES:
        return t
    return _ENTITY_TYPE_LOOKUP.get(t, "concept")


def normalize_predicate(raw: str) -> Optional[str]:
    """Allowed predicate, mapped synonym, or None when the relation should be dropped."""
    p = _slug(raw).upper()
    if not p:
        return None
    if p in ALLOWED_EDGE_TYPES:
        return p
    return _PREDICATE_LOOKUP.get(p)


def entity_key(name: str) -> str:
    return (name or "").strip().lower()


def normalize_identifiers(incoming: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    """Stringify identifier values; nulls and empty keys are dropped, complex values JSON-encoded."""
    if not incoming:
        return None

    out: Dict[str, str] = {}
    for key, value in incoming.items():
        if not key or value is None:
            continue
        if isinstance(value, str):
            out[key] = value
        elif isinstance(value, bool):
            out[key] = "true" if value else "false"
        elif isinstance(value, (int, float)):
            out[key] = str(value)
        else:
            out[key] = json.dumps(value, default=str)
    return out or None
