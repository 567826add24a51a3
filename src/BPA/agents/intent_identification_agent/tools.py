"""
Tools for the command generation stage.

Provides the rule-based classifier used when the model is disabled or
fails, and the parser for the model's JSON answer.
"""

import json
import re
from datetime import date
from typing import Any, Dict, List, Optional

from ...core.logging_config import get_logger
from ...core.settings import settings
from ...models.dates import (
    SPANISH_MONTHS,
    month_name,
    normalize_month,
    previous_month_name,
    strip_accents,
)

logger = get_logger(__name__)

# Keyword patterns per analytics kind, matched against the accent-free,
# lower-cased query. Order is the tie-break priority.
INTENT_PATTERNS = {
    "investment": [
        r'\bgast\w*',
        r'\binvers\w*',
        r'\binvert\w*',
        r'\bdinero\b',
        r'\bpresupuesto',
        r'\bcostos?\b',
        r'\bcuanto\s+(?:se\s+)?pag\w*'
    ],
    "redemption-rate": [
        r'\btasas?\b',
        r'\bporcentajes?\b',
        r'\bporcentaje\s+de\s+(?:canje|uso|utilizacion)',
        r'\bredemption',
        r'\bcanjeo\b',
        r'\bhistoric\w*'
    ],
    "benefit-status": [
        r'\bbeneficios?\b',
        r'\bcanjes?\b',
        r'\bpendientes?\b',
        r'\bcanjead[oa]s?\b',
        r'\butilizad[oa]s?\b',
        r'\busad[oa]s?\b',
        r'\bestado\s+de\s+(?:los\s+)?beneficios',
        r'\bsin\s+seleccionar',
        r'\bno\s+(?:han\s+)?seleccion\w*'
    ],
    "month-progress": [
        r'\bprogreso',
        r'\bavance',
        r'\bcuanto\s+(?:falta|queda)\w*',
        r'\bque\s+dia\b'
    ],
    "compare-december": [
        r'\bcompar\w*',
        r'\bversus\b',
        r'\bvs\.?(?:\s|$)',
        r'\bdiferencias?\b',
        r'\bfrente\s+a\b'
    ],
    "top-categories": [
        r'\bcategorias?\b',
        r'\btipos?\b',
        r'\bmas\s+(?:popular|solicitad|elegid|pedid)\w*',
        r'\bpopulares\b',
        r'\bmejores\b',
        r'\btop\b',
        r'\bpreferid\w*'
    ],
    "active-users": [
        r'\busuarios?\s+activos',
        r'\busuarios?\b',
        r'\bactivos\b',
        r'\bempleados\b',
        r'\bpersonas\b',
        r'\bcolaboradores\b',
        r'\bgenero\b',
        r'\bgeneracion\w*'
    ]
}

INTENT_LABELS = {
    "investment": "Conocer gastos o inversión",
    "benefit-status": "Ver estado de beneficios",
    "redemption-rate": "Conocer tasas de utilización",
    "historical-rate": "Conocer tasa histórica de canje",
    "month-progress": "Ver progreso del mes",
    "compare-december": "Comparar rendimiento entre periodos",
    "top-categories": "Ver categorías de beneficios",
    "active-users": "Conocer usuarios activos",
}

MONTH_SCOPED_KINDS = ("investment", "benefit-status", "active-users")

DEFAULT_INTENT = "Consulta general"
CURRENT_MONTH_CONTEXT = "Mes actual"

# Known categories as written in queries (accent-free) -> stored name
CATEGORIES = {
    "experiencias": "Experiencias",
    "bienestar": "Bienestar",
    "fitness": "Fitness",
    "cultura": "Cultura",
    "deporte": "Deporte",
    "salud": "Salud",
    "entretenimiento": "Entretenimiento",
    "libros": "Libros",
    "tecnologia": "Tecnología",
    "tech": "Tech"
}

_MONTH_RE = re.compile(r'\b(' + "|".join(SPANISH_MONTHS + ["setiembre"]) + r')\b')
_DATE_IN_TEXT_RE = re.compile(r'\b(\d{1,2}/\d{1,2}/\d{4})\b')
_JSON_BLOCK_RE = re.compile(r'\{.*\}', re.DOTALL)


def detect_intent_patterns(query: str) -> Dict[str, int]:
    """
    Detect patterns for each analytics kind in the query.

    Args:
        query: User query

    Returns:
        Dictionary mapping kind to match count
    """
    text = strip_accents(query)
    intent_matches = {}

    for intent, patterns in INTENT_PATTERNS.items():
        matches = 0
        for pattern in patterns:
            if re.search(pattern, text):
                matches += 1
        intent_matches[intent] = matches

    return intent_matches


def calculate_confidence(matches: int) -> float:
    """
    Confidence score for a classification backed by ``matches`` pattern hits.

    Returns:
        Confidence score between 0.0 and 1.0
    """
    if matches == 0:
        return 0.3
    elif matches == 1:
        return 0.6
    elif matches == 2:
        return 0.8
    else:
        return 0.95


def detect_temporal_context(query: str, today: date) -> Optional[str]:
    """
    Month the query refers to, if any.

    "mes pasado" wins over "este mes"/"mes actual", which win over the first
    month name mentioned.
    """
    text = strip_accents(query)

    if "mes pasado" in text or "mes anterior" in text:
        return previous_month_name(today)
    if "este mes" in text or "mes actual" in text:
        return month_name(today)

    match = _MONTH_RE.search(text)
    if match:
        return normalize_month(match.group(1))
    return None


def detect_category(query: str) -> Optional[str]:
    """Benefit category mentioned in the query, as stored in the records."""
    text = strip_accents(query)

    if re.search(r'\bcomidas?\b', text) or re.search(r'\bmundo\b', text):
        return "Comidas del Mundo"

    for keyword, category in CATEGORIES.items():
        if re.search(rf'\b{keyword}\b', text):
            return category
    return None


def _pick_kind(pattern_matches: Dict[str, int]) -> Optional[str]:
    best = max(pattern_matches.values(), default=0)
    if best == 0:
        return None
    # dicts keep INTENT_PATTERNS order, so the first best is the priority winner
    return next(kind for kind, count in pattern_matches.items() if count == best)


def classify_query(
    query: str,
    today: date,
    prefix: Optional[str] = None,
    collection: Optional[str] = None
) -> Dict[str, Any]:
    """
    Rule-based command generation.

    Args:
        query: User query
        today: Reference date for relative months
        prefix: Command namespace (default: from settings)
        collection: Benefits collection for record queries (default: from settings)

    Returns:
        Dictionary with:
            - intent: Spanish intent label
            - intent_code: Analytics kind, "query" or "general"
            - temporal_context: Month name or "Mes actual"
            - commands: Exactly one command string
            - confidence: Confidence score (0.0-1.0)
            - pattern_matches: Match count per kind

    Example:
        >>> classify_query("¿Cuánto gastamos en diciembre?", date(2024, 11, 15))["commands"]
        ['fb:analytics:investment:month=diciembre']
    """
    prefix = prefix or settings.command_prefix
    collection = collection or settings.benefits_collection

    pattern_matches = detect_intent_patterns(query)
    month = detect_temporal_context(query, today)
    category = detect_category(query)
    kind = _pick_kind(pattern_matches)

    if kind is not None:
        matches = pattern_matches[kind]
        intent_code = kind
        intent = INTENT_LABELS[kind]

        if kind in MONTH_SCOPED_KINDS:
            command = f"{prefix}:analytics:{kind}:month={month or month_name(today)}"
        elif kind == "redemption-rate" and re.search(r'\bhistoric', strip_accents(query)):
            intent_code = "historical-rate"
            intent = INTENT_LABELS[intent_code]
            command = f"{prefix}:analytics:historical-rate"
        elif kind == "redemption-rate" and _DATE_IN_TEXT_RE.search(query):
            command = f"{prefix}:analytics:redemption-rate:date={_DATE_IN_TEXT_RE.search(query).group(1)}"
        else:
            command = f"{prefix}:analytics:{kind}"

    elif category or month:
        matches = int(bool(category)) + int(bool(month))
        intent_code = "query"
        clauses = []
        if category:
            clauses.append(f"Categoria={category}")
        if month:
            clauses.append(f"Mes_de_beneficio={month}")

        if category and month:
            intent = f"Consultar categoría {category} en {month}"
        elif category:
            intent = f"Consultar categoría {category}"
        else:
            intent = f"Consultar datos de {month}"
        command = f"{prefix}:query:{collection}:{','.join(clauses)}"

    else:
        matches = 0
        intent_code = "general"
        intent = DEFAULT_INTENT
        command = f"{prefix}:analytics:month-progress"

    confidence = calculate_confidence(matches)

    logger.info(
        f"Query classified: {intent_code} (confidence: {confidence:.2f})",
        extra={"command": command, "month": month, "category": category}
    )

    return {
        "intent": intent,
        "intent_code": intent_code,
        "temporal_context": month or CURRENT_MONTH_CONTEXT,
        "commands": [command],
        "confidence": confidence,
        "pattern_matches": pattern_matches,
    }


def parse_generation_response(response: str) -> Optional[Dict[str, Any]]:
    """
    Parse the model's ``{intent, temporalContext, commands}`` answer.

    Takes the first ``{...}`` block, so fenced or chatty answers work.

    Returns:
        dict with intent, temporal_context and commands (strings only), or
        None if no valid JSON object is found
    """
    if not response:
        return None

    match = _JSON_BLOCK_RE.search(response)
    if not match:
        logger.warning("No JSON object in model response")
        return None

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in model response: {str(e)}")
        return None

    if not isinstance(parsed, dict):
        return None

    raw_commands = parsed.get("commands")
    commands: List[str] = (
        [c.strip() for c in raw_commands if isinstance(c, str) and c.strip()]
        if isinstance(raw_commands, list) else []
    )

    return {
        "intent": parsed.get("intent") or "Intención no identificada",
        "temporal_context": parsed.get("temporalContext") or "No especificado",
        "commands": commands,
    }
