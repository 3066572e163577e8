import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Mapping, Optional

from auto_downscale.core import annotations
from auto_downscale.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"\s*(?:\d+\s*[A-Za-z]+\s*)+")
_PAIR_RE = re.compile(r"(\d+)\s*([A-Za-z]+)")

_UNITS: Dict[str, timedelta] = {
    "s": timedelta(seconds=1),
    "sec": timedelta(seconds=1),
    "second": timedelta(seconds=1),
    "seconds": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "min": timedelta(minutes=1),
    "minute": timedelta(minutes=1),
    "minutes": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "hour": timedelta(hours=1),
    "hours": timedelta(hours=1),
    "d": timedelta(days=1),
    "day": timedelta(days=1),
    "days": timedelta(days=1),
    "w": timedelta(weeks=1),
    "week": timedelta(weeks=1),
    "weeks": timedelta(weeks=1),
    "M": timedelta(days=30),
    "mo": timedelta(days=30),
    "month": timedelta(days=30),
    "months": timedelta(days=30),
    "y": timedelta(days=365),
    "year": timedelta(days=365),
    "years": timedelta(days=365),
}


def parse_duration(value: str) -> timedelta:
    """
    Convertit une durée du type "1h", "4w", "10y" ou "1h30m" en timedelta.

    Args:
        value: suite de couples magnitude + unité

    Raises:
        ConfigurationError: si la chaîne est vide, mal formée ou si une unité est inconnue
    """
    if not isinstance(value, str) or not _DURATION_RE.fullmatch(value):
        raise ConfigurationError(f"Durée invalide: {value!r}")

    total = timedelta()
    for magnitude, unit in _PAIR_RE.findall(value):
        # "M" (mois) et "m" (minute) sont distincts, les formes longues ne le sont pas
        if len(unit) > 1:
            unit = unit.lower()
        step = _UNITS.get(unit)
        if step is None:
            raise ConfigurationError(f"Unité de durée inconnue '{unit}' dans {value!r}")
        total += int(magnitude) * step
    return total


def parse_rules(rules: Mapping[str, str]) -> Dict[re.Pattern, timedelta]:
    """Compile les règles regex -> durée en conservant leur ordre de déclaration"""
    compiled = {}
    for pattern, duration in rules.items():
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise ConfigurationError(f"Regex invalide '{pattern}': {e}") from e
        compiled[regex] = parse_duration(duration)
    return compiled


def min_age(
    environment_name: str,
    default_min_age: timedelta,
    override: Optional[str] = None,
    rules: Optional[Mapping[re.Pattern, timedelta]] = None,
) -> timedelta:
    """
    Durée d'inactivité minimale avant qu'un environnement soit éligible.

    L'override de l'environnement l'emporte. Sinon la DERNIÈRE règle dont la
    regex correspond au nom gagne. Sans correspondance, la valeur par défaut
    s'applique.
    """
    if override:
        return parse_duration(override)

    result = default_min_age
    for regex, duration in (rules or {}).items():
        if regex.search(environment_name):
            result = duration
    return result


def parse_timestamp(value: str) -> datetime:
    """Parse un horodatage RFC3339, considéré en UTC s'il est naïf"""
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def is_eligible(
    ingress: dict,
    now: datetime,
    default_min_age: timedelta,
    rules: Optional[Mapping[re.Pattern, timedelta]] = None,
) -> bool:
    """
    Un ingress est éligible s'il porte last-update, n'est pas déjà down et
    que last-update + min_age <= now.

    Raises:
        ConfigurationError: si l'annotation min-age de l'ingress est mal formée
    """
    metadata = ingress.get("metadata") or {}
    ingress_annotations = annotations.get_annotations(ingress)

    last_update = ingress_annotations.get(annotations.LAST_UPDATE)
    if not last_update or annotations.is_down(ingress):
        return False

    try:
        last_update_at = parse_timestamp(last_update)
    except ValueError:
        logger.warning(
            f"Annotation {annotations.LAST_UPDATE} illisible sur "
            f"{metadata.get('namespace')}/{metadata.get('name')}: {last_update!r}"
        )
        return False

    required = min_age(
        metadata.get("name", ""),
        default_min_age,
        ingress_annotations.get(annotations.MIN_AGE),
        rules,
    )
    return last_update_at + required <= now
