import json
from dataclasses import dataclass
from typing import Dict, List, Optional

from auto_downscale.core import annotations
from auto_downscale.core.exceptions import StateCorruptionError

_STATE_KEYS = (
    annotations.DOWN,
    annotations.ORIGINAL_TYPE,
    annotations.ORIGINAL_SELECTOR,
    annotations.ORIGINAL_PORTS,
)


@dataclass
class ServiceRedirectState:
    """
    État d'un Service redirigé vers le proxy, tel qu'il est persisté dans ses
    annotations. Il est toujours écrit et effacé en un seul patch.
    """
    original_type: Optional[str]
    original_selector: Optional[Dict[str, str]]
    original_ports: Optional[List[dict]] = None

    @classmethod
    def capture(cls, service: dict) -> "ServiceRedirectState":
        spec = service.get("spec") or {}
        return cls(
            original_type=spec.get("type"),
            original_selector=spec.get("selector"),
            original_ports=spec.get("ports") or [],
        )

    def to_annotations(self) -> Dict[str, str]:
        result = {
            annotations.DOWN: annotations.TRUE,
            annotations.ORIGINAL_SELECTOR: json.dumps(self.original_selector),
            annotations.ORIGINAL_PORTS: json.dumps(self.original_ports or []),
        }
        if self.original_type:
            result[annotations.ORIGINAL_TYPE] = self.original_type
        return result

    @classmethod
    def from_annotations(cls, service_annotations: Dict[str, str]) -> "ServiceRedirectState":
        """
        Raises:
            StateCorruptionError: si original-selector ou original-ports est absent ou illisible
        """
        raw_selector = service_annotations.get(annotations.ORIGINAL_SELECTOR)
        if raw_selector is None:
            raise StateCorruptionError(f"Annotation {annotations.ORIGINAL_SELECTOR} absente")
        try:
            selector = json.loads(raw_selector)
        except ValueError as e:
            raise StateCorruptionError(
                f"Annotation {annotations.ORIGINAL_SELECTOR} illisible: {raw_selector!r}"
            ) from e
        if selector is not None and not isinstance(selector, dict):
            raise StateCorruptionError(
                f"Annotation {annotations.ORIGINAL_SELECTOR} n'est pas un objet: {raw_selector!r}"
            )

        # Les anciennes redirections n'enregistraient pas les ports
        ports = None
        raw_ports = service_annotations.get(annotations.ORIGINAL_PORTS)
        if raw_ports is not None:
            try:
                ports = json.loads(raw_ports)
            except ValueError as e:
                raise StateCorruptionError(
                    f"Annotation {annotations.ORIGINAL_PORTS} illisible: {raw_ports!r}"
                ) from e

        return cls(
            original_type=service_annotations.get(annotations.ORIGINAL_TYPE),
            original_selector=selector,
            original_ports=ports,
        )

    @staticmethod
    def cleared_annotations() -> Dict[str, None]:
        """Patch d'annotations qui efface tout l'état de redirection"""
        return {key: None for key in _STATE_KEYS}
