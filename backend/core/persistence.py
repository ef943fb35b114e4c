"""
persistence.py — GraphQL transport to the school backend.

Loads score records and indicators for a (grade, area, period) selection and
sends the save mutation. Wire field names are the backend's (Spanish); they
are mapped to the engine's types here and nowhere else.

Every transport failure, GraphQL error or refused save is raised as
PersistenceError. Nothing is retried.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from core.errors import PersistenceError
from core.gradebook import Note, ScoreRecord
from core.indicators import Indicator

logger = logging.getLogger(__name__)

DEFAULT_GRAPHQL_URL = "http://localhost:4000/graphql"

SCORES_QUERY = """
query ObtenerCalificaciones($grado_id: ID!, $area_id: ID!, $periodo: Int!) {
  obtenerCalificaciones(grado_id: $grado_id, area_id: $area_id, periodo: $periodo) {
    id
    estudiante_id
    periodo
    notas {
      id
      nombre
      valor
      porcentaje
      actividad_id
    }
  }
}
"""

INDICATORS_QUERY = """
query ObtenerIndicadores($gradoId: Int!, $areaId: Int!, $periodo: Int!) {
  obtenerIndicadores(grado_id: $gradoId, area_id: $areaId, periodo: $periodo) {
    success
    mensaje
    data {
      id
      nombre
      periodo
      grado_id
      area_id
    }
  }
}
"""

SAVE_MUTATION = """
mutation GuardarCalificaciones($input: CalificacionesInput!) {
  guardarCalificaciones(input: $input) {
    success
    mensaje
  }
}
"""


# ── Wire mapping ────────────────────────────────────────────────────

def _to_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int_id(value):
    """The indicators query declares Int ids; keep non-numeric ids as-is."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


def record_from_wire(item: Dict[str, Any]) -> ScoreRecord:
    notes = [
        Note(
            component_id=str(n.get("actividad_id") or n.get("id")),
            name=n.get("nombre") or "",
            value=_to_float(n.get("valor")),
            weight_percent=_to_float(n.get("porcentaje")) or 0.0,
        )
        for n in item.get("notas") or []
    ]
    return ScoreRecord(student_id=str(item.get("estudiante_id")), notes=notes)


def indicator_from_wire(item: Dict[str, Any]) -> Indicator:
    return Indicator(
        id=str(item.get("id")),
        text=item.get("nombre") or "",
        period=int(item.get("periodo") or 1),
        area_id=str(item.get("area_id") or ""),
        grade_id=str(item.get("grado_id") or ""),
    )


def payload_to_wire(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Gradebook.save_payload() → CalificacionesInput."""
    return {
        "grado_id": payload["grade_id"],
        "area_id": payload["area_id"],
        "periodo": payload["period"],
        "calificaciones": [
            {
                "estudiante_id": s["student_id"],
                "notas": [
                    {
                        "actividad_id": n["component_id"],
                        "nombre": n["name"],
                        "valor": n["value"],
                        "porcentaje": n["weight_percent"],
                    }
                    for n in s["notes"]
                ],
            }
            for s in payload["scores"]
        ],
        "indicadores": [
            {
                "id": i["id"],
                "nombre": i["text"],
                "periodo": i["period"],
                "grado_id": i["grade_id"],
                "area_id": i["area_id"],
            }
            for i in payload.get("indicators", [])
        ],
    }


# ── Client ──────────────────────────────────────────────────────────

class GraphQLClient:
    """Thin synchronous GraphQL client over httpx."""

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url or os.getenv("GRAPHQL_URL", DEFAULT_GRAPHQL_URL)
        self.token = token if token is not None else os.getenv("GRAPHQL_TOKEN", "").strip()
        self.timeout = timeout or float(os.getenv("GRAPHQL_TIMEOUT_SECONDS", "15"))
        self._transport = transport

    def execute(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                res = client.post(
                    self.url,
                    headers=headers,
                    json={"query": query, "variables": variables},
                )
                res.raise_for_status()
                body = res.json()
        except httpx.TimeoutException as exc:
            logger.error("GraphQL request to %s timed out", self.url)
            raise PersistenceError("The grades server did not respond in time.") from exc
        except httpx.HTTPError as exc:
            logger.error("GraphQL request to %s failed: %s", self.url, exc)
            raise PersistenceError(f"Could not reach the grades server: {exc}") from exc
        except ValueError as exc:
            logger.error("GraphQL response from %s is not JSON", self.url)
            raise PersistenceError("The grades server returned an invalid response.") from exc

        errors = body.get("errors")
        if errors:
            message = "; ".join(str(e.get("message", "Unknown error")) for e in errors)
            logger.error("GraphQL errors: %s", message)
            raise PersistenceError(message)
        return body.get("data") or {}

    def fetch_scores(self, grade_id, area_id, period: int) -> List[ScoreRecord]:
        data = self.execute(
            SCORES_QUERY,
            {"grado_id": str(grade_id), "area_id": str(area_id), "periodo": int(period)},
        )
        return [record_from_wire(item) for item in data.get("obtenerCalificaciones") or []]

    def fetch_indicators(self, grade_id, area_id, period: int) -> List[Indicator]:
        data = self.execute(
            INDICATORS_QUERY,
            {"gradoId": _to_int_id(grade_id), "areaId": _to_int_id(area_id), "periodo": int(period)},
        )
        result = data.get("obtenerIndicadores") or {}
        if result.get("success") is False:
            raise PersistenceError(result.get("mensaje") or "Could not load indicators.")
        return [indicator_from_wire(item) for item in result.get("data") or []]

    def save_grades(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send Gradebook.save_payload(); returns {success, message}."""
        data = self.execute(SAVE_MUTATION, {"input": payload_to_wire(payload)})
        result = data.get("guardarCalificaciones") or {}
        success = bool(result.get("success"))
        message = result.get("mensaje") or ""
        if not success:
            raise PersistenceError(message or "The grades could not be saved.")
        logger.info(
            "Saved grades grade=%s area=%s period=%s",
            payload["grade_id"], payload["area_id"], payload["period"],
        )
        return {"success": success, "message": message}
