"""Human-facing explanations for aggregated findings.

Maps raw detector labels to display metadata through a static catalog and
builds the indicator/diagnosis lists, the status message and the summary that
the mobile client renders for a scan.
"""

from typing import Dict, List, NamedTuple, Sequence

from analysis.thresholds import DEFAULT_THRESHOLDS, AggregationThresholds
from models.verdict import (Classification, DiagnosisEntry, Disease, Indicator,
                            Severity, Summary, TopDisease, TopWound, Wound)

TOP_DISEASES_LIMIT = 3
HEALTHY_ID = "healthy"

STATUS_LABELS: Dict[str, str] = {
    "healthy": "Sano",
    "suspicious": "Sospechoso",
    "critical": "Crítico",
}


class DiagnosisInfo(NamedTuple):
    label: str
    symptoms: str
    recommendation: str


DIAGNOSIS_CATALOG: Dict[str, DiagnosisInfo] = {
    # wounds
    "wound": DiagnosisInfo(
        "Herida",
        "Pérdida de continuidad de la piel, posible sangrado o secreción.",
        "Limpiar y desinfectar la zona; vigilar signos de infección.",
    ),
    "pressure-wound": DiagnosisInfo(
        "Herida por presión",
        "Lesión sobre prominencias óseas por roce o decúbito prolongado.",
        "Mejorar la cama y el descanso del animal; curar y proteger la lesión.",
    ),
    "wound-ulser": DiagnosisInfo(
        "Úlcera",
        "Lesión abierta que no cicatriza, bordes inflamados.",
        "Consultar al veterinario para desbridamiento y tratamiento.",
    ),
    "cut": DiagnosisInfo(
        "Corte",
        "Herida lineal de bordes definidos, usualmente por objeto cortante.",
        "Lavar, desinfectar y revisar cercas o instalaciones cortantes.",
    ),
    "burn": DiagnosisInfo(
        "Quemadura",
        "Piel enrojecida, ampollas o pérdida de pelo por calor o químicos.",
        "Enfriar la zona, aplicar tratamiento tópico y consultar al veterinario.",
    ),
    "scratch": DiagnosisInfo(
        "Rasguño",
        "Abrasión superficial de la piel.",
        "Limpiar la zona y vigilar su evolución.",
    ),
    # diseases
    "lumpy": DiagnosisInfo(
        "Dermatosis nodular contagiosa",
        "Nódulos firmes en la piel, fiebre, inflamación de ganglios.",
        "Aislar al animal y notificar al veterinario; enfermedad de declaración obligatoria.",
    ),
    "lumpy skin": DiagnosisInfo(
        "Dermatosis nodular contagiosa",
        "Nódulos firmes en la piel, fiebre, inflamación de ganglios.",
        "Aislar al animal y notificar al veterinario; enfermedad de declaración obligatoria.",
    ),
    "dermatitis": DiagnosisInfo(
        "Dermatitis",
        "Inflamación de la piel, costras, caída de pelo o prurito.",
        "Revisar higiene y humedad del corral; tratamiento tópico según indicación veterinaria.",
    ),
    "foot-and-mouth": DiagnosisInfo(
        "Fiebre aftosa",
        "Vesículas en boca y patas, salivación excesiva, cojera.",
        "Aislar de inmediato y avisar a la autoridad sanitaria.",
    ),
    "fmd": DiagnosisInfo(
        "Fiebre aftosa",
        "Vesículas en boca y patas, salivación excesiva, cojera.",
        "Aislar de inmediato y avisar a la autoridad sanitaria.",
    ),
    "mastitis": DiagnosisInfo(
        "Mastitis",
        "Ubre inflamada, caliente o dolorosa; alteraciones en la leche.",
        "Realizar prueba de mastitis y consultar tratamiento con el veterinario.",
    ),
    "ringworm": DiagnosisInfo(
        "Tiña",
        "Lesiones circulares sin pelo con costras grisáceas.",
        "Aislar al animal, tratamiento antifúngico y desinfección de instalaciones.",
    ),
    "pinkeye": DiagnosisInfo(
        "Queratoconjuntivitis",
        "Ojo lloroso, opacidad de córnea, sensibilidad a la luz.",
        "Proteger del sol y moscas; consultar tratamiento antibiótico.",
    ),
    "mange": DiagnosisInfo(
        "Sarna",
        "Picazón intensa, engrosamiento de la piel, zonas sin pelo.",
        "Tratamiento antiparasitario según indicación veterinaria.",
    ),
    "ticks": DiagnosisInfo(
        "Garrapatas",
        "Parásitos visibles adheridos a la piel.",
        "Aplicar control de garrapatas y revisar al resto del hato.",
    ),
    HEALTHY_ID: DiagnosisInfo(
        "Sin hallazgos",
        "No se observan signos de enfermedad ni heridas.",
        "Continuar con el monitoreo habitual.",
    ),
}

GENERIC_SYMPTOMS = "Hallazgo detectado por el análisis de imagen."
GENERIC_RECOMMENDATION = "Consultar con un veterinario para confirmar el diagnóstico."


def normalize_label(label: str) -> str:
    return (label or "").strip().lower()


def lookup(label: str) -> DiagnosisInfo:
    """Return display metadata for `label`, falling back to a generic entry."""
    info = DIAGNOSIS_CATALOG.get(normalize_label(label))
    if info is not None:
        return info
    return DiagnosisInfo(label, GENERIC_SYMPTOMS, GENERIC_RECOMMENDATION)


def to_percent(confidence: float) -> int:
    """Round a 0..1 confidence to an integer percentage (half up)."""
    return int(confidence * 100 + 0.5)


def format_percent(confidence: float) -> str:
    return f"{to_percent(confidence)}%"


def wound_severity(confidence: float, thresholds: AggregationThresholds = DEFAULT_THRESHOLDS) -> Severity:
    return "critical" if confidence > thresholds.wound_critical else "suspicious"


def disease_severity(confidence: float, thresholds: AggregationThresholds = DEFAULT_THRESHOLDS) -> Severity:
    if confidence > thresholds.disease_critical:
        return "critical"
    if confidence > thresholds.disease_suspicious:
        return "suspicious"
    return "low"


def build_indicators(
    classification: Classification,
    confidence: float,
    diseases: Sequence[Disease],
    wounds: Sequence[Wound],
    thresholds: AggregationThresholds = DEFAULT_THRESHOLDS,
) -> List[Indicator]:
    indicators: List[Indicator] = []
    for wound in wounds:
        indicators.append(
            Indicator(
                type="wound",
                id=wound.cls,
                label=lookup(wound.cls).label,
                value=format_percent(wound.confidence),
                severity=wound_severity(wound.confidence, thresholds),
                raw_confidence=wound.confidence,
            )
        )
    for disease in diseases:
        indicators.append(
            Indicator(
                type="disease",
                id=disease.name,
                label=lookup(disease.name).label,
                value=format_percent(disease.confidence),
                severity=disease_severity(disease.confidence, thresholds),
                raw_confidence=disease.confidence,
            )
        )
    if not indicators and classification == "healthy":
        indicators.append(
            Indicator(
                type="healthy",
                id=HEALTHY_ID,
                label=DIAGNOSIS_CATALOG[HEALTHY_ID].label,
                value=format_percent(confidence),
                severity="healthy",
                raw_confidence=confidence,
            )
        )
    return indicators


def build_diagnoses(
    classification: Classification,
    confidence: float,
    diseases: Sequence[Disease],
    wounds: Sequence[Wound],
    thresholds: AggregationThresholds = DEFAULT_THRESHOLDS,
) -> List[DiagnosisEntry]:
    """Richer per-finding entries for the UI.

    Walks findings in the same order as `build_indicators` and grades them with
    the same severity functions.
    """
    entries: List[DiagnosisEntry] = []
    for wound in wounds:
        info = lookup(wound.cls)
        entries.append(
            DiagnosisEntry(
                type="wound",
                id=wound.cls,
                label=info.label,
                confidence_percent=to_percent(wound.confidence),
                severity=wound_severity(wound.confidence, thresholds),
                symptoms=info.symptoms,
                recommendation=info.recommendation,
            )
        )
    for disease in diseases:
        info = lookup(disease.name)
        entries.append(
            DiagnosisEntry(
                type="disease",
                id=disease.name,
                label=info.label,
                confidence_percent=to_percent(disease.confidence),
                severity=disease_severity(disease.confidence, thresholds),
                symptoms=info.symptoms,
                recommendation=info.recommendation,
            )
        )
    if not entries and classification == "healthy":
        info = DIAGNOSIS_CATALOG[HEALTHY_ID]
        entries.append(
            DiagnosisEntry(
                type="healthy",
                id=HEALTHY_ID,
                label=info.label,
                confidence_percent=to_percent(confidence),
                severity="healthy",
                symptoms=info.symptoms,
                recommendation=info.recommendation,
            )
        )
    return entries


def build_message(diseases: Sequence[Disease], wounds: Sequence[Wound]) -> str:
    if not wounds and not diseases:
        return "No se detectaron enfermedades ni heridas."
    if wounds and not diseases:
        if len(wounds) == 1:
            return f"Se detectó 1 herida ({format_percent(wounds[0].confidence)} confianza)."
        return f"Se detectaron {len(wounds)} heridas. Revisión recomendada."
    if diseases and not wounds:
        if len(diseases) == 1:
            top = diseases[0]
            return f"Posible signo de: {top.name} ({format_percent(top.confidence)})."
        return f"Posibles signos de enfermedad ({len(diseases)} hallazgos). Revisión recomendada."
    return (
        f"Se detectaron {len(wounds)} herida(s) y {len(diseases)} posible(s) signo(s) "
        "de enfermedad. Revisión recomendada."
    )


def build_summary(
    classification: Classification,
    confidence: float,
    diseases: Sequence[Disease],
    wounds: Sequence[Wound],
    thresholds: AggregationThresholds = DEFAULT_THRESHOLDS,
) -> Summary:
    """Build the display summary for a verdict.

    `diseases` and `wounds` are expected already sorted by confidence,
    highest first.
    """
    top_wound = TopWound(cls=wounds[0].cls, confidence=wounds[0].confidence) if wounds else None
    return Summary(
        status=classification,
        status_label=STATUS_LABELS.get(classification, classification),
        message=build_message(diseases, wounds),
        has_wounds=bool(wounds),
        wounds_count=len(wounds),
        has_diseases=bool(diseases),
        diseases_count=len(diseases),
        top_wound=top_wound,
        top_diseases=[
            TopDisease(name=d.name, confidence=d.confidence)
            for d in diseases[:TOP_DISEASES_LIMIT]
        ],
        indicators=build_indicators(classification, confidence, diseases, wounds, thresholds),
        diagnoses=build_diagnoses(classification, confidence, diseases, wounds, thresholds),
        confidence_percent=format_percent(confidence),
    )
