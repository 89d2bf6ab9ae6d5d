"""
Thin wrapper around Amazon Rekognition DetectLabels plus the rule-based
classifier applied to its labels.

`classify_labels(labels)` returns a Classification, or None when the image
should be discarded (no area indicator and no damage evidence).
"""
from __future__ import annotations
import logging, math
from typing import List, Optional, Sequence, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .models import Classification

log = logging.getLogger(__name__)

Label = Tuple[str, float]

MAX_LABELS = 15
SERVICE_MIN_CONFIDENCE = 30.0
LABEL_MIN_CONFIDENCE = 50.0

BLUR_LABELS = {"blur", "blurry"}
DARK_LABELS = {"dark", "shadow"}

# Evaluated in this order for every label; a later match overwrites an
# earlier one, so the area is whatever indicator appeared last.
AREA_RULES = (
    ({"roof", "shingle"},          "roof"),
    ({"garage", "door"},           "garage"),
    ({"wall", "siding", "panel"},  "siding"),
)

DAMAGE_KEYWORDS = (
    "damage", "shingle uplift", "material detachment",
    "wind damage", "hail damage", "roof damage",
)

DEGRADED_QUALITY = 0.6


class LabelDetectionError(RuntimeError):
    pass


def detect_labels(rek_client, data: bytes,
                  max_labels: int = MAX_LABELS,
                  min_confidence: float = SERVICE_MIN_CONFIDENCE) -> List[Label]:
    try:
        resp = rek_client.detect_labels(Image={"Bytes": data},
                                        MaxLabels=max_labels,
                                        MinConfidence=min_confidence)
    except (BotoCoreError, ClientError) as exc:
        raise LabelDetectionError(f"DetectLabels failed: {exc}") from exc

    try:
        return [(l.get("Name") or "", float(l.get("Confidence") or 0))
                for l in resp.get("Labels") or []]
    except (AttributeError, TypeError, ValueError) as exc:
        raise LabelDetectionError(f"malformed DetectLabels response: {exc}") from exc


def _severity_from_damage_conf(conf: float) -> int:
    """Average damage confidence (0-100) to a 0-4 band, rounding half up."""
    return max(0, min(4, math.floor(conf / 25 + 0.5)))


def classify_labels(labels: Sequence[Label],
                    min_confidence: float = LABEL_MIN_CONFIDENCE) -> Optional[Classification]:
    blurry = dark = False
    area: Optional[str] = None
    damage: List[Label] = []

    for raw_name, conf in labels:
        if conf < min_confidence:
            continue
        name = raw_name.lower()

        if name in BLUR_LABELS:
            blurry = True
        if name in DARK_LABELS:
            dark = True
        for names, candidate in AREA_RULES:
            if name in names:
                area = candidate

        if any(kw in name for kw in DAMAGE_KEYWORDS):
            damage.append((raw_name, conf))

    if area is None and not damage:
        return None

    avg_conf = sum(c for _, c in damage) / len(damage) if damage else 0.0

    return Classification(
        area=area or "unknown",
        severity=_severity_from_damage_conf(avg_conf),
        quality_score=DEGRADED_QUALITY if (blurry or dark) else 1.0,
    )
