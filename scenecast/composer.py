"""
Description Composer

Turns one cycle's detections, classifications and recognized text into a single
natural-language sentence for the conversational agent.

Usage:
    from scenecast.composer import compose

    text = compose(detections, classifications, ocr_text="EXIT")
    # "I can see a person, 2 cups. Detected text: \"EXIT\"."
"""

from typing import Dict, Optional, Sequence

from .models import Classification, Detection

__all__ = [
    "compose",
    "FALLBACK_DESCRIPTION",
    "DEFAULT_SCORE_THRESHOLD",
    "DEFAULT_CLASSIFICATION_THRESHOLD",
    "DEFAULT_OCR_MAX_CHARS",
    "MIN_OCR_CHARS",
]

FALLBACK_DESCRIPTION = "No significant objects detected in view."

DEFAULT_SCORE_THRESHOLD = 0.5
DEFAULT_CLASSIFICATION_THRESHOLD = 0.3
DEFAULT_OCR_MAX_CHARS = 200
MIN_OCR_CHARS = 3


def _count_labels(detections: Sequence[Detection], score_threshold: float) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for det in detections:
        if det.score >= score_threshold:
            counts[det.label] = counts.get(det.label, 0) + 1
    return counts


def _object_phrase(counts: Dict[str, int]) -> str:
    groups = [
        f"a {label}" if count == 1 else f"{count} {label}s"
        for label, count in counts.items()
    ]
    return "I can see " + ", ".join(groups)


def _scene_token(label: str) -> str:
    # ImageNet-style labels carry synonyms: "notebook, notebook computer"
    return label.split(",")[0].strip()


def compose(
    detections: Sequence[Detection],
    classifications: Sequence[Classification],
    ocr_text: Optional[str] = None,
    *,
    score_threshold: float = DEFAULT_SCORE_THRESHOLD,
    classification_threshold: float = DEFAULT_CLASSIFICATION_THRESHOLD,
    ocr_max_chars: int = DEFAULT_OCR_MAX_CHARS,
) -> str:
    """Compose a scene description.

    Args:
        detections: Object detections, in any order
        classifications: Scene classifications, highest probability first
        ocr_text: Recognized text, if OCR ran this cycle; measured and cut as given
        score_threshold: Minimum detection score to mention an object
        classification_threshold: Top classification must exceed this
        ocr_max_chars: Recognized text is cut to this many characters

    Returns:
        One sentence ending in a single period
    """
    parts = []

    counts = _count_labels(detections, score_threshold)
    if counts:
        parts.append(_object_phrase(counts))

    if classifications:
        top = classifications[0]
        if top.probability > classification_threshold:
            token = _scene_token(top.label)
            if token:
                parts.append(f"The scene appears to contain: {token}")

    text = ocr_text or ""
    if len(text) >= MIN_OCR_CHARS:
        parts.append(f'Detected text: "{text[:ocr_max_chars]}"')

    if not parts:
        return FALLBACK_DESCRIPTION

    return ". ".join(parts).rstrip(".") + "."
