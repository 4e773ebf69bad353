"""Species classification adapters used by the bulk scanner."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from PIL import Image

from fishlog.config import ClassifierConfig, UNKNOWN_SPECIES
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "classifier"})


@dataclass(frozen=True)
class ClassificationResult:
    """Whether the target subject is present, plus an optional species label."""

    is_match: bool
    label: str = ""


class SpeciesClassifier(Protocol):
    def classify(self, image: Image.Image) -> ClassificationResult: ...


class LabelPredictor(Protocol):
    """Image model returning ``(label, confidence)`` pairs, best first."""

    def predict(self, image: Image.Image) -> Sequence[tuple[str, float]]: ...


class PassthroughClassifier:
    """Accepts every decoded image without naming a species."""

    def __init__(self, unknown_species: str = UNKNOWN_SPECIES) -> None:
        self._unknown_species = unknown_species

    def classify(self, image: Image.Image) -> ClassificationResult:
        return ClassificationResult(is_match=True, label=self._unknown_species)


class KeywordSpeciesClassifier:
    """Two-layer keyword matcher over the top predictions of an image model.

    The first layer decides whether any of the top ``top_k`` labels mentions
    the subject (``fish``, ``fins`` and similar). The second layer maps the
    same labels onto configured species through their aliases; the first
    species whose alias occurs in a label wins, title-cased. A subject match
    without a known species yields ``unknown_species``.
    """

    def __init__(
        self,
        predictor: LabelPredictor,
        config: ClassifierConfig | None = None,
        *,
        top_k: int = 5,
        unknown_species: str = UNKNOWN_SPECIES,
    ) -> None:
        self._predictor = predictor
        self._config = config or ClassifierConfig()
        self._top_k = max(1, top_k)
        self._unknown_species = unknown_species

    def _top_labels(self, image: Image.Image) -> list[str]:
        predictions = sorted(self._predictor.predict(image), key=lambda item: item[1], reverse=True)
        return [str(label).lower() for label, _ in predictions[: self._top_k]]

    def classify(self, image: Image.Image) -> ClassificationResult:
        labels = self._top_labels(image)
        if not labels:
            return ClassificationResult(is_match=False)

        keywords = self._config.subject_keywords
        if not any(keyword in label for label in labels for keyword in keywords):
            LOGGER.debug("classifier_no_subject", extra={"labels": labels})
            return ClassificationResult(is_match=False)

        for label in labels:
            for species, aliases in self._config.species_keywords.items():
                if any(alias in label for alias in aliases):
                    LOGGER.debug("classifier_species_match", extra={"species": species, "label": label})
                    return ClassificationResult(is_match=True, label=species.title())

        return ClassificationResult(is_match=True, label=self._unknown_species)


__all__ = [
    "ClassificationResult",
    "KeywordSpeciesClassifier",
    "LabelPredictor",
    "PassthroughClassifier",
    "SpeciesClassifier",
]
