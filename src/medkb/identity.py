"""
Identity matching contract.

Descriptor extraction (camera, face model) happens outside MedKB. What lands
here is a fixed-length numeric vector; the matcher compares it against the
enrolled vectors with one linear scan and hands back the opaque user id that
diagnosis events and reminders are scoped to.
"""

import logging
import typing
from dataclasses import dataclass

import numpy as np

from .store import FACE_DATA, KnowledgeStore

LOGGER = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.6


@dataclass(frozen=True)
class EnrolledFace:
    user_id: str
    descriptor: tuple[float, ...]

    @classmethod
    def from_record(cls, record: dict) -> "EnrolledFace":
        return cls(user_id=str(record["user_id"]), descriptor=tuple(float(v) for v in record["face_descriptor"]))


class FaceMatcher:
    """
    Nearest-neighbour match by Euclidean distance.

    The best distance starts at 1.0, so only enrolled faces closer than that are
    considered; the winner must also be closer than ``threshold``.
    """

    def __init__(self, threshold: float = MATCH_THRESHOLD):
        self.threshold = threshold

    def best_match(
        self, descriptor: typing.Sequence[float], enrolled: typing.Iterable[EnrolledFace]
    ) -> tuple[typing.Optional[EnrolledFace], float]:
        query = np.asarray(descriptor, dtype=float)
        best: typing.Optional[EnrolledFace] = None
        best_distance = 1.0
        for face in enrolled:
            candidate = np.asarray(face.descriptor, dtype=float)
            if candidate.shape != query.shape:
                LOGGER.warning("Skipping enrolled face of %s: descriptor length %d != %d",
                               face.user_id, candidate.size, query.size)
                continue
            distance = float(np.linalg.norm(query - candidate))
            if distance < best_distance:
                best, best_distance = face, distance
        return best, best_distance

    def match(
        self, descriptor: typing.Sequence[float], enrolled: typing.Iterable[EnrolledFace]
    ) -> typing.Optional[str]:
        """User id of the closest enrolled face under the threshold, else None."""
        best, distance = self.best_match(descriptor, enrolled)
        if best is not None and distance < self.threshold:
            return best.user_id
        LOGGER.info("No enrolled face within %.2f (closest %.3f)", self.threshold, distance)
        return None

    def identify(self, descriptor: typing.Sequence[float], store: KnowledgeStore) -> typing.Optional[str]:
        """Match against every face enrolled in the store."""
        enrolled = [EnrolledFace.from_record(r) for r in store.select(FACE_DATA)]
        return self.match(descriptor, enrolled)
