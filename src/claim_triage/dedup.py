"""
Fingerprint clustering to drop near-duplicates.

`filter_near_dupes(records)` expects ImageRecords in request order.

Returns:
    keep     – list[ImageRecord]        (one per cluster – best quality)
    clusters – list[list[ImageRecord]]  (all members of each cluster)

Clustering is greedy and seed-based, not transitive: a record joins the
cluster of the first earlier unvisited seed within the threshold, and
members never pull in their own neighbours.
"""
import hashlib
import logging
from io import BytesIO
from typing import List, Sequence, Tuple

import imagehash
from PIL import Image

from .models import ImageRecord

log = logging.getLogger(__name__)

HAMMING_THRESHOLD = 3   # differing hex characters, smaller = stricter dedup
FINGERPRINT_LENGTH = 16


def digest_fingerprint(data: bytes) -> str:
    # byte-level digest: only identical encodings are guaranteed to collide
    return hashlib.sha1(data).hexdigest()[:FINGERPRINT_LENGTH]


def perceptual_fingerprint(data: bytes) -> str:
    img = Image.open(BytesIO(data))
    return str(imagehash.phash(img, hash_size=8))


def hamming_distance(a: str, b: str) -> int:
    if len(a) != len(b):
        raise ValueError(f"fingerprint length mismatch: {len(a)} != {len(b)}")
    return sum(1 for x, y in zip(a, b) if x != y)


def _similar(a: str, b: str, threshold: int) -> bool:
    try:
        return hamming_distance(a, b) <= threshold
    except ValueError:
        log.debug("not comparing %s with %s (length mismatch)", a, b)
        return False


def group_by_fingerprint(records: Sequence[ImageRecord],
                         threshold: int = HAMMING_THRESHOLD) -> List[List[ImageRecord]]:
    visited = [False] * len(records)
    clusters: List[List[ImageRecord]] = []

    for i, seed in enumerate(records):
        if visited[i]:
            continue
        visited[i] = True
        cluster = [seed]
        for j in range(i + 1, len(records)):
            if not visited[j] and _similar(seed.fingerprint, records[j].fingerprint, threshold):
                cluster.append(records[j])
                visited[j] = True
        clusters.append(cluster)

    return clusters


def pick_representative(cluster: Sequence[ImageRecord]) -> ImageRecord:
    # max() keeps the first of equal maxima, so ties go to the earliest record
    return max(cluster, key=lambda r: r.quality_score)


def filter_near_dupes(records: Sequence[ImageRecord],
                      threshold: int = HAMMING_THRESHOLD
                      ) -> Tuple[List[ImageRecord], List[List[ImageRecord]]]:
    clusters = group_by_fingerprint(records, threshold)
    keep = [pick_representative(c) for c in clusters]
    return keep, clusters
