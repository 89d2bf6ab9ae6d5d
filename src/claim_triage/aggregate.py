"""
High-level orchestration for the claim photo triage pipeline.

    urls -> bytes -> (labels, fingerprint) -> clusters -> representatives
         -> per-area aggregates -> ClaimResponse

Fetching and label detection run concurrently under separate limits; each
phase is a barrier, so clustering only starts once every image has either
survived or been discarded.
"""
from __future__ import annotations
import asyncio, datetime, logging, random
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence

import boto3
import httpx

from .config import Settings, settings as default_settings
from .dedup import filter_near_dupes
from .fetch import fetch_all
from .models import (AreaResult, ClaimRequest, ClaimResponse, ImageRecord,
                     ImageTask, SourceImages)
from .vision import LabelDetectionError, classify_labels, detect_labels
from .workers import WorkerPool, WorkerTaskError, get_worker_pool

log = logging.getLogger(__name__)

SEVERE_NOTE = "Shingle uplift or material detachment"
MINOR_NOTE = "Minor cosmetic or no visible damage"
FEW_IMAGES_GAP = "Very few usable images"


# --- aggregation -------------------------------------------------------------
def round_half_up(value: float, places: int = 1) -> float:
    # repr() gives the shortest decimal that round-trips, so 2.25 ties go up
    step = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(step, rounding=ROUND_HALF_UP))


def weighted_severity(records: Sequence[ImageRecord]) -> float:
    """Quality-weighted mean severity; 0 when there is nothing to weigh."""
    denom = sum(r.quality_score for r in records)
    if not denom:
        return 0.0
    return sum(r.severity * r.quality_score for r in records) / denom


def aggregate_areas(representatives: Sequence[ImageRecord], loss_type: str,
                    max_images: int = 3) -> List[AreaResult]:
    by_area: Dict[str, List[ImageRecord]] = {}
    for rep in representatives:
        by_area.setdefault(rep.area, []).append(rep)

    results = []
    for area, reps in by_area.items():
        avg = weighted_severity(reps)
        results.append(AreaResult(
            area=area,
            damage_confirmed=sum(1 for r in reps if r.severity >= 2) >= 2,
            avg_severity=round_half_up(avg),
            primary_peril=loss_type,
            representative_images=[r.url for r in reps][:max_images],
            notes=SEVERE_NOTE if avg > 2.5 else MINOR_NOTE,
        ))
    return results


def data_gaps(analyzed: int, min_analyzed: int = 3) -> List[str]:
    return [FEW_IMAGES_GAP] if analyzed < min_analyzed else []


def placeholder_confidence(rng: Optional[random.Random] = None) -> float:
    """
    Uniform random value in [0.70, 0.95].

    NOT derived from the images. Callers get a number in the agreed range
    until a real calibration exists.
    """
    rng = rng or random
    return round(rng.uniform(0.70, 0.95), 2)


def _utc_now() -> str:
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# --- per-image analysis ------------------------------------------------------
async def _run_task(pool: WorkerPool, kind: str, data: bytes):
    return await asyncio.wrap_future(pool.submit(kind, data))


async def _analyze_image(task: ImageTask, rek, pool: WorkerPool,
                         sem: asyncio.Semaphore, cfg: Settings,
                         corr_id: str) -> Optional[ImageRecord]:
    async with sem:
        try:
            labels = await asyncio.to_thread(detect_labels, rek, task.data,
                                             cfg.max_labels, cfg.service_min_confidence)
        except LabelDetectionError as exc:
            log.warning("%s label detection failed %s (%s)", corr_id, task.url, exc)
            return None
        log.info("%s labels %s: %s", corr_id, task.url, labels)

        cls = classify_labels(labels, cfg.label_min_confidence)
        if cls is None:
            log.info("%s discard %s: no area and no damage evidence", corr_id, task.url)
            return None

        kind = "phash" if cfg.fingerprint_method == "phash" else "hash"
        try:
            fingerprint = await _run_task(pool, kind, task.data)
        except WorkerTaskError as exc:
            log.warning("%s cannot fingerprint %s (%s)", corr_id, task.url, exc)
            return None

        quality = {}
        if cfg.measure_quality:
            # diagnostics only; a failure here never discards the image
            try:
                quality = await _run_task(pool, "analyze", task.data)
            except WorkerTaskError as exc:
                log.warning("%s quality check failed %s (%s)", corr_id, task.url, exc)

    if quality:
        log.info("%s quality check %s: sharpness=%.2f bright=%.2f",
                 corr_id, task.url, quality["sharpness"], quality["brightness"])

    return ImageRecord(url=task.url, area=cls.area, severity=cls.severity,
                       quality_score=cls.quality_score, fingerprint=fingerprint,
                       brightness=quality.get("brightness"),
                       sharpness=quality.get("sharpness"))


# --- entry point -------------------------------------------------------------
async def process_claim(req: ClaimRequest, corr_id: str, *,
                        cfg: Optional[Settings] = None,
                        http_client: Optional[httpx.AsyncClient] = None,
                        rek_client=None,
                        pool: Optional[WorkerPool] = None,
                        rng: Optional[random.Random] = None) -> ClaimResponse:
    cfg = cfg or default_settings
    total = len(req.images)

    # --- 1. fetch -------------------------------------------------------------
    own_client = http_client is None
    if own_client:
        http_client = httpx.AsyncClient(timeout=cfg.fetch_timeout, follow_redirects=True)
    try:
        fetched = await fetch_all(req.images, http_client,
                                  concurrency=cfg.fetch_concurrency,
                                  attempts=cfg.fetch_attempts,
                                  delay=cfg.fetch_retry_delay,
                                  corr_id=corr_id)
    finally:
        if own_client:
            await http_client.aclose()
    tasks = [t for t in fetched if t is not None]
    log.info("%s fetched %d/%d images", corr_id, len(tasks), total)

    # --- 2. labels + classification + fingerprint ---------------------------
    records: List[ImageRecord] = []
    if tasks:
        rek = rek_client or boto3.client("rekognition", region_name=cfg.aws_region)
        pool = pool or get_worker_pool(cfg.worker_count)
        sem = asyncio.Semaphore(cfg.classify_concurrency)
        outcomes = await asyncio.gather(*(
            _analyze_image(t, rek, pool, sem, cfg, corr_id) for t in tasks
        ))
        records = [r for r in outcomes if r is not None]

    analyzed = len(records)
    discarded = total - analyzed

    # --- 3. dedup -------------------------------------------------------------
    representatives, clusters = filter_near_dupes(records, cfg.hamming_threshold)
    log.info("%s %d analysed images in %d clusters", corr_id, analyzed, len(clusters))

    # --- 4. aggregate per area ----------------------------------------------
    areas = aggregate_areas(representatives, req.loss_type, cfg.max_representative_images)
    overall = round_half_up(weighted_severity(representatives))

    return ClaimResponse(
        claim_id=req.claim_id,
        source_images=SourceImages(total=total, analyzed=analyzed,
                                   discarded=discarded, clusters=len(clusters)),
        overall_damage_severity=overall,
        areas=areas,
        data_gaps=data_gaps(analyzed, cfg.min_analyzed_images),
        confidence=placeholder_confidence(rng),
        generated_at=_utc_now(),
    )
