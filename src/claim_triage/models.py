from __future__ import annotations
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

# -------- request -----------------------------------------------------------
class ClaimRequest(BaseModel):
    claim_id: Optional[str] = None
    loss_type: str = "wind"
    # required, but may be empty; bad URLs are discarded at fetch time
    images: List[str]

# -------- pipeline records --------------------------------------------------
class ImageTask(BaseModel):
    url: str
    data: Optional[bytes] = None

class Classification(BaseModel):
    model_config = ConfigDict(frozen=True)

    area: str
    severity: int = Field(ge=0, le=4)
    quality_score: float = Field(gt=0, le=1)

class ImageRecord(BaseModel):
    """One surviving image: classified, fingerprinted, ready for clustering."""
    model_config = ConfigDict(frozen=True)

    url: str
    area: str
    severity: int = Field(ge=0, le=4)
    quality_score: float = Field(gt=0, le=1)
    fingerprint: str

    # only filled when quality measurement is enabled; never reported
    brightness: Optional[float] = Field(default=None, exclude=True)
    sharpness: Optional[float] = Field(default=None, exclude=True)

# -------- response ----------------------------------------------------------
class SourceImages(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    analyzed: int
    discarded: int
    clusters: int

class AreaResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    area: str
    damage_confirmed: bool
    avg_severity: float
    primary_peril: str
    representative_images: List[str]
    notes: str

class ClaimResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    claim_id: Optional[str]
    source_images: SourceImages
    overall_damage_severity: float
    areas: List[AreaResult]
    data_gaps: List[str]
    confidence: float
    generated_at: str
