"""
Image quality signals without OpenCV.

Brightness:  greyscale mean of a small downsample.
Sharpness:   variance of the discrete Laplacian over interior pixels
             (pixels without a full 3x3 neighbourhood are skipped).
"""
from io import BytesIO
from typing import Dict

from PIL import Image
import numpy as np

SAMPLE_SIZE = 20   # downsample grid, pixels per side


def measure_quality(data: bytes) -> Dict[str, float]:
    pil = Image.open(BytesIO(data)).convert("RGB")
    gray = pil.resize((SAMPLE_SIZE, SAMPLE_SIZE)).convert("L")
    g = np.asarray(gray, dtype=np.float64)

    # 4-neighbour Laplacian kernel [0 1 0; 1 -4 1; 0 1 0]
    lap = (g[:-2, 1:-1] + g[2:, 1:-1] + g[1:-1, :-2] + g[1:-1, 2:]
           - 4.0 * g[1:-1, 1:-1])

    return {
        "brightness": float(np.mean(g)),
        "sharpness": float(np.var(lap)),
    }
