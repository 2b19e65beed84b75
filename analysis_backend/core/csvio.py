from __future__ import annotations

import io

import numpy as np
import pandas as pd

RESULT_COLUMNS = ["x", "y", "accessibility"]


def grid_to_frame(values: np.ndarray) -> pd.DataFrame:
    """Flatten a ``(height, width)`` grid into one ``x, y, accessibility`` row per cell."""

    height, width = values.shape
    ys, xs = np.indices((height, width))
    return pd.DataFrame(
        {
            "x": xs.ravel(),
            "y": ys.ravel(),
            "accessibility": values.ravel(),
        },
        columns=RESULT_COLUMNS,
    )


def write_grid_to_csv(values: np.ndarray) -> bytes:
    buffer = io.BytesIO()
    grid_to_frame(values).to_csv(buffer, index=False, compression="gzip")
    return buffer.getvalue()


def read_grid_csv(data: bytes) -> pd.DataFrame:
    return pd.read_csv(io.BytesIO(data), compression="gzip")
