"""
Depth pyramid and resampling helpers.

Coarse tracking works on a nearest-neighbour downsampled depth image;
residual visualization produced at the coarse level is replicated back to
full resolution. Colour is resampled to depth resolution for the camera
pose database.
"""

from typing import Optional, Tuple

import numpy as np

MM_TO_METERS = np.float32(0.001)


def depth_to_float(depth_mm: np.ndarray, min_clip: float, max_clip: float) -> np.ndarray:
    """
    Convert a millimeter depth image to float meters.

    Pixels outside [min_clip, max_clip] are set to 0 (no measurement).
    """
    depth = depth_mm.astype(np.float32) * MM_TO_METERS
    depth[(depth < min_clip) | (depth > max_clip)] = 0.0
    return depth


def downsample_depth(depth_mm: np.ndarray, factor: int) -> np.ndarray:
    """
    Downsample depth with nearest neighbour sampling.

    Every factor-th pixel of every factor-th row is taken (no averaging) and
    each row is mirrored horizontally to match the sensor's viewing
    convention. Trailing rows/columns that do not fill a whole block are
    dropped.

    Args:
        depth_mm: (height, width) depth in millimeters
        factor: Downsample factor (2 = half width and height)

    Returns:
        (height // factor, width // factor) float32 depth in meters
    """
    if factor < 1:
        raise ValueError(f"Downsample factor must be positive, got {factor}")

    height, width = depth_mm.shape
    rows, cols = height // factor, width // factor

    strided = depth_mm[:rows * factor:factor, :cols * factor:factor]
    return strided[:, ::-1].astype(np.float32) * MM_TO_METERS


def upsample_nearest(
    coarse: np.ndarray,
    factor: int,
    shape: Optional[Tuple[int, int]] = None
) -> np.ndarray:
    """
    Upsample by replicating each coarse pixel into a factor x factor block.

    The first row of each block is filled by one horizontal replication
    pass; the remaining rows of the block are copies of that row.

    Args:
        coarse: (h, w, ...) coarse image, any dtype
        factor: Upsample factor
        shape: Output (height, width); defaults to (h * factor, w * factor).
            Pixels beyond the replicated area stay zero.

    Returns:
        Full resolution image with the dtype of coarse
    """
    if factor < 1:
        raise ValueError(f"Upsample factor must be positive, got {factor}")

    rows, cols = coarse.shape[:2]
    height, width = shape if shape is not None else (rows * factor, cols * factor)
    if height < rows * factor or width < cols * factor:
        raise ValueError(
            f"Output {width}x{height} is smaller than {cols * factor}x{rows * factor}"
        )

    out = np.zeros((height, width) + coarse.shape[2:], dtype=coarse.dtype)
    block_rows = out[:rows * factor]

    block_rows[::factor, :cols * factor] = np.repeat(coarse, factor, axis=1)
    for r in range(1, factor):
        block_rows[r::factor] = block_rows[::factor]

    return out


class ColorResampler:
    """
    Nearest-pixel mapping of colour images onto the depth image grid.

    The colour image is scaled to span the depth width. If the scaled colour
    is shorter than the depth image, the rows above and below it have no
    colour and are left black; if it is taller, it is centre cropped.
    """

    def __init__(self, color_size: Tuple[int, int], depth_size: Tuple[int, int]):
        color_width, color_height = color_size
        depth_width, depth_height = depth_size

        self.depth_size = depth_size
        self.scale = color_width / depth_width

        covered_rows = color_height / self.scale
        if covered_rows >= depth_height:
            self.margin = 0
            rows = depth_height
            offset = (color_height - depth_height * self.scale) / 2
        else:
            rows = int(covered_rows)
            self.margin = (depth_height - rows) // 2
            offset = 0.0

        self._src_y = np.minimum(
            (offset + np.arange(rows) * self.scale).astype(np.intp), color_height - 1
        )
        self._src_x = np.minimum(
            (np.arange(depth_width) * self.scale).astype(np.intp), color_width - 1
        )

    def __call__(self, color: np.ndarray) -> np.ndarray:
        depth_width, depth_height = self.depth_size

        resampled = np.zeros((depth_height, depth_width) + color.shape[2:], dtype=color.dtype)
        rows = len(self._src_y)
        resampled[self.margin:self.margin + rows] = color[np.ix_(self._src_y, self._src_x)]
        return resampled
