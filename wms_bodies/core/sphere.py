"""Sphere geometry of a simple body: UV grid, ellipsoid warp and picking."""

import logging
from typing import Optional, Tuple

import numpy as np

from wms_bodies.core.config import DEFAULT_GRID_RESOLUTION_X, DEFAULT_GRID_RESOLUTION_Y

logger = logging.getLogger(__name__)


def build_sphere_grid(
    res_x: int = DEFAULT_GRID_RESOLUTION_X,
    res_y: int = DEFAULT_GRID_RESOLUTION_Y,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build the 2D grid that the vertex stage warps into a sphere.

    Vertex positions double as texture coordinates. Columns are emitted as
    triangle strips joined by degenerate triangles, so the whole grid draws
    with a single strip.

    Args:
        res_x: Number of vertices along longitude (at least 2)
        res_y: Number of vertices along latitude (at least 2)

    Returns:
        Tuple of (vertices, indices): float32 array of shape
        ``(res_x * res_y, 2)`` in column-major order, and a uint32 array of
        ``(res_x - 1) * (2 + 2 * res_y)`` strip indices
    """
    if res_x < 2 or res_y < 2:
        raise ValueError(f"Grid resolution must be at least 2x2, got {res_x}x{res_y}")

    xs = np.arange(res_x, dtype=np.float32) / (res_x - 1)
    ys = np.arange(res_y, dtype=np.float32) / (res_y - 1)
    grid_x, grid_y = np.meshgrid(xs, ys, indexing="ij")
    vertices = np.stack([grid_x.ravel(), grid_y.ravel()], axis=1).astype(np.float32)

    indices = np.empty((res_x - 1) * (2 + 2 * res_y), dtype=np.uint32)
    index = 0
    for x in range(res_x - 1):
        column = x * res_y
        next_column = (x + 1) * res_y
        indices[index] = column
        index += 1
        for y in range(res_y):
            indices[index] = column + y
            indices[index + 1] = next_column + y
            index += 2
        # Degenerate join to the next column
        indices[index] = indices[index - 1]
        index += 1

    logger.debug(f"Built sphere grid: {len(vertices)} vertices, {len(indices)} indices")
    return vertices, indices


def grid_tex_coords(vertices: np.ndarray) -> np.ndarray:
    """Texture coordinates of grid vertices (image rows run top to bottom)."""
    tex = np.array(vertices, dtype=np.float32, copy=True)
    tex[:, 1] = 1.0 - tex[:, 1]
    return tex


def grid_positions(vertices: np.ndarray, radii) -> np.ndarray:
    """
    Warp grid vertices onto an ellipsoid.

    Args:
        vertices: Grid vertices from :func:`build_sphere_grid`
        radii: Ellipsoid radii (x, y, z), or a single radius

    Returns:
        float64 array of shape ``(n, 3)`` with body-frame positions
    """
    vertices = np.asarray(vertices, dtype=np.float64)
    lon = vertices[:, 0] * 2.0 * np.pi
    lat = (vertices[:, 1] - 0.5) * np.pi

    unit = np.stack(
        [
            -np.sin(lon) * np.cos(lat),
            -np.cos(lat + np.pi * 0.5),
            -np.cos(lon) * np.cos(lat),
        ],
        axis=1,
    )
    return unit * np.broadcast_to(np.asarray(radii, dtype=np.float64), (3,))


def intersect_ray(
    origin,
    direction,
    radius: float,
    world_to_body: Optional[np.ndarray] = None,
) -> Optional[np.ndarray]:
    """
    Intersect a ray with the body's sphere.

    Args:
        origin: Ray origin (x, y, z)
        direction: Ray direction, need not be normalized
        radius: Sphere radius (the body's first radius)
        world_to_body: Optional 4x4 matrix transforming the ray into the
            body frame first

    Returns:
        Nearest intersection point in body coordinates, or None if the ray
        misses the sphere
    """
    origin = np.asarray(origin, dtype=np.float64)
    direction = np.asarray(direction, dtype=np.float64)

    if world_to_body is not None:
        matrix = np.asarray(world_to_body, dtype=np.float64)
        origin = (matrix @ np.append(origin, 1.0))[:3]
        direction = (matrix @ np.append(direction, 0.0))[:3]

    norm = np.linalg.norm(direction)
    if norm == 0:
        raise ValueError("Ray direction must not be zero")
    direction = direction / norm

    b = np.dot(origin, direction)
    c = np.dot(origin, origin) - radius * radius
    det = b * b - c

    if det < 0.0:
        return None

    return origin + direction * (-b - np.sqrt(det))
