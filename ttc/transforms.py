"""SE3 and projection utilities.  T_A_B converts points FROM B INTO A."""

from __future__ import annotations

import numpy as np


class DegenerateProjectionError(ValueError):
    """Homogeneous normalizer of a projected point is exactly zero."""


def pose_to_matrix(x: float, y: float, z: float,
                   roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Build a 4×4 SE3 matrix from position and Euler angles (radians).

    Rotation order: Rz(yaw) @ Ry(pitch) @ Rx(roll)  (extrinsic XYZ / intrinsic ZYX).
    """
    cr, sr = np.cos(roll), np.sin(roll)
    cp, sp = np.cos(pitch), np.sin(pitch)
    cy, sy = np.cos(yaw), np.sin(yaw)

    R = np.array([
        [cy * cp,  cy * sp * sr - sy * cr,  cy * sp * cr + sy * sr],
        [sy * cp,  sy * sp * sr + cy * cr,  sy * sp * cr - cy * sr],
        [-sp,      cp * sr,                 cp * cr],
    ], dtype=np.float64)

    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = R
    T[:3, 3] = [x, y, z]
    return T


def invert_se3(T: np.ndarray) -> np.ndarray:
    """Invert a 4×4 SE3 matrix: T_B_A = invert_se3(T_A_B)."""
    R = T[:3, :3]
    t = T[:3, 3]
    T_inv = np.eye(4, dtype=np.float64)
    T_inv[:3, :3] = R.T
    T_inv[:3, 3] = -R.T @ t
    return T_inv


def transform_points(T_A_B: np.ndarray, points_B: np.ndarray) -> np.ndarray:
    """Transform (N, 3) points from frame B to frame A using T_A_B.

    p_A = R @ p_B + t
    """
    R = T_A_B[:3, :3]
    t = T_A_B[:3, 3]
    return (R @ points_B.T).T + t


def is_valid_se3(T: np.ndarray, atol: float = 1e-8) -> bool:
    """Check if T is a valid 4×4 SE3 matrix."""
    if T.shape != (4, 4):
        return False
    if not np.allclose(T[3, :], [0, 0, 0, 1], atol=atol):
        return False
    R = T[:3, :3]
    if not np.allclose(R @ R.T, np.eye(3), atol=atol):
        return False
    if abs(np.linalg.det(R) - 1.0) > atol:
        return False
    return True


def make_T_camera_link_optical() -> np.ndarray:
    """T_camera_link_optical: optical (X=right,Y=down,Z=fwd) → body (X=fwd,Y=left,Z=up)."""
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = [[0, 0, 1], [-1, 0, 0], [0, -1, 0]]
    return T


def extrinsic_from_mounts(T_base_lidar: np.ndarray, T_base_camera: np.ndarray) -> np.ndarray:
    """RT = T_optical_lidar: range-sensor points into the camera optical frame."""
    T_base_optical = T_base_camera @ make_T_camera_link_optical()
    return invert_se3(T_base_optical) @ T_base_lidar


def intrinsic_matrix(fx: float, fy: float, cx: float, cy: float) -> np.ndarray:
    """(3, 4) rectified pinhole projection with zero baseline."""
    return np.array([
        [fx, 0.0, cx, 0.0],
        [0.0, fy, cy, 0.0],
        [0.0, 0.0, 1.0, 0.0],
    ], dtype=np.float64)


def compose_projection(P_rect: np.ndarray, R_rect: np.ndarray, RT: np.ndarray) -> np.ndarray:
    """Composite (3, 4) projection: intrinsic @ rectification @ extrinsic.

    The order is fixed; callers pass the three calibration matrices as-is.
    """
    P_rect = np.asarray(P_rect, dtype=np.float64)
    if P_rect.shape != (3, 4):
        raise ValueError(f"P_rect must be 3x4, got {P_rect.shape}")
    return P_rect @ np.asarray(R_rect, dtype=np.float64) @ np.asarray(RT, dtype=np.float64)


def project_points(P: np.ndarray, points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Project (N, >=3) points with a (3, 4) projection.

    Returns (uv, valid): uv is (N, 2) pixel coordinates, NaN where the
    homogeneous normalizer (third row) is exactly zero; valid flags the rest.
    """
    pts = np.asarray(points, dtype=np.float64)
    n = pts.shape[0]
    if n == 0:
        return np.zeros((0, 2), dtype=np.float64), np.zeros(0, dtype=bool)
    X = np.ones((n, 4), dtype=np.float64)
    X[:, :3] = pts[:, :3]
    Y = X @ P.T          # (N, 3): [w*u, w*v, w]
    w = Y[:, 2]
    valid = w != 0.0
    uv = np.full((n, 2), np.nan, dtype=np.float64)
    uv[valid] = Y[valid, :2] / w[valid, None]
    return uv, valid


def project_point(P: np.ndarray, point) -> tuple[float, float]:
    """Project a single point (RangePoint or [x, y, z, ...]) to (u, v).

    Raises DegenerateProjectionError when the normalizer is exactly zero.
    """
    if hasattr(point, "to_array"):
        point = point.to_array()
    xyz = np.asarray(point, dtype=np.float64)[:3]
    Y = P @ np.append(xyz, 1.0)
    if Y[2] == 0.0:
        raise DegenerateProjectionError(f"Point {xyz.tolist()} projects to infinity")
    return float(Y[0] / Y[2]), float(Y[1] / Y[2])
