"""Physics/math helpers for vertex geometry and track kinematics."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from .models import Matrix2x2, Matrix3x3, Track, Vector3

PION_MASS = 0.13957039
K0S_MASS = 0.497611


@dataclass(frozen=True)
class LorentzVector:
    """Simple 4-vector with convenience properties and addition."""

    px: float
    py: float
    pz: float
    e: float

    def __add__(self, other: "LorentzVector") -> "LorentzVector":
        """Component-wise 4-vector addition."""
        return LorentzVector(
            self.px + other.px,
            self.py + other.py,
            self.pz + other.pz,
            self.e + other.e,
        )

    @property
    def p2(self) -> float:
        """Squared 3-momentum magnitude."""
        return self.px * self.px + self.py * self.py + self.pz * self.pz

    @property
    def mass2(self) -> float:
        """Invariant mass squared."""
        return self.e * self.e - self.p2

    @property
    def mass(self) -> float:
        """Invariant mass with signed handling for small negative mass2 values."""
        m2 = self.mass2
        return m2**0.5 if m2 >= 0.0 else -((-m2) ** 0.5)


def track_to_lorentz(track: Track, mass: float = PION_MASS) -> LorentzVector:
    """Convert a track plus mass hypothesis into a Lorentz 4-vector."""
    energy = (track.p * track.p + mass * mass) ** 0.5
    return LorentzVector(px=track.px, py=track.py, pz=track.pz, e=energy)


def sum_lorentz(vectors: Iterable[LorentzVector]) -> LorentzVector:
    """Sum an iterable of Lorentz vectors."""
    total = LorentzVector(0.0, 0.0, 0.0, 0.0)
    for vec in vectors:
        total = total + vec
    return total


def invariant_mass(tracks: Sequence[Track], mass: float = PION_MASS) -> float:
    """Invariant mass of a track set with one common mass hypothesis."""
    return sum_lorentz(track_to_lorentz(t, mass) for t in tracks).mass


def delta_r(a: Vector3, b: Vector3) -> float:
    """Angular distance sqrt(deta^2 + dphi^2) between two 3-vectors."""
    dphi = math.atan2(a[1], a[0]) - math.atan2(b[1], b[0])
    while dphi > math.pi:
        dphi -= 2.0 * math.pi
    while dphi <= -math.pi:
        dphi += 2.0 * math.pi
    deta = pseudorapidity(a) - pseudorapidity(b)
    return math.sqrt(deta * deta + dphi * dphi)


def pseudorapidity(v: Vector3) -> float:
    """Pseudorapidity of a 3-vector, clamped for vectors along the z axis."""
    pt = math.hypot(v[0], v[1])
    if pt == 0.0:
        return 1e9 if v[2] >= 0 else -1e9
    return math.asinh(v[2] / pt)


def sub3(a: Vector3, b: Vector3) -> Vector3:
    """Component-wise difference `a - b`."""
    return a[0] - b[0], a[1] - b[1], a[2] - b[2]


def dot3(a: Vector3, b: Vector3) -> float:
    """3D dot product."""
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def norm3(a: Vector3) -> float:
    """Euclidean norm of a 3D vector."""
    return math.sqrt(dot3(a, a))


def sum_cov3(a: Matrix3x3, b: Matrix3x3) -> Matrix3x3:
    """Return element-wise sum of two 3x3 covariance matrices."""
    return (
        (a[0][0] + b[0][0], a[0][1] + b[0][1], a[0][2] + b[0][2]),
        (a[1][0] + b[1][0], a[1][1] + b[1][1], a[1][2] + b[1][2]),
        (a[2][0] + b[2][0], a[2][1] + b[2][1], a[2][2] + b[2][2]),
    )


def sub_cov2(cov: Matrix3x3) -> Matrix2x2:
    """Upper-left (x, y) block of a 3x3 covariance."""
    return (cov[0][0], cov[0][1]), (cov[1][0], cov[1][1])


def similarity(cov: Sequence[Sequence[float]], v: Sequence[float]) -> float:
    """Quadratic form `v^T C v` for square matrices of any size."""
    n = len(v)
    return sum(v[i] * cov[i][j] * v[j] for i in range(n) for j in range(n))


def is_positive_definite(mat: Sequence[Sequence[float]]) -> bool:
    """Cholesky test for a symmetric matrix."""
    n = len(mat)
    lower = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1):
            s = mat[i][j] - sum(lower[i][k] * lower[j][k] for k in range(j))
            if i == j:
                if not s > 0.0 or not math.isfinite(s):
                    return False
                lower[i][j] = math.sqrt(s)
            else:
                lower[i][j] = s / lower[j][j]
    return True


def invert_2x2(mat: Matrix2x2) -> Matrix2x2 | None:
    """Invert a 2x2 matrix. Return `None` if singular."""
    a, b = mat[0]
    c, d = mat[1]
    det = a * d - b * c
    if abs(det) < 1e-18:
        return None
    inv_det = 1.0 / det
    return ((d * inv_det, -b * inv_det), (-c * inv_det, a * inv_det))


def solve_3x3(a: list[list[float]], b: list[float]) -> tuple[float, float, float] | None:
    """Solve 3x3 linear system by Gaussian elimination with pivoting."""
    m = [row[:] + [rhs] for row, rhs in zip(a, b, strict=True)]
    n = 3
    for col in range(n):
        pivot = max(range(col, n), key=lambda r: abs(m[r][col]))
        if abs(m[pivot][col]) < 1e-14:
            return None
        if pivot != col:
            m[col], m[pivot] = m[pivot], m[col]
        p = m[col][col]
        for j in range(col, n + 1):
            m[col][j] /= p
        for r in range(n):
            if r == col:
                continue
            factor = m[r][col]
            for j in range(col, n + 1):
                m[r][j] -= factor * m[col][j]
    return m[0][3], m[1][3], m[2][3]


def invert_3x3(a: Sequence[Sequence[float]]) -> Matrix3x3 | None:
    """Invert 3x3 matrix by Gaussian elimination."""
    m = [list(row) + [1.0 if i == j else 0.0 for j in range(3)] for i, row in enumerate(a)]
    n = 3
    for col in range(n):
        pivot = max(range(col, n), key=lambda r: abs(m[r][col]))
        if abs(m[pivot][col]) < 1e-14:
            return None
        if pivot != col:
            m[col], m[pivot] = m[pivot], m[col]
        p = m[col][col]
        for j in range(col, 2 * n):
            m[col][j] /= p
        for r in range(n):
            if r == col:
                continue
            factor = m[r][col]
            for j in range(col, 2 * n):
                m[r][j] -= factor * m[col][j]
    return (
        (m[0][3], m[0][4], m[0][5]),
        (m[1][3], m[1][4], m[1][5]),
        (m[2][3], m[2][4], m[2][5]),
    )
