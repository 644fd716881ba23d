"""Turn fitted vertices into secondary-vertex candidates.

Flight distances are measured from the primary vertex. Their uncertainty is
propagated from the vertex covariance, optionally summed with the PV
covariance. Two conventions are supported:

- `projected`: variance of the covariance projected on the flight
  direction, `sigma = sqrt(d^T C d) / |d|`
- `chi2`: `sigma = |d| / sqrt(d^T C^-1 d)`, so that the significance is
  the square root of the displacement chi2.
"""

from __future__ import annotations

import math
from typing import Sequence

from .errors import CovarianceError
from .models import (
    FittedVertex,
    Measurement1D,
    PrimaryVertex,
    SecondaryVertexCandidate,
    Vector3,
)
from .physics import (
    invert_2x2,
    invert_3x3,
    is_positive_definite,
    norm3,
    similarity,
    sub3,
    sub_cov2,
    sum_cov3,
)

MIN_FLIGHT_DISTANCE = 1.0e-9


def build_candidate(
    fitted: FittedVertex,
    pv: PrimaryVertex,
    jet_direction: Vector3,
    with_pv_error: bool,
    significance_mode: str = "projected",
) -> SecondaryVertexCandidate:
    """Build a candidate from one fitted vertex.

    Raises `CovarianceError` when the combined covariance is not
    positive-definite.
    """
    cov3 = fitted.cov3
    if with_pv_error:
        cov3 = sum_cov3(cov3, pv.cov3)
    if not is_positive_definite(cov3):
        raise CovarianceError(
            f"Combined covariance of vertex at {fitted.position} is not positive-definite."
        )

    flight = sub3(fitted.position, pv.position)
    dist3d = flight_distance(flight, cov3, significance_mode)
    dist2d = flight_distance((flight[0], flight[1]), sub_cov2(cov3), significance_mode)
    return SecondaryVertexCandidate(
        vertex=fitted,
        dist2d=dist2d,
        dist3d=dist3d,
        flight_direction=flight,
        jet_direction=jet_direction,
    )


def flight_distance(
    displacement: Sequence[float],
    cov: Sequence[Sequence[float]],
    significance_mode: str = "projected",
) -> Measurement1D:
    """Distance `|d|` with its propagated error (`-1` when undefined)."""
    if len(displacement) == 3:
        dist = norm3((displacement[0], displacement[1], displacement[2]))
    else:
        dist = math.hypot(displacement[0], displacement[1])
    if dist <= MIN_FLIGHT_DISTANCE:
        return Measurement1D(dist, -1.0)

    if significance_mode == "chi2":
        inv = invert_3x3(cov) if len(displacement) == 3 else invert_2x2((
            (cov[0][0], cov[0][1]),
            (cov[1][0], cov[1][1]),
        ))
        if inv is None:
            raise CovarianceError("Covariance is singular; cannot compute displacement chi2.")
        chi2 = similarity(inv, displacement)
        if chi2 <= 0.0:
            return Measurement1D(dist, -1.0)
        return Measurement1D(dist, dist / math.sqrt(chi2))

    variance = similarity(cov, displacement)
    if variance <= 0.0:
        return Measurement1D(dist, -1.0)
    return Measurement1D(dist, math.sqrt(variance) / dist)
