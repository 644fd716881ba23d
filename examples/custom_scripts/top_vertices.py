"""Example custom callback: rank jets by flight significance and persist the top N."""

from __future__ import annotations

import json
from pathlib import Path

from svreco.physics import PION_MASS, invariant_mass


def process(results, context):
    """Sort jets with a vertex by 3D flight significance and save the top three."""
    with_vertex = [r for r in results if r.vertex is not None]
    ranked = sorted(with_vertex, key=lambda r: r.vertex.dist3d.significance, reverse=True)
    payload = {
        "n_jets": len(results),
        "n_with_vertex": len(with_vertex),
        "top_vertices": [
            {
                "event_id": r.event_id,
                "jet_id": r.jet_id,
                "track_ids": list(r.vertex.track_ids),
                "mass": invariant_mass(r.vertex.tracks, PION_MASS),
                "dist2d": r.vertex.dist2d.value,
                "dist3d": r.vertex.dist3d.value,
                "dist3d_sig": r.vertex.dist3d.significance,
            }
            for r in ranked[:3]
        ],
    }
    out = Path(context["output_path"]).with_name("top_vertices.json")
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote {out}")
