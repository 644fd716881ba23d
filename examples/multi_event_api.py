"""Multi-event API example running the producer with the default preset.

Run from repository root without installation:
    PYTHONPATH=src python examples/multi_event_api.py
"""

from __future__ import annotations

import logging
from pathlib import Path

from svreco import SecondaryVertexProducer, TrackStatus, default_config
from svreco.io import load_events_json, write_results_table


def main() -> int:
    """Load events, reconstruct one vertex per jet, and write a parquet table."""
    logging.basicConfig(level=logging.INFO)
    events = load_events_json("examples/events.json")
    producer = SecondaryVertexProducer(config=default_config(), max_workers=2)

    results = []
    for event_results in producer.produce_events(events):
        for res in event_results:
            if res.vertex is not None:
                print(
                    f"{res.event_id}/{res.jet_id}: {res.n_vertex_tracks} tracks, "
                    f"dist3d={res.vertex.dist3d.value:.4f} cm "
                    f"(sig {res.vertex.dist3d.significance:.1f}), "
                    f"{res.count_status(TrackStatus.USED_FOR_FIT)} unassociated fit tracks"
                )
        results.extend(event_results)

    out_path = Path("examples/multi_event_output.parquet")
    write_results_table(out_path, results)
    print(f"Wrote {len(results)} jets to {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
