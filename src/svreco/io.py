"""Input/output helpers for JSON inputs, configuration and tabular export."""

from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any, Mapping, Sequence

from .config import SecondaryVertexConfig, TrackSelection, VertexCuts, VertexSelection
from .errors import ConfigurationError
from .models import (
    BeamSpot,
    EventInput,
    ImpactParameterRecord,
    JetTrackInfo,
    JetVertexingResult,
    Measurement1D,
    PrimaryVertex,
    Track,
    TrackStatus,
)
from .physics import PION_MASS, invariant_mass

_TRACK_SELECTION_KEYS: dict[str, str] = {
    "totalHitsMin": "min_total_hits",
    "pixelHitsMin": "min_pixel_hits",
    "ptMin": "min_pt",
    "normChi2Max": "max_norm_chi2",
    "qualityClass": "quality_class",
    "sip2dValMin": "min_ip2d_value",
    "sip2dValMax": "max_ip2d_value",
    "sip2dSigMin": "min_ip2d_sig",
    "sip2dSigMax": "max_ip2d_sig",
    "sip3dValMin": "min_ip3d_value",
    "sip3dValMax": "max_ip3d_value",
    "sip3dSigMin": "min_ip3d_sig",
    "sip3dSigMax": "max_ip3d_sig",
    "maxDistToAxis": "max_distance_to_jet_axis",
    "maxDecayLen": "max_decay_length",
    "jetDeltaRMax": "max_jet_delta_r",
}

_VERTEX_CUTS_KEYS: dict[str, str] = {
    "useTrackWeights": "use_track_weights",
    "minimumTrackWeight": "min_track_weight",
    "multiplicityMin": "min_multiplicity",
    "distVal2dMin": "min_dist2d_value",
    "distVal2dMax": "max_dist2d_value",
    "distSig2dMin": "min_dist2d_sig",
    "distSig2dMax": "max_dist2d_sig",
    "distVal3dMin": "min_dist3d_value",
    "distVal3dMax": "max_dist3d_value",
    "distSig3dMin": "min_dist3d_sig",
    "distSig3dMax": "max_dist3d_sig",
    "maxDeltaRToJetAxis": "max_delta_r_to_jet_axis",
    "massMax": "max_mass",
    "fracPV": "max_fraction_pv",
    "k0sMassWindow": "k0s_mass_window",
}

_VERTEX_SELECTION_KEYS: dict[str, str] = {
    "sortCriterium": "sort_criterion",
}

_TOP_LEVEL_KEYS: dict[str, str] = {
    "trackSort": "track_sort",
    "trackSelection": "track_selection",
    "vertexReco": "vertex_reco",
    "usePVError": "use_pv_error",
    "vertexCuts": "vertex_cuts",
    "vertexSelection": "vertex_selection",
    "significanceMode": "significance_mode",
}


def load_events_json(path: str | Path) -> list[EventInput]:
    """Load multi-event input JSON into `EventInput` objects.

    Expected shape:
    {
      "events": [
        {"event_id": "...", "beamspot": {...}, "jets": [
          {"jet_id": "...", "jet_momentum": [px, py, pz],
           "primary_vertex": {...} | null,
           "tracks": [{"track_id": "...", ..., "ip": {...}}, ...]},
          ...
        ]},
        ...
      ]
    }
    """
    data = _load_json(path)
    events_data = data.get("events")
    if not isinstance(events_data, list):
        raise ValueError("Events JSON must contain a list under key 'events'.")
    out: list[EventInput] = []
    for idx, event in enumerate(events_data):
        if not isinstance(event, dict):
            raise ValueError(f"Event entry at index {idx} must be an object.")
        event_id = str(event.get("event_id", f"evt{idx}"))
        jets_data = event.get("jets")
        if not isinstance(jets_data, list):
            raise ValueError(f"Event '{event_id}' must contain a list under key 'jets'.")
        beamspot_data = event.get("beamspot")
        beamspot = BeamSpot() if beamspot_data is None else _parse_beamspot(beamspot_data, event_id)
        jets = tuple(
            _parse_jet_item(item=jet_item, idx=jidx, context=f"event '{event_id}'")
            for jidx, jet_item in enumerate(jets_data)
        )
        out.append(EventInput(event_id=event_id, jets=jets, beamspot=beamspot))
    return out


def load_config_json(
    path: str | Path, base: SecondaryVertexConfig | None = None
) -> SecondaryVertexConfig:
    """Load a producer configuration, overriding fields of `base`."""
    return config_from_mapping(_load_json(path), base=base)


def config_from_mapping(
    data: Mapping[str, Any], base: SecondaryVertexConfig | None = None
) -> SecondaryVertexConfig:
    """Build a `SecondaryVertexConfig` from camelCase (or snake_case) options."""
    config = base or SecondaryVertexConfig()
    updates: dict[str, Any] = {}
    for key, value in _rename_keys(data, _TOP_LEVEL_KEYS, "configuration").items():
        if key == "track_selection":
            updates[key] = _replace_block(config.track_selection, value, _TRACK_SELECTION_KEYS, "trackSelection")
        elif key == "vertex_cuts":
            updates[key] = _parse_vertex_cuts(config.vertex_cuts, value)
        elif key == "vertex_selection":
            updates[key] = _replace_block(config.vertex_selection, value, _VERTEX_SELECTION_KEYS, "vertexSelection")
        elif key == "vertex_reco":
            if not isinstance(value, dict):
                raise ConfigurationError("Option 'vertexReco' must be an object.")
            updates[key] = dict(value)
        elif key == "use_pv_error":
            if not isinstance(value, bool):
                raise ConfigurationError("Option 'usePVError' must be a boolean.")
            updates[key] = value
        else:
            updates[key] = str(value)
    return dataclasses.replace(config, **updates)


def write_results_table(path: str | Path, results: Sequence[JetVertexingResult]) -> None:
    """Write per-jet vertexing results into a Parquet/CSV/Pickle table."""
    pd = _require_pandas()
    df = pd.DataFrame(_result_rows(results))
    out = Path(path)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        df.to_parquet(out, index=False)
    elif suffix in (".pkl", ".pickle"):
        df.to_pickle(out)
    elif suffix == ".csv":
        df.to_csv(out, index=False)
    else:
        raise ValueError(
            f"Unsupported output format '{suffix}'. Use .parquet, .csv, or .pkl"
        )


def _result_rows(results: Sequence[JetVertexingResult]) -> list[dict[str, Any]]:
    """Flatten per-jet results into DataFrame-ready row dictionaries."""
    rows: list[dict[str, Any]] = []
    for res in results:
        row: dict[str, Any] = {
            "event_id": res.event_id,
            "jet_id": res.jet_id,
            "source_index": res.source_index,
            "primary_vertex_id": res.primary_vertex_id,
            "sorted_track_ids": ",".join(res.sorted_track_ids),
            "track_status": ",".join(d.status.value for d in res.track_data),
            "n_tracks": res.n_selected_tracks,
            "n_used_for_fit": res.count_status(TrackStatus.USED_FOR_FIT),
            "n_associated": res.n_vertex_tracks,
            "n_vertex_candidates": res.n_vertex_candidates,
            "has_vertex": bool(res.vertex_data),
        }
        if res.vertex_data:
            data = res.vertex_data[0]
            sv = data.vertex
            cov = sv.vertex.cov3
            row.update(
                {
                    "sv_x": sv.vertex.x,
                    "sv_y": sv.vertex.y,
                    "sv_z": sv.vertex.z,
                    "sv_cov_xx": cov[0][0],
                    "sv_cov_xy": cov[0][1],
                    "sv_cov_xz": cov[0][2],
                    "sv_cov_yy": cov[1][1],
                    "sv_cov_yz": cov[1][2],
                    "sv_cov_zz": cov[2][2],
                    "sv_chi2": sv.vertex.chi2,
                    "sv_ndof": sv.vertex.ndof,
                    "sv_n_tracks": len(sv.tracks),
                    "sv_mass": invariant_mass(sv.tracks, PION_MASS),
                    "dist2d": data.dist2d.value,
                    "dist2d_err": data.dist2d.error,
                    "dist2d_sig": data.dist2d.significance,
                    "dist3d": data.dist3d.value,
                    "dist3d_err": data.dist3d.error,
                    "dist3d_sig": data.dist3d.significance,
                    "flight_x": data.direction[0],
                    "flight_y": data.direction[1],
                    "flight_z": data.direction[2],
                }
            )
        rows.append(row)
    return rows


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to write output tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _rename_keys(data: Any, aliases: Mapping[str, str], block: str) -> dict[str, Any]:
    """Map camelCase option names to field names, rejecting unknown keys."""
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Configuration block '{block}' must be an object.")
    known = set(aliases.values())
    out: dict[str, Any] = {}
    for key, value in data.items():
        name = aliases.get(key, key)
        if name not in known:
            raise ConfigurationError(f"Unknown option '{key}' in '{block}'.")
        out[name] = value
    return out


def _replace_block(current: Any, data: Any, aliases: Mapping[str, str], block: str) -> Any:
    values = _rename_keys(data, aliases, block)
    try:
        return dataclasses.replace(current, **values)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid '{block}' options: {exc}") from exc


def _parse_vertex_cuts(current: VertexCuts, data: Any) -> VertexCuts:
    """Parse `vertexCuts`, flattening the nested `v0Filter` block."""
    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration block 'vertexCuts' must be an object.")
    flat = dict(data)
    v0 = flat.pop("v0Filter", None)
    if v0 is not None:
        if not isinstance(v0, Mapping) or set(v0) - {"k0sMassWindow"}:
            raise ConfigurationError("Block 'v0Filter' accepts only 'k0sMassWindow'.")
        if "k0sMassWindow" in v0:
            flat["k0sMassWindow"] = v0["k0sMassWindow"]
    return _replace_block(current, flat, _VERTEX_CUTS_KEYS, "vertexCuts")


def _parse_jet_item(item: Any, idx: int, context: str) -> JetTrackInfo:
    """Parse one jet dictionary into a `JetTrackInfo`."""
    if not isinstance(item, dict):
        raise ValueError(f"Jet entry at index {idx} in {context} must be an object.")
    jet_id = str(item.get("jet_id", f"jet{idx}"))
    tracks_data = item.get("tracks", [])
    if not isinstance(tracks_data, list):
        raise ValueError(f"Jet '{jet_id}' in {context} must contain a list under key 'tracks'.")
    tracks: list[Track] = []
    ip_data: list[ImpactParameterRecord] = []
    for tidx, track_item in enumerate(tracks_data):
        track, ip = _parse_track_item(track_item, tidx, f"jet '{jet_id}' of {context}")
        tracks.append(track)
        ip_data.append(ip)
    pv_data = item.get("primary_vertex")
    pv = None if pv_data is None else _parse_primary_vertex_item(pv_data, jet_id)
    return JetTrackInfo(
        jet_id=jet_id,
        jet_momentum=_parse_vector3(item.get("jet_momentum"), f"jet '{jet_id}' momentum"),
        tracks=tuple(tracks),
        ip_data=tuple(ip_data),
        primary_vertex=pv,
    )


def _parse_track_item(item: Any, idx: int, context: str) -> tuple[Track, ImpactParameterRecord]:
    """Parse one track dictionary into a `Track` and its IP record."""
    if not isinstance(item, dict):
        raise ValueError(f"Track entry at index {idx} in {context} must be an object.")
    ip_item = item.get("ip")
    if not isinstance(ip_item, dict):
        raise ValueError(f"Track at index {idx} in {context} must define an 'ip' object.")
    try:
        track = Track(
            track_id=str(item["track_id"]),
            x=float(item["x"]),
            y=float(item["y"]),
            z=float(item["z"]),
            px=float(item["px"]),
            py=float(item["py"]),
            pz=float(item["pz"]),
            charge=int(item.get("charge", 0)),
            position_error=float(item.get("position_error", 0.01)),
            n_valid_hits=int(item.get("n_valid_hits", 0)),
            n_pixel_hits=int(item.get("n_pixel_hits", 0)),
            norm_chi2=float(item.get("norm_chi2", 0.0)),
            quality=str(item.get("quality", "undefined")),
        )
    except KeyError as exc:
        raise ValueError(f"Track at index {idx} in {context} is missing field {exc}.") from exc
    prob2d = ip_item.get("prob2d")
    prob3d = ip_item.get("prob3d")
    ip = ImpactParameterRecord(
        ip2d=_parse_measurement(ip_item.get("ip2d"), "ip2d"),
        ip3d=_parse_measurement(ip_item.get("ip3d"), "ip3d"),
        prob2d=None if prob2d is None else float(prob2d),
        prob3d=None if prob3d is None else float(prob3d),
        distance_to_jet_axis=_parse_measurement(
            ip_item.get("distance_to_jet_axis", [0.0, 0.0]), "distance_to_jet_axis"
        ),
        decay_length=float(ip_item.get("decay_length", 0.0)),
    )
    return track, ip


def _parse_primary_vertex_item(item: Any, jet_id: str) -> PrimaryVertex:
    """Parse one PV dictionary into a `PrimaryVertex`."""
    if not isinstance(item, dict):
        raise ValueError(f"Primary vertex of jet '{jet_id}' must be an object.")
    return PrimaryVertex(
        pv_id=str(item.get("pv_id", "pv0")),
        x=float(item["x"]),
        y=float(item["y"]),
        z=float(item["z"]),
        cov3=_parse_cov3(item["cov3"]),
        is_valid=bool(item.get("is_valid", True)),
        track_ids=tuple(str(x) for x in item.get("track_ids", [])),
    )


def _parse_beamspot(item: Any, event_id: str) -> BeamSpot:
    """Parse the beam-spot object of one event."""
    if not isinstance(item, dict):
        raise ValueError(f"Beam spot of event '{event_id}' must be an object.")
    cov = item.get("cov3")
    return BeamSpot(
        x=float(item.get("x", 0.0)),
        y=float(item.get("y", 0.0)),
        z=float(item.get("z", 0.0)),
        sigma_z=float(item.get("sigma_z", 0.0)),
        beam_width_x=float(item.get("beam_width_x", 0.0)),
        beam_width_y=float(item.get("beam_width_y", 0.0)),
        cov3=None if cov is None else _parse_cov3(cov),
    )


def _parse_measurement(value: Any, name: str) -> Measurement1D:
    """Accept `[value, error]`, `{"value", "error"}` or a bare number."""
    if isinstance(value, (int, float)):
        return Measurement1D(float(value), 0.0)
    if isinstance(value, list) and len(value) == 2:
        return Measurement1D(float(value[0]), float(value[1]))
    if isinstance(value, dict) and "value" in value:
        return Measurement1D(float(value["value"]), float(value.get("error", 0.0)))
    raise ValueError(f"Field '{name}' must be a number, [value, error] or an object.")


def _parse_vector3(value: Any, name: str) -> tuple[float, float, float]:
    if not isinstance(value, list) or len(value) != 3:
        raise ValueError(f"Field {name} must be a list of three numbers.")
    return float(value[0]), float(value[1]), float(value[2])


def _parse_cov3(value: Any):
    """Validate and convert a nested list into a 3x3 covariance tuple."""
    if not isinstance(value, list) or len(value) != 3:
        raise ValueError("Covariance cov3 must be a 3x3 list.")
    rows: list[tuple[float, float, float]] = []
    for row in value:
        if not isinstance(row, list) or len(row) != 3:
            raise ValueError("Covariance cov3 must be a 3x3 list.")
        rows.append((float(row[0]), float(row[1]), float(row[2])))
    return (rows[0], rows[1], rows[2])


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
