"""Named producer configurations.

`default` follows the standard track-counting secondary-vertex setup used
for b-tagging (lengths in cm, momenta in GeV); `loose` relaxes the vertex
cuts for efficiency studies.
"""

from __future__ import annotations

from .config import SecondaryVertexConfig, TrackSelection, VertexCuts, VertexSelection
from .errors import ConfigurationError

_DEFAULT_TRACK_SELECTION = TrackSelection(
    min_total_hits=8,
    min_pixel_hits=2,
    min_pt=1.0,
    max_norm_chi2=99999.9,
    quality_class="any",
    max_distance_to_jet_axis=0.2,
    max_decay_length=99999.9,
    max_jet_delta_r=0.3,
)

_DEFAULT = SecondaryVertexConfig(
    track_sort="sip3dSig",
    track_selection=_DEFAULT_TRACK_SELECTION,
    vertex_reco={
        "finder": "avr",
        "primcut": 1.8,
        "seccut": 6.0,
        "minweight": 0.5,
    },
    use_pv_error=True,
    vertex_cuts=VertexCuts(
        use_track_weights=True,
        min_track_weight=0.5,
        min_multiplicity=2,
        min_dist2d_value=0.01,
        max_dist2d_value=2.5,
        min_dist2d_sig=3.0,
        max_delta_r_to_jet_axis=0.5,
        max_mass=6.5,
        max_fraction_pv=0.65,
        k0s_mass_window=0.05,
    ),
    vertex_selection=VertexSelection(sort_criterion="dist3dError"),
)

_LOOSE = SecondaryVertexConfig(
    track_sort="sip3dSig",
    track_selection=TrackSelection(min_total_hits=5, min_pixel_hits=1, min_pt=0.5),
    vertex_reco=dict(_DEFAULT.vertex_reco),
    use_pv_error=True,
    vertex_cuts=VertexCuts(
        min_multiplicity=2,
        min_dist2d_sig=2.0,
        max_delta_r_to_jet_axis=0.7,
        max_mass=10.0,
    ),
    vertex_selection=VertexSelection(sort_criterion="dist3dSignificance"),
)

_NAME_TO_CONFIG: dict[str, SecondaryVertexConfig] = {
    "default": _DEFAULT,
    "loose": _LOOSE,
}


def default_config() -> SecondaryVertexConfig:
    """Return the standard b-tagging secondary-vertex configuration."""
    return _DEFAULT


def config_from_name(name: str) -> SecondaryVertexConfig:
    """Resolve a preset name into a producer configuration."""
    key = name.strip().lower()
    try:
        return _NAME_TO_CONFIG[key]
    except KeyError as exc:
        supported = ", ".join(sorted(_NAME_TO_CONFIG))
        raise ConfigurationError(
            f"Unknown configuration preset '{name}'. Supported names: {supported}"
        ) from exc
