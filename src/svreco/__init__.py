"""Public package exports for jet secondary-vertex reconstruction."""

from .candidate import build_candidate
from .config import SecondaryVertexConfig, TrackSelection, VertexCuts, VertexSelection
from .errors import (
    ConfigurationError,
    CovarianceError,
    SVRecoError,
    TrackNotFoundError,
    VertexFitError,
)
from .fitters import (
    AdaptiveVertexFitter,
    AdaptiveVertexReconstructor,
    FitOutcome,
    TransientTrack,
    VertexReconstructor,
    build_transient_track,
    build_vertex_reconstructor,
    fit_tracks,
)
from .models import (
    BeamSpot,
    EventInput,
    FittedVertex,
    ImpactParameterRecord,
    JetTrackInfo,
    JetVertexingResult,
    Measurement1D,
    PrimaryVertex,
    SecondaryVertexCandidate,
    Track,
    TrackData,
    TrackSortCriterion,
    TrackStatus,
    VertexData,
)
from .presets import config_from_name, default_config
from .producer import SecondaryVertexProducer, resolve_primary_vertex
from .selection import TrackSelector, V0Filter, VertexFilter, VertexSelector

__all__ = [
    "SecondaryVertexProducer",
    "SecondaryVertexConfig",
    "TrackSelection",
    "VertexCuts",
    "VertexSelection",
    "TrackSelector",
    "VertexFilter",
    "V0Filter",
    "VertexSelector",
    "build_candidate",
    "AdaptiveVertexFitter",
    "AdaptiveVertexReconstructor",
    "VertexReconstructor",
    "TransientTrack",
    "FitOutcome",
    "build_transient_track",
    "build_vertex_reconstructor",
    "fit_tracks",
    "Track",
    "ImpactParameterRecord",
    "PrimaryVertex",
    "BeamSpot",
    "JetTrackInfo",
    "EventInput",
    "FittedVertex",
    "SecondaryVertexCandidate",
    "Measurement1D",
    "TrackSortCriterion",
    "TrackStatus",
    "TrackData",
    "VertexData",
    "JetVertexingResult",
    "resolve_primary_vertex",
    "default_config",
    "config_from_name",
    "SVRecoError",
    "ConfigurationError",
    "VertexFitError",
    "CovarianceError",
    "TrackNotFoundError",
]
