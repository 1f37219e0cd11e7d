from __future__ import annotations

from .applier import ConfigApplier, default_bitrate, embed_credentials, merge_config
from .batch import BatchOrchestrator, expected_config
from .fallback import ApplyState, FallbackApplier, should_fall_back
from .network import classify_network_error, describe_network_failure
from .probe import FfprobeProbe, StreamProbe, parse_frame_rate, parse_probe_output
from .registry import DeviceClientRegistry
from .resolution import ResolutionMatcher, match_resolution
from .validator import StreamValidator, ValidationPolicy, check_stream

__all__ = [
    "ApplyState",
    "BatchOrchestrator",
    "ConfigApplier",
    "DeviceClientRegistry",
    "FallbackApplier",
    "FfprobeProbe",
    "ResolutionMatcher",
    "StreamProbe",
    "StreamValidator",
    "ValidationPolicy",
    "check_stream",
    "classify_network_error",
    "default_bitrate",
    "describe_network_failure",
    "embed_credentials",
    "expected_config",
    "match_resolution",
    "merge_config",
    "parse_frame_rate",
    "parse_probe_output",
    "should_fall_back",
]
