"""Validation of SCTP, ICE, DTLS and producer codec option data.

Like the RTP validators, these work on plain dicts and lists, fill in
missing optional fields with their defaults in place and raise
``MediasoupTypeError`` on invalid input.
"""

from __future__ import annotations

import re
from typing import Any

from sfusignal.rtp_validation import MediasoupTypeError

__all__ = [
    "validate_sctp_capabilities",
    "validate_num_sctp_streams",
    "validate_sctp_parameters",
    "validate_sctp_stream_parameters",
    "validate_ice_parameters",
    "validate_ice_candidate",
    "validate_ice_candidates",
    "validate_dtls_fingerprint",
    "validate_dtls_parameters",
    "validate_producer_codec_options",
]

_PROTOCOL_RE = re.compile(r"(udp|tcp)", re.IGNORECASE)
_CANDIDATE_TYPE_RE = re.compile(r"(host|srflx|prflx|relay)", re.IGNORECASE)
_DTLS_ROLE_RE = re.compile(r"(auto|client|server)", re.IGNORECASE)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_unsigned(value: Any) -> bool:
    return _is_int(value) and value >= 0


def _is_nonempty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _require_object(params: Any, name: str = "params") -> None:
    if not isinstance(params, dict):
        raise MediasoupTypeError(f"{name} is not an object")


def _require_ints(params: dict, prefix: str, *keys: str) -> None:
    for key in keys:
        if not _is_int(params.get(key)):
            raise MediasoupTypeError(f"missing {prefix}.{key}")


def _require_nonempty_strs(params: dict, *keys: str) -> None:
    for key in keys:
        if not _is_nonempty_str(params.get(key)):
            raise MediasoupTypeError(f"missing params.{key}")


def validate_sctp_capabilities(caps: dict) -> None:
    """Validate SctpCapabilities."""
    _require_object(caps, "caps")

    if not isinstance(caps.get("numStreams"), dict):
        raise MediasoupTypeError("missing caps.numStreams")

    validate_num_sctp_streams(caps["numStreams"])


def validate_num_sctp_streams(num_streams: dict) -> None:
    """Validate NumSctpStreams."""
    _require_object(num_streams, "numStreams")
    _require_ints(num_streams, "numStreams", "OS", "MIS")


def validate_sctp_parameters(params: dict) -> None:
    """Validate SctpParameters."""
    _require_object(params)
    _require_ints(params, "params", "port", "OS", "MIS", "maxMessageSize")


def validate_sctp_stream_parameters(params: dict) -> None:
    """Validate SctpStreamParameters."""
    _require_object(params)
    _require_ints(params, "params", "streamId")

    has_lifetime = "maxPacketLifeTime" in params
    has_retransmits = "maxRetransmits" in params

    ordered_given = isinstance(params.get("ordered"), bool)
    if not ordered_given:
        params["ordered"] = True

    if not _is_int(params.get("maxPacketLifeTime")):
        params["maxPacketLifeTime"] = 0
    if not _is_int(params.get("maxRetransmits")):
        params["maxRetransmits"] = 0

    if has_lifetime and has_retransmits:
        raise MediasoupTypeError(
            "cannot provide both maxPacketLifeTime and maxRetransmits"
        )

    unreliable = has_lifetime or has_retransmits
    if ordered_given and params["ordered"] is True and unreliable:
        raise MediasoupTypeError(
            "cannot be ordered with maxPacketLifeTime or maxRetransmits"
        )
    if not ordered_given and unreliable:
        params["ordered"] = False

    if not isinstance(params.get("label"), str):
        params["label"] = ""
    if not isinstance(params.get("protocol"), str):
        params["protocol"] = ""


def validate_ice_parameters(params: dict) -> None:
    """Validate IceParameters."""
    _require_object(params)
    _require_nonempty_strs(params, "usernameFragment", "password")

    if not isinstance(params.get("iceLite"), bool):
        params["iceLite"] = False


def validate_ice_candidate(params: dict) -> None:
    """Validate IceCandidate."""
    _require_object(params)

    _require_nonempty_strs(params, "foundation")

    if not _is_unsigned(params.get("priority")):
        raise MediasoupTypeError("missing params.priority")

    _require_nonempty_strs(params, "ip", "protocol")

    if _PROTOCOL_RE.fullmatch(params["protocol"]) is None:
        raise MediasoupTypeError("invalid params.protocol")

    if not _is_unsigned(params.get("port")):
        raise MediasoupTypeError("missing params.port")

    _require_nonempty_strs(params, "type")

    if _CANDIDATE_TYPE_RE.fullmatch(params["type"]) is None:
        raise MediasoupTypeError("invalid params.type")


def validate_ice_candidates(params: list) -> None:
    """Validate a list of IceCandidate."""
    if not isinstance(params, list):
        raise MediasoupTypeError("params is not an array")

    for candidate in params:
        validate_ice_candidate(candidate)


def validate_dtls_fingerprint(params: dict) -> None:
    """Validate DtlsFingerprint."""
    _require_object(params)
    _require_nonempty_strs(params, "algorithm", "value")


def validate_dtls_parameters(params: dict) -> None:
    """Validate DtlsParameters."""
    _require_object(params)
    _require_nonempty_strs(params, "role")

    if _DTLS_ROLE_RE.fullmatch(params["role"]) is None:
        raise MediasoupTypeError("invalid params.role")

    fingerprints = params.get("fingerprints")
    if not isinstance(fingerprints, list) or not fingerprints:
        raise MediasoupTypeError("missing params.fingerprints")

    for fingerprint in fingerprints:
        validate_dtls_fingerprint(fingerprint)


_BOOL_OPTIONS = ("opusStereo", "opusFec", "opusDtx")
_INT_OPTIONS = (
    "opusPtime",
    "videoGoogleStartBitrate",
    "videoGoogleMaxBitrate",
    "videoGoogleMinBitrate",
)


def validate_producer_codec_options(params: dict) -> None:
    """Validate Producer codec options."""
    _require_object(params)

    for key in _BOOL_OPTIONS:
        if key in params and not isinstance(params[key], bool):
            raise MediasoupTypeError(f"invalid params.{key}")

    if "opusMaxPlaybackRate" in params and not _is_unsigned(
        params["opusMaxPlaybackRate"]
    ):
        raise MediasoupTypeError("invalid params.opusMaxPlaybackRate")

    for key in _INT_OPTIONS:
        if key in params and not _is_int(params[key]):
            raise MediasoupTypeError(f"invalid params.{key}")