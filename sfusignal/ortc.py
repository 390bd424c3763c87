"""Negotiation of RTP capabilities and parameters between two endpoints.

Capabilities and parameters are plain dicts and lists. The functions here
validate their input with the validators of :mod:`sfusignal.rtp_validation`,
which may fill in default values in place.
"""

from __future__ import annotations

import copy
import enum
import re
from dataclasses import dataclass
from typing import Any, Iterable

from sfusignal.rtp_validation import (
    MediasoupClientError,
    validate_rtp_capabilities,
    validate_rtp_parameters,
)

__all__ = [
    "get_extended_rtp_capabilities",
    "get_recv_rtp_capabilities",
    "get_sending_rtp_parameters",
    "get_sending_remote_rtp_parameters",
    "generate_probator_rtp_parameters",
    "can_send",
    "can_receive",
]

PROBATOR_SSRC = 1234
PROBATOR_MID = "probator"

_TRANSPORT_CC_URI = (
    "http://www.ietf.org/id/draft-holmer-rmcat-transport-wide-cc-extensions-01"
)
_ABS_SEND_TIME_URI = "http://www.webrtc.org/experiments/rtp-hdrext/abs-send-time"

_RTX_MIME_TYPE_RE = re.compile(r"(audio|video)/rtx", re.IGNORECASE)

# Remote direction -> local direction of a negotiated header extension.
_DIRECTION_MAP = {
    "sendrecv": "sendrecv",
    "recvonly": "sendonly",
    "sendonly": "recvonly",
    "inactive": "inactive",
}


# --- H264 profile-level-id handling -----------------------------------------


class _H264Profile(enum.Enum):
    CONSTRAINED_BASELINE = "constrained-baseline"
    BASELINE = "baseline"
    MAIN = "main"
    CONSTRAINED_HIGH = "constrained-high"
    HIGH = "high"
    PREDICTIVE_HIGH_444 = "predictive-high-444"


_LEVEL_1B = 0
_LEVEL_1 = 10
_LEVEL_1_1 = 11
_VALID_LEVELS = frozenset(
    {10, 11, 12, 13, 20, 21, 22, 30, 31, 32, 40, 41, 42, 50, 51, 52, 60, 61, 62}
)
_CONSTRAINT_SET3_FLAG = 0x10

_PROFILE_PATTERNS = (
    (0x42, "x1xx0000", _H264Profile.CONSTRAINED_BASELINE),
    (0x4D, "1xxx0000", _H264Profile.CONSTRAINED_BASELINE),
    (0x58, "11xx0000", _H264Profile.CONSTRAINED_BASELINE),
    (0x42, "x0xx0000", _H264Profile.BASELINE),
    (0x58, "10xx0000", _H264Profile.BASELINE),
    (0x4D, "0x0x0000", _H264Profile.MAIN),
    (0x64, "00000000", _H264Profile.HIGH),
    (0x64, "00001100", _H264Profile.CONSTRAINED_HIGH),
    (0xF4, "00000000", _H264Profile.PREDICTIVE_HIGH_444),
)

_PROFILE_IDC_IOP = {
    _H264Profile.CONSTRAINED_BASELINE: "42e0",
    _H264Profile.BASELINE: "4200",
    _H264Profile.MAIN: "4d00",
    _H264Profile.CONSTRAINED_HIGH: "640c",
    _H264Profile.HIGH: "6400",
    _H264Profile.PREDICTIVE_HIGH_444: "f400",
}

_LEVEL_1B_STRINGS = {
    _H264Profile.CONSTRAINED_BASELINE: "42f00b",
    _H264Profile.BASELINE: "42100b",
    _H264Profile.MAIN: "4d100b",
}

_HEX6_RE = re.compile(r"[0-9a-fA-F]{6}")


@dataclass(frozen=True)
class _ProfileLevelId:
    profile: _H264Profile
    level: int


def _bit_pattern_matches(mask: str, value: int) -> bool:
    return all(
        bit == "x" or int(bit) == (value >> (7 - pos)) & 1
        for pos, bit in enumerate(mask)
    )


def _parse_profile_level_id(text: str) -> _ProfileLevelId | None:
    if _HEX6_RE.fullmatch(text) is None:
        return None
    numeric = int(text, 16)
    if numeric == 0:
        return None

    level_idc = numeric & 0xFF
    profile_iop = (numeric >> 8) & 0xFF
    profile_idc = (numeric >> 16) & 0xFF

    if level_idc == _LEVEL_1_1 and profile_iop & _CONSTRAINT_SET3_FLAG:
        level = _LEVEL_1B
    elif level_idc in _VALID_LEVELS:
        level = level_idc
    else:
        return None

    for idc, mask, profile in _PROFILE_PATTERNS:
        if idc == profile_idc and _bit_pattern_matches(mask, profile_iop):
            return _ProfileLevelId(profile, level)
    return None


def _level_is_less(a: int, b: int) -> bool:
    if a == _LEVEL_1B:
        return b not in (_LEVEL_1, _LEVEL_1B)
    if b == _LEVEL_1B:
        return a == _LEVEL_1
    return a < b


def _min_level(a: int, b: int) -> int:
    return a if _level_is_less(a, b) else b


def _profile_level_id_to_string(profile: _H264Profile, level: int) -> str | None:
    if level == _LEVEL_1B:
        return _LEVEL_1B_STRINGS.get(profile)
    return f"{_PROFILE_IDC_IOP[profile]}{level:02x}"


def _int_param(codec: dict, key: str) -> int:
    value = codec["parameters"].get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


def _string_param(codec: dict, key: str, default: str) -> str:
    parameters = codec["parameters"]
    if key not in parameters:
        return default
    value = parameters[key]
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value))
    if isinstance(value, str):
        return value
    return ""


# --- Codec matching ---------------------------------------------------------


def _is_rtx_codec(codec: dict) -> bool:
    return _RTX_MIME_TYPE_RE.fullmatch(codec["mimeType"]) is not None


def _match_h264(a_codec: dict, b_codec: dict, strict: bool, modify: bool) -> bool:
    if _int_param(a_codec, "packetization-mode") != _int_param(
        b_codec, "packetization-mode"
    ):
        return False

    if not strict:
        return True

    a_id = _parse_profile_level_id(_string_param(a_codec, "profile-level-id", ""))
    b_id = _parse_profile_level_id(_string_param(b_codec, "profile-level-id", ""))

    if a_id is None or b_id is None or a_id.profile != b_id.profile:
        return False

    asymmetry_allowed = (
        _int_param(a_codec, "level-asymmetry-allowed") == 1
        and _int_param(b_codec, "level-asymmetry-allowed") == 1
    )
    level = a_id.level if asymmetry_allowed else _min_level(a_id.level, b_id.level)
    answer_id = _profile_level_id_to_string(b_id.profile, level)

    if answer_id is None:
        return False

    if modify:
        a_codec["parameters"]["profile-level-id"] = answer_id
        b_codec["parameters"]["profile-level-id"] = answer_id

    return True


def _match_codecs(
    a_codec: dict, b_codec: dict, *, strict: bool = False, modify: bool = False
) -> bool:
    a_mime_type = a_codec["mimeType"].lower()
    b_mime_type = b_codec["mimeType"].lower()

    if a_mime_type != b_mime_type:
        return False
    if a_codec.get("clockRate") != b_codec.get("clockRate"):
        return False
    if ("channels" in a_codec) != ("channels" in b_codec):
        return False
    if "channels" in a_codec and a_codec["channels"] != b_codec["channels"]:
        return False

    if a_mime_type == "video/h264":
        return _match_h264(a_codec, b_codec, strict, modify)

    if a_mime_type == "video/vp9" and strict:
        return _string_param(a_codec, "profile-id", "0") == _string_param(
            b_codec, "profile-id", "0"
        )

    return True


def _match_header_extensions(a_ext: dict, b_ext: dict) -> bool:
    return a_ext.get("kind") == b_ext.get("kind") and a_ext.get("uri") == b_ext.get(
        "uri"
    )


def _reduce_rtcp_feedback(codec_a: dict, codec_b: dict) -> list:
    reduced = []
    for a_fb in codec_a["rtcpFeedback"]:
        match = next(
            (
                b_fb
                for b_fb in codec_b["rtcpFeedback"]
                if a_fb.get("type") == b_fb.get("type")
                and a_fb.get("parameter") == b_fb.get("parameter")
            ),
            None,
        )
        if match is not None:
            reduced.append(copy.deepcopy(match))
    return reduced


def _first(items: Iterable[Any], predicate) -> Any:
    return next((item for item in items if predicate(item)), None)


# --- Public API -------------------------------------------------------------


def get_extended_rtp_capabilities(local_caps: dict, remote_caps: dict) -> dict:
    """Match local and remote capabilities, keeping the remote codec order.

    Both capabilities are validated in place; matched H264 codecs may have
    their ``profile-level-id`` rewritten to the negotiated value.
    """
    validate_rtp_capabilities(local_caps)
    validate_rtp_capabilities(remote_caps)

    extended_codecs: list[dict] = []

    for remote_codec in remote_caps["codecs"]:
        if _is_rtx_codec(remote_codec):
            continue

        local_codec = _first(
            local_caps["codecs"],
            lambda c: _match_codecs(c, remote_codec, strict=True, modify=True),
        )
        if local_codec is None:
            continue

        extended_codec = {
            "mimeType": local_codec["mimeType"],
            "kind": local_codec["kind"],
            "clockRate": local_codec["clockRate"],
            "localPayloadType": local_codec.get("preferredPayloadType"),
            "localRtxPayloadType": None,
            "remotePayloadType": remote_codec.get("preferredPayloadType"),
            "remoteRtxPayloadType": None,
            "localParameters": copy.deepcopy(local_codec["parameters"]),
            "remoteParameters": copy.deepcopy(remote_codec["parameters"]),
            "rtcpFeedback": _reduce_rtcp_feedback(local_codec, remote_codec),
        }
        if "channels" in local_codec:
            extended_codec["channels"] = local_codec["channels"]

        extended_codecs.append(extended_codec)

    for extended_codec in extended_codecs:
        local_rtx = _first(
            local_caps["codecs"],
            lambda c: _is_rtx_codec(c)
            and c["parameters"].get("apt") == extended_codec["localPayloadType"],
        )
        if local_rtx is None:
            continue

        remote_rtx = _first(
            remote_caps["codecs"],
            lambda c: _is_rtx_codec(c)
            and c["parameters"].get("apt") == extended_codec["remotePayloadType"],
        )
        if remote_rtx is None:
            continue

        extended_codec["localRtxPayloadType"] = local_rtx.get("preferredPayloadType")
        extended_codec["remoteRtxPayloadType"] = remote_rtx.get("preferredPayloadType")

    extended_exts: list[dict] = []

    for remote_ext in remote_caps["headerExtensions"]:
        local_ext = _first(
            local_caps["headerExtensions"],
            lambda e: _match_header_extensions(e, remote_ext),
        )
        if local_ext is None:
            continue

        extended_ext = {
            "kind": remote_ext["kind"],
            "uri": remote_ext["uri"],
            "sendId": local_ext["preferredId"],
            "recvId": remote_ext["preferredId"],
            "encrypt": local_ext["preferredEncrypt"],
        }
        direction = _DIRECTION_MAP.get(remote_ext["direction"])
        if direction is not None:
            extended_ext["direction"] = direction

        extended_exts.append(extended_ext)

    return {"codecs": extended_codecs, "headerExtensions": extended_exts}


def get_recv_rtp_capabilities(extended_rtp_capabilities: dict) -> dict:
    """Build RTP capabilities for receiving from extended capabilities."""
    codecs: list[dict] = []

    for extended_codec in extended_rtp_capabilities["codecs"]:
        codec = {
            "mimeType": extended_codec["mimeType"],
            "kind": extended_codec["kind"],
            "preferredPayloadType": extended_codec["remotePayloadType"],
            "clockRate": extended_codec["clockRate"],
            "parameters": copy.deepcopy(extended_codec["localParameters"]),
            "rtcpFeedback": copy.deepcopy(extended_codec["rtcpFeedback"]),
        }
        if "channels" in extended_codec:
            codec["channels"] = extended_codec["channels"]
        codecs.append(codec)

        if extended_codec.get("remoteRtxPayloadType") is None:
            continue

        codecs.append(
            {
                "mimeType": f"{extended_codec['kind']}/rtx",
                "kind": extended_codec["kind"],
                "preferredPayloadType": extended_codec["remoteRtxPayloadType"],
                "clockRate": extended_codec["clockRate"],
                "parameters": {"apt": extended_codec["remotePayloadType"]},
                "rtcpFeedback": [],
            }
        )

    header_extensions = [
        {
            "kind": ext["kind"],
            "uri": ext["uri"],
            "preferredId": ext["recvId"],
            "preferredEncrypt": ext["encrypt"],
            "direction": ext["direction"],
        }
        for ext in extended_rtp_capabilities["headerExtensions"]
        if ext.get("direction") in ("sendrecv", "recvonly")
    ]

    return {"codecs": codecs, "headerExtensions": header_extensions}


def _sending_parameters(
    kind: str, extended_rtp_capabilities: dict, parameters_key: str
) -> dict:
    rtp_parameters: dict = {
        "mid": None,
        "codecs": [],
        "headerExtensions": [],
        "encodings": [],
        "rtcp": {},
    }

    extended_codec = _first(
        extended_rtp_capabilities["codecs"], lambda c: c["kind"] == kind
    )
    # A single media codec plus an optional RTX codec.
    if extended_codec is not None:
        codec = {
            "mimeType": extended_codec["mimeType"],
            "payloadType": extended_codec["localPayloadType"],
            "clockRate": extended_codec["clockRate"],
            "parameters": copy.deepcopy(extended_codec[parameters_key]),
            "rtcpFeedback": copy.deepcopy(extended_codec["rtcpFeedback"]),
        }
        if "channels" in extended_codec:
            codec["channels"] = extended_codec["channels"]
        rtp_parameters["codecs"].append(codec)

        if extended_codec.get("localRtxPayloadType") is not None:
            rtp_parameters["codecs"].append(
                {
                    "mimeType": f"{extended_codec['kind']}/rtx",
                    "payloadType": extended_codec["localRtxPayloadType"],
                    "clockRate": extended_codec["clockRate"],
                    "parameters": {"apt": extended_codec["localPayloadType"]},
                    "rtcpFeedback": [],
                }
            )

    rtp_parameters["headerExtensions"] = [
        {
            "uri": ext["uri"],
            "id": ext["sendId"],
            "encrypt": ext["encrypt"],
            "parameters": {},
        }
        for ext in extended_rtp_capabilities["headerExtensions"]
        if ext["kind"] == kind and ext.get("direction") in ("sendrecv", "sendonly")
    ]

    return rtp_parameters


def get_sending_rtp_parameters(kind: str, extended_rtp_capabilities: dict) -> dict:
    """Build RTP parameters of the given kind for sending media.

    Only the first media codec of the kind is used; mid, encodings and rtcp
    are left empty.
    """
    return _sending_parameters(kind, extended_rtp_capabilities, "localParameters")


def _strip_feedback(codecs: list, types: frozenset) -> None:
    for codec in codecs:
        codec["rtcpFeedback"] = [
            fb for fb in codec["rtcpFeedback"] if fb["type"] not in types
        ]


def get_sending_remote_rtp_parameters(
    kind: str, extended_rtp_capabilities: dict
) -> dict:
    """Build RTP parameters of the given kind as the remote side sees them.

    RTCP feedback is reduced to Transport-CC if its header extension is
    negotiated, to REMB if abs-send-time is, and to neither otherwise.
    """
    rtp_parameters = _sending_parameters(
        kind, extended_rtp_capabilities, "remoteParameters"
    )
    uris = {ext["uri"] for ext in rtp_parameters["headerExtensions"]}

    if _TRANSPORT_CC_URI in uris:
        removed = frozenset({"goog-remb"})
    elif _ABS_SEND_TIME_URI in uris:
        removed = frozenset({"transport-cc"})
    else:
        removed = frozenset({"transport-cc", "goog-remb"})

    _strip_feedback(rtp_parameters["codecs"], removed)
    return rtp_parameters


def generate_probator_rtp_parameters(video_rtp_parameters: dict) -> dict:
    """Create RTP parameters for the RTP probator Consumer.

    The given parameters are validated on a copy and are left untouched.
    """
    validated = copy.deepcopy(video_rtp_parameters)
    validate_rtp_parameters(validated)

    if not validated["codecs"]:
        raise MediasoupClientError("no codecs in video RTP parameters")

    return {
        "mid": PROBATOR_MID,
        "codecs": [validated["codecs"][0]],
        "headerExtensions": [
            ext
            for ext in validated["headerExtensions"]
            if ext["uri"] in (_ABS_SEND_TIME_URI, _TRANSPORT_CC_URI)
        ],
        "encodings": [{"ssrc": PROBATOR_SSRC}],
        "rtcp": {"cname": "probator"},
    }


def can_send(kind: str, extended_rtp_capabilities: dict) -> bool:
    """Whether media of the given kind can be sent."""
    return any(c["kind"] == kind for c in extended_rtp_capabilities["codecs"])


def can_receive(rtp_parameters: dict, extended_rtp_capabilities: dict) -> bool:
    """Whether the given RTP parameters can be received.

    The parameters are validated in place.
    """
    validate_rtp_parameters(rtp_parameters)

    if not rtp_parameters["codecs"]:
        return False

    payload_type = rtp_parameters["codecs"][0]["payloadType"]
    return any(
        c.get("remotePayloadType") == payload_type
        for c in extended_rtp_capabilities["codecs"]
    )