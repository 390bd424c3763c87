"""Validation of RTP capabilities and parameters.

The validators work on plain dicts and lists, fill in missing optional
fields with their defaults in place and raise ``MediasoupTypeError`` on
invalid input.
"""

from __future__ import annotations

import re
from typing import Any

__all__ = [
    "MediasoupClientError",
    "MediasoupTypeError",
    "validate_rtp_capabilities",
    "validate_rtp_codec_capability",
    "validate_rtcp_feedback",
    "validate_rtp_header_extension",
    "validate_rtp_parameters",
    "validate_rtp_codec_parameters",
    "validate_rtp_header_extension_parameters",
    "validate_rtp_encoding_parameters",
    "validate_rtcp_parameters",
]

_MIME_TYPE_RE = re.compile(r"(audio|video)/(.+)", re.IGNORECASE)


class MediasoupClientError(Exception):
    """Base error for the package."""


class MediasoupTypeError(MediasoupClientError, TypeError):
    """Raised when given data has a wrong shape or type."""


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_nonempty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _ensure_list(obj: dict, key: str, error: str) -> list:
    """Return obj[key] as a list, creating an empty one if absent."""
    if key not in obj:
        obj[key] = []
    elif not isinstance(obj[key], list):
        raise MediasoupTypeError(error)
    return obj[key]


def _match_mime_type(codec: dict) -> re.Match:
    mime_type = codec.get("mimeType")
    if not isinstance(mime_type, str):
        raise MediasoupTypeError("missing codec.mimeType")
    match = _MIME_TYPE_RE.fullmatch(mime_type)
    if match is None:
        raise MediasoupTypeError("invalid codec.mimeType")
    return match


def _normalize_channels(codec: dict, kind: str) -> None:
    if kind == "audio":
        if not _is_int(codec.get("channels")):
            codec["channels"] = 1
    else:
        codec.pop("channels", None)


def _validate_codec_common(codec: dict) -> None:
    """Validate parameters and rtcpFeedback shared by capabilities and parameters."""
    if not isinstance(codec.get("parameters"), dict):
        codec["parameters"] = {}

    for key, value in codec["parameters"].items():
        if not isinstance(value, str) and not _is_number(value) and value is not None:
            raise MediasoupTypeError("invalid codec parameter")
        if key == "apt" and not _is_int(value):
            raise MediasoupTypeError("invalid codec apt parameter")

    if not isinstance(codec.get("rtcpFeedback"), list):
        codec["rtcpFeedback"] = []

    for fb in codec["rtcpFeedback"]:
        validate_rtcp_feedback(fb)


def validate_rtp_capabilities(caps: dict) -> None:
    """Validate RtpCapabilities."""
    if not isinstance(caps, dict):
        raise MediasoupTypeError("caps is not an object")

    for codec in _ensure_list(caps, "codecs", "caps.codecs is not an array"):
        validate_rtp_codec_capability(codec)

    for ext in _ensure_list(
        caps, "headerExtensions", "caps.headerExtensions is not an array"
    ):
        validate_rtp_header_extension(ext)


def validate_rtp_codec_capability(codec: dict) -> None:
    """Validate RtpCodecCapability; sets ``kind`` from the mime type."""
    if not isinstance(codec, dict):
        raise MediasoupTypeError("codec is not an object")

    match = _match_mime_type(codec)
    codec["kind"] = match.group(1)

    if "preferredPayloadType" in codec and not _is_int(codec["preferredPayloadType"]):
        raise MediasoupTypeError("invalid codec.preferredPayloadType")

    if not _is_int(codec.get("clockRate")):
        raise MediasoupTypeError("missing codec.clockRate")

    _normalize_channels(codec, codec["kind"])
    _validate_codec_common(codec)


def validate_rtcp_feedback(fb: dict) -> None:
    """Validate RtcpFeedback."""
    if not isinstance(fb, dict):
        raise MediasoupTypeError("fb is not an object")

    if not isinstance(fb.get("type"), str):
        raise MediasoupTypeError("missing fb.type")

    if not isinstance(fb.get("parameter"), str):
        fb["parameter"] = ""


def validate_rtp_header_extension(ext: dict) -> None:
    """Validate RtpHeaderExtension."""
    if not isinstance(ext, dict):
        raise MediasoupTypeError("ext is not an object")

    kind = ext.get("kind")
    if not isinstance(kind, str):
        raise MediasoupTypeError("missing ext.kind")
    if kind not in ("audio", "video"):
        raise MediasoupTypeError("invalid ext.kind")

    if not _is_nonempty_str(ext.get("uri")):
        raise MediasoupTypeError("missing ext.uri")

    if not _is_int(ext.get("preferredId")):
        raise MediasoupTypeError("missing ext.preferredId")

    if "preferredEncrypt" not in ext:
        ext["preferredEncrypt"] = False
    elif not isinstance(ext["preferredEncrypt"], bool):
        raise MediasoupTypeError("invalid ext.preferredEncrypt")

    if "direction" not in ext:
        ext["direction"] = "sendrecv"
    elif not isinstance(ext["direction"], str):
        raise MediasoupTypeError("invalid ext.direction")


def validate_rtp_parameters(params: dict) -> None:
    """Validate RtpParameters."""
    if not isinstance(params, dict):
        raise MediasoupTypeError("params is not an object")

    if "mid" in params and not _is_nonempty_str(params["mid"]):
        raise MediasoupTypeError("params.mid is not a string")

    codecs = params.get("codecs")
    if not isinstance(codecs, list):
        raise MediasoupTypeError("missing params.codecs")
    for codec in codecs:
        validate_rtp_codec_parameters(codec)

    for ext in _ensure_list(
        params, "headerExtensions", "params.headerExtensions is not an array"
    ):
        validate_rtp_header_extension_parameters(ext)

    for encoding in _ensure_list(
        params, "encodings", "params.encodings is not an array"
    ):
        validate_rtp_encoding_parameters(encoding)

    if "rtcp" not in params:
        params["rtcp"] = {}
    elif not isinstance(params["rtcp"], dict):
        raise MediasoupTypeError("params.rtcp is not an object")

    validate_rtcp_parameters(params["rtcp"])


def validate_rtp_codec_parameters(codec: dict) -> None:
    """Validate RtpCodecParameters."""
    if not isinstance(codec, dict):
        raise MediasoupTypeError("codec is not an object")

    match = _match_mime_type(codec)

    if not _is_int(codec.get("payloadType")):
        raise MediasoupTypeError("missing codec.payloadType")

    if not _is_int(codec.get("clockRate")):
        raise MediasoupTypeError("missing codec.clockRate")

    _normalize_channels(codec, match.group(1))
    _validate_codec_common(codec)


def validate_rtp_header_extension_parameters(ext: dict) -> None:
    """Validate RtpHeaderExtensionParameters."""
    if not isinstance(ext, dict):
        raise MediasoupTypeError("ext is not an object")

    if not _is_nonempty_str(ext.get("uri")):
        raise MediasoupTypeError("missing ext.uri")

    if not _is_int(ext.get("id")):
        raise MediasoupTypeError("missing ext.id")

    if "encrypt" not in ext:
        ext["encrypt"] = False
    elif not isinstance(ext["encrypt"], bool):
        raise MediasoupTypeError("invalid ext.encrypt")

    if not isinstance(ext.get("parameters"), dict):
        ext["parameters"] = {}

    for value in ext["parameters"].values():
        if not isinstance(value, str) and not _is_number(value):
            raise MediasoupTypeError("invalid header extension parameter")


def validate_rtp_encoding_parameters(encoding: dict) -> None:
    """Validate RtpEncodingParameters."""
    if not isinstance(encoding, dict):
        raise MediasoupTypeError("encoding is not an object")

    if "ssrc" in encoding and not _is_int(encoding["ssrc"]):
        raise MediasoupTypeError("invalid encoding.ssrc")

    if "rid" in encoding and not _is_nonempty_str(encoding["rid"]):
        raise MediasoupTypeError("invalid encoding.rid")

    if "rtx" in encoding:
        rtx = encoding["rtx"]
        if not isinstance(rtx, dict):
            raise MediasoupTypeError("invalid encoding.rtx")
        if not _is_int(rtx.get("ssrc")):
            raise MediasoupTypeError("missing encoding.rtx.ssrc")

    if not isinstance(encoding.get("dtx"), bool):
        encoding["dtx"] = False

    if "scalabilityMode" in encoding and not _is_nonempty_str(
        encoding["scalabilityMode"]
    ):
        raise MediasoupTypeError("invalid encoding.scalabilityMode")


def validate_rtcp_parameters(rtcp: dict) -> None:
    """Validate RtcpParameters."""
    if not isinstance(rtcp, dict):
        raise MediasoupTypeError("rtcp is not an object")

    if "cname" in rtcp and not isinstance(rtcp["cname"], str):
        raise MediasoupTypeError("invalid rtcp.cname")

    if not isinstance(rtcp.get("reducedSize"), bool):
        rtcp["reducedSize"] = True