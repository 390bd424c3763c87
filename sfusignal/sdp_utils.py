"""Helpers that read from and write to parsed SDP objects.

Session and media objects are plain dicts shaped like the output of an SDP
parser: ``media``, ``rtp``, ``fmtp``, ``rtcpFb``, ``ext``, ``ssrcs``,
``ssrcGroups`` and so on.
"""

from __future__ import annotations

import itertools
import re
from typing import Any

from sfusignal.rtp_validation import MediasoupClientError

__all__ = [
    "parse_params",
    "extract_rtp_capabilities",
    "extract_dtls_parameters",
    "add_legacy_simulcast",
    "get_cname",
    "get_rtp_encodings",
    "apply_codec_parameters",
]

_INT_RE = re.compile(r"[+-]?\d+")
_FLOAT_RE = re.compile(r"[+-]?(?:\d+\.\d*|\.\d+)(?:[eE][+-]?\d+)?")

_SETUP_TO_ROLE = {
    "active": "client",
    "passive": "server",
    "actpass": "auto",
}

_UINT32_MASK = 0xFFFFFFFF


def _convert_value(value: str) -> Any:
    if _INT_RE.fullmatch(value):
        return int(value)
    if _FLOAT_RE.fullmatch(value):
        return float(value)
    return value


def parse_params(config: str | None) -> dict:
    """Parse an fmtp config such as ``minptime=10;useinbandfec=1``.

    Integer and decimal values become numbers, a key without a value maps
    to ``None``.
    """
    params: dict = {}
    if not config:
        return params

    for item in config.split(";"):
        item = item.strip()
        if not item:
            continue
        key, sep, value = item.partition("=")
        key = key.strip()
        if not key:
            continue
        params[key] = _convert_value(value.strip()) if sep else None
    return params


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, float):
        return format(value, "g")
    if isinstance(value, int):
        return str(value)
    return ""


def _write_params(params: dict) -> str:
    return ";".join(
        f"{key}={_format_value(value)}" for key, value in sorted(params.items())
    )


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def extract_rtp_capabilities(sdp_object: dict) -> dict:
    """Build RTP capabilities from the first audio and video sections.

    Codecs are returned ordered by payload type.
    """
    codecs_by_payload: dict[int, dict] = {}
    header_extensions: list[dict] = []
    seen_kinds: set[str] = set()

    for media in sdp_object.get("media", []):
        kind = media.get("type")
        if kind not in ("audio", "video") or kind in seen_kinds:
            continue
        seen_kinds.add(kind)

        for rtp in media.get("rtp", []):
            codec: dict = {
                "kind": kind,
                "mimeType": f"{kind}/{rtp['codec']}",
                "preferredPayloadType": rtp["payload"],
                "clockRate": rtp["rate"],
                "parameters": {},
                "rtcpFeedback": [],
            }
            if kind == "audio":
                channels = _to_int(rtp.get("encoding"))
                codec["channels"] = channels if channels is not None else 1
            codecs_by_payload[rtp["payload"]] = codec

        for fmtp in media.get("fmtp", []):
            codec = codecs_by_payload.get(fmtp["payload"])
            if codec is None:
                continue
            parameters = parse_params(fmtp.get("config"))
            # profile-id is an integer in RTP codec parameters.
            profile_id = parameters.get("profile-id")
            if isinstance(profile_id, str):
                parameters["profile-id"] = int(profile_id)
            codec["parameters"] = parameters

        for fb in media.get("rtcpFb", []):
            payload = _to_int(fb.get("payload"))
            codec = codecs_by_payload.get(payload) if payload is not None else None
            if codec is None:
                continue
            feedback = {"type": fb["type"]}
            if "subtype" in fb:
                feedback["parameter"] = fb["subtype"]
            codec["rtcpFeedback"].append(feedback)

        header_extensions.extend(
            {"kind": kind, "uri": ext["uri"], "preferredId": ext["value"]}
            for ext in media.get("ext", [])
        )

    return {
        "headerExtensions": header_extensions,
        "codecs": [codecs_by_payload[pt] for pt in sorted(codecs_by_payload)],
        "fecMechanisms": [],
    }


def extract_dtls_parameters(sdp_object: dict) -> dict:
    """Read the DTLS role and fingerprint of the first active ICE section."""
    media = next(
        (
            m
            for m in sdp_object.get("media", [])
            if "iceUfrag" in m and m.get("port") != 0
        ),
        {},
    )

    fingerprint = media.get("fingerprint") or sdp_object.get("fingerprint") or {}
    role = _SETUP_TO_ROLE.get(media.get("setup", ""), "")

    return {
        "role": role,
        "fingerprints": [
            {"algorithm": fingerprint.get("type"), "value": fingerprint.get("hash")}
        ],
    }


def add_legacy_simulcast(offer_media_object: dict, num_streams: int) -> None:
    """Rewrite the SSRC lines of a media object for legacy (SIM) simulcast."""
    if num_streams <= 1:
        return

    ssrc_lines = list(offer_media_object.get("ssrcs", []))

    msid_line = next(
        (line for line in ssrc_lines if line.get("attribute") == "msid"), None
    )
    if msid_line is None:
        raise MediasoupClientError("a=ssrc line with msid information not found")

    stream_id, track_id = msid_line["value"].split(" ")[:2]
    first_ssrc = msid_line["id"]
    first_rtx_ssrc = 0

    for group in offer_media_object.get("ssrcGroups", []):
        if not isinstance(group.get("semantics"), str):
            continue
        if not isinstance(group.get("ssrcs"), str):
            continue
        ids = group["ssrcs"].split(" ")
        if int(ids[0]) == first_ssrc:
            first_rtx_ssrc = int(ids[1])
            break

    cname_line = next(
        (
            line
            for line in ssrc_lines
            if line.get("attribute") == "cname"
            and isinstance(line.get("id"), int)
            and line["id"] == first_ssrc
        ),
        None,
    )
    if cname_line is None:
        raise MediasoupClientError("CNAME line not found")

    cname = cname_line["value"]
    ssrcs = [(first_ssrc + i) & _UINT32_MASK for i in range(num_streams)]
    rtx_ssrcs = (
        [(first_rtx_ssrc + i) & _UINT32_MASK for i in range(num_streams)]
        if first_rtx_ssrc
        else []
    )
    msid = f"{stream_id} {track_id}"

    groups = [{"semantics": "SIM", "ssrcs": " ".join(str(s) for s in ssrcs)}]
    lines: list[dict] = []

    for ssrc in ssrcs:
        lines.append({"id": ssrc, "attribute": "cname", "value": cname})
        lines.append({"id": ssrc, "attribute": "msid", "value": msid})

    for ssrc, rtx_ssrc in zip(ssrcs, rtx_ssrcs):
        groups.append({"semantics": "FID", "ssrcs": f"{ssrc} {rtx_ssrc}"})
        lines.append({"id": rtx_ssrc, "attribute": "cname", "value": cname})
        lines.append({"id": rtx_ssrc, "attribute": "msid", "value": msid})

    offer_media_object["ssrcGroups"] = groups
    offer_media_object["ssrcs"] = lines


def get_cname(offer_media_object: dict) -> str:
    """Value of the first attribute line under the ``ssrc`` key, or ``""``."""
    lines = offer_media_object.get("ssrc")
    if lines is None:
        return ""

    line = next(
        (line for line in lines if isinstance(line.get("attribute"), str)), None
    )
    if line is None:
        return ""
    return line["value"]


def get_rtp_encodings(offer_media_object: dict) -> list[dict]:
    """Build RTP encodings from SSRC lines, in their order, pairing RTX SSRCs."""
    ids = [line["id"] for line in offer_media_object.get("ssrcs", [])]
    if not ids:
        raise MediasoupClientError("no a=ssrc lines found")

    # Collapse runs of the same SSRC.
    ssrcs = [ssrc for ssrc, _ in itertools.groupby(ids)]
    ssrc_to_rtx: dict[int, int] = {}

    for group in offer_media_object.get("ssrcGroups", []):
        if group["semantics"] != "FID":
            continue
        parts = group["ssrcs"].split(" ")
        ssrc, rtx_ssrc = int(parts[0]), int(parts[1])
        ssrcs = [s for s in ssrcs if s != rtx_ssrc]
        ssrc_to_rtx[ssrc] = rtx_ssrc

    encodings = []
    for ssrc in ssrcs:
        encoding: dict = {"ssrc": ssrc}
        if ssrc in ssrc_to_rtx:
            encoding["rtx"] = {"ssrc": ssrc_to_rtx[ssrc]}
        encodings.append(encoding)
    return encodings


def apply_codec_parameters(offer_rtp_parameters: dict, answer_media_object: dict) -> None:
    """Carry Opus sprop-stereo of the offer into the answer's fmtp as stereo."""
    for codec in offer_rtp_parameters.get("codecs", []):
        mime_type = codec["mimeType"].lower()
        if mime_type != "audio/opus":
            continue

        payload_type = codec["payloadType"]
        if not any(
            rtp.get("payload") == payload_type
            for rtp in answer_media_object.get("rtp", [])
        ):
            continue

        fmtps = answer_media_object.setdefault("fmtp", [])
        fmtp = next((f for f in fmtps if f.get("payload") == payload_type), None)
        if fmtp is None:
            fmtp = {"payload": payload_type, "config": ""}
            fmtps.append(fmtp)

        parameters = parse_params(fmtp.get("config"))

        sprop_stereo = codec.get("parameters", {}).get("sprop-stereo")
        if isinstance(sprop_stereo, bool):
            parameters["stereo"] = 1 if sprop_stereo else 0

        fmtp["config"] = _write_params(parameters)