"""Media sections (SDP m= sections) of a remote session description.

A media section is kept as a plain dict shaped like a parsed SDP media
object: ``rtp``, ``fmtp``, ``rtcpFb``, ``ext``, ``ssrcs`` and so on.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Iterable

from sfusignal.rtp_validation import MediasoupClientError

__all__ = ["MediaSection", "AnswerMediaSection", "OfferMediaSection"]

_MIME_PREFIX_RE = re.compile(r"^(audio|video)/", re.IGNORECASE)

_DTLS_ROLE_TO_SETUP = {
    "client": "active",
    "server": "passive",
    "auto": "actpass",
}

_VIDEO_BITRATE_MIME_TYPES = frozenset(
    {"video/vp8", "video/vp9", "video/h264", "video/h265"}
)

_VIDEO_BITRATE_OPTIONS = (
    ("videoGoogleStartBitrate", "x-google-start-bitrate"),
    ("videoGoogleMaxBitrate", "x-google-max-bitrate"),
    ("videoGoogleMinBitrate", "x-google-min-bitrate"),
)

# Codec options that set a flag on both the offer and the answer codec.
_OPUS_FLAG_OPTIONS = (
    ("opusStereo", "sprop-stereo", "stereo"),
    ("opusFec", "useinbandfec", "useinbandfec"),
    ("opusDtx", "usedtx", "usedtx"),
)

_OPUS_VALUE_OPTIONS = (
    ("opusMaxPlaybackRate", "maxplaybackrate"),
    ("opusPtime", "ptime"),
)

_REMOVED_ON_DISABLE = ("ext", "ssrcs", "ssrcGroups", "simulcast", "rids")


def _codec_name(codec: dict) -> str:
    return _MIME_PREFIX_RE.sub("", codec["mimeType"], count=1)


def _format_param_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, float):
        return format(value, "g")
    if isinstance(value, int):
        return str(value)
    return ""


def _fmtp_config(parameters: dict) -> str:
    """Serialize codec parameters as an fmtp config, keys in sorted order."""
    return ";".join(
        f"{key}={_format_param_value(value)}"
        for key, value in sorted(parameters.items())
    )


def _rtp_entry(codec: dict) -> dict:
    rtp = {
        "payload": codec["payloadType"],
        "codec": _codec_name(codec),
        "rate": codec["clockRate"],
    }
    channels = codec.get("channels")
    if channels is not None and channels > 1:
        rtp["encoding"] = channels
    return rtp


class MediaSection:
    """Common part of offer and answer media sections."""

    def __init__(self, ice_parameters: dict, ice_candidates: Iterable[dict]) -> None:
        self._media_object: dict = {}
        self.set_ice_parameters(ice_parameters)

        candidates = []
        for candidate in ice_candidates:
            # rtcp-mux is mandatory, so the component is always RTP (1).
            entry = {
                "component": 1,
                "foundation": candidate["foundation"],
                "ip": candidate["ip"],
                "port": candidate["port"],
                "priority": candidate["priority"],
                "transport": candidate["protocol"],
                "type": candidate["type"],
            }
            if "tcpType" in candidate:
                entry["tcptype"] = candidate["tcpType"]
            candidates.append(entry)

        self._media_object["candidates"] = candidates
        self._media_object["endOfCandidates"] = "end-of-candidates"
        self._media_object["iceOptions"] = "renomination"

    @property
    def mid(self) -> str:
        """The media section's mid."""
        return self._media_object["mid"]

    @property
    def closed(self) -> bool:
        """Whether the section is closed (port zero)."""
        return self._media_object.get("port") == 0

    @property
    def media_object(self) -> dict:
        """A copy of the SDP media object."""
        return copy.deepcopy(self._media_object)

    def set_ice_parameters(self, ice_parameters: dict) -> None:
        """Set the ICE username fragment and password."""
        self._media_object["iceUfrag"] = ice_parameters["usernameFragment"]
        self._media_object["icePwd"] = ice_parameters["password"]

    def set_dtls_role(self, role: str) -> None:
        """Set the a=setup attribute for the given DTLS role."""
        setup = _DTLS_ROLE_TO_SETUP.get(role)
        if setup is not None:
            self._media_object["setup"] = setup

    def disable(self) -> None:
        """Make the section inactive, dropping its RTP-specific attributes."""
        self._media_object["direction"] = "inactive"
        for key in _REMOVED_ON_DISABLE:
            self._media_object.pop(key, None)

    def close(self) -> None:
        """Close the section: inactive with port zero."""
        self.disable()
        self._media_object["port"] = 0
        self._media_object.pop("extmapAllowMixed", None)


class AnswerMediaSection(MediaSection):
    """A media section answering a local offer."""

    def __init__(
        self,
        ice_parameters: dict,
        ice_candidates: Iterable[dict],
        dtls_parameters: dict,
        sctp_parameters: dict | None,
        offer_media_object: dict,
        offer_rtp_parameters: dict,
        answer_rtp_parameters: dict,
        codec_options: dict | None,
    ) -> None:
        super().__init__(ice_parameters, ice_candidates)

        kind = offer_media_object["type"]
        media = self._media_object
        media["mid"] = offer_media_object["mid"]
        media["type"] = kind
        media["protocol"] = offer_media_object["protocol"]
        media["connection"] = {"ip": "127.0.0.1", "version": 4}
        media["port"] = 7

        self.set_dtls_role(dtls_parameters["role"])

        if kind in ("audio", "video"):
            self._fill_rtp(
                offer_media_object,
                offer_rtp_parameters,
                answer_rtp_parameters,
                codec_options,
            )
        elif kind == "application":
            media["payloads"] = "webrtc-datachannel"
            media["sctpPort"] = sctp_parameters["port"]
            media["maxMessageSize"] = sctp_parameters["maxMessageSize"]

    def _fill_rtp(
        self,
        offer_media_object: dict,
        offer_rtp_parameters: dict,
        answer_rtp_parameters: dict,
        codec_options: dict | None,
    ) -> None:
        media = self._media_object
        media["direction"] = "recvonly"
        media["rtp"] = []
        media["rtcpFb"] = []
        media["fmtp"] = []

        codecs = answer_rtp_parameters["codecs"]

        for codec in codecs:
            media["rtp"].append(_rtp_entry(codec))

            codec_parameters = copy.deepcopy(codec["parameters"])
            if codec_options:
                self._apply_codec_options(
                    codec, codec_parameters, offer_rtp_parameters, codec_options
                )

            config = _fmtp_config(codec_parameters)
            if config:
                media["fmtp"].append({"payload": codec["payloadType"], "config": config})

            media["rtcpFb"].extend(
                {
                    "payload": codec["payloadType"],
                    "type": fb["type"],
                    "subtype": fb.get("parameter"),
                }
                for fb in codec["rtcpFeedback"]
            )

        media["payloads"] = " ".join(str(codec["payloadType"]) for codec in codecs)

        # Don't add a header extension if not present in the offer.
        offer_uris = {ext["uri"] for ext in offer_media_object.get("ext", [])}
        media["ext"] = [
            {"uri": ext["uri"], "value": ext["id"]}
            for ext in answer_rtp_parameters["headerExtensions"]
            if ext["uri"] in offer_uris
        ]

        # Allow both 1 byte and 2 bytes length header extensions.
        if isinstance(offer_media_object.get("extmapAllowMixed"), str):
            media["extmapAllowMixed"] = "extmap-allow-mixed"

        simulcast = offer_media_object.get("simulcast")
        rids = offer_media_object.get("rids")
        if isinstance(simulcast, dict) and isinstance(rids, list):
            media["simulcast"] = {"dir1": "recv", "list1": simulcast.get("list1")}
            media["rids"] = [
                {"id": rid["id"], "direction": "recv"}
                for rid in rids
                if rid.get("direction") == "send"
            ]

        media["rtcpMux"] = "rtcp-mux"
        media["rtcpRsize"] = "rtcp-rsize"

    @staticmethod
    def _apply_codec_options(
        codec: dict,
        codec_parameters: dict,
        offer_rtp_parameters: dict,
        codec_options: dict,
    ) -> None:
        offer_codec = next(
            (
                c
                for c in offer_rtp_parameters["codecs"]
                if c["payloadType"] == codec["payloadType"]
            ),
            None,
        )
        if offer_codec is None:
            raise MediasoupClientError(
                f"no offer codec with payload type {codec['payloadType']}"
            )

        mime_type = codec["mimeType"].lower()

        if mime_type == "audio/opus":
            for option, offer_key, answer_key in _OPUS_FLAG_OPTIONS:
                if option in codec_options:
                    flag = 1 if codec_options[option] else 0
                    offer_codec["parameters"][offer_key] = flag
                    codec_parameters[answer_key] = flag
            for option, key in _OPUS_VALUE_OPTIONS:
                if option in codec_options:
                    codec_parameters[key] = codec_options[option]
        elif mime_type in _VIDEO_BITRATE_MIME_TYPES:
            for option, key in _VIDEO_BITRATE_OPTIONS:
                if option in codec_options:
                    codec_parameters[key] = codec_options[option]

    def set_dtls_role(self, role: str) -> None:
        """Set a=setup: client is active, server passive, auto actpass."""
        setup = _DTLS_ROLE_TO_SETUP.get(role)
        if setup is not None:
            self._media_object["setup"] = setup


class OfferMediaSection(MediaSection):
    """A media section offering remote media to the local endpoint."""

    def __init__(
        self,
        ice_parameters: dict,
        ice_candidates: Iterable[dict],
        dtls_parameters: dict | None,
        sctp_parameters: dict | None,
        mid: str,
        kind: str,
        offer_rtp_parameters: dict | None,
        stream_id: str,
        track_id: str,
    ) -> None:
        super().__init__(ice_parameters, ice_candidates)

        media = self._media_object
        media["mid"] = mid
        media["type"] = kind
        media["protocol"] = (
            "UDP/TLS/RTP/SAVPF" if sctp_parameters is None else "UDP/DTLS/SCTP"
        )
        media["connection"] = {"ip": "127.0.0.1", "version": 4}
        media["port"] = 7
        media["setup"] = "actpass"

        if kind in ("audio", "video"):
            self._fill_rtp(offer_rtp_parameters, stream_id, track_id)
        elif kind == "application":
            media["payloads"] = "webrtc-datachannel"
            media["sctpPort"] = sctp_parameters["port"]
            media["maxMessageSize"] = sctp_parameters["maxMessageSize"]

    def _fill_rtp(self, offer_rtp_parameters: dict, stream_id: str, track_id: str) -> None:
        media = self._media_object
        media["direction"] = "sendonly"
        media["rtp"] = []
        media["rtcpFb"] = []
        media["fmtp"] = []

        codecs = offer_rtp_parameters["codecs"]

        for codec in codecs:
            media["rtp"].append(_rtp_entry(codec))

            config = _fmtp_config(codec["parameters"])
            if config:
                media["fmtp"].append({"payload": codec["payloadType"], "config": config})

            media["rtcpFb"].extend(
                {
                    "payload": codec["payloadType"],
                    "type": fb["type"],
                    "subtype": fb.get("parameter"),
                }
                for fb in codec["rtcpFeedback"]
            )

        media["payloads"] = " ".join(str(codec["payloadType"]) for codec in codecs)
        media["ext"] = [
            {"uri": ext["uri"], "value": ext["id"]}
            for ext in offer_rtp_parameters["headerExtensions"]
        ]
        media["rtcpMux"] = "rtcp-mux"
        media["rtcpRsize"] = "rtcp-rsize"

        encoding = offer_rtp_parameters["encodings"][0]
        ssrc = encoding["ssrc"]
        rtx = encoding.get("rtx")
        rtx_ssrc = rtx["ssrc"] if isinstance(rtx, dict) and "ssrc" in rtx else 0

        media["ssrcs"] = []
        media["ssrcGroups"] = []

        cname = offer_rtp_parameters.get("rtcp", {}).get("cname")
        if not isinstance(cname, str):
            return

        msid = f"{stream_id} {track_id}"
        for line_ssrc in (ssrc, rtx_ssrc) if rtx_ssrc else (ssrc,):
            media["ssrcs"].append({"id": line_ssrc, "attribute": "cname", "value": cname})
            media["ssrcs"].append({"id": line_ssrc, "attribute": "msid", "value": msid})

        if rtx_ssrc:
            # Associate original and retransmission SSRCs.
            media["ssrcGroups"].append(
                {"semantics": "FID", "ssrcs": f"{ssrc} {rtx_ssrc}"}
            )

    def set_dtls_role(self, role: str) -> None:
        """Keep a=setup:actpass, which an SDP offer must always carry."""
        self._media_object["setup"] = "actpass"