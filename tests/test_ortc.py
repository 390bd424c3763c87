import copy

import pytest

from sfusignal.ortc import (
    can_receive,
    can_send,
    generate_probator_rtp_parameters,
    get_extended_rtp_capabilities,
    get_recv_rtp_capabilities,
    get_sending_remote_rtp_parameters,
    get_sending_rtp_parameters,
)
from sfusignal.rtp_validation import MediasoupClientError, MediasoupTypeError

TRANSPORT_CC = (
    "http://www.ietf.org/id/draft-holmer-rmcat-transport-wide-cc-extensions-01"
)
ABS_SEND_TIME = "http://www.webrtc.org/experiments/rtp-hdrext/abs-send-time"


def router_caps():
    return {
        "codecs": [
            {
                "mimeType": "audio/opus",
                "kind": "audio",
                "preferredPayloadType": 100,
                "clockRate": 48000,
                "channels": 2,
                "rtcpFeedback": [{"type": "transport-cc"}],
                "parameters": {"useinbandfec": 1, "foo": "bar"},
            },
            {
                "mimeType": "video/VP8",
                "kind": "video",
                "preferredPayloadType": 101,
                "clockRate": 90000,
                "rtcpFeedback": [
                    {"type": "nack"},
                    {"type": "nack", "parameter": "pli"},
                    {"type": "ccm", "parameter": "fir"},
                    {"type": "goog-remb"},
                    {"type": "transport-cc"},
                ],
                "parameters": {"x-google-start-bitrate": 1500},
            },
            {
                "mimeType": "video/rtx",
                "kind": "video",
                "preferredPayloadType": 102,
                "clockRate": 90000,
                "rtcpFeedback": [],
                "parameters": {"apt": 101},
            },
            {
                "mimeType": "video/H264",
                "kind": "video",
                "preferredPayloadType": 103,
                "clockRate": 90000,
                "rtcpFeedback": [
                    {"type": "nack"},
                    {"type": "nack", "parameter": "pli"},
                    {"type": "ccm", "parameter": "fir"},
                    {"type": "goog-remb"},
                    {"type": "transport-cc"},
                ],
                "parameters": {
                    "level-asymmetry-allowed": 1,
                    "packetization-mode": 1,
                    "profile-level-id": "42e01f",
                },
            },
            {
                "mimeType": "video/rtx",
                "kind": "video",
                "preferredPayloadType": 104,
                "clockRate": 90000,
                "rtcpFeedback": [],
                "parameters": {"apt": 103},
            },
        ],
        "headerExtensions": [
            {"kind": "audio", "uri": "urn:ietf:params:rtp-hdrext:sdes:mid", "preferredId": 1},
            {"kind": "video", "uri": "urn:ietf:params:rtp-hdrext:sdes:mid", "preferredId": 1},
            {"kind": "video", "uri": "urn:ietf:params:rtp-hdrext:sdes:rtp-stream-id", "preferredId": 2},
            {"kind": "audio", "uri": ABS_SEND_TIME, "preferredId": 4},
            {"kind": "video", "uri": ABS_SEND_TIME, "preferredId": 4},
            {"kind": "audio", "uri": "urn:ietf:params:rtp-hdrext:ssrc-audio-level", "preferredId": 10},
            {"kind": "video", "uri": "urn:3gpp:video-orientation", "preferredId": 11},
            {"kind": "video", "uri": "urn:ietf:params:rtp-hdrext:toffset", "preferredId": 12},
        ],
    }


@pytest.fixture
def extended():
    return get_extended_rtp_capabilities(router_caps(), router_caps())


# getExtendedCapabilities


def test_extended_caps_when_local_equals_remote(extended):
    codecs = extended["codecs"]
    assert len(codecs) == 3
    assert codecs[0]["mimeType"] == "audio/opus"
    assert codecs[1]["mimeType"] == "video/VP8"
    assert codecs[1]["remoteRtxPayloadType"] == 102
    assert codecs[1]["localRtxPayloadType"] == 102
    assert codecs[2]["mimeType"] == "video/H264"
    assert codecs[2]["remoteRtxPayloadType"] == 104
    assert codecs[2]["localRtxPayloadType"] == 104
    assert len(extended["headerExtensions"]) == 8


def test_extended_caps_when_local_is_subset():
    local_caps = router_caps()
    del local_caps["codecs"][1]

    extended = get_extended_rtp_capabilities(local_caps, router_caps())

    codecs = extended["codecs"]
    assert len(codecs) == 2
    assert codecs[0]["mimeType"] == "audio/opus"
    assert codecs[1]["mimeType"] == "video/H264"
    assert codecs[1]["remoteRtxPayloadType"] == 104
    assert codecs[1]["localRtxPayloadType"] == 104
    assert len(extended["headerExtensions"]) == 8


def test_extended_caps_codec_fields(extended):
    opus = extended["codecs"][0]
    assert opus["kind"] == "audio"
    assert opus["channels"] == 2
    assert opus["localPayloadType"] == 100
    assert opus["remotePayloadType"] == 100
    assert opus["localRtxPayloadType"] is None
    assert opus["rtcpFeedback"] == [{"type": "transport-cc", "parameter": ""}]
    assert "channels" not in extended["codecs"][1]


def test_extended_caps_invalid_caps_raise():
    with pytest.raises(MediasoupTypeError):
        get_extended_rtp_capabilities({"codecs": {}}, router_caps())


def test_extended_caps_mime_type_case_insensitive():
    local_caps = router_caps()
    local_caps["codecs"][0]["mimeType"] = "audio/OPUS"
    extended = get_extended_rtp_capabilities(local_caps, router_caps())
    assert extended["codecs"][0]["mimeType"] == "audio/OPUS"
    assert len(extended["codecs"]) == 3


def test_extended_caps_direction_is_mirrored():
    remote_caps = router_caps()
    remote_caps["headerExtensions"][0]["direction"] = "recvonly"
    remote_caps["headerExtensions"][1]["direction"] = "sendonly"
    remote_caps["headerExtensions"][2]["direction"] = "inactive"

    extended = get_extended_rtp_capabilities(router_caps(), remote_caps)

    directions = [ext["direction"] for ext in extended["headerExtensions"][:4]]
    assert directions == ["sendonly", "recvonly", "inactive", "sendrecv"]
    first = extended["headerExtensions"][0]
    assert first["sendId"] == 1
    assert first["recvId"] == 1
    assert first["encrypt"] is False


def test_h264_profile_mismatch_is_not_matched():
    remote_caps = router_caps()
    remote_caps["codecs"][3]["parameters"]["profile-level-id"] = "640c1f"
    extended = get_extended_rtp_capabilities(router_caps(), remote_caps)
    assert [c["mimeType"] for c in extended["codecs"]] == ["audio/opus", "video/VP8"]


def test_h264_packetization_mode_mismatch_is_not_matched():
    remote_caps = router_caps()
    remote_caps["codecs"][3]["parameters"]["packetization-mode"] = 0
    extended = get_extended_rtp_capabilities(router_caps(), remote_caps)
    assert len(extended["codecs"]) == 2


def test_h264_level_without_asymmetry_takes_minimum():
    local_caps = router_caps()
    remote_caps = router_caps()
    local_caps["codecs"][3]["parameters"]["level-asymmetry-allowed"] = 0
    remote_caps["codecs"][3]["parameters"]["profile-level-id"] = "42e00a"

    extended = get_extended_rtp_capabilities(local_caps, remote_caps)

    h264 = extended["codecs"][2]
    assert h264["localParameters"]["profile-level-id"] == "42e00a"
    assert local_caps["codecs"][3]["parameters"]["profile-level-id"] == "42e00a"
    assert remote_caps["codecs"][3]["parameters"]["profile-level-id"] == "42e00a"


def test_h264_level_with_asymmetry_takes_local_level():
    remote_caps = router_caps()
    remote_caps["codecs"][3]["parameters"]["profile-level-id"] = "42e00a"

    extended = get_extended_rtp_capabilities(router_caps(), remote_caps)

    assert extended["codecs"][2]["localParameters"]["profile-level-id"] == "42e01f"
    assert remote_caps["codecs"][3]["parameters"]["profile-level-id"] == "42e01f"


def test_h264_without_profile_level_id_is_not_matched():
    local_caps = router_caps()
    remote_caps = router_caps()
    del local_caps["codecs"][3]["parameters"]["profile-level-id"]
    del remote_caps["codecs"][3]["parameters"]["profile-level-id"]
    extended = get_extended_rtp_capabilities(local_caps, remote_caps)
    assert "video/H264" not in [c["mimeType"] for c in extended["codecs"]]


@pytest.mark.parametrize(
    ("local_profile", "remote_profile", "matched"),
    [(0, 0, True), (None, 0, True), (0, 2, False), ("2", 2, True)],
)
def test_vp9_profile_id_matching(local_profile, remote_profile, matched):
    def vp9(profile):
        codec = {
            "mimeType": "video/VP9",
            "preferredPayloadType": 105,
            "clockRate": 90000,
            "parameters": {},
        }
        if profile is not None:
            codec["parameters"]["profile-id"] = profile
        return codec

    extended = get_extended_rtp_capabilities(
        {"codecs": [vp9(local_profile)]}, {"codecs": [vp9(remote_profile)]}
    )
    assert (len(extended["codecs"]) == 1) is matched


# getRecvRtpCapabilities


def test_recv_caps_when_local_equals_remote(extended):
    recv = get_recv_rtp_capabilities(extended)
    assert [c["mimeType"] for c in recv["codecs"]] == [
        "audio/opus",
        "video/VP8",
        "video/rtx",
        "video/H264",
        "video/rtx",
    ]
    assert recv["codecs"][2]["parameters"] == {"apt": 101}
    assert recv["codecs"][2]["preferredPayloadType"] == 102
    assert recv["codecs"][4]["parameters"] == {"apt": 103}
    assert len(recv["headerExtensions"]) == 8


def test_recv_caps_when_local_is_subset():
    local_caps = router_caps()
    del local_caps["codecs"][1]
    extended = get_extended_rtp_capabilities(local_caps, router_caps())

    recv = get_recv_rtp_capabilities(extended)

    assert [c["mimeType"] for c in recv["codecs"]] == [
        "audio/opus",
        "video/H264",
        "video/rtx",
    ]


def test_recv_caps_skip_send_only_extensions():
    remote_caps = router_caps()
    remote_caps["headerExtensions"][0]["direction"] = "recvonly"
    extended = get_extended_rtp_capabilities(router_caps(), remote_caps)

    recv = get_recv_rtp_capabilities(extended)

    assert len(recv["headerExtensions"]) == 7
    assert recv["headerExtensions"][0]["kind"] == "video"


# getSendingRtpParameters


def test_sending_parameters_when_local_equals_remote(extended):
    audio = get_sending_rtp_parameters("audio", extended)
    assert len(audio["codecs"]) == 1
    assert audio["codecs"][0]["mimeType"] == "audio/opus"

    video = get_sending_rtp_parameters("video", extended)
    assert len(video["codecs"]) == 2
    assert video["codecs"][0]["mimeType"] == "video/VP8"
    assert video["codecs"][1]["mimeType"] == "video/rtx"
    assert video["codecs"][1]["parameters"] == {"apt": 101}


def test_sending_parameters_header_extensions(extended):
    video = get_sending_rtp_parameters("video", extended)
    assert [ext["id"] for ext in video["headerExtensions"]] == [1, 2, 4, 11, 12]
    assert video["headerExtensions"][0]["parameters"] == {}
    assert video["mid"] is None
    assert video["encodings"] == []
    assert video["rtcp"] == {}


def test_sending_parameters_use_local_and_remote_parameters():
    local_caps = router_caps()
    local_caps["codecs"][1]["parameters"] = {}
    extended = get_extended_rtp_capabilities(local_caps, router_caps())

    local = get_sending_rtp_parameters("video", extended)
    remote = get_sending_remote_rtp_parameters("video", extended)

    assert local["codecs"][0]["parameters"] == {}
    assert remote["codecs"][0]["parameters"] == {"x-google-start-bitrate": 1500}


def test_sending_remote_abs_send_time_keeps_remb(extended):
    video = get_sending_remote_rtp_parameters("video", extended)
    types = [fb["type"] for fb in video["codecs"][0]["rtcpFeedback"]]
    assert "goog-remb" in types
    assert "transport-cc" not in types


def test_sending_remote_transport_cc_drops_remb():
    caps = router_caps()
    caps["headerExtensions"].append(
        {"kind": "video", "uri": TRANSPORT_CC, "preferredId": 5}
    )
    extended = get_extended_rtp_capabilities(caps, copy.deepcopy(caps))

    video = get_sending_remote_rtp_parameters("video", extended)

    types = [fb["type"] for fb in video["codecs"][0]["rtcpFeedback"]]
    assert types == ["nack", "nack", "ccm", "transport-cc"]


def test_sending_remote_without_bwe_extensions_drops_both():
    caps = router_caps()
    caps["headerExtensions"] = [
        ext for ext in caps["headerExtensions"] if ext["uri"] != ABS_SEND_TIME
    ]
    extended = get_extended_rtp_capabilities(caps, copy.deepcopy(caps))

    video = get_sending_remote_rtp_parameters("video", extended)

    types = [fb["type"] for fb in video["codecs"][0]["rtcpFeedback"]]
    assert types == ["nack", "nack", "ccm"]


# generateProbatorRtpParameters


def test_probator_parameters():
    video_parameters = {
        "codecs": [
            {"mimeType": "video/VP8", "payloadType": 101, "clockRate": 90000},
            {
                "mimeType": "video/rtx",
                "payloadType": 102,
                "clockRate": 90000,
                "parameters": {"apt": 101},
            },
        ],
        "headerExtensions": [
            {"uri": ABS_SEND_TIME, "id": 4},
            {"uri": "urn:ietf:params:rtp-hdrext:toffset", "id": 12},
        ],
    }
    original = copy.deepcopy(video_parameters)

    probator = generate_probator_rtp_parameters(video_parameters)

    assert probator["mid"] == "probator"
    assert len(probator["codecs"]) == 1
    assert probator["codecs"][0]["mimeType"] == "video/VP8"
    assert probator["codecs"][0]["parameters"] == {}
    assert probator["headerExtensions"] == [
        {"uri": ABS_SEND_TIME, "id": 4, "encrypt": False, "parameters": {}}
    ]
    assert probator["encodings"] == [{"ssrc": 1234}]
    assert probator["rtcp"] == {"cname": "probator"}
    assert video_parameters == original


def test_probator_parameters_invalid_input_raises():
    with pytest.raises(MediasoupTypeError):
        generate_probator_rtp_parameters({"headerExtensions": []})


def test_probator_parameters_without_codecs_raises():
    with pytest.raises(MediasoupClientError):
        generate_probator_rtp_parameters({"codecs": []})


# canSend


def test_can_send_audio_and_video(extended):
    assert can_send("audio", extended)
    assert can_send("video", extended)


def test_cannot_send_audio_without_audio_codec(extended):
    del extended["codecs"][0]
    assert not can_send("audio", extended)
    assert can_send("video", extended)


def test_cannot_send_without_codecs(extended):
    extended["codecs"] = []
    assert not can_send("audio", extended)
    assert not can_send("video", extended)


# canReceive


def test_can_receive(extended):
    rtp_parameters = {
        "codecs": [
            {
                "mimeType": "audio/opus",
                "kind": "audio",
                "clockRate": 48000,
                "payloadType": 100,
                "channels": 2,
                "rtcpFeedback": [],
                "parameters": {"useinbandfec": 1},
            }
        ]
    }
    assert can_receive(rtp_parameters, extended)
    assert rtp_parameters["rtcp"] == {"reducedSize": True}


def test_cannot_receive_empty_parameters(extended):
    assert not can_receive({"codecs": []}, extended)


def test_cannot_receive_without_matching_payload_type(extended):
    rtp_parameters = {
        "codecs": [
            {
                "mimeType": "audio/opus",
                "kind": "audio",
                "clockRate": 48000,
                "payloadType": 96,
                "channels": 2,
                "rtcpFeedback": [],
                "parameters": {"useinbandfec": "1"},
            }
        ]
    }
    assert not can_receive(rtp_parameters, extended)


def test_can_receive_invalid_parameters_raise(extended):
    with pytest.raises(MediasoupTypeError):
        can_receive({"codecs": "nope"}, extended)