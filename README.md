# sfusignal

Client-side signaling helpers for talking to a Selective Forwarding Unit
(SFU) over WebRTC. The package works on plain Python dictionaries and lists
shaped like the JSON messages exchanged with the server, and covers:

- **RTP validation** (`sfusignal.rtp_validation`): RTP capabilities, codec
  capabilities, RTCP feedback, header extensions, RTP parameters, encodings
  and RTCP parameters.
- **Transport validation** (`sfusignal.transport_validation`): SCTP
  capabilities and parameters, SCTP stream parameters, ICE parameters and
  candidates, DTLS fingerprints and parameters, and producer codec options.
- **Capability negotiation** (`sfusignal.ortc`): matching local and remote
  RTP capabilities (including H264 profile-level-id and VP9 profile-id
  matching), deriving receive capabilities, building the RTP parameters used
  to send media, and checking whether a kind can be sent or received.
- **Remote SDP generation** (`sfusignal.remote_sdp`, `sfusignal.media_section`):
  building the session description that stands for the server side of a
  peer connection, including the BUNDLE group, disabled, closed and reused
  media sections, and data channel (SCTP) sections.
- **SDP helpers** (`sfusignal.sdp_utils`): parsing fmtp configs, pulling RTP
  capabilities, DTLS parameters and RTP encodings out of a parsed SDP,
  legacy simulcast (SIM/FID SSRC groups), and applying Opus stereo settings
  to an answer.

Validators fill in missing optional fields with their defaults in place and
raise `MediasoupTypeError` on invalid input.

## Installation

```
pip install .
```

No third-party libraries are required. To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

Negotiate capabilities and check what can be sent:

```python
from sfusignal.ortc import (
    get_extended_rtp_capabilities,
    get_sending_rtp_parameters,
    can_send,
)

extended = get_extended_rtp_capabilities(local_caps, router_caps)

if can_send("video", extended):
    params = get_sending_rtp_parameters("video", extended)
    print([codec["mimeType"] for codec in params["codecs"]])
```

`get_extended_rtp_capabilities` validates both capabilities in place and
keeps the codec order of the remote side.

Validate ICE and DTLS parameters received from the server:

```python
from sfusignal.transport_validation import (
    validate_ice_parameters,
    validate_dtls_parameters,
)

validate_ice_parameters(ice_parameters)    # sets iceLite to False if absent
validate_dtls_parameters(dtls_parameters)
```

Build a remote SDP for a receiving transport:

```python
from sfusignal.remote_sdp import RemoteSdp

remote_sdp = RemoteSdp(ice_parameters, ice_candidates, dtls_parameters, None)
remote_sdp.receive("0", "audio", consumer_rtp_parameters, "stream-0", "track-0")
sdp_object = remote_sdp.sdp_object
```

`sdp_object` is a copy of the session description as a dictionary. Use
`get_next_media_section_idx()` to find a closed section to reuse, and
`close_media_section(mid)` to close one (the first section is only
disabled, so the bundled transport stays up).

Extract details from an SDP that has already been parsed into a dictionary:

```python
from sfusignal.sdp_utils import extract_dtls_parameters, get_rtp_encodings

dtls = extract_dtls_parameters(session)
encodings = get_rtp_encodings(session["media"][0])
```

## What the package does not do

- It does not read or write SDP text. Session descriptions go in and come
  out as dictionaries; turning them into SDP lines, and parsing SDP lines
  into that layout, needs a separate SDP serialiser. Only fmtp config
  strings are parsed and written here (`parse_params`).
- It does not open peer connections, transports or media tracks; it only
  prepares the data exchanged with the server.
- It does not parse scalability mode strings (such as `L1T3`); encodings
  are only checked to carry a non-empty `scalabilityMode` string.

## Errors

All errors derive from `MediasoupClientError`, defined in
`sfusignal.rtp_validation`. Validation failures raise `MediasoupTypeError`,
which is also a `TypeError`.