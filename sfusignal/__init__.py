"""RTP negotiation, parameter validation and remote SDP building for SFU clients."""

__version__ = "0.1.0"