"""The remote session description built from the server's transport data.

The description is kept as a dict shaped like a parsed SDP session, with one
entry in ``media`` per media section and a single BUNDLE group holding the
mids of all sections that are not closed.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Iterable

from sfusignal.media_section import (
    AnswerMediaSection,
    MediaSection,
    OfferMediaSection,
)
from sfusignal.rtp_validation import MediasoupClientError

__all__ = ["MediaSectionIdx", "RemoteSdp"]


@dataclass(frozen=True)
class MediaSectionIdx:
    """Position for a new media section and the mid of a closed one it reuses."""

    idx: int
    reuse_mid: str = ""


class RemoteSdp:
    """Remote SDP made of offer and answer media sections."""

    def __init__(
        self,
        ice_parameters: dict,
        ice_candidates: Iterable[dict],
        dtls_parameters: dict,
        sctp_parameters: dict | None,
    ) -> None:
        self._ice_parameters = copy.deepcopy(ice_parameters)
        self._ice_candidates = copy.deepcopy(list(ice_candidates))
        self._dtls_parameters = copy.deepcopy(dtls_parameters)
        self._sctp_parameters = copy.deepcopy(sctp_parameters)

        self._media_sections: list[MediaSection] = []
        self._mid_to_index: dict[str, int] = {}
        self._first_mid = ""

        self._sdp_object: dict = {
            "version": 0,
            "origin": {
                "address": "0.0.0.0",
                "ipVer": 4,
                "netType": "IN",
                "sessionId": 10000,
                "sessionVersion": 0,
                "username": "sfusignal",
            },
            "name": "-",
            "timing": {"start": 0, "stop": 0},
            "media": [],
        }

        if "iceLite" in self._ice_parameters:
            self._sdp_object["icelite"] = "ice-lite"

        self._sdp_object["msidSemantic"] = {"semantic": "WMS", "token": "*"}

        fingerprints = self._dtls_parameters.get("fingerprints") or []
        if not fingerprints:
            raise MediasoupClientError("missing dtlsParameters.fingerprints")
        # The latest fingerprint is used.
        latest = fingerprints[-1]
        self._sdp_object["fingerprint"] = {
            "type": latest["algorithm"],
            "hash": latest["value"],
        }

        self._sdp_object["groups"] = [{"type": "BUNDLE", "mids": ""}]

    @property
    def sdp_object(self) -> dict:
        """A copy of the session description object."""
        return copy.deepcopy(self._sdp_object)

    def update_ice_parameters(self, ice_parameters: dict) -> None:
        """Set new ICE parameters on every media section."""
        self._ice_parameters = copy.deepcopy(ice_parameters)

        if "iceLite" in ice_parameters:
            self._sdp_object["icelite"] = "ice-lite"

        for idx, section in enumerate(self._media_sections):
            section.set_ice_parameters(ice_parameters)
            self._sdp_object["media"][idx] = section.media_object

    def update_dtls_role(self, role: str) -> None:
        """Set the DTLS role on every media section."""
        self._dtls_parameters["role"] = role

        if "iceLite" in self._ice_parameters:
            self._sdp_object["icelite"] = "ice-lite"

        for idx, section in enumerate(self._media_sections):
            section.set_dtls_role(role)
            self._sdp_object["media"][idx] = section.media_object

    def get_next_media_section_idx(self) -> MediaSectionIdx:
        """The first closed section to reuse, or the position after the last."""
        for idx, section in enumerate(self._media_sections):
            if section.closed:
                return MediaSectionIdx(idx, section.mid)
        return MediaSectionIdx(len(self._media_sections))

    def send(
        self,
        offer_media_object: dict,
        reuse_mid: str | None,
        offer_rtp_parameters: dict,
        answer_rtp_parameters: dict,
        codec_options: dict | None,
    ) -> None:
        """Answer a local sending offer, reusing a closed section if given."""
        section = AnswerMediaSection(
            self._ice_parameters,
            self._ice_candidates,
            self._dtls_parameters,
            self._sctp_parameters,
            offer_media_object,
            offer_rtp_parameters,
            answer_rtp_parameters,
            codec_options,
        )

        if reuse_mid:
            self._replace_media_section(section, reuse_mid)
        else:
            self._add_media_section(section)

    def send_sctp_association(self, offer_media_object: dict) -> None:
        """Answer a local offer of an SCTP association."""
        section = AnswerMediaSection(
            self._ice_parameters,
            self._ice_candidates,
            self._dtls_parameters,
            self._sctp_parameters,
            offer_media_object,
            {},
            {},
            None,
        )
        self._add_media_section(section)

    def recv_sctp_association(self) -> None:
        """Offer an SCTP association to the local endpoint."""
        section = OfferMediaSection(
            self._ice_parameters,
            self._ice_candidates,
            self._dtls_parameters,
            self._sctp_parameters,
            "datachannel",
            "application",
            None,
            "",
            "",
        )
        self._add_media_section(section)

    def receive(
        self,
        mid: str,
        kind: str,
        offer_rtp_parameters: dict,
        stream_id: str,
        track_id: str,
    ) -> None:
        """Offer remote media of the given kind to the local endpoint."""
        section = OfferMediaSection(
            self._ice_parameters,
            self._ice_candidates,
            self._dtls_parameters,
            None,
            mid,
            kind,
            offer_rtp_parameters,
            stream_id,
            track_id,
        )
        self._add_media_section(section)

    def disable_media_section(self, mid: str) -> None:
        """Make the section with the given mid inactive."""
        self._media_sections[self._index_of(mid)].disable()

    def close_media_section(self, mid: str) -> None:
        """Close the section with the given mid.

        The first section is only disabled, since closing it would break the
        bundled transport.
        """
        idx = self._index_of(mid)
        section = self._media_sections[idx]

        if mid == self._first_mid:
            section.disable()
        else:
            section.close()

        self._sdp_object["media"][idx] = section.media_object
        self._regenerate_bundle_mids()

    def _index_of(self, mid: str) -> int:
        try:
            return self._mid_to_index[mid]
        except KeyError:
            raise MediasoupClientError(f"no media section with mid {mid!r}") from None

    def _add_media_section(self, section: MediaSection) -> None:
        if not self._first_mid:
            self._first_mid = section.mid

        self._media_sections.append(section)
        self._mid_to_index[section.mid] = len(self._media_sections) - 1
        self._sdp_object["media"].append(section.media_object)
        self._regenerate_bundle_mids()

    def _replace_media_section(self, section: MediaSection, reuse_mid: str) -> None:
        idx = self._index_of(reuse_mid)
        old_section = self._media_sections[idx]

        self._media_sections[idx] = section
        del self._mid_to_index[old_section.mid]
        self._mid_to_index[section.mid] = idx

        self._sdp_object["media"][idx] = section.media_object
        self._regenerate_bundle_mids()

    def _regenerate_bundle_mids(self) -> None:
        self._sdp_object["groups"][0]["mids"] = " ".join(
            section.mid for section in self._media_sections if not section.closed
        )