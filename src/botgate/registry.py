# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Header-name registry for the verification protocol.

Every header name and status token of the protocol lives in one frozen
``HeaderRegistry``. The two deployed variants differ only in their registry:

- ``FPJS_HEADERS`` — ``fpjs-`` prefix, browser-spoofing has no type header,
  no error description.
- ``BOTD_HEADERS`` — ``botd-`` prefix, browser-spoofing carries a type header,
  ``botd-error-description`` on failed verifications.

The same names are used to read the verification response and to annotate the
request forwarded to the origin.
"""

from __future__ import annotations

from dataclasses import dataclass

from . import BOT, BROWSER_SPOOFING, SEARCH_BOT, VM, SignalStatus

DEFAULT_COOKIE_NAME = "botd-request-id="


@dataclass(frozen=True, slots=True)
class SignalSpec:
    """Header triple for one signal. Empty ``kind_header`` = no kind concept."""

    name: str
    status_header: str
    prob_header: str
    kind_header: str = ""


@dataclass(frozen=True, slots=True)
class HeaderRegistry:
    """Immutable protocol constants injected into the pipeline."""

    name: str
    request_id_header: str
    request_status_header: str
    signals: tuple[SignalSpec, ...]
    error_description_header: str = ""
    processed_token: str = "ok"
    failed_token: str = "failed"
    cookie_header: str = "cookie"
    cookie_name: str = DEFAULT_COOKIE_NAME
    primary_signal: str = BOT

    def __post_init__(self) -> None:
        names = [s.name for s in self.signals]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate signal names in registry {self.name!r}")
        if self.primary_signal not in names:
            raise ValueError(f"primary signal {self.primary_signal!r} not declared in registry {self.name!r}")

    def signal(self, name: str) -> SignalSpec:
        for spec in self.signals:
            if spec.name == name:
                return spec
        raise KeyError(name)

    def classify(self, raw: str) -> SignalStatus:
        """Map a wire status string to a :class:`SignalStatus`."""
        if raw == self.processed_token:
            return SignalStatus.PROCESSED
        return SignalStatus.OTHER

    def status_token(self, status: SignalStatus, raw: str = "") -> str:
        """Wire value emitted for *status* (the literal for OTHER)."""
        if status is SignalStatus.PROCESSED:
            return self.processed_token
        if status is SignalStatus.FAILED:
            return self.failed_token
        if status is SignalStatus.OTHER:
            return raw
        return ""

    @property
    def annotation_headers(self) -> frozenset[str]:
        """Every header name the gate may set on a forwarded request."""
        names = {self.request_id_header, self.request_status_header}
        if self.error_description_header:
            names.add(self.error_description_header)
        for spec in self.signals:
            names.update((spec.status_header, spec.prob_header))
            if spec.kind_header:
                names.add(spec.kind_header)
        return frozenset(names)


def build_registry(
    prefix: str,
    *,
    name: str,
    browser_spoofing_kind: bool,
    error_description: bool,
    processed_token: str = "ok",
    failed_token: str = "failed",
    cookie_name: str = DEFAULT_COOKIE_NAME,
) -> HeaderRegistry:
    """Build a registry whose headers all follow ``<prefix><signal>-{status,prob,type}``."""

    def _spec(signal: str, slug: str, *, kind: bool = True) -> SignalSpec:
        return SignalSpec(
            name=signal,
            status_header=f"{prefix}{slug}-status",
            prob_header=f"{prefix}{slug}-prob",
            kind_header=f"{prefix}{slug}-type" if kind else "",
        )

    return HeaderRegistry(
        name=name,
        request_id_header=f"{prefix}request-id",
        request_status_header=f"{prefix}request-status",
        error_description_header=f"{prefix}error-description" if error_description else "",
        signals=(
            _spec(BOT, "bot"),
            _spec(SEARCH_BOT, "search-bot"),
            _spec(VM, "vm"),
            _spec(BROWSER_SPOOFING, "browser-spoofing", kind=browser_spoofing_kind),
        ),
        processed_token=processed_token,
        failed_token=failed_token,
        cookie_name=cookie_name,
    )


FPJS_HEADERS = build_registry("fpjs-", name="fpjs", browser_spoofing_kind=False, error_description=False)
BOTD_HEADERS = build_registry("botd-", name="botd", browser_spoofing_kind=True, error_description=True)

REGISTRIES: dict[str, HeaderRegistry] = {
    FPJS_HEADERS.name: FPJS_HEADERS,
    BOTD_HEADERS.name: BOTD_HEADERS,
}


def get_registry(name: str) -> HeaderRegistry:
    """Look up a declared registry by name (case-insensitive)."""
    try:
        return REGISTRIES[name.strip().lower()]
    except KeyError:
        raise ValueError(f"unknown header registry {name!r}; expected one of {sorted(REGISTRIES)}") from None
