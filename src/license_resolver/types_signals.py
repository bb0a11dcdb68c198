from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SignalKind(str, Enum):
    DECLARED = "declared"
    BUNDLE = "bundle"
    SCANNED = "scanned"


@dataclass(frozen=True)
class RawSignal:
    kind: SignalKind
    name: Optional[str] = None
    urls: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        parts = [part for part in (self.name, *self.urls) if part]
        return ", ".join(parts) or "<empty>"


def artifact_key(group: str, name: str, version: str | None = None) -> str:
    return ":".join(part for part in (group, name, version) if part)


@dataclass
class ArtifactSignals:
    """Raw evidence collected for one artifact by the extraction step."""

    key: str
    declared: list[RawSignal] = field(default_factory=list)
    bundle_header: Optional[str] = None
    license_files: list[str] = field(default_factory=list)
    archive_url: Optional[str] = None

    @classmethod
    def from_dict(cls, entry: dict) -> "ArtifactSignals":
        key = entry.get("key") or artifact_key(
            entry.get("group", ""), entry.get("name", ""), entry.get("version")
        )
        if not key:
            raise ValueError("Artifact entry needs a key or a group/name/version triple")

        declared: list[RawSignal] = []
        for item in entry.get("declared", []) or []:
            if isinstance(item, str):
                declared.append(RawSignal(SignalKind.DECLARED, name=item))
                continue
            urls = item.get("urls") or ([item["url"]] if item.get("url") else [])
            declared.append(
                RawSignal(SignalKind.DECLARED, name=item.get("name") or None, urls=tuple(urls))
            )

        return cls(
            key=key,
            declared=declared,
            bundle_header=entry.get("bundle_license") or None,
            license_files=list(entry.get("license_files", []) or []),
            archive_url=entry.get("archive_url") or None,
        )
