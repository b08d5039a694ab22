"""Trigger classification — which jobs an incoming event should run.

A push of a tag matching one of the configured patterns runs the full
release graph. Every other event (branch pushes, pull requests,
non-matching tags) runs only the verification jobs.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict

TAG_PREFIX = "refs/tags/"


class TriggerEvent(BaseModel):
    """An incoming event, e.g. ``push`` of ``refs/tags/v1.2.0``."""

    model_config = ConfigDict(frozen=True)

    event: str = "push"
    ref: str

    @property
    def tag(self) -> str | None:
        """The tag name if ``ref`` names a tag, else ``None``."""
        if self.ref.startswith(TAG_PREFIX):
            return self.ref[len(TAG_PREFIX):]
        return None


def release_tag(trigger: TriggerEvent, patterns: Sequence[str]) -> str | None:
    """Return the tag to release, or ``None`` for a verification-only run."""
    tag = trigger.tag
    if trigger.event != "push" or tag is None:
        return None
    if any(re.match(pattern, tag) for pattern in patterns):
        return tag
    return None
