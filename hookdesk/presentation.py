"""Display labels and tints for session statuses."""

from __future__ import annotations

from typing import NamedTuple

from hookdesk.models import SessionStatus


class StatusPresentation(NamedTuple):
    label: str
    tint: str


STATUS_PRESENTATION: dict[SessionStatus, StatusPresentation] = {
    SessionStatus.IDLE: StatusPresentation("Idle", "gray"),
    SessionStatus.RUNNING: StatusPresentation("Running", "blue"),
    SessionStatus.PERMISSION: StatusPresentation("Needs permission", "orange"),
    SessionStatus.FINISHED: StatusPresentation("Finished", "green"),
    SessionStatus.ENDED: StatusPresentation("Ended", "secondary"),
}


def presentation_for(status: SessionStatus) -> StatusPresentation:
    return STATUS_PRESENTATION[status]
