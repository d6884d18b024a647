"""Defaults applied to new or untitled processes."""

from __future__ import annotations

from orgflow.schemas.process import ProcessStep

DEFAULT_PROCESS_TITLE = "Étapes du processus"


def default_process_steps() -> list[ProcessStep]:
    """Fresh start/finish pair for a new process (a new list on every call)."""
    return [
        ProcessStep(id="start", label="Commencer", type="start"),
        ProcessStep(id="finish", label="Terminer", type="finish"),
    ]
