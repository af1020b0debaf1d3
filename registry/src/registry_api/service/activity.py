"""Persist registry events into the activity log."""

from __future__ import annotations

from registry_api.metadata import MetadataStore

from .events import RegistryEvent, event_payload

_ENVELOPE_FIELDS = ("kind", "actor_id", "package_name", "version", "occurred_at")


class ActivityRecorder:
    """Event subscriber writing one ``activity_log`` row per event."""

    def __init__(self, metadata: MetadataStore) -> None:
        self._metadata = metadata

    async def __call__(self, event: RegistryEvent) -> None:
        payload = event_payload(event)
        details = {key: value for key, value in payload.items() if key not in _ENVELOPE_FIELDS}
        await self._metadata.log_activity(
            kind=event.kind,
            actor_id=payload.get("actor_id"),
            package_name=payload.get("package_name"),
            version=payload.get("version"),
            details=details or None,
        )
