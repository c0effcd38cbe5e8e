"""BusinessImpactResolver — maps devices to the business services they support."""

from __future__ import annotations

from collections.abc import Iterable

from netalert.core.types import BusinessService


class BusinessImpactResolver:
    """Read-only lookup over the static business-service dependency table."""

    def __init__(self, services: Iterable[BusinessService]) -> None:
        ordered = sorted(services, key=lambda s: (s.priority, s.name))
        self._services: tuple[BusinessService, ...] = tuple(ordered)
        self._by_device: dict[str, list[BusinessService]] = {}
        for svc in self._services:
            for device_id in svc.devices:
                bucket = self._by_device.setdefault(device_id, [])
                if svc not in bucket:
                    bucket.append(svc)
        self._by_name = {svc.name: svc for svc in self._services}

    @property
    def services(self) -> tuple[BusinessService, ...]:
        return self._services

    def get(self, name: str) -> BusinessService | None:
        return self._by_name.get(name)

    def resolve(self, device_id: str) -> list[BusinessService]:
        """Services depending on *device_id*, priority 1 first.

        An unknown device yields an empty list.
        """
        return list(self._by_device.get(device_id, ()))

    def resolve_many(self, device_ids: Iterable[str]) -> list[BusinessService]:
        """Union of services for several devices, in priority order."""
        found: dict[str, BusinessService] = {}
        for device_id in device_ids:
            for svc in self._by_device.get(device_id, ()):
                found.setdefault(svc.name, svc)
        return sorted(found.values(), key=lambda s: (s.priority, s.name))
