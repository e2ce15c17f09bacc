"""
Archivio in memoria delle prenotazioni iCal.

Un solo scrittore (il ciclo di fetch) costruisce uno snapshot completo in un
buffer privato e lo pubblica con una sola assegnazione: i lettori vedono
sempre lo snapshot precedente o quello nuovo, mai uno a metà.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Snapshot:
    generated_at: datetime
    reservations: tuple = ()
    unavailable: frozenset = frozenset()
    errors: tuple = ()


class ReservationStore:
    def __init__(self):
        self._snapshot: Optional[Snapshot] = None
        self._write_lock = threading.Lock()

    def current(self) -> Optional[Snapshot]:
        """Lettura senza lock: il riferimento allo snapshot cambia in modo atomico."""
        return self._snapshot

    def publish(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot

    def writer(self) -> threading.Lock:
        """Lock da tenere per tutta la durata di un ciclo di ricarica."""
        return self._write_lock

    def for_property(self, property_id: str) -> tuple:
        snap = self._snapshot
        if snap is None:
            return ()
        return tuple(iv for iv in snap.reservations if iv.property_id == property_id)
