"""
Eventi giornalieri per gîte: arrivo, partenza, cambio ospiti (turnover).

Per ogni gîte e giorno:
  - c'è almeno un intervallo che inizia e uno che finisce, di prenotazioni
    diverse → un solo evento TURNOVER
  - l'unico intervallo che inizia e finisce quel giorno è la stessa
    prenotazione → SAME_DAY (soggiorno di un giorno, non un cambio)
  - altrimenti ARRIVAL e/o DEPARTURE
Il risultato non dipende dall'ordine degli intervalli in ingresso.
"""

from collections import defaultdict
from typing import Iterable, List

from core.models import EventKind, RawInterval, ReservationEvent


def _sort_key(iv: RawInterval):
    return (iv.start, iv.end, iv.source, iv.summary, iv.uid)


def _classify_day(starting: list, ending: list) -> EventKind:
    if starting and ending:
        start_ids = {iv.identity for iv in starting}
        end_ids = {iv.identity for iv in ending}
        # turnover solo se una prenotazione che parte è diversa da una che arriva
        if any(a != b for a in start_ids for b in end_ids):
            return EventKind.TURNOVER
        return EventKind.SAME_DAY
    if starting:
        return EventKind.ARRIVAL
    return EventKind.DEPARTURE


def merge_turnovers(intervals: Iterable[RawInterval]) -> List[ReservationEvent]:
    """Eventi ordinati per (gîte, giorno)."""
    starts = defaultdict(list)
    ends = defaultdict(list)
    for iv in intervals:
        starts[(iv.property_id, iv.start)].append(iv)
        ends[(iv.property_id, iv.end)].append(iv)

    events = []
    for key in sorted(set(starts) | set(ends)):
        property_id, day = key
        starting = sorted(starts.get(key, []), key=_sort_key)
        ending = sorted(ends.get(key, []), key=_sort_key)
        involved = tuple(sorted(set(starting) | set(ending), key=_sort_key))
        events.append(ReservationEvent(property_id, day, _classify_day(starting, ending), involved))
    return events


def events_for_day(events: Iterable[ReservationEvent], property_id: str, day) -> List[ReservationEvent]:
    return [ev for ev in events if ev.property_id == property_id and ev.day == day]
