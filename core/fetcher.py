"""
Fetch di tutti i feed iCal dei gîtes.

  - richieste in parallelo su un pool di thread
  - le richieste Airbnb passano da un limitatore condiviso (spaziatura minima
    tra due richieste qualsiasi verso Airbnb, non per URL)
  - un feed in errore viene registrato e non blocca gli altri
  - un gîte è "non disponibile" solo se nessuno dei suoi feed ha risposto
  - nessun retry qui: si rilancia l'intero ciclo (pulsante "Ricarica")
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Tuple

import requests

from config import AIRBNB_MIN_INTERVAL_S, AIRBNB_TAG, FETCH_TIMEOUT_S, FETCH_WORKERS, USER_AGENT
from core.errors import FeedFetchError
from core.models import FeedEndpoint, FetchReport, Property, RawInterval
from core.normalizer import passes_summary_filter
from core.throttle import Throttle
from parsers.ical import parse_ical

logger = logging.getLogger(__name__)


def build_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


class FeedFetcher:
    def __init__(self, properties: Iterable[Property], session=None,
                 timeout: float = FETCH_TIMEOUT_S, workers: int = FETCH_WORKERS,
                 airbnb_throttle: Optional[Throttle] = None):
        self.properties = tuple(properties)
        self.session = session or build_session()
        self.timeout = timeout
        self.workers = workers
        self.airbnb_throttle = airbnb_throttle or Throttle(AIRBNB_MIN_INTERVAL_S)

    def fetch_endpoint(self, prop: Property, endpoint: FeedEndpoint) -> Tuple[List[RawInterval], Optional[str]]:
        """
        Scarica e legge un feed.
        Returns: (intervalli, header Retry-After o None). Ogni problema diventa FeedFetchError.
        """
        if endpoint.source == AIRBNB_TAG:
            self.airbnb_throttle.acquire()
        try:
            response = self.session.get(
                endpoint.url,
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise FeedFetchError(endpoint.url, "timeout")
        except requests.exceptions.RequestException as e:
            raise FeedFetchError(endpoint.url, f"richiesta fallita: {e}")

        retry_after = response.headers.get("Retry-After")
        if retry_after:
            logger.info("Retry-After ricevuto per %s: %s", endpoint.url, retry_after)
        if not 200 <= response.status_code < 300:
            raise FeedFetchError(endpoint.url, f"HTTP {response.status_code}", retry_after)

        try:
            intervals = parse_ical(response.text, prop.id, endpoint.source)
        except ValueError as e:
            raise FeedFetchError(endpoint.url, str(e), retry_after)

        kept = [iv for iv in intervals if passes_summary_filter(endpoint, iv.summary)]
        return kept, retry_after

    def fetch_all(self) -> FetchReport:
        """Un ciclo completo: tutti i feed vengono tentati prima di restituire il report."""
        report = FetchReport()
        successes = {p.id: 0 for p in self.properties}
        jobs = [(p, ep) for p in self.properties for ep in p.endpoints]

        with ThreadPoolExecutor(max_workers=max(1, self.workers)) as pool:
            futures = [(p, ep, pool.submit(self.fetch_endpoint, p, ep)) for p, ep in jobs]
            for prop, endpoint, future in futures:
                try:
                    intervals, retry_after = future.result()
                except FeedFetchError as e:
                    report.errors[endpoint.url] = str(e)
                    if e.retry_after:
                        report.retry_after[endpoint.url] = e.retry_after
                    logger.error("Errore di caricamento per %s (%s): %s", prop.name, endpoint.source, e)
                    continue
                if retry_after:
                    report.retry_after[endpoint.url] = retry_after
                successes[prop.id] += 1
                report.intervals.extend(intervals)
                logger.info("Caricamento riuscito per %s da %s (%d eventi)",
                            prop.name, endpoint.source, len(intervals))

        report.unavailable = {pid for pid, count in successes.items() if count == 0}
        return report

