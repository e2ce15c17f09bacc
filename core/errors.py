"""
Errori applicativi.

  - FeedFetchError: un singolo feed non disponibile (mai fatale per il ciclo)
  - BulkExportError: HAR illeggibile o senza dati utili (anteprima annullata)
  - CanonicalStoreUnavailable: il foglio non risponde in lettura (anteprima annullata)
  - CanonicalStoreWriteError: scrittura di una riga fallita dopo i retry
"""


class CalendarError(Exception):
    pass


class FeedFetchError(CalendarError):
    def __init__(self, url: str, message: str, retry_after: str = None):
        super().__init__(f"{url}: {message}")
        self.url = url
        self.retry_after = retry_after


class BulkExportError(CalendarError, ValueError):
    pass


class CanonicalStoreUnavailable(CalendarError):
    pass


class CanonicalStoreWriteError(CalendarError):
    pass


class UnknownCandidateError(CalendarError, KeyError):
    pass
