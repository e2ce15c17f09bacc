from datetime import date

import requests

from conftest import FakeResponse, FakeSession, make_ics
from core.fetcher import FeedFetcher
from core.models import FeedEndpoint, Property
from core.throttle import Throttle

GREE = Property("gree", "Gîte de la Grée", endpoints=(
    FeedEndpoint("https://abritel.test/gree.ics", "Abritel"),
    FeedEndpoint("https://airbnb.test/gree.ics", "Airbnb"),
    FeedEndpoint("https://gdf.test/gree.ics", "Gites de France", include_summary="BOOKED"),
))
EDMOND = Property("edmond", "Gîte de l'oncle Edmond", endpoints=(
    FeedEndpoint("https://airbnb.test/edmond.ics", "Airbnb"),
))


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def no_wait():
    clock = FakeClock()
    return Throttle(0, clock=clock, sleep=clock.sleep)


def ok(*events, **kwargs):
    return FakeResponse(make_ics(*events), **kwargs)


def test_property_with_all_endpoints_failing_is_unavailable():
    session = FakeSession({
        "https://abritel.test/gree.ics": FakeResponse("", status_code=503),
        "https://airbnb.test/gree.ics": FakeResponse("", status_code=503),
        "https://gdf.test/gree.ics": FakeResponse("", status_code=503),
        "https://airbnb.test/edmond.ics": ok(("e1", date(2025, 7, 10), date(2025, 7, 12), "Reserved")),
    })

    report = FeedFetcher([GREE, EDMOND], session=session, workers=2, airbnb_throttle=no_wait()).fetch_all()

    assert report.unavailable == {"gree"}
    assert [iv.property_id for iv in report.intervals] == ["edmond"]
    assert len(report.errors) == 3
    assert "HTTP 503" in report.errors["https://airbnb.test/gree.ics"]


def test_one_working_endpoint_is_enough():
    session = FakeSession({
        "https://abritel.test/gree.ics": requests.exceptions.ConnectionError("refused"),
        "https://airbnb.test/gree.ics": requests.exceptions.Timeout("slow"),
        "https://gdf.test/gree.ics": ok(("g1", date(2025, 7, 10), date(2025, 7, 12), "BOOKED")),
    })

    report = FeedFetcher([GREE], session=session, airbnb_throttle=no_wait()).fetch_all()

    assert report.unavailable == set()
    assert len(report.intervals) == 1
    assert report.errors["https://airbnb.test/gree.ics"].endswith("timeout")


def test_empty_calendar_counts_as_success():
    session = FakeSession({"https://airbnb.test/edmond.ics": ok()})

    report = FeedFetcher([EDMOND], session=session, airbnb_throttle=no_wait()).fetch_all()

    assert report.unavailable == set()
    assert report.intervals == []


def test_unparsable_body_is_a_failure():
    session = FakeSession({"https://airbnb.test/edmond.ics": FakeResponse("<html>captcha</html>")})

    report = FeedFetcher([EDMOND], session=session, airbnb_throttle=no_wait()).fetch_all()

    assert report.unavailable == {"edmond"}


def test_failure_flag_clears_on_next_successful_cycle():
    session = FakeSession({"https://airbnb.test/edmond.ics": FakeResponse("", status_code=500)})
    fetcher = FeedFetcher([EDMOND], session=session, airbnb_throttle=no_wait())
    assert fetcher.fetch_all().unavailable == {"edmond"}

    session.routes["https://airbnb.test/edmond.ics"] = ok(("e1", date(2025, 7, 10), date(2025, 7, 12), "Reserved"))
    assert fetcher.fetch_all().unavailable == set()


def test_summary_filter_applies_per_endpoint():
    session = FakeSession({
        "https://abritel.test/gree.ics": ok(("a1", date(2025, 7, 1), date(2025, 7, 3), "Reserved")),
        "https://airbnb.test/gree.ics": ok(),
        "https://gdf.test/gree.ics": ok(
            ("g1", date(2025, 7, 10), date(2025, 7, 12), "BOOKED"),
            ("g2", date(2025, 7, 14), date(2025, 7, 15), "AVAILABLE"),
        ),
    })

    report = FeedFetcher([GREE], session=session, airbnb_throttle=no_wait()).fetch_all()

    assert sorted(iv.uid for iv in report.intervals) == ["a1", "g1"]


def test_retry_after_is_reported():
    session = FakeSession({
        "https://airbnb.test/edmond.ics": FakeResponse("", status_code=429, headers={"Retry-After": "120"}),
    })

    report = FeedFetcher([EDMOND], session=session, airbnb_throttle=no_wait()).fetch_all()

    assert report.retry_after == {"https://airbnb.test/edmond.ics": "120"}
    assert report.unavailable == {"edmond"}


def test_fixed_user_agent_is_sent():
    session = FakeSession({"https://airbnb.test/edmond.ics": ok()})

    FeedFetcher([EDMOND], session=session, airbnb_throttle=no_wait()).fetch_all()

    _, headers, timeout = session.calls[0]
    assert "Mozilla/5.0" in headers["User-Agent"]
    assert timeout is not None


def test_airbnb_requests_share_one_throttle():
    clock = FakeClock()
    throttle = Throttle(1.5, clock=clock, sleep=clock.sleep)
    session = FakeSession({
        "https://abritel.test/gree.ics": ok(),
        "https://airbnb.test/gree.ics": ok(),
        "https://gdf.test/gree.ics": ok(),
        "https://airbnb.test/edmond.ics": ok(),
    })

    FeedFetcher([GREE, EDMOND], session=session, workers=1, airbnb_throttle=throttle).fetch_all()

    # due richieste Airbnb → una sola attesa, le altre piattaforme non aspettano
    assert clock.sleeps == [1.5]


def test_throttle_spacing():
    clock = FakeClock()
    throttle = Throttle(2.0, clock=clock, sleep=clock.sleep)

    throttle.acquire()
    clock.now += 0.5
    throttle.acquire()
    clock.now += 5
    throttle.acquire()

    assert clock.sleeps == [1.5]
