from core.models import CommitResult, PriceRule
from core.status_store import ImportLog, PriceStore, StatusStore


def test_statuses_persist_between_instances(tmp_path):
    path = tmp_path / "data" / "statuses.json"
    StatusStore(path).set("gree-2025-07-10", True, user="Anne")

    assert StatusStore(path).get() == {"gree-2025-07-10": {"done": True, "user": "Anne"}}


def test_missing_file_means_no_statuses(tmp_path):
    assert StatusStore(tmp_path / "none.json").get() == {}


def test_import_log_keeps_only_the_latest_entries(tmp_path):
    log = ImportLog(tmp_path / "log.json", limit=2)
    for n in range(3):
        log.append(CommitResult(inserted=n, failures=[("c", "boom")] if n else []), user="Anne")

    entries = log.entries()

    assert [e["inserted"] for e in entries] == [1, 2]
    assert entries[-1]["failures"] == [["c", "boom"]]
    assert all("at" in e for e in entries)


def test_prices_are_stored_as_plain_json(tmp_path):
    path = tmp_path / "prices.json"
    PriceStore(path).set([PriceRule(85, ["gree", "edmond"]), PriceRule(95.5, ["gree"])])

    store = PriceStore(path)

    assert store.get() == [PriceRule(85.0, ["gree", "edmond"]), PriceRule(95.5, ["gree"])]
    assert store.for_gite("gree") == [85.0, 95.5]
    assert store.for_gite("liberte") == []
    assert PriceStore(tmp_path / "none.json").get() == []
