import os
from datetime import date

import pytest

import entries as entries_mod
from engine import ValidationError
from entries import EntryNotFound, RangeEntry, entries_frame, entry_date, filter_entries


def _clock(monkeypatch, start=1_700_000_000_000):
    ticks = iter(range(start, start + 10_000, 1000))
    monkeypatch.setattr(entries_mod, "now_ms", lambda: next(ticks))


def test_add_entry(entry_store, make_fields):
    e = entry_store.add_entry(make_fields(entryName="", shotScores=["5", "", "V"]))
    assert e.id
    assert e.timestamp > 0
    assert e.entryName == "Entry Remington 700"
    assert e.shotScores == ["5", "v"]
    assert entry_store.get_entry(e.id) == e


@pytest.mark.parametrize("missing", ["rifleName", "distance", "elevationMOA", "windageMOA"])
def test_required_fields(entry_store, make_fields, missing):
    with pytest.raises(ValidationError):
        entry_store.add_entry(make_fields(**{missing: "  "}))
    assert entry_store.load_entries() == []


def test_bad_date_and_too_many_shots(entry_store, make_fields):
    with pytest.raises(ValidationError):
        entry_store.add_entry(make_fields(date="02/03/2024"))
    with pytest.raises(ValidationError):
        entry_store.add_entry(make_fields(shotScores=["5"] * 13))


def test_ids_are_unique_within_the_same_millisecond(entry_store, make_fields, monkeypatch):
    monkeypatch.setattr(entries_mod, "now_ms", lambda: 1_700_000_000_000)
    a = entry_store.add_entry(make_fields())
    b = entry_store.add_entry(make_fields())
    assert a.id != b.id


def test_load_entries_newest_first(entry_store, make_fields, monkeypatch):
    _clock(monkeypatch)
    first = entry_store.add_entry(make_fields(entryName="first"))
    second = entry_store.add_entry(make_fields(entryName="second"))
    third = entry_store.add_entry(make_fields(entryName="third"))
    entry_store.update_entry(first.id, make_fields(entryName="first, edited"))
    names = [e.entryName for e in entry_store.load_entries()]
    assert names == ["first, edited", third.entryName, second.entryName]


def test_update_keeps_id_and_refreshes_timestamp(entry_store, make_fields, monkeypatch):
    _clock(monkeypatch)
    e = entry_store.add_entry(make_fields())
    u = entry_store.update_entry(e.id, make_fields(score="48.3", shotScores=["5", "v"]))
    assert u.id == e.id
    assert u.timestamp > e.timestamp
    assert u.score == "48.3"
    assert len(entry_store.load_entries()) == 1


def test_score_and_shots_are_independent(entry_store, make_fields):
    e = entry_store.add_entry(make_fields(score="50", shotScores=["1"]))
    assert e.score == "50"
    assert e.shotScores == ["1"]


def test_replacing_photo_deletes_old_file(entry_store, make_fields, jpeg_bytes):
    e = entry_store.add_entry(make_fields(), photo=jpeg_bytes)
    assert os.path.isfile(e.targetImageUri)
    u = entry_store.update_entry(e.id, make_fields(), photo=jpeg_bytes + b"2")
    assert u.targetImageUri != e.targetImageUri
    assert os.path.isfile(u.targetImageUri)
    assert not os.path.exists(e.targetImageUri)


def test_uploaded_png_is_stored_as_png(entry_store, make_fields, jpeg_bytes):
    e = entry_store.add_entry(make_fields(), photo=jpeg_bytes, photo_name="target.png")
    assert e.targetImageUri.endswith(".png")
    u = entry_store.update_entry(e.id, make_fields(), photo=jpeg_bytes, photo_name="camera.jpg")
    assert u.targetImageUri.endswith(".jpg")


def test_entry_date_falls_back_to_today():
    assert entry_date("2024-01-15") == date(2024, 1, 15)
    assert entry_date("15/01/2024") == date.today()
    assert entry_date(None) == date.today()


def test_remove_photo(entry_store, make_fields, jpeg_bytes):
    e = entry_store.add_entry(make_fields(), photo=jpeg_bytes)
    u = entry_store.update_entry(e.id, make_fields(), remove_photo=True)
    assert u.targetImageUri is None
    assert not os.path.exists(e.targetImageUri)
    assert "targetImageUri" not in entry_store.store.get_json("rangeEntries")[0]


def test_edit_without_photo_keeps_it(entry_store, make_fields, jpeg_bytes):
    e = entry_store.add_entry(make_fields(), photo=jpeg_bytes)
    u = entry_store.update_entry(e.id, make_fields(notes="windy"))
    assert u.targetImageUri == e.targetImageUri
    assert os.path.isfile(u.targetImageUri)


def test_delete_removes_record_and_photo(entry_store, make_fields, jpeg_bytes):
    e = entry_store.add_entry(make_fields(), photo=jpeg_bytes)
    entry_store.delete_entry(e.id)
    assert entry_store.load_entries() == []
    assert not os.path.exists(e.targetImageUri)


def test_delete_with_missing_photo_is_not_fatal(entry_store, make_fields, jpeg_bytes):
    e = entry_store.add_entry(make_fields(), photo=jpeg_bytes)
    os.remove(e.targetImageUri)
    entry_store.delete_entry(e.id)
    assert entry_store.load_entries() == []


def test_not_found(entry_store, make_fields):
    with pytest.raises(EntryNotFound):
        entry_store.get_entry("missing")
    with pytest.raises(EntryNotFound):
        entry_store.update_entry("missing", make_fields())
    with pytest.raises(EntryNotFound):
        entry_store.delete_entry("missing")


def test_to_dict_leaves_out_unset_optionals():
    e = RangeEntry(id="1", entryName="n", date="2024-01-01", rifleName="r", timestamp=1)
    d = e.to_dict()
    for key in ("score", "shotScores", "bullGrainWeight", "selectedClass", "targetImageUri"):
        assert key not in d
    assert RangeEntry.from_dict(dict(d, unknown="x")) == e


def _sample():
    return [
        RangeEntry(id="1", entryName="Zero check", date="2024-01-01", rifleName="Savage 110", distance="100 yards"),
        RangeEntry(id="2", entryName="Long range", date="2024-01-02", rifleName="Remington 700", distance="600 yards"),
    ]


def test_filter_entries():
    rows = _sample()
    assert filter_entries(rows, "all", "anything") == rows
    assert [e.id for e in filter_entries(rows, "name", "remington")] == ["2"]
    assert [e.id for e in filter_entries(rows, "name", "zero")] == ["1"]
    assert [e.id for e in filter_entries(rows, "distance", "600")] == ["2"]
    assert filter_entries(rows, "name", "  ") == rows
    with pytest.raises(ValueError):
        filter_entries(rows, "colour", "red")


def test_entries_frame():
    rows = _sample()
    rows[0].shotScores = ["5", "v", "v"]
    df = entries_frame(rows)
    assert len(df) == 2
    assert df.loc[0, "V-Bulls"] == 2
    assert df.loc[0, "Shots"] == "5, V, V"
    assert df.loc[1, "Class"] == "TR"
    assert list(entries_frame([]).columns) == list(df.columns)
