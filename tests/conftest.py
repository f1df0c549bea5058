import pytest

from entries import EntryStore
from photos import PhotoStore
from storage import Store


@pytest.fixture
def store(tmp_path):
    return Store(str(tmp_path / "data" / "range_log.json"))


@pytest.fixture
def photos(tmp_path):
    return PhotoStore(str(tmp_path / "data" / "photos"))


@pytest.fixture
def entry_store(store, photos):
    return EntryStore(store, photos)


@pytest.fixture
def make_fields():
    def _make(**overrides):
        fields = {
            "entryName": "Practice",
            "date": "2024-03-02",
            "rifleName": "Remington 700",
            "rifleCalibber": ".308 Winchester",
            "distance": "100 yards",
            "elevationMOA": "2.5",
            "windageMOA": "0.5",
            "notes": "",
        }
        fields.update(overrides)
        return fields
    return _make


@pytest.fixture
def jpeg_bytes():
    return b"\xff\xd8\xff\xe0fake-jpeg-body\xff\xd9"
