# entries.py
from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import date as _date
from typing import Any, Dict, List, Optional
import logging
import time

import pandas as pd

from config import ENTRIES_KEY, DEFAULT_CLASS
from engine import (
    ValidationError, clean_shot_scores, compute_shot_summary, format_shot_scores,
    strip_unit,
)
from photos import PhotoStore, photo_suffix
from storage import Store

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("rifleName", "distance", "elevationMOA", "windageMOA")
OPTIONAL_FIELDS = ("score", "shotScores", "bullGrainWeight", "selectedClass", "targetImageUri")


class EntryNotFound(LookupError):
    def __init__(self, entry_id: str):
        super().__init__(f"Entry not found: {entry_id}")
        self.entry_id = entry_id


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RangeEntry:
    id: str
    entryName: str
    date: str
    rifleName: str
    rifleCalibber: str = ""
    distance: str = ""
    elevationMOA: str = ""
    windageMOA: str = ""
    notes: str = ""
    timestamp: int = 0
    score: Optional[str] = None
    shotScores: Optional[List[str]] = None
    bullGrainWeight: Optional[str] = None
    selectedClass: Optional[str] = None
    targetImageUri: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Stored shape: optional fields are left out when unset."""
        d = asdict(self)
        for k in OPTIONAL_FIELDS:
            if d.get(k) in (None, "", []):
                d.pop(k, None)
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RangeEntry":
        known = {k: d[k] for k in cls.__dataclass_fields__ if k in d}
        return cls(**known)


def entry_date(value: Optional[str]) -> _date:
    """Stored date as a date object; today when it is missing or malformed."""
    try:
        return _date.fromisoformat(str(value or ""))
    except ValueError:
        logger.warning("Unreadable entry date %r, using today", value)
        return _date.today()


def _clean_text(fields: Dict[str, Any], key: str) -> str:
    return str(fields.get(key) or "").strip()


def validate_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Trim and check a form payload; returns the cleaned fields."""
    out: Dict[str, Any] = {}
    for key in ("entryName", "rifleName", "rifleCalibber", "distance",
                "elevationMOA", "windageMOA", "notes", "score",
                "bullGrainWeight", "selectedClass"):
        out[key] = _clean_text(fields, key)
    missing = [k for k in REQUIRED_FIELDS if not out[k]]
    if missing:
        raise ValidationError("Please fill in all required fields: " + ", ".join(missing))
    d = fields.get("date") or _date.today()
    out["date"] = d.isoformat() if isinstance(d, _date) else str(d).strip()
    try:
        _date.fromisoformat(out["date"])
    except ValueError:
        raise ValidationError(f"Date must be YYYY-MM-DD, got {out['date']!r}")
    if not out["entryName"]:
        out["entryName"] = f"Entry {out['rifleName']}"
    out["shotScores"] = clean_shot_scores(fields.get("shotScores")) or None
    for key in ("score", "bullGrainWeight", "selectedClass"):
        out[key] = out[key] or None
    return out


class EntryStore:
    """CRUD over RangeEntry records kept under one key-value collection."""

    def __init__(self, store: Store, photos: PhotoStore):
        self.store = store
        self.photos = photos

    # ------- raw collection -------
    def _read(self) -> List[Dict[str, Any]]:
        return self.store.get_json(ENTRIES_KEY, []) or []

    def _write(self, rows: List[Dict[str, Any]]) -> None:
        self.store.set_json(ENTRIES_KEY, rows)

    def _new_id(self, taken) -> str:
        n = now_ms()
        while str(n) in taken:
            n += 1
        return str(n)

    # ------- reads -------
    def load_entries(self) -> List[RangeEntry]:
        entries = [RangeEntry.from_dict(r) for r in self._read()]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        logger.info("Loaded %d entries", len(entries))
        return entries

    def get_entry(self, entry_id: str) -> RangeEntry:
        for r in self._read():
            if r.get("id") == entry_id:
                return RangeEntry.from_dict(r)
        raise EntryNotFound(entry_id)

    def ids(self) -> set:
        return {r.get("id") for r in self._read()}

    # ------- writes -------
    def add_entry(self, fields: Dict[str, Any], photo: Optional[bytes] = None,
                  photo_name: Optional[str] = None) -> RangeEntry:
        clean = validate_fields(fields)
        rows = self._read()
        entry = RangeEntry(
            id=self._new_id({r.get("id") for r in rows}),
            timestamp=now_ms(),
            **clean,
        )
        if photo:
            entry.targetImageUri = self.photos.save_bytes(photo, suffix=photo_suffix(photo_name))
        rows.append(entry.to_dict())
        try:
            self._write(rows)
        except OSError:
            self.photos.delete(entry.targetImageUri)
            raise
        logger.info("Entry %s saved", entry.id)
        return entry

    def update_entry(self, entry_id: str, fields: Dict[str, Any],
                     photo: Optional[bytes] = None, remove_photo: bool = False,
                     photo_name: Optional[str] = None) -> RangeEntry:
        clean = validate_fields(fields)
        rows = self._read()
        idx = next((i for i, r in enumerate(rows) if r.get("id") == entry_id), None)
        if idx is None:
            raise EntryNotFound(entry_id)
        old = RangeEntry.from_dict(rows[idx])
        entry = RangeEntry(id=old.id, timestamp=now_ms(), targetImageUri=old.targetImageUri, **clean)

        stale_photo = None
        if photo:
            entry.targetImageUri = self.photos.save_bytes(photo, suffix=photo_suffix(photo_name))
            stale_photo = old.targetImageUri
        elif remove_photo:
            entry.targetImageUri = None
            stale_photo = old.targetImageUri

        rows[idx] = entry.to_dict()
        try:
            self._write(rows)
        except OSError:
            if photo:
                self.photos.delete(entry.targetImageUri)
            raise
        if stale_photo and stale_photo != entry.targetImageUri:
            self.photos.delete(stale_photo)
        logger.info("Entry %s updated", entry.id)
        return entry

    def delete_entry(self, entry_id: str) -> RangeEntry:
        rows = self._read()
        keep = [r for r in rows if r.get("id") != entry_id]
        if len(keep) == len(rows):
            raise EntryNotFound(entry_id)
        gone = RangeEntry.from_dict(next(r for r in rows if r.get("id") == entry_id))
        self._write(keep)
        if gone.targetImageUri:
            self.photos.delete(gone.targetImageUri)
        logger.info("Entry %s deleted", entry_id)
        return gone

    def replace_all(self, entries: List[RangeEntry]) -> None:
        self._write([e.to_dict() for e in entries])

    def append_entries(self, entries: List[RangeEntry]) -> None:
        """Append in one rewrite of the whole collection."""
        rows = self._read()
        rows.extend(e.to_dict() for e in entries)
        self._write(rows)

    def clear(self) -> None:
        self.store.remove(ENTRIES_KEY)


# ---------------- List helpers ----------------

FILTER_MODES = ("all", "name", "distance")


def filter_entries(entries: List[RangeEntry], mode: str, value: str) -> List[RangeEntry]:
    needle = (value or "").strip().lower()
    if mode == "all" or not needle:
        return list(entries)
    if mode == "name":
        return [e for e in entries
                if needle in (e.entryName or "").lower() or needle in (e.rifleName or "").lower()]
    if mode == "distance":
        return [e for e in entries
                if needle in strip_unit(e.distance) or needle in (e.distance or "").lower()]
    raise ValueError(f"Unknown filter: {mode}")


def entries_frame(entries: List[RangeEntry]) -> pd.DataFrame:
    rows = []
    for e in entries:
        s = compute_shot_summary(e.shotScores or [])
        rows.append({
            "Entry": e.entryName or "Unnamed Entry",
            "Date": e.date,
            "Rifle": f"{e.rifleName} ({e.rifleCalibber})" if e.rifleCalibber else e.rifleName,
            "Class": e.selectedClass or DEFAULT_CLASS,
            "Distance": e.distance,
            "Elevation MOA": e.elevationMOA,
            "Windage MOA": e.windageMOA,
            "Score": e.score or "",
            "Shots": format_shot_scores(e.shotScores or []),
            "V-Bulls": s.v_count if s else 0,
            "Photo": bool(e.targetImageUri),
        })
    cols = ["Entry", "Date", "Rifle", "Class", "Distance", "Elevation MOA",
            "Windage MOA", "Score", "Shots", "V-Bulls", "Photo"]
    return pd.DataFrame(rows, columns=cols)


def sample_entries() -> List[RangeEntry]:
    now = now_ms()
    return [
        RangeEntry(
            id="sample_1", entryName="Morning zero check", date="2024-01-15",
            rifleName="Remington 700", rifleCalibber=".308 Winchester",
            distance="100 yards", elevationMOA="2.5", windageMOA="0.5",
            notes="Good grouping, slight wind from left", score="47.2",
            shotScores=["5", "5", "4", "v", "5", "4", "5", "v", "4", "5"],
            bullGrainWeight="168 gr", timestamp=now - 86400000,
        ),
        RangeEntry(
            id="sample_2", entryName="Long range practice", date="2024-01-10",
            rifleName="Savage 110", rifleCalibber="6.5 Creedmoor",
            distance="200 yards", elevationMOA="5.0", windageMOA="-1.0",
            notes="Calm conditions, excellent accuracy",
            bullGrainWeight="140 gr", timestamp=now - 172800000,
        ),
    ]
