"""
Backup and restore of the range log.

Export builds one self-contained JSON document from the whole entry
collection, inlining each target photo as base64. Import merges such a
document back in: records whose id is already stored are skipped, new ones
are appended in a single rewrite of the collection.

Both operations move through the phases in `Phase`. A bad document fails
in VALIDATING, an I/O error fails in PERSISTING/DELIVERING. A photo that
cannot be encoded or decoded only drops that photo.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from config import DEFAULT_EXPORT_NAME, MAX_SHOTS
from engine import SHOT_TOKENS, ValidationError
from entries import EntryStore, RangeEntry, now_ms, sample_entries
from photos import PhotoError

logger = logging.getLogger(__name__)

PHOTO_FIELD = "targetImageBase64"


class Phase(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PROCESSING = "processing"
    PERSISTING = "persisting"
    DELIVERING = "delivering"
    DONE = "done"
    FAILED = "failed"


PhaseCallback = Optional[Callable[[Phase], None]]


class BackupError(Exception):
    pass


class ImportValidationError(BackupError, ValidationError):
    """The import document does not have the expected shape."""


class ExportError(BackupError):
    pass


class NothingToExport(ExportError):
    pass


def _notify(cb: PhaseCallback, phase: Phase) -> None:
    logger.debug("backup phase -> %s", phase.value)
    if cb:
        cb(phase)


def sanitize_file_name(name: str) -> str:
    base = re.sub(r"[^a-zA-Z0-9_-]", "_", (name or "").strip()) or DEFAULT_EXPORT_NAME
    return f"{base}.json"


# ---------------- Export ----------------

@dataclass
class ExportResult:
    document: Dict[str, Any]
    text: str
    file_name: str
    photos_exported: int = 0
    photos_failed: int = 0
    path: Optional[str] = None

    @property
    def total(self) -> int:
        return self.document["totalEntries"]

    @property
    def data(self) -> bytes:
        return self.text.encode("utf-8")

    def message(self) -> str:
        msg = f"Successfully exported {self.total} entries"
        if self.photos_exported:
            msg += f" with {self.photos_exported} photos"
        msg += f" to {self.file_name}"
        if self.photos_failed:
            msg += f" ({self.photos_failed} photos failed to export)"
        return msg


def build_export_document(entries: EntryStore):
    """Return (document, photos_exported, photos_failed)."""
    rows = entries.load_entries()
    if not rows:
        raise NothingToExport("No entries found to export")
    out: List[Dict[str, Any]] = []
    ok = failed = 0
    for e in rows:
        item = e.to_dict()
        uri = item.pop("targetImageUri", None)
        if uri:
            encoded = entries.photos.read_base64(uri)
            if encoded:
                item[PHOTO_FIELD] = encoded
                ok += 1
            else:
                logger.warning("Exporting entry %s without its photo", e.id)
                failed += 1
        out.append(item)
    logger.info("Image conversion complete: %d successful, %d failed", ok, failed)
    doc = {
        "exportDate": datetime.now(timezone.utc).isoformat(),
        "totalEntries": len(rows),
        "entries": out,
    }
    return doc, ok, failed


def serialize_document(doc: Dict[str, Any]) -> str:
    """Pretty JSON, checked by parsing it back before anyone sees it."""
    try:
        text = json.dumps(doc, ensure_ascii=False, indent=2)
        if json.loads(text) != doc:
            raise ExportError("Export document did not survive a JSON round trip")
    except (TypeError, ValueError) as e:
        raise ExportError(f"Failed to create valid JSON export: {e}") from e
    return text


def export_entries(entries: EntryStore, file_name: str = DEFAULT_EXPORT_NAME,
                   on_phase: PhaseCallback = None) -> ExportResult:
    """Build and validate the export document. Nothing is written."""
    _notify(on_phase, Phase.VALIDATING)
    try:
        _notify(on_phase, Phase.PROCESSING)
        doc, ok, failed = build_export_document(entries)
        text = serialize_document(doc)
    except BackupError:
        _notify(on_phase, Phase.FAILED)
        raise
    logger.info("Export JSON size: %d characters", len(text))
    return ExportResult(document=doc, text=text, file_name=sanitize_file_name(file_name),
                        photos_exported=ok, photos_failed=failed)


def deliver(result: ExportResult, mode: str, directory: Optional[str] = None,
            on_phase: PhaseCallback = None) -> ExportResult:
    """Deliver an already-built export.

    "share" leaves the bytes on the result for the platform share sheet
    (the download button in the web UI). "save" writes the file into
    `directory`.
    """
    if mode not in ("share", "save"):
        raise ValueError(f"Unknown delivery mode: {mode}")
    _notify(on_phase, Phase.DELIVERING)
    if mode == "save":
        if not directory:
            _notify(on_phase, Phase.FAILED)
            raise ExportError("Choose a folder to save the export to")
        path = os.path.join(directory, result.file_name)
        try:
            os.makedirs(directory, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(result.text)
        except OSError as e:
            _notify(on_phase, Phase.FAILED)
            logger.error("Error writing export %s: %s", path, e)
            raise ExportError(f"Failed to export data: {e}") from e
        result.path = path
        logger.info("Export written to %s", path)
    _notify(on_phase, Phase.DONE)
    return result


# ---------------- Import ----------------

@dataclass
class ImportResult:
    added: int = 0
    skipped: int = 0
    invalid: int = 0
    photos_imported: int = 0
    photos_failed: int = 0

    def message(self) -> str:
        if not self.added:
            return "All entries in the JSON file already exist. No new entries were imported."
        msg = f"Successfully imported {self.added} new entries"
        if self.photos_imported:
            msg += f" with {self.photos_imported} photos"
        if self.photos_failed:
            msg += f" ({self.photos_failed} photos failed to import)"
        if self.skipped:
            msg += f". {self.skipped} duplicate entries were skipped"
        if self.invalid:
            msg += f". {self.invalid} invalid entries were ignored"
        return msg + "!"


def parse_document(source: Union[str, bytes, Dict[str, Any], List[Any]]) -> List[Dict[str, Any]]:
    """Return the list of raw import records, or raise ImportValidationError."""
    data = source
    if isinstance(source, (bytes, bytearray)):
        try:
            source = source.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ImportValidationError("Import file is not UTF-8 text") from e
    if isinstance(source, str):
        try:
            data = json.loads(source)
        except ValueError as e:
            raise ImportValidationError("Invalid JSON format. Please check your file and try again.") from e

    if isinstance(data, list):
        logger.info("Importing data in old format (direct array)")
        records = data
    elif isinstance(data, dict):
        if "entries" not in data:
            raise ImportValidationError("Invalid import file: 'entries' is missing")
        records = data["entries"]
        if not isinstance(records, list):
            raise ImportValidationError("Invalid import file: 'entries' must be a list")
        total = data.get("totalEntries")
        if total is not None and total != len(records):
            logger.warning("Expected %s entries, found %d", total, len(records))
        logger.info("Importing data exported on %s", data.get("exportDate", "unknown date"))
    else:
        raise ImportValidationError("Expected an array of entries or an export data object")

    if not records:
        raise ImportValidationError("No entries found in the JSON data")
    return records


def normalize_record(raw: Any) -> Optional[RangeEntry]:
    """Promote a tolerant import record to a RangeEntry.

    Returns None when id, rifleName or date is missing, or the date is not
    YYYY-MM-DD. The embedded photo
    is handled by the caller.
    """
    if not isinstance(raw, dict):
        return None
    entry_id = raw.get("id")
    rifle = raw.get("rifleName")
    day = raw.get("date")
    if not entry_id or not rifle or not day:
        return None
    try:
        date.fromisoformat(str(day))
    except ValueError:
        logger.warning("Entry %s has a date that is not YYYY-MM-DD: %r", entry_id, day)
        return None

    def text(key: str) -> str:
        v = raw.get(key)
        return "" if v is None else str(v)

    shots = raw.get("shotScores")
    clean_shots = None
    if isinstance(shots, list):
        clean_shots = []
        for s in shots:
            tok = str(s if s is not None else "").strip().lower()
            if tok and tok in SHOT_TOKENS:
                clean_shots.append(tok)
            elif tok:
                logger.warning("Dropping invalid shot score %r on entry %s", s, entry_id)
        clean_shots = clean_shots[:MAX_SHOTS] or None

    ts = raw.get("timestamp")
    try:
        ts = int(ts) if ts is not None else now_ms()
    except (TypeError, ValueError, OverflowError):
        # non-numeric, NaN or infinite
        ts = now_ms()

    return RangeEntry(
        id=str(entry_id),
        entryName=text("entryName") or f"Entry {rifle}",
        date=str(day),
        rifleName=str(rifle),
        rifleCalibber=text("rifleCalibber"),
        distance=text("distance"),
        elevationMOA=text("elevationMOA"),
        windageMOA=text("windageMOA"),
        notes=text("notes"),
        timestamp=ts,
        score=text("score") or None,
        shotScores=clean_shots,
        bullGrainWeight=text("bullGrainWeight") or None,
        selectedClass=text("selectedClass") or None,
    )


def import_document(entries: EntryStore, source, on_phase: PhaseCallback = None) -> ImportResult:
    result = ImportResult()

    _notify(on_phase, Phase.VALIDATING)
    try:
        records = parse_document(source)
    except ImportValidationError:
        _notify(on_phase, Phase.FAILED)
        raise

    candidates = []
    for raw in records:
        entry = normalize_record(raw)
        if entry is None:
            logger.info("Skipping invalid entry: missing required fields")
            result.invalid += 1
            continue
        candidates.append((entry, raw.get(PHOTO_FIELD)))
    if not candidates:
        _notify(on_phase, Phase.FAILED)
        raise ImportValidationError("No valid entries found in the JSON data")

    existing = entries.ids()
    fresh = []
    for entry, photo in candidates:
        if entry.id in existing:
            result.skipped += 1
            continue
        existing.add(entry.id)
        fresh.append((entry, photo))

    _notify(on_phase, Phase.PROCESSING)
    written = []
    for entry, photo in fresh:
        if not photo:
            continue
        try:
            entry.targetImageUri = entries.photos.write_base64(
                str(photo), stem=f"imported_{re.sub(r'[^A-Za-z0-9_-]', '_', entry.id)}")
            written.append(entry.targetImageUri)
            result.photos_imported += 1
        except PhotoError as e:
            logger.error("Failed to import image for entry %s: %s", entry.id, e)
            entry.targetImageUri = None
            result.photos_failed += 1

    result.added = len(fresh)
    if fresh:
        _notify(on_phase, Phase.PERSISTING)
        try:
            entries.append_entries([e for e, _ in fresh])
        except OSError:
            for uri in written:
                entries.photos.delete(uri)
            _notify(on_phase, Phase.FAILED)
            raise
    _notify(on_phase, Phase.DONE)
    logger.info("Import completed: %d new entries, %d images processed, %d images failed, "
                "%d duplicates skipped", result.added, result.photos_imported,
                result.photos_failed, result.skipped)
    return result


# ---------------- Maintenance ----------------

def load_sample_entries(entries: EntryStore, samples: Optional[List[RangeEntry]] = None) -> int:
    """Replace the collection with sample entries; old photos are removed."""
    samples = sample_entries() if samples is None else samples
    old_photos = [e.targetImageUri for e in entries.load_entries() if e.targetImageUri]
    entries.replace_all(samples)
    for uri in old_photos:
        entries.photos.delete(uri)
    logger.info("Sample data loaded")
    return len(samples)


def clear_all_data(entries: EntryStore) -> None:
    entries.clear()
    entries.photos.clear()
    logger.info("All data and photos cleared")
