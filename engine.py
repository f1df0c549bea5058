# engine.py
from dataclasses import dataclass, field
from typing import Iterable, List, Optional
import math
import re

from config import MAX_SHOTS

V_TOKEN = "v"
V_POINTS = 5
SHOT_TOKENS = ["", "0", "1", "2", "3", "4", "5", V_TOKEN]


class ValidationError(ValueError):
    """Input failed a required-field or format check."""


@dataclass
class ShotSummary:
    numeric_total: float
    v_count: int
    total: float
    shot_count: int
    numeric_average: Optional[float] = None

    @property
    def v_points(self) -> int:
        return self.v_count * V_POINTS

    @property
    def pure_numeric_total(self) -> float:
        """Points excluding V hits."""
        return self.numeric_total - self.v_points


def compute_shot_summary(tokens: Iterable[str]) -> Optional[ShotSummary]:
    """Aggregate raw shot tokens into a ShotSummary.

    Blank tokens are dropped. A "v" (any case) adds 5 points and one V; any
    other token is read as a number, and tokens that don't parse are skipped.
    Each V also adds 0.1 to the total as a tie-break decimal. Returns None
    when no token counted.
    """
    numeric_total = 0.0
    v_count = 0
    counted = 0
    plain: List[float] = []
    for raw in tokens or []:
        tok = str(raw if raw is not None else "").strip()
        if not tok:
            continue
        if tok.lower() == V_TOKEN:
            numeric_total += V_POINTS
            v_count += 1
            counted += 1
            continue
        try:
            val = float(tok)
        except ValueError:
            continue
        if not math.isfinite(val):
            continue
        numeric_total += val
        plain.append(val)
        counted += 1

    if counted == 0:
        return None
    decimal_part = v_count / 10
    return ShotSummary(
        numeric_total=numeric_total,
        v_count=v_count,
        total=numeric_total + decimal_part,
        shot_count=counted,
        numeric_average=(sum(plain) / len(plain)) if plain else None,
    )


def compute_total(tokens: Iterable[str]) -> Optional[float]:
    summary = compute_shot_summary(tokens)
    return summary.total if summary else None


def format_score(total: float) -> str:
    """Value written to the score field: 19.1, 20 (no forced precision)."""
    val = round(float(total), 1)
    if val.is_integer():
        return str(int(val))
    return str(val)


def format_score_display(total: float) -> str:
    return f"{float(total):.1f}"


# ---------------- Shot tokens ----------------

def normalize_shot_token(token) -> str:
    tok = str(token if token is not None else "").strip().lower()
    if tok not in SHOT_TOKENS:
        raise ValidationError(f"Invalid shot score {token!r}: use 0-5 or V")
    return tok


def clean_shot_scores(tokens: Optional[Iterable[str]]) -> List[str]:
    """Normalize tokens, drop blanks and enforce the shot cap."""
    if not tokens:
        return []
    out = [t for t in (normalize_shot_token(x) for x in tokens) if t]
    if len(out) > MAX_SHOTS:
        raise ValidationError(f"At most {MAX_SHOTS} shots can be recorded")
    return out


def format_shot_scores(tokens: Iterable[str]) -> str:
    return ", ".join(str(t).upper() for t in tokens)


def next_shot_focus(index: int, value: str, max_shots: int = MAX_SHOTS) -> Optional[int]:
    """Slot to focus after choosing `value` for shot `index` (0-based)."""
    if not str(value or "").strip():
        return None
    if index + 1 >= max_shots:
        return None
    return index + 1


@dataclass
class ShotSheet:
    """Stepwise shot entry: fixed slots plus the slot that has focus."""
    slots: List[str] = field(default_factory=lambda: [""] * MAX_SHOTS)
    focus: int = 0

    @classmethod
    def from_scores(cls, scores: Optional[Iterable[str]]) -> "ShotSheet":
        sheet = cls()
        for i, tok in enumerate(list(scores or [])[:MAX_SHOTS]):
            sheet.slots[i] = normalize_shot_token(tok)
        filled = [i for i, s in enumerate(sheet.slots) if s]
        sheet.focus = min(filled[-1] + 1, MAX_SHOTS - 1) if filled else 0
        return sheet

    def select(self, index: int, value: str) -> None:
        if not 0 <= index < len(self.slots):
            raise IndexError(f"Shot {index + 1} is out of range")
        self.slots[index] = normalize_shot_token(value)
        nxt = next_shot_focus(index, self.slots[index], len(self.slots))
        if nxt is not None:
            self.focus = nxt
        elif self.slots[index]:
            self.focus = index

    def clear(self) -> None:
        self.slots = [""] * len(self.slots)
        self.focus = 0

    def scores(self) -> List[str]:
        return [s for s in self.slots if s]

    def summary(self) -> Optional[ShotSummary]:
        return compute_shot_summary(self.slots)


# ---------------- Numeric inputs ----------------

_NON_NUMERIC = re.compile(r"[^\d.]")


def sanitize_numeric_input(text: str, previous: Optional[str] = None) -> str:
    """Keep digits and a single decimal point.

    A second decimal point is rejected: `previous` is returned unchanged.
    Without a previous value the extra points are dropped instead.
    """
    cleaned = _NON_NUMERIC.sub("", str(text or ""))
    if cleaned.count(".") > 1:
        if previous is not None:
            return previous
        head, _, tail = cleaned.partition(".")
        cleaned = head + "." + tail.replace(".", "")
    return cleaned


def strip_unit(value: Optional[str]) -> str:
    """"100 yards" -> "100"."""
    return _NON_NUMERIC.sub("", str(value or ""))


def format_distance(value: str) -> str:
    num = sanitize_numeric_input(value)
    return f"{num} yards" if num else ""


def format_grain_weight(value: str) -> str:
    num = sanitize_numeric_input(value)
    return f"{num} gr" if num else ""
