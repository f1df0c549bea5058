"""
Helpers for the shot-score entry widgets.

Usage in app.py (inside the entry form only):

    from scores_ui_helpers import apply_scores_compact, render_shot_sheet
    apply_scores_compact()
    sheet = render_shot_sheet("add")

The sheet lives in st.session_state under the given key so it survives
reruns. Choosing a value for the shot that has focus moves focus to the
next shot; any earlier shot can be changed at any time.
"""

from __future__ import annotations

from typing import Optional, Iterable

import streamlit as st

from engine import ShotSheet, SHOT_TOKENS, format_score, format_score_display


_COMPACT_CSS = """
<style>
.stSelectbox [data-baseweb="select"] > div { min-height: 28px !important; }
.shot-summary { padding: 6px 10px; border-radius: 6px; background: rgba(34,197,94,.14); }
</style>
"""

_LABELS = {"": "—", "v": "V"}


def apply_scores_compact() -> None:
    """Inject compact CSS for the shot grid."""
    st.markdown(_COMPACT_CSS, unsafe_allow_html=True)


def _sheet_key(key: str) -> str:
    return f"shot_sheet_{key}"


def get_sheet(key: str, scores: Optional[Iterable[str]] = None) -> ShotSheet:
    sk = _sheet_key(key)
    if sk not in st.session_state:
        st.session_state[sk] = ShotSheet.from_scores(scores)
    return st.session_state[sk]


def reset_sheet(key: str) -> None:
    st.session_state.pop(_sheet_key(key), None)
    for i in range(len(ShotSheet().slots)):
        st.session_state.pop(f"{key}_shot_{i}", None)


def render_shot_sheet(key: str, scores: Optional[Iterable[str]] = None, per_row: int = 4) -> ShotSheet:
    sheet = get_sheet(key, scores)

    def _on_change(i: int) -> None:
        sheet.select(i, st.session_state.get(f"{key}_shot_{i}", ""))

    n = len(sheet.slots)
    for start in range(0, n, per_row):
        cols = st.columns(per_row)
        for offset, col in enumerate(cols):
            i = start + offset
            if i >= n:
                break
            wk = f"{key}_shot_{i}"
            if wk not in st.session_state:
                st.session_state[wk] = sheet.slots[i]
            label = f"Shot {i + 1}" + (" ◀" if i == sheet.focus else "")
            with col:
                st.selectbox(label, options=SHOT_TOKENS, key=wk,
                             format_func=lambda v: _LABELS.get(v, v),
                             on_change=_on_change, args=(i,))
    return sheet


def render_shot_summary(sheet: ShotSheet) -> Optional[str]:
    """Show totals for the sheet; returns the proposed score string."""
    s = sheet.summary()
    if s is None:
        st.caption("No shots entered yet.")
        return None
    avg = f"{s.numeric_average:.1f}" if s.numeric_average is not None else "—"
    st.markdown(
        f"<div class='shot-summary'>Total <b>{format_score_display(s.total)}</b> · "
        f"{s.shot_count} shots · points {s.pure_numeric_total:g} · "
        f"V-Bulls {s.v_count} ({s.v_points} pts) · average {avg}</div>",
        unsafe_allow_html=True,
    )
    return format_score(s.total)


__all__ = ["apply_scores_compact", "render_shot_sheet", "render_shot_summary", "get_sheet", "reset_sheet"]
