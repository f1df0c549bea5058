# app.py
import streamlit as st
import datetime as dt
import logging

import auth_supabase as auth
import backup
from config import (
    APP_NAME, DATA_PATH, PHOTOS_DIR, DEFAULT_EXPORT_NAME, DEFAULT_CLASS, CLASSES,
    DOPE_RANGES, require_auth, setup_logging,
)
from dope_cards import DopeCardStore, blank_ranges, card_frame
from engine import (
    ValidationError, compute_shot_summary, format_distance, format_grain_weight,
    format_score_display, format_shot_scores, sanitize_numeric_input, strip_unit,
)
from entries import (
    EntryStore, EntryNotFound, RangeEntry, FILTER_MODES, entry_date, filter_entries, entries_frame,
)
from photos import PhotoStore, PhotoError, PhotoPermissionError
from scores_ui_helpers import apply_scores_compact, render_shot_sheet, render_shot_summary, reset_sheet
from storage import Store, StoreCorrupt

setup_logging()
logger = logging.getLogger("app")

st.set_page_config(page_title=APP_NAME, layout="wide")


@st.cache_resource
def _open_store(path: str) -> Store:
    # One Store per process so every session shares the same write lock
    return Store(path)


try:
    store = _open_store(DATA_PATH)
except (StoreCorrupt, OSError) as e:
    logger.error("Error loading data: %s", e)
    st.error(f"{e}. Fix or move the file aside and reload.")
    st.stop()
photos = PhotoStore(PHOTOS_DIR)
entries = EntryStore(store, photos)
dope = DopeCardStore(store)


def _flash(msg: str):
    """Success message shown once after the next rerun."""
    st.session_state["flash"] = msg


# ---- Authentication (Supabase) ----
SUPABASE_CONFIGURED = auth.diagnose_config()["keys_present"]
REQUIRE_AUTH = require_auth()


def _session_context():
    """Per browser session: Supabase client + SessionContext bound to it."""
    if "session_ctx" not in st.session_state:
        client = auth.get_client() if SUPABASE_CONFIGURED else None
        ctx = auth.SessionContext()
        if client is not None:
            ctx.bind(client)
        st.session_state["sb_client"] = client
        st.session_state["session_ctx"] = ctx
        st.session_state.setdefault("page", auth.HOME_PAGE)
    return st.session_state["sb_client"], st.session_state["session_ctx"]


def _render_login(client, ctx):
    st.markdown(f"## {APP_NAME}")
    st.caption("Sign in to continue")
    with st.form("login_form", clear_on_submit=False):
        email = st.text_input("Email", key="auth_email")
        password = st.text_input("Password", type="password", key="auth_password")
        submitted = st.form_submit_button("Sign In")
    if submitted:
        try:
            sess = auth.sign_in(email, password, client=client)
            ctx.set_session(sess)
            _flash("Signed in")
            st.rerun()
        except auth.AuthError as e:
            st.error(f"Login failed: {e}")


def _render_auth_gate():
    """Stops the script until a session exists (or guest mode is allowed)."""
    if not SUPABASE_CONFIGURED:
        if REQUIRE_AUTH:
            st.error("Authentication required but Supabase is not configured. Add secrets or env keys.")
            st.stop()
        return None, None

    client, ctx = _session_context()
    dest = auth.route_for(ctx.has_session, st.session_state.get("page", auth.HOME_PAGE))
    if dest:
        st.session_state["page"] = dest
    if st.session_state["page"] == auth.LOGIN_PAGE:
        _render_login(client, ctx)
        st.stop()
    return client, ctx


_client, _ctx = _render_auth_gate()

if _ctx is not None:
    with st.sidebar:
        st.caption(f"Signed in as {_ctx.session.email if _ctx.session else '—'}")
        if st.button("Sign out", key="sb_signout"):
            _ctx.sign_out(_client)
            # next run binds a fresh context for the login screen
            st.session_state.pop("session_ctx", None)
            st.session_state.pop("sb_client", None)
            st.session_state["page"] = auth.LOGIN_PAGE
            st.rerun()
else:
    with st.sidebar:
        st.info("Guest mode (auth not active)")

st.title(APP_NAME)
st.caption("Track your rifle range data including scope settings, distances, and scores.")
if st.session_state.get("flash"):
    st.success(st.session_state.pop("flash"))


# ---------------- Entry form ----------------

def _sanitize_cb(key: str):
    prev_key = f"{key}__prev"
    val = sanitize_numeric_input(st.session_state.get(key, ""), st.session_state.get(prev_key, ""))
    st.session_state[key] = val
    st.session_state[prev_key] = val


def _seed(prefix: str, entry: RangeEntry = None):
    """Fill widget state once from an entry (edit) or blanks (add)."""
    flag = f"{prefix}__seeded"
    if st.session_state.get(flag):
        return
    e = entry
    st.session_state[f"{prefix}_name"] = e.entryName if e else ""
    st.session_state[f"{prefix}_date"] = entry_date(e.date) if e else dt.date.today()
    st.session_state[f"{prefix}_rifle"] = e.rifleName if e else ""
    st.session_state[f"{prefix}_cal"] = e.rifleCalibber if e else ""
    st.session_state[f"{prefix}_class"] = (e.selectedClass if e and e.selectedClass in CLASSES else DEFAULT_CLASS)
    for field, val in (("dist", e.distance if e else ""), ("grain", e.bullGrainWeight if e else "")):
        st.session_state[f"{prefix}_{field}"] = strip_unit(val)
        st.session_state[f"{prefix}_{field}__prev"] = strip_unit(val)
    st.session_state[f"{prefix}_elev"] = e.elevationMOA if e else ""
    st.session_state[f"{prefix}_wind"] = e.windageMOA if e else ""
    st.session_state[f"{prefix}_score"] = (e.score or "") if e else ""
    st.session_state[f"{prefix}_notes"] = e.notes if e else ""
    st.session_state[flag] = True


def _clear_form(prefix: str):
    for k in [k for k in st.session_state.keys() if str(k).startswith(prefix + "_")]:
        st.session_state.pop(k, None)
    reset_sheet(prefix)


def _entry_form(prefix: str, entry: RangeEntry = None):
    """Render the entry widgets; returns (fields, photo_bytes, photo_name, remove_photo)."""
    _seed(prefix, entry)
    st.text_input("Entry name", key=f"{prefix}_name", placeholder="e.g., Morning practice")
    c1, c2 = st.columns(2)
    c1.date_input("Date", key=f"{prefix}_date")
    c2.selectbox("Class", options=CLASSES, key=f"{prefix}_class")
    c1, c2 = st.columns(2)
    c1.text_input("Rifle name *", key=f"{prefix}_rifle")
    c2.text_input("Caliber", key=f"{prefix}_cal", placeholder="e.g., .308 Winchester")
    c1, c2 = st.columns(2)
    c1.text_input("Distance (yards) *", key=f"{prefix}_dist", on_change=_sanitize_cb, args=(f"{prefix}_dist",))
    c2.text_input("Bullet grain weight (gr)", key=f"{prefix}_grain", on_change=_sanitize_cb, args=(f"{prefix}_grain",))
    c1, c2 = st.columns(2)
    c1.text_input("Elevation MOA *", key=f"{prefix}_elev", placeholder="0.0")
    c2.text_input("Windage MOA *", key=f"{prefix}_wind", placeholder="0.0")

    st.markdown("#### Shot scores")
    apply_scores_compact()
    sheet = render_shot_sheet(prefix, entry.shotScores if entry else None)
    proposed = render_shot_summary(sheet)
    c1, c2 = st.columns([3, 1])
    c1.text_input("Score", key=f"{prefix}_score", help="Type a score or use the total from the shots")
    if proposed is not None:
        def _use_total():
            st.session_state[f"{prefix}_score"] = proposed
        c2.button("Use shot total", key=f"{prefix}_use_total", on_click=_use_total)

    st.text_area("Notes", key=f"{prefix}_notes", placeholder="Additional notes about this session...")

    st.markdown("#### Target photo")
    remove_photo = False
    if entry and entry.targetImageUri and photos.exists(entry.targetImageUri):
        st.image(entry.targetImageUri, width=240)
        remove_photo = st.checkbox("Remove this photo", key=f"{prefix}_rm_photo")
    src = st.radio("Add photo", ["None", "Upload", "Camera"], horizontal=True, key=f"{prefix}_photo_src")
    upload = None
    if src == "Upload":
        upload = st.file_uploader("Choose an image", type=["jpg", "jpeg", "png"], key=f"{prefix}_upload")
    elif src == "Camera":
        upload = st.camera_input("Take a photo of the target", key=f"{prefix}_camera")
    photo = upload.getvalue() if upload is not None else None
    photo_name = upload.name if upload is not None else None

    fields = {
        "entryName": st.session_state[f"{prefix}_name"],
        "date": st.session_state[f"{prefix}_date"],
        "rifleName": st.session_state[f"{prefix}_rifle"],
        "rifleCalibber": st.session_state[f"{prefix}_cal"],
        "selectedClass": st.session_state[f"{prefix}_class"],
        "distance": format_distance(st.session_state[f"{prefix}_dist"]),
        "bullGrainWeight": format_grain_weight(st.session_state[f"{prefix}_grain"]),
        "elevationMOA": st.session_state[f"{prefix}_elev"],
        "windageMOA": st.session_state[f"{prefix}_wind"],
        "score": st.session_state[f"{prefix}_score"],
        "shotScores": sheet.scores(),
        "notes": st.session_state[f"{prefix}_notes"],
    }
    return fields, photo, photo_name, remove_photo


def _render_entry_details(e: RangeEntry):
    st.subheader(e.entryName or "Unnamed Entry")
    c1, c2 = st.columns(2)
    with c1:
        st.write(f"**Rifle:** {e.rifleName}" + (f" ({e.rifleCalibber})" if e.rifleCalibber else ""))
        st.write(f"**Date:** {e.date}")
        st.write(f"**Distance:** {e.distance}")
        if e.bullGrainWeight:
            st.write(f"**Bullet grain weight:** {e.bullGrainWeight}")
        st.write(f"**Class:** {e.selectedClass or DEFAULT_CLASS}")
    with c2:
        st.write(f"**Elevation:** {e.elevationMOA} MOA")
        st.write(f"**Windage:** {e.windageMOA} MOA")
        if e.score:
            st.write(f"**Overall score:** {e.score}")

    s = compute_shot_summary(e.shotScores or [])
    if s:
        st.write(f"**Shot scores** ({len(e.shotScores)} shots"
                 + (f", {s.v_count} V-Bull ({s.v_points}pts)" if s.v_count else "") + ")")
        st.code(format_shot_scores(e.shotScores))
        avg = f"{s.numeric_average:.1f}" if s.numeric_average is not None else "—"
        st.caption(f"Total {format_score_display(s.total)} · average of numeric shots {avg}")
    else:
        st.caption("No individual shot scores recorded")

    if e.targetImageUri:
        if photos.exists(e.targetImageUri):
            st.image(e.targetImageUri, caption="Target photo", use_container_width=True)
        else:
            st.warning("Target photo file is missing.")
    if e.notes:
        st.markdown("**Notes**")
        st.write(e.notes)


tab_add, tab_view, tab_dope, tab_io = st.tabs(["Add Entry", "View Entries", "DOPE Cards", "Load Data"])

# -------- Add --------
with tab_add:
    st.subheader("Add Range Entry")
    fields, photo, photo_name, _ = _entry_form("add")
    if st.button("Save Entry", type="primary", key="add_save"):
        try:
            e = entries.add_entry(fields, photo=photo, photo_name=photo_name)
            _clear_form("add")
            _flash(f"Range entry saved: {e.entryName}")
            st.rerun()
        except ValidationError as e:
            st.error(str(e))
        except PhotoPermissionError as e:
            st.error(str(e))
        except (PhotoError, OSError) as e:
            logger.error("Error saving entry: %s", e)
            st.error(f"Failed to save entry. Please try again. ({e})")

# -------- View / edit --------
with tab_view:
    st.subheader("Range Entries")
    try:
        all_entries = entries.load_entries()
    except (OSError, ValueError) as e:
        logger.error("Error loading entries: %s", e)
        st.error("Failed to load entries")
        all_entries = []

    c1, c2 = st.columns([1, 3])
    mode = c1.selectbox("Filter", FILTER_MODES, key="flt_mode",
                        format_func=lambda m: {"all": "All", "name": "Name", "distance": "Distance"}[m])
    value = c2.text_input("Filter value", key="flt_value", disabled=mode == "all")
    shown = filter_entries(all_entries, mode, value)
    st.caption(f"Showing {len(shown)} of {len(all_entries)} entries")
    st.dataframe(entries_frame(shown), use_container_width=True, hide_index=True)

    if shown:
        labels = {e.id: f"{e.date} · {e.entryName or 'Unnamed Entry'} · {e.distance}" for e in shown}
        ids = list(labels)
        cur = st.session_state.get("sel_entry")
        idx = ids.index(cur) if cur in ids else 0
        sel = st.selectbox("Entry", ids, index=idx, format_func=lambda i: labels[i], key="sel_entry_box")
        st.session_state["sel_entry"] = sel
        try:
            selected = entries.get_entry(sel)
        except EntryNotFound as e:
            st.error(str(e))
            st.session_state.pop("sel_entry", None)
            st.session_state.pop("editing_id", None)
            selected = None

        if selected is not None:
            editing = st.session_state.get("editing_id") == selected.id
            b1, b2, b3 = st.columns([1, 1, 4])
            if not editing and b1.button("Edit", key="ent_edit"):
                st.session_state["editing_id"] = selected.id
                st.rerun()
            with b2.popover("Delete"):
                st.write("Are you sure you want to delete this entry?")
                if st.button("Delete entry", key="ent_del", type="primary"):
                    try:
                        entries.delete_entry(selected.id)
                        st.session_state.pop("sel_entry", None)
                        st.session_state.pop("editing_id", None)
                        _flash("Entry deleted")
                        st.rerun()
                    except EntryNotFound as e:
                        st.error(str(e))
                    except OSError as e:
                        logger.error("Error deleting entry: %s", e)
                        st.error("Failed to delete entry")

            if editing:
                prefix = f"edit_{selected.id}"
                fields, photo, photo_name, remove_photo = _entry_form(prefix, selected)
                s1, s2 = st.columns([1, 5])
                if s1.button("Update Entry", type="primary", key=f"{prefix}_save"):
                    try:
                        entries.update_entry(selected.id, fields, photo=photo, remove_photo=remove_photo,
                                             photo_name=photo_name)
                        _clear_form(prefix)
                        st.session_state.pop("editing_id", None)
                        _flash("Range entry updated successfully!")
                        st.rerun()
                    except EntryNotFound as e:
                        st.error(str(e))
                        st.session_state.pop("editing_id", None)
                    except ValidationError as e:
                        st.error(str(e))
                    except (PhotoError, OSError) as e:
                        logger.error("Error updating entry: %s", e)
                        st.error(f"Failed to update entry. ({e})")
                if s2.button("Cancel", key=f"{prefix}_cancel"):
                    _clear_form(prefix)
                    st.session_state.pop("editing_id", None)
                    st.rerun()
            else:
                _render_entry_details(selected)
    else:
        st.info("No entries yet. Add one or load data.")

# -------- DOPE cards --------
with tab_dope:
    st.subheader("DOPE Cards")
    cards = dope.list_cards()
    editing_card = dope.get_card(st.session_state.get("dope_edit_id")) if st.session_state.get("dope_edit_id") else None

    with st.expander("Edit DOPE card" if editing_card else "Add new DOPE card", expanded=editing_card is not None):
        ranges_src = (editing_card or {}).get("ranges") or blank_ranges()
        with st.form("dope_form", clear_on_submit=False):
            rifle = st.text_input("Rifle name", value=(editing_card or {}).get("rifleName", ""))
            cal = st.text_input("Caliber", value=(editing_card or {}).get("caliber", ""))
            st.markdown("**Range data (MOA)**")
            new_ranges = {}
            for rng in DOPE_RANGES:
                c0, c1, c2 = st.columns([1, 2, 2])
                c0.write(f"{rng} yds")
                vals = ranges_src.get(rng, {})
                new_ranges[rng] = {
                    "elevation": c1.text_input(f"Elevation {rng}", value=vals.get("elevation", ""), label_visibility="collapsed", placeholder="Elev"),
                    "windage": c2.text_input(f"Windage {rng}", value=vals.get("windage", ""), label_visibility="collapsed", placeholder="Wind"),
                }
            f1, f2 = st.columns(2)
            ok = f1.form_submit_button("Save")
            cancel = f2.form_submit_button("Cancel")
        if cancel:
            st.session_state.pop("dope_edit_id", None)
            st.rerun()
        if ok:
            try:
                dope.save_card(rifle, cal, new_ranges, card_id=editing_card["id"] if editing_card else None)
                st.session_state.pop("dope_edit_id", None)
                _flash(f"DOPE card {'updated' if editing_card else 'saved'} successfully")
                st.rerun()
            except (ValidationError, LookupError) as e:
                st.error(str(e))
            except OSError as e:
                logger.error("Error saving DOPE cards: %s", e)
                st.error("Failed to save DOPE cards")

    if not cards:
        st.info("No DOPE cards yet.")
    for card in cards:
        st.markdown(f"**{card.get('rifleName')}** · {card.get('caliber')}")
        st.dataframe(card_frame(card), hide_index=True, use_container_width=True)
        d1, d2, _ = st.columns([1, 1, 4])
        if d1.button("Edit", key=f"dope_edit_{card['id']}"):
            st.session_state["dope_edit_id"] = card["id"]
            st.rerun()
        if d2.button("Delete", key=f"dope_del_{card['id']}"):
            try:
                dope.delete_card(card["id"])
                _flash("DOPE card deleted successfully")
                st.rerun()
            except OSError as e:
                st.error(f"Could not delete: {e}")

# -------- Load data (import/export) --------
with tab_io:
    st.subheader("Load Data")
    status = st.empty()

    def _phase(p):
        status.caption(f"Status: {p.value}")

    st.markdown("### Import from JSON")
    up = st.file_uploader("Select a JSON export", type=["json"], key="io_import_file")
    if up is not None and st.button("Import entries", key="io_import_btn"):
        try:
            result = backup.import_document(entries, up.getvalue(), on_phase=_phase)
            if result.added:
                st.success(result.message())
            else:
                st.info(result.message())
        except backup.ImportValidationError as e:
            st.error(str(e))
        except OSError as e:
            logger.error("Error processing JSON data: %s", e)
            st.error("Import failed. Please check your data and try again.")

    st.markdown("---")
    st.markdown("### Export to JSON")
    fname = st.text_input("File name", value=DEFAULT_EXPORT_NAME, key="io_export_name")
    mode = st.radio("Delivery", ["share", "save"], horizontal=True, key="io_export_mode",
                    format_func=lambda m: "Share / download" if m == "share" else "Save to folder")
    folder = st.text_input("Folder", value="exports", key="io_export_dir") if mode == "save" else None
    if st.button("Export data", key="io_export_btn"):
        try:
            result = backup.export_entries(entries, fname, on_phase=_phase)
            result = backup.deliver(result, mode, directory=folder, on_phase=_phase)
            st.success(result.message() + (f" ({result.path})" if result.path else ""))
            if mode == "share":
                st.download_button("Download / share export", data=result.data, file_name=result.file_name,
                                   mime="application/json", key="io_export_dl")
        except backup.NothingToExport as e:
            st.info(str(e))
        except backup.ExportError as e:
            st.error(str(e))

    st.markdown("---")
    st.markdown("### Sample data")
    st.caption("Load some sample range entries to get started. This replaces the current entries.")
    if st.button("Load Sample Data", key="io_sample"):
        try:
            n = backup.load_sample_entries(entries)
            st.success(f"Sample data loaded ({n} entries)")
        except OSError as e:
            logger.error("Error loading sample data: %s", e)
            st.error("Failed to load sample data")

    st.markdown("### Clear all data")
    with st.form("io_clear_form", clear_on_submit=True):
        st.warning("Deletes all range entries and photos. This cannot be undone.")
        confirm = st.text_input("Type DELETE to confirm", key="io_clear_confirm")
        clear_ok = st.form_submit_button("Delete everything")
    if clear_ok:
        if confirm == "DELETE":
            try:
                backup.clear_all_data(entries)
                st.success("All data and photos cleared successfully!")
            except OSError as e:
                logger.error("Error clearing data: %s", e)
                st.error("Failed to clear data")
        else:
            st.error("Confirmation text mismatch.")
