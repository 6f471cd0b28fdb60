# app.py
# -----------------------------------------------
# ⏱️ Work time & surcharges (Streamlit)
# -----------------------------------------------
# Requires: streamlit, sqlmodel, pandas, holidays, psycopg2-binary (for Postgres)
# Clock in/out, breaks, absences, ÜSP ledger and the batch recalculation.

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import streamlit as st

from allowance import OvertimeAllowanceLedger
from calendar_policy import provider_from_settings, week_bounds, month_bounds
from config import configure_logging, load_settings
from domain import AbsenceEntry, AbsenceType, Break, WorkStatus
from errors import TimeTrackingError
from recalculation import SurchargeRecalculator
from reports import calendar_month, monthly_trends, overtime_summary, period_statistics, weekly_target_status
from repository import WorkTimeRepository
from services import SurchargeClassifier, WorkTimeCalculator
from tracking import TimeTracker
from utils import (
    absences_to_dataframe,
    calendar_to_dataframe,
    entries_to_dataframe,
    format_minutes_hhmm,
    period_totals_to_dataframe,
    trends_to_dataframe,
    weeks_to_dataframe,
)

SETTINGS = load_settings()
configure_logging(SETTINGS.log_level)
TZ = ZoneInfo(SETTINGS.timezone)


def local_now() -> datetime:
    # naive wall-clock time, the way timestamps are stored
    return datetime.now(TZ).replace(tzinfo=None, microsecond=0)


@st.cache_resource
def get_services(url: str):
    SETTINGS.data_dir.mkdir(parents=True, exist_ok=True)
    repo = WorkTimeRepository(url, echo=False)
    provider = provider_from_settings(SETTINGS.holiday_provider, SETTINGS.holiday_subdivision)
    classifier = SurchargeClassifier(provider)
    ledger = OvertimeAllowanceLedger(repo, SETTINGS.usp_total_hours, SETTINGS.usp_settled_before_year)
    tracker = TimeTracker(repo, WorkTimeCalculator(), classifier, ledger, SETTINGS.long_break_warning_minutes)
    recalculator = SurchargeRecalculator(repo, classifier, ledger)
    return repo, tracker, ledger, recalculator


st.set_page_config(page_title="Work time", page_icon="⏱️", layout="centered")
repo, tracker, ledger, recalculator = get_services(SETTINGS.database_url)

st.title("⏱️ Work time")

user_id = st.sidebar.text_input("User", value=st.session_state.get("user_id", "me")).strip()
st.session_state["user_id"] = user_id
if not user_id:
    st.stop()


def run_action(action, *args, success: str = ""):
    try:
        action(*args)
    except TimeTrackingError as e:
        st.error(str(e))
        return
    if success:
        st.session_state["_flash_success"] = success
    st.rerun()


msg = st.session_state.pop("_flash_success", None)
if msg:
    st.success(msg)

# =========================
# Dashboard
# =========================
st.subheader("Today")


@st.fragment(run_every=SETTINGS.live_refresh_seconds)
def live_counter():
    now = local_now()
    session = tracker.current_session(user_id)
    if session is None:
        st.info("Not clocked in.")
        return
    minutes = tracker.live_minutes(user_id, now)
    state = "on a break" if session.status is WorkStatus.BREAK else "working"
    st.metric(f"Worked so far ({state})", format_minutes_hhmm(minutes))
    st.caption(f"Since {session.start_time.strftime('%d.%m.%Y %H:%M')}")


live_counter()

session = tracker.current_session(user_id)
c1, c2 = st.columns(2)
if session is None:
    if c1.button("Start work", use_container_width=True):
        run_action(tracker.start_work, user_id, local_now(), success="Work started.")
else:
    if session.status is WorkStatus.WORKING:
        if c1.button("Start break", use_container_width=True):
            run_action(tracker.start_break, user_id, local_now(), success="Break started.")
    else:
        if c1.button("End break", use_container_width=True):
            run_action(tracker.end_break, user_id, local_now(), success="Break ended.")
    if c2.button("End work", use_container_width=True):
        run_action(tracker.end_work, user_id, local_now(), success="Work day finished.")

# =========================
# History & overtime
# =========================
entries = repo.list_time_entries(user_id)
absences = repo.list_absences(user_id)
settings = repo.get_settings(user_id)

st.subheader("History")
df = entries_to_dataframe(entries)
if df.empty:
    st.info("No entries yet.")
else:
    st.dataframe(df.drop(columns=["ID"]), use_container_width=True, hide_index=True)
    with st.expander("Edit or delete an entry"):
        by_id = {e.id: e for e in entries}
        labels = {f"{r['Date']} {r['Start']}-{r['End']} ({r['Net']})": int(r["ID"]) for _, r in df.iterrows()}
        choice = st.selectbox("Entry", list(labels))
        picked = by_id[labels[choice]]
        with st.form(f"edit_entry_{picked.id}"):
            e_date = st.date_input("Date", value=picked.date)
            e1, e2 = st.columns(2)
            e_start = e1.time_input("Start", value=picked.start_time.time(), step=300)
            e_end = e2.time_input("End", value=picked.end_time.time(), step=300)
            first = picked.breaks[0] if picked.breaks else None
            b1, b2 = st.columns(2)
            b_start = b1.time_input("Break start", value=(first.start if first else picked.start_time).time(), step=300)
            b_minutes = b2.number_input("Break (min)", min_value=0, max_value=600, step=5,
                                        value=int(round(picked.total_break_duration_ms / 60000)))
            if st.form_submit_button("Save changes"):
                start = datetime.combine(e_date, e_start)
                end = datetime.combine(e_date, e_end)
                b_at = datetime.combine(e_date, b_start)
                breaks = [Break(start=b_at, end=b_at + timedelta(minutes=int(b_minutes)))] if b_minutes else []
                run_action(tracker.edit_entry, picked.id, start, end, breaks, success="Entry updated.")
        if st.button("Delete entry"):
            run_action(tracker.delete_entry, picked.id, success="Entry deleted.")

st.subheader("Overtime")
tab_w, tab_m, tab_y = st.tabs(["Week", "Month", "Year"])
for tab, period in ((tab_w, "week"), (tab_m, "month"), (tab_y, "year")):
    with tab:
        totals = overtime_summary(entries, period)
        if totals:
            st.dataframe(period_totals_to_dataframe(totals), use_container_width=True, hide_index=True)
        else:
            st.caption("No data.")

today = local_now().date()
for title, (d1, d2) in (("This week", week_bounds(today)), ("This month", month_bounds(today))):
    stats = period_statistics(entries, absences, d1, d2)
    st.markdown(
        f"- **{title}**: {format_minutes_hhmm(stats.total_minutes)} worked · "
        f"overtime {format_minutes_hhmm(stats.overtime_minutes)} · "
        f"surcharge value {format_minutes_hhmm(stats.surcharge_amount)}"
    )

with st.expander("Weekly targets"):
    weeks = weekly_target_status(entries, absences, settings.custom_holidays, tracker.classifier.provider)
    st.dataframe(weeks_to_dataframe(weeks.values()), use_container_width=True, hide_index=True)

with st.expander("Calendar"):
    month_pick = st.date_input("Month", value=today, key="calendar_month")
    days = calendar_month(month_pick.year, month_pick.month, entries, absences,
                          settings.custom_holidays, tracker.classifier.provider)
    st.dataframe(calendar_to_dataframe(days), use_container_width=True, hide_index=True)

with st.expander("Last 6 months"):
    st.dataframe(trends_to_dataframe(monthly_trends(entries, absences, local_now())),
                 use_container_width=True, hide_index=True)

# =========================
# Absences
# =========================
st.subheader("Absences")
with st.form("absence_form", clear_on_submit=True):
    a_date = st.date_input("Date", value=today)
    a_type = st.selectbox("Type", [t.value for t in AbsenceType])
    a_hours = st.number_input("Hours", min_value=0.0, max_value=24.0, step=0.5, value=8.0)
    a_note = st.text_input("Note (optional)")
    if st.form_submit_button("Save absence"):
        run_action(tracker.add_absence, AbsenceEntry(
            user_id=user_id, date=a_date, absence_type=AbsenceType(a_type),
            hours=float(a_hours), note=a_note.strip() or None,
        ), success="Absence saved.")
vacation = tracker.vacation_allowance(user_id, today.year)
st.metric(f"Vacation days left {today.year}", f"{vacation.remaining_days:g}",
          help=f"{vacation.used_days:g} of {vacation.total_days + vacation.carried_over_days:g} used")
df_abs = absences_to_dataframe(absences)
if not df_abs.empty:
    st.dataframe(df_abs.drop(columns=["ID"]), use_container_width=True, hide_index=True)
    abs_labels = {f"{r['Date']} {r['Type']} ({r['Hours']:g} h)": int(r["ID"]) for _, r in df_abs.iterrows()}
    c_sel, c_btn = st.columns([3, 1])
    abs_choice = c_sel.selectbox("Absence", list(abs_labels), label_visibility="collapsed")
    if c_btn.button("Delete absence", use_container_width=True):
        run_action(tracker.delete_absence, abs_labels[abs_choice], success="Absence deleted.")

# =========================
# Overtime allowance (ÜSP)
# =========================
st.subheader("Overtime allowance (ÜSP)")
summary = ledger.summary(user_id, today.year)
st.progress(min(1.0, summary.progress_percent / 100))
st.markdown(
    f"- **{summary.year}**: {summary.consumed_hours:.1f} / {summary.total_hours:.0f} h consumed\n"
    f"- Actual overtime: {summary.actual_overtime_hours:.1f} h\n"
    f"- After the allowance, {summary.effective_overtime_hours:.1f} h count as real overtime"
)
for row in ledger.history(user_id, local_now()):
    if row.year == today.year and row.is_fully_consumed:
        continue
    cols = st.columns([3, 1])
    cols[0].write(f"{row.year}: {row.consumed_hours:.1f} / {row.total_hours:.0f} h" + (f" · {row.notes}" if row.notes else ""))
    if not row.is_fully_consumed and cols[1].button("Mark consumed", key=f"usp_{row.year}"):
        run_action(ledger.mark_as_consumed, user_id, row.year, success=f"ÜSP {row.year} marked as consumed.")

# =========================
# Settings & maintenance
# =========================
with st.expander("Settings"):
    holidays_raw = st.text_input("Custom holidays (MM-DD, comma separated)", value=", ".join(settings.custom_holidays))
    reminder = st.checkbox("Break reminder", value=settings.break_reminder_enabled)
    if st.button("Save settings"):
        values = [v for v in (s.strip() for s in holidays_raw.split(",")) if v]
        run_action(tracker.update_settings, user_id, values, reminder, success="Settings saved.")

    if st.button("Recalculate all surcharges"):
        report = recalculator.run(local_now())
        st.success(f"{report.updated} of {report.total} entries recalculated.")
        if report.failed:
            st.warning(f"{len(report.failed)} entries could not be updated.")
        if report.failed_users:
            st.warning(f"Could not read the data of: {', '.join(u for u, _ in report.failed_users)}")
