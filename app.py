from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

import streamlit as st

from aggregator import hub_health, series_averages, skill_gaps, team_stats, training_needs_summary, trend
from cloud_sync import RemoteSessionStore, push_session, sync_with_cloud
from coaching_agent import CoachingAgent
from delimited_text import parse_rows
from hub_config import HubConfig, load_hub_config
from import_layout import LayoutMismatchError
from main import build_agent, build_hub, build_remote
from serialization import sessions_to_ledger_csv
from session_import import preview_rows
from sessions import new_session, search_sessions
from store import AuditHub, StaleRevisionError

SERIES_LABELS = {
    "S1": "S1: FOUNDATION",
    "S2": "S2: ENGAGE",
    "S3": "S3: EXCITE",
    "S4": "S4: EXPLAIN",
    "S5": "S5: EXECUTE",
}


@st.cache_resource(show_spinner=False)
def load_config_cached() -> HubConfig:
    return load_hub_config()


@st.cache_resource(show_spinner=False)
def load_hub_cached(data_dir: str) -> AuditHub:
    return build_hub(load_config_cached())


def _remote(config: HubConfig) -> Optional[RemoteSessionStore]:
    cache = st.session_state.setdefault("remote_cache", {})
    if "remote" not in cache:
        cache["remote"] = build_remote(config)
    return cache["remote"]


def _agent(config: HubConfig) -> CoachingAgent:
    cache = st.session_state.setdefault("agent_cache", {})
    key = f"{config.ollama_model}|{config.temperature}|{config.ollama_base_url or 'default'}"
    if key not in cache:
        cache[key] = build_agent(config)
    return cache[key]


# ---------- Audit form ----------


def _render_audit_form(hub: AuditHub, config: HubConfig) -> None:
    rubric = hub.rubric
    with st.form("audit_form", clear_on_submit=True):
        cols = st.columns(4)
        staff_name = cols[0].text_input("Staff name")
        supervisor_name = cols[1].text_input("Supervisor")
        store_branch = cols[2].text_input("Store / branch")
        audit_day = cols[3].date_input("Audit date", value=date.today())

        scores: dict[str, float] = {}
        comments: dict[str, str] = {}
        for series, items in rubric.group_by_series().items():
            with st.expander(SERIES_LABELS.get(series, series), expanded=False):
                for item in items:
                    label = f"{item.task}{' (Bonus)' if item.is_bonus else ''}"
                    scores[item.id] = st.number_input(
                        label,
                        min_value=0.0,
                        max_value=float(item.max_points),
                        value=0.0,
                        step=0.5,
                        key=f"score_{item.id}",
                    )
                comments[series] = st.text_area(f"{series} observations", key=f"comment_{series}")
        overall_comment = st.text_area("Overall summary")
        submitted = st.form_submit_button("Submit audit", type="primary")

    if not submitted:
        return
    try:
        session = new_session(
            rubric,
            staff_name=staff_name,
            supervisor_name=supervisor_name,
            store_branch=store_branch,
            audit_date=datetime.combine(audit_day, time.min, tzinfo=timezone.utc),
            scores=scores,
            existing_count=len(hub.sessions),
            category_comments={k: v for k, v in comments.items() if v.strip()},
            overall_comment=overall_comment,
        )
    except ValueError as exc:
        st.warning(str(exc))
        return

    with st.spinner("Generating coaching feedback..."):
        feedback = _agent(config).coaching_feedback(session, rubric)
    session = session.with_feedback(feedback)
    hub.add_session(session)

    remote = _remote(config)
    if remote is not None and not push_session(hub, remote, session):
        st.info("Saved locally; the cloud hub could not be reached.")

    st.success(f"Audit {session.audit_reference} saved: {session.total_score:g}/{session.max_possible_score}")
    st.markdown(feedback)


# ---------- Bulk import ----------


def _render_import(hub: AuditHub) -> None:
    st.caption("Paste the full 74-column range from the spreadsheet. Scores are clamped to hub standards.")
    paste = st.text_area("Spreadsheet rows", height=180, key="paste_content")
    stable_ids = st.checkbox("Skip rows already imported from identical text", value=False)

    if paste.strip():
        preview = preview_rows(parse_rows(paste))
        if preview:
            st.table([{"Name": name, "Ref": ref, "Cols": count} for name, ref, count in preview])

    if st.button("Sync historical hub", disabled=not paste.strip()):
        with st.spinner("Importing..."):
            outcome = hub.import_text(paste, stable_ids=stable_ids)
        if outcome.added:
            st.success(outcome.summary())
        else:
            st.warning(outcome.summary())


# ---------- Standards ----------


def _render_standards(hub: AuditHub) -> None:
    health = hub_health(hub.sessions, hub.rubric)
    cols = st.columns(2)
    cols[0].metric("Hub compliance", f"{health.compliance}%")
    if health.problematic:
        cols[0].caption(f"{health.problematic} records violate current standards")

    if cols[1].button("Enforce hub standards", disabled=health.problematic == 0):
        try:
            outcome = hub.sanitize(expected_revision=st.session_state.get("seen_revision", hub.revision))
        except StaleRevisionError:
            st.warning("Hub data changed since this page loaded. Review the figures and try again.")
        else:
            st.success(outcome.result.summary())

    rows = [
        {"id": item.id, "Series": item.series, "Task": item.task, "Max points": item.max_points}
        for item in hub.rubric
    ]
    edited = st.data_editor(rows, disabled=["id", "Series", "Task"], key="standards_editor")
    if st.button("Save standards"):
        updates = {row["id"]: float(row["Max points"]) for row in edited}
        try:
            hub.update_rubric(hub.rubric.with_max_points(updates))
        except (LayoutMismatchError, ValueError) as exc:
            st.error(f"Standards not saved: {exc}")
        else:
            st.success("Standards updated.")


# ---------- Dashboard ----------


def _render_dashboard(hub: AuditHub, config: HubConfig) -> None:
    sessions, rubric = hub.sessions, hub.rubric

    remote = _remote(config)
    if remote is not None and st.button("Refresh from cloud"):
        added = sync_with_cloud(hub, remote)
        st.info(f"Synchronized {added} new records.")
        sessions = hub.sessions

    stats = team_stats(sessions)
    cols = st.columns(3)
    cols[0].metric("Total audits", stats.total_audits)
    cols[1].metric("Average team score", f"{stats.average_score:.1f}%")
    cols[2].metric("Top performer", stats.top_performer)

    averages = series_averages(sessions, rubric)
    st.subheader("Pillar averages")
    st.bar_chart({"Pillar": list(averages), "Score %": list(averages.values())}, x="Pillar", y="Score %")

    points = trend(sessions)
    if points:
        st.subheader("Score trend")
        st.line_chart(
            {"Date": [d.date().isoformat() for d, _ in points], "Score": [s for _, s in points]},
            x="Date",
            y="Score",
        )

    st.subheader("Critical gaps")
    st.table(
        [
            {"Task": gap.task, "Proficiency": f"{gap.percent:.0f}%"}
            for gap in skill_gaps(sessions, rubric, limit=config.top_gaps)
        ]
    )

    st.subheader("Master ledger")
    query = st.text_input("Search by staff name or reference")
    st.dataframe(
        [
            {
                "Reference": s.audit_reference,
                "Date": s.date.date().isoformat(),
                "Staff": s.staff_name,
                "Store": s.store_branch,
                "Score": s.total_score,
            }
            for s in search_sessions(sessions, query)
        ],
        use_container_width=True,
    )
    if sessions:
        st.download_button(
            "Download ledger CSV",
            data=sessions_to_ledger_csv(sessions),
            file_name=f"hub_master_ledger_{date.today().isoformat()}.csv",
            mime="text/csv",
        )

    if st.button("Generate training needs analysis", disabled=not sessions):
        with st.spinner("Analyzing trends..."):
            summary = training_needs_summary(sessions, rubric, top_n=config.top_gaps)
            st.session_state["tna_report"] = _agent(config).training_needs_report(summary)
    if st.session_state.get("tna_report"):
        st.markdown(st.session_state["tna_report"])


def main() -> None:
    st.set_page_config(page_title="Retail Audit Hub", layout="wide")
    st.title("Retail Audit Hub")
    st.caption("Record audits, import historical sheets and track training needs.")

    config = load_config_cached()
    try:
        hub = load_hub_cached(config.data_dir)
    except LayoutMismatchError as exc:
        st.error(f"Stored rubric cannot be used with the import layout: {exc}")
        st.stop()

    st.sidebar.header("Workspace")
    st.sidebar.markdown(f"**Workspace:** {hub.cloud.workspace_id}")
    st.sidebar.markdown(f"**Cloud sync:** {'on' if hub.cloud.enabled else 'off'}")
    if hub.cloud.last_synced:
        st.sidebar.caption(f"Last synced {hub.cloud.last_synced:%Y-%m-%d %H:%M} UTC")

    audit_tab, import_tab, standards_tab, dashboard_tab = st.tabs(
        ["Audit", "Bulk import", "Standards", "Dashboard"]
    )
    with audit_tab:
        _render_audit_form(hub, config)
    with import_tab:
        _render_import(hub)
    with standards_tab:
        _render_standards(hub)
    with dashboard_tab:
        _render_dashboard(hub, config)

    st.session_state["seen_revision"] = hub.revision


if __name__ == "__main__":
    main()
