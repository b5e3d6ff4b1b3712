"""Codebase indexing: start a job and follow its progress."""

from __future__ import annotations

import streamlit as st

from code_assistant.gui.runtime import get_runtime, show_notifications


@st.fragment(run_every=3)
def _status_panel() -> None:
    """Show the latest job snapshot; reruns on a timer while polling."""
    runtime = get_runtime()
    monitor = runtime.indexing
    st.write(monitor.status_summary)
    if monitor.is_progress_visible:
        st.progress(min(monitor.progress_percent / 100, 1.0))
    show_notifications(runtime)


def main() -> None:
    """Render the codebase path form and the job status."""
    runtime = get_runtime()
    monitor = runtime.indexing
    st.title("Codebase indexing")

    if not st.session_state.get("indexing_status_fetched"):
        runtime.run(monitor.fetch_current_status())
        st.session_state["indexing_status_fetched"] = True

    with st.form("codebase-form"):
        path = st.text_input("Codebase path", value=monitor.codebase_path)
        submitted = st.form_submit_button("Start indexing", disabled=monitor.loading)

    if submitted:
        error = runtime.run(monitor.start(path))
        if error:
            st.error(error)

    _status_panel()


main()
