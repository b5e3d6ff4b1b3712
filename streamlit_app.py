"""Streamlit entry point configuring navigation for all pages."""

from __future__ import annotations

import streamlit as st

from code_assistant.gui.runtime import get_runtime

st.set_page_config(
    page_title="Code Assistant",
    page_icon=":material/code:",
    layout="wide",
)


def _build_pages() -> list[st.Page]:
    """Return the navigation structure based on setup state."""
    setup = st.Page("pages/0_Setup.py", title="Setup", icon=":material/settings:")
    chat = st.Page("pages/1_Chat.py", title="Chat", icon=":material/forum:")
    indexing = st.Page(
        "pages/2_Indexing.py",
        title="Codebase",
        icon=":material/folder_code:",
    )

    if get_runtime().setup.is_setup_complete():
        return [chat, indexing]
    return [setup]


def main() -> None:
    """Create navigation and dispatch to the correct page."""
    navigation = st.navigation(_build_pages())
    navigation.run()


if __name__ == "__main__":
    main()
