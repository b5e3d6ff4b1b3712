"""Initial setup: choose the default chat model."""

from __future__ import annotations

import logging

import streamlit as st

from code_assistant.gui.runtime import get_runtime
from code_assistant.models.setup import SetupRequest

logger = logging.getLogger(__name__)


def main() -> None:
    """Render the model selection form and mark the client configured."""
    runtime = get_runtime()
    st.title("Welcome to Code Assistant")
    st.write("Select the model used for answering questions about your codebase.")

    status = runtime.run(runtime.setup.get_setup_status())
    if status.is_configured:
        st.switch_page("pages/1_Chat.py")

    models = runtime.run(runtime.client.get_available_models())
    if not models:
        st.error("Could not load available models. Please try refreshing.")
        st.stop()

    model_ids = [model.id for model in models]
    names = {model.id: model.name for model in models}
    preselected = status.configured_model_id if status.configured_model_id in model_ids else model_ids[0]

    with st.form("setup-form"):
        model_id = st.selectbox(
            "Model",
            model_ids,
            index=model_ids.index(preselected),
            format_func=lambda value: names.get(value, value),
        )
        submitted = st.form_submit_button("Save and continue")

    if submitted:
        try:
            runtime.run(runtime.setup.save_setup(SetupRequest(model_id=model_id or "")))
        except ValueError as exc:
            st.error(str(exc))
            st.stop()
        logger.info("Setup completed with model '%s'.", model_id)
        runtime.run(runtime.chat.initialize())
        st.rerun()


main()
