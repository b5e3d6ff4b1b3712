"""Chat interface for querying the indexed codebase."""

from __future__ import annotations

import logging

import streamlit as st

from code_assistant.gui.runtime import AssistantRuntime, get_runtime, show_notifications
from code_assistant.models.chat import ChatMessage, MessageRole
from code_assistant.services.conversation_directory import (
    first_message_preview,
    last_message_preview,
)

logger = logging.getLogger(__name__)


def _open_conversation(runtime: AssistantRuntime, conversation_id: str) -> None:
    if conversation_id != runtime.chat.conversation_id:
        runtime.run(runtime.chat.load_conversation(conversation_id))


def _save_edit(runtime: AssistantRuntime, text: str) -> None:
    """Apply the edited text and wait for the regenerated answer."""

    def apply():
        runtime.chat.edit_buffer = text
        return runtime.chat.save_edit()

    with st.spinner("Regenerating answer…"):
        runtime.wait_for(runtime.call(apply))


def _send(runtime: AssistantRuntime, text: str) -> None:
    with st.spinner("Thinking…"):
        runtime.wait_for(runtime.call(runtime.chat.send_message, text))


@st.fragment(run_every=15)
def _conversation_list() -> None:
    """Sidebar list of conversations; reruns to pick up background refreshes."""
    runtime = get_runtime()
    directory = runtime.directory

    if directory.loading and not directory.conversations:
        st.caption("Loading conversations…")
    if directory.error:
        st.error(directory.error)

    for conversation in directory.filtered:
        conversation_id = conversation.conversation_id or ""
        title = conversation.title or first_message_preview(conversation)
        active = conversation_id == directory.active_conversation_id
        cols = st.columns([5, 1])
        if cols[0].button(
            title,
            key=f"open-{conversation_id}",
            type="primary" if active else "secondary",
            help=last_message_preview(conversation),
            use_container_width=True,
        ):
            _open_conversation(runtime, conversation_id)
            st.rerun()
        if cols[1].button(":material/delete:", key=f"delete-{conversation_id}"):
            runtime.run(directory.delete(conversation_id))
            st.rerun()

    if directory.conversations:
        confirm = st.checkbox("Confirm delete all", key="confirm-delete-all")
        if st.button("Delete all conversations", disabled=not confirm):
            runtime.run(directory.delete_all())
            st.rerun()

    show_notifications(runtime)


def _settings_panel(runtime: AssistantRuntime) -> None:
    """Expander with the per-session query settings."""
    chat = runtime.chat
    settings = chat.query_settings
    model_ids = chat.available_model_ids

    def update(field: str, key: str) -> None:
        runtime.call(chat.update_settings, **{field: st.session_state[key]})

    with st.expander("Query settings"):
        if model_ids:
            st.selectbox(
                "Model",
                model_ids,
                index=model_ids.index(settings.model_id) if settings.model_id in model_ids else 0,
                key="setting-model",
                on_change=update,
                args=("model_id", "setting-model"),
            )
        st.slider(
            "Temperature",
            min_value=0.0,
            max_value=2.0,
            step=0.1,
            value=float(settings.temperature),
            key="setting-temperature",
            on_change=update,
            args=("temperature", "setting-temperature"),
        )
        st.number_input(
            "Max new tokens",
            min_value=1,
            step=64,
            value=settings.llm_max_new_tokens,
            key="setting-max-tokens",
            on_change=update,
            args=("llm_max_new_tokens", "setting-max-tokens"),
        )
        st.toggle(
            "Use re-ranker",
            value=bool(settings.use_re_ranker),
            key="setting-use-reranker",
            on_change=update,
            args=("use_re_ranker", "setting-use-reranker"),
        )
        if settings.use_re_ranker and model_ids:
            st.selectbox(
                "Re-ranker model",
                model_ids,
                index=(
                    model_ids.index(settings.reranker_model_name)
                    if settings.reranker_model_name in model_ids
                    else 0
                ),
                key="setting-reranker-model",
                on_change=update,
                args=("reranker_model_name", "setting-reranker-model"),
            )
            st.number_input(
                "Re-ranker top N",
                min_value=1,
                step=1,
                value=settings.re_ranker_top_n or 1,
                key="setting-top-n",
                on_change=update,
                args=("re_ranker_top_n", "setting-top-n"),
            )


def _render_message(runtime: AssistantRuntime, index: int, message: ChatMessage) -> None:
    chat = runtime.chat
    if message.role is MessageRole.ERROR:
        with st.chat_message("assistant", avatar=":material/error:"):
            st.error(message.content)
        return

    with st.chat_message(message.role.value):
        if chat.editing_index == index:
            text = st.text_area("Edit message", value=chat.edit_buffer, key=f"edit-{index}")
            save, cancel = st.columns(2)
            if save.button("Save & regenerate", key=f"save-{index}"):
                _save_edit(runtime, text)
                st.rerun()
            if cancel.button("Cancel", key=f"cancel-{index}"):
                runtime.call(chat.cancel_edit)
                st.rerun()
            return

        st.markdown(message.content)
        if message.timestamp is not None:
            st.caption(message.timestamp.strftime("%Y-%m-%d %H:%M:%S"))
        if message.sources:
            with st.expander(f"Sources ({len(message.sources)})"):
                for source in message.sources:
                    st.write(f"`{source.file_path}` lines {source.start_line}–{source.end_line}")
                    st.code(source.snippet or "", language=source.language)
        if message.role is MessageRole.USER and not chat.loading:
            if st.button(":material/edit:", key=f"start-edit-{index}"):
                runtime.call(chat.start_edit, index)
                st.rerun()


def main() -> None:
    """Render chat UI and forward user actions to the session controller."""
    runtime = get_runtime()
    chat = runtime.chat
    directory = runtime.directory

    with st.sidebar:
        if st.button("New chat", icon=":material/add:", use_container_width=True):
            runtime.call(chat.reset_session)
            st.rerun()
        st.text_input(
            "Search conversations",
            key="conversation-search",
            on_change=lambda: runtime.call(
                directory.search, st.session_state["conversation-search"]
            ),
        )
        _conversation_list()
        _settings_panel(runtime)

    st.title("Code Assistant")

    for index, message in enumerate(list(chat.messages)):
        _render_message(runtime, index, message)
    if chat.should_auto_scroll:
        runtime.call(chat.acknowledge_scroll)

    if chat.input_text and not chat.loading:
        st.info(f"Your last message was not answered: {chat.input_text}")
        if st.button("Retry"):
            _send(runtime, chat.input_text)
            st.rerun()

    question = st.chat_input(
        placeholder="Ask about your codebase…",
        disabled=chat.loading or chat.editing_index is not None,
    )
    if question and question.strip():
        logger.info("Received chat question.")
        _send(runtime, question)
        st.rerun()

    show_notifications(runtime)


main()
