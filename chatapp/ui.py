"""Streamlit chat page. Run with: streamlit run chatapp/ui.py"""
import streamlit as st

from chatapp.client import ChatApiClient, ChatState, session_label, split_code_segments
from chatapp.config import get_settings

st.set_page_config(page_title="AI Chat", page_icon="💬")


def get_state() -> ChatState:
    if "chat" not in st.session_state:
        settings = get_settings()
        state = ChatState(ChatApiClient(settings.api_base_url, timeout=settings.client_timeout))
        state.load()
        st.session_state.chat = state
    return st.session_state.chat


def render_content(content: str) -> None:
    for kind, part in split_code_segments(content):
        if kind == "code":
            st.code(part)  # st.code ships its own copy button
        elif part.strip():
            st.text(part)


state = get_state()


# -----------------------------
# Sidebar: sessions
# -----------------------------
st.sidebar.header("Chats")

with st.sidebar.form("new_chat", clear_on_submit=True):
    new_name = st.text_input("Chat name (optional)", placeholder=state.default_chat_name())
    if st.form_submit_button("+ New"):
        state.create_chat(new_name)

if not state.sessions:
    st.sidebar.info("No chats yet, create one above.")

for session in state.sessions:
    name_col, delete_col = st.sidebar.columns([5, 1])
    is_selected = session["id"] == state.selected_session_id
    if name_col.button(session_label(session), key=f"select-{session['id']}",
                       type="primary" if is_selected else "secondary", use_container_width=True):
        state.select(session["id"])
        st.rerun()
    if delete_col.button("×", key=f"delete-{session['id']}"):
        state.delete_chat(session["id"])
        st.rerun()


# -----------------------------
# Main: thread and input
# -----------------------------
st.title("💬 AI Chat")

error = state.pop_error()
if error:
    st.error(error)

if state.selected_session_id is None:
    st.info("Select a chat or create one")
elif not state.messages:
    st.caption("Start the conversation 👋")

if state.selected_session_id is not None:
    for m in state.messages:
        with st.chat_message("user" if m["role"] == "user" else "assistant"):
            render_content(m["content"])

prompt = st.chat_input("Type your message...", disabled=state.sending)

if prompt:
    text = state.begin_send(prompt)
    if text is not None:
        with st.chat_message("user"):
            render_content(text)
        with st.chat_message("assistant"):
            with st.spinner("Sending..."):
                state.finish_send(text)
    st.rerun()
