"""Streamlit front-end support."""
