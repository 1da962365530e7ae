"""Streamlit helpers shared by the chat surfaces."""

from __future__ import annotations

import streamlit as st


_TOAST_ICONS = {"error": "⚠️", "warning": "⚠️", "success": "✅", "info": "ℹ️"}


def notify(level: str, message: str, *, st_module=st) -> None:
    """Show a transient notification."""

    st_module.toast(message, icon=_TOAST_ICONS.get(level, "ℹ️"))


def trigger_rerun(*, st_module=st) -> None:
    rerun = getattr(st_module, "rerun", None) or getattr(st_module, "experimental_rerun", None)
    if rerun:
        rerun()


__all__ = ["notify", "trigger_rerun"]
