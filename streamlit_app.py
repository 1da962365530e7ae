"""Streamlit Cloud entry point.

Deployments that launch ``streamlit_app.py`` as the main module are forwarded
to :mod:`chat_app`.
"""

from chat_app import main as chat_main


def main() -> None:
    """Invoke the chat application."""

    chat_main()


if __name__ == "__main__":  # pragma: no cover
    main()
