"""Streamlit Cloud entry point.

Deployments launch ``streamlit_app.py`` as the main module; the assistant page
lives in :mod:`chat_app`, so we simply forward ``main`` here.
"""

from chat_app import main as chat_app_main


def main() -> None:
    """Invoke the assistant chat application."""

    chat_app_main()


if __name__ == "__main__":  # pragma: no cover
    main()
