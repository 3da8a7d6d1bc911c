"""Allow ``python -m ghcmodi``."""

from ghcmodi.cli import app

if __name__ == "__main__":
    app()
