"""Entry point for ``python -m tagdag``."""

from tagdag.cli.main import app

if __name__ == "__main__":
    app()
