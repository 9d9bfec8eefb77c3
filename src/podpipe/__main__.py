"""Entry point for python -m podpipe."""

from podpipe.cli import app

if __name__ == "__main__":
    app()
