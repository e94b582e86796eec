"""Allow running Mender as ``python -m mender``."""

from mender.cli import app

if __name__ == "__main__":
    app()
