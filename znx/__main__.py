"""Entry point for ``python -m znx``."""

from znx.cli import run

if __name__ == "__main__":
    run()
