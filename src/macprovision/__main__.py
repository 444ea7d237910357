"""Module entrypoint for `python -m macprovision`."""

from macprovision.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
