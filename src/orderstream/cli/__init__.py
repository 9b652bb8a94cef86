"""orderstream command-line interface."""

from orderstream.cli.app import app

__all__ = ["app"]
