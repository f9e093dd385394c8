"""Dock-Pulse CLI entry point.

Usage:
    python -m dock_pulse [OPTIONS]

Options:
    --view [services|images]   Screen to open first
    --docker PATH              docker binary to drive
"""

import click

from dock_pulse import __version__
from dock_pulse.utils.config import DEFAULT_VIEW, DOCKER_BINARY


@click.command()
@click.option(
    "--view",
    type=click.Choice(["services", "images"]),
    default=DEFAULT_VIEW,
    show_default=True,
    help="Screen to open first.",
)
@click.option(
    "--docker",
    "docker_binary",
    default=DOCKER_BINARY,
    envvar="DOCK_PULSE_DOCKER",
    show_default=True,
    help="Path to the docker binary.",
)
@click.version_option(version=__version__, prog_name="dock-pulse")
def main(view: str, docker_binary: str) -> None:
    """🐳 Dock-Pulse — keyboard-driven dashboard for Docker services and images."""
    from dock_pulse.app import DockPulseApp
    from dock_pulse.core.registry import ViewMode

    app = DockPulseApp(view=ViewMode(view), docker_binary=docker_binary)
    app.run()


if __name__ == "__main__":
    main()
