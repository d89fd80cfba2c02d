#!/usr/bin/env python3
"""
Pick Pool Management CLI

Command-line management for the pick pool scoring engine. The same commands
are available through ``flask --app pickpool`` as well.
"""

import click

from pickpool import create_app
from pickpool.cli import COMMANDS

app = create_app()


@click.group()
def cli():
    """Pick Pool Management CLI"""
    pass


for command in COMMANDS:
    cli.add_command(command)


if __name__ == "__main__":
    with app.app_context():
        cli()
