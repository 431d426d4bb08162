"""
apitester command-line entry point.
"""

import click

from apitester import __version__
from apitester.config import get_config
from apitester.exceptions import ConfigurationError
from apitester.http.cli import request_cmd
from apitester.logging_config import configure_logging


@click.group()
@click.version_option(__version__, prog_name="apitester")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also write logs to this file")
@click.pass_context
def main(ctx: click.Context, debug: bool, log_file: str | None):
    """Send API requests and verify the responses."""
    ctx.ensure_object(dict)
    try:
        config = get_config()
    except ConfigurationError as e:
        raise click.UsageError(str(e))
    configure_logging(debug=debug, log_file=log_file, level=config.log_level)


main.add_command(request_cmd)


if __name__ == "__main__":
    main()
