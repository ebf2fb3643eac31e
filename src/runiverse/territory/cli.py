import click

from runiverse.territory import capture
from runiverse.territory import config


@click.group(epilog="For detailed help on each command, run: runiverse-territory COMMAND --help")
def cli():
    """The runiverse-territory utility turns recorded location tracks into
    territory claims, using the same capture engine as live tracking."""
    pass


@cli.command()
@click.option('-c', '--config', help='Path to configuration file to create or replace')
def init(config):
    """Populates a configuration file based on user input."""
    click.echo(capture.banner())
    config = capture.init_config(config)
    click.echo(f'Initialized the territory configuration file {config}')


@cli.command()
@click.option('-c', '--config', 'config_filename', help='Path to configuration file to display', required=True)
def info(config_filename):
    """Summarizes the contents of a configuration file."""
    click.echo(capture.banner())
    configuration = config.configuration(config.config_parser_factory(config_filename), {})
    configuration.show()


@cli.command()
@click.option('-c', '--config', 'config_filename', help='Path to configuration file', required=True)
@click.option('-t', '--track', 'track_file', help='CSV file of location samples', required=True,
              type=click.Path(exists=True, dir_okay=False))
@click.option('-u', '--api-url', help='Territory API URL; claims stay in memory when omitted', default=None)
@click.option('-n', '--number', help="Replay at most 'count' samples.", metavar='count', required=False, default=-1)
def replay(config_filename, track_file, api_url, number):
    """Replays a recorded track through a capture session."""
    click.echo(capture.banner())
    overrides = {
        'api_url': api_url,
        'number': number,
    }
    configuration = config.configuration(config.config_parser_factory(config_filename), overrides)
    valid, errors = config.validate(configuration)
    if not valid:
        click.echo("The configuration is invalid:")
        for msg in errors:
            click.echo(" * " + msg)
        exit(1)

    capture.init_logging()
    try:
        summary = capture.replay(configuration, track_file)
    except Exception as e:
        click.echo("\nUnable to replay track: " + str(e))
        exit(1)
    click.echo(f'Replayed {summary.samples} samples, {len(summary.claims)} claim(s)')


if __name__ == "__main__":
    cli()
