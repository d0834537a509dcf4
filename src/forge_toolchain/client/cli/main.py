import click
import logfire

from forge_toolchain.client.cli.commands.check import check
from forge_toolchain.core.containers import Container

logfire.configure(send_to_logfire="if-token-present")

container = Container()
container.wire(modules=["forge_toolchain.client.cli.commands.check"])


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--project-dir",
    default=".",
    type=click.Path(file_okay=False),
    help="Directory holding forge-toolchain.config.json and the vendored tools.",
)
def cli(project_dir):
    """Forge Toolchain: locate and validate external build tools."""
    container.config.project_dir.from_value(project_dir)


cli.add_command(check)


def main():
    cli()


if __name__ == "__main__":
    main()
