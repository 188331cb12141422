import sys

import typer

from cetus.bootstrap.sequencer import BootstrapSequencer
from cetus.cli.formatter import OutputFormatter

app = typer.Typer(name="cetus", help="Cetus MySQL proxy", rich_markup_mode=None, add_completion=False)


@app.command(
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
    add_help_option=False,
)
def main(ctx: typer.Context):
    """
    Start the proxy. Every option is handled by the cetus option parser,
    so plugin options are accepted too; see --help.
    """
    prog_name = sys.argv[0] if sys.argv and sys.argv[0] else "cetus"
    argv = [prog_name] + list(ctx.args)

    outcome = BootstrapSequencer(argv).run()

    if not outcome.normal_shutdown:
        OutputFormatter.log(f"cetus stopped during {outcome.origin} (exit code {outcome.exit_code})", severity="error")
    raise typer.Exit(code=outcome.exit_code)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
