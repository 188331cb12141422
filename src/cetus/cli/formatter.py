import platform
from typing import Iterable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cetus import __version__
from cetus.config.options import OptionArity, OptionDescriptor
from cetus.plugins.base import CetusPlugin

# Create a stderr console for logging
error_console = Console(stderr=True)
output_console = Console(highlight=False)


class OutputFormatter:
    """
    Handles output formatting for the command line.
    Version and help text go to stdout; system messages go to stderr.
    """

    @staticmethod
    def log(message: str, severity: str = "info") -> None:
        """
        Print system messages to stderr with color coding.
        """
        style = "white"
        prefix = "[SYSTEM]"

        if severity == "warning":
            style = "yellow"
        elif severity == "error":
            style = "red"
        elif severity == "critical":
            style = "bold red"
        elif severity == "success":
            style = "green"

        error_console.print(f"[{style}]{prefix} {message}[/{style}]")

    @staticmethod
    def version_lines() -> List[str]:
        import pydantic

        return [
            f"cetus {__version__}",
            f"  python: {platform.python_version()}",
            f"  pydantic: {pydantic.VERSION}",
        ]

    @staticmethod
    def print_version(console: Optional[Console] = None) -> None:
        target = console or output_console
        for line in OutputFormatter.version_lines():
            target.print(line, markup=False)

    @staticmethod
    def print_plugin_versions(plugins: Iterable[CetusPlugin], console: Optional[Console] = None) -> None:
        target = console or output_console
        target.print("  == plugin versions ==", markup=False)
        for plugin in plugins:
            target.print(f"  {plugin.name}: {plugin.version}", markup=False)

    @staticmethod
    def print_help(options: Iterable[OptionDescriptor], prog_name: str = "cetus", console: Optional[Console] = None) -> None:
        """
        Prints one row per registered option.
        """
        target = console or output_console
        table = Table(title=escape(f"Usage: {prog_name} [OPTION...]"), show_header=True, header_style="bold")
        table.add_column("Option", no_wrap=True)
        table.add_column("Description")

        for descriptor in options:
            flag = f"--{descriptor.name}"
            if descriptor.short_name:
                flag = f"-{descriptor.short_name}, {flag}"
            if descriptor.arity != OptionArity.NONE:
                flag += f"={descriptor.arg_description or descriptor.arity.value}"
            table.add_row(escape(flag), escape(descriptor.help))

        table.add_row("-h, --help", "Show help options")
        target.print(table)
