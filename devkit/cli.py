#!/usr/bin/env python3
"""plugin-devkit command line.

Usage:
    plugin-devkit create my-plugin -t game-server --author "Jane"
    plugin-devkit validate ./my-plugin
    plugin-devkit test ./my-plugin --coverage
    plugin-devkit build ./my-plugin --production
    plugin-devkit dev ./my-plugin --port 3001
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from prompt_toolkit import prompt
from prompt_toolkit.validation import ValidationError, Validator
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from devkit import __version__
from devkit.builder import BuildOptions
from devkit.constants import DEFAULT_HOST, DEFAULT_PORT, LOG_DIR
from devkit.errors import DevkitError, TemplateVariableError
from devkit.plugins.manager import PluginToolkit
from devkit.plugins.manifest import PERMISSION_FLAGS, load_manifest
from devkit.server.dev_server import DevServerOptions
from devkit.tester import TestOptions, TestResults
from devkit.utils import validation

logger = logging.getLogger(__name__)

console = Console()

_logging_configured = False


def setup_logging(verbose: bool = False, log_dir: Path = LOG_DIR) -> None:
    """File handler for INFO and above, console handler for warnings (or everything with -v)."""
    global _logging_configured
    if _logging_configured:
        return
    _logging_configured = True

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "DEBUG" if verbose else "INFO").upper(), logging.INFO))

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "devkit.log", encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(file_handler)
    except OSError as e:
        print(f"Cannot write logs to {log_dir}: {e}", file=sys.stderr)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    root_logger.addHandler(console_handler)


def parse_vars(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Turn ``key=value`` arguments into a dict."""
    variables = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Invalid --var '{pair}', expected key=value")
        variables[key.strip()] = value
    return variables


def print_results(results: TestResults) -> None:
    table = Table(title=f"Test results ({results.strategy})", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Passed", f"[green]{results.passed}[/green]")
    table.add_row("Failed", f"[red]{results.failed}[/red]" if results.failed else "0")
    table.add_row("Duration", f"{results.duration_ms} ms")
    if results.coverage is not None:
        table.add_row("Coverage", f"{results.coverage:.1f}%")
    console.print(table)
    for error in results.errors:
        console.print(f"  [red]✗[/red] {escape(error)}")
    if results.raw_output:
        console.print(Panel(escape(results.raw_output[-2000:]), title="Raw output", border_style="dim"))


class RuleValidator(Validator):
    """Rejects prompt input that breaks any of the given rules."""

    def __init__(self, rules: List[validation.ValidationRule]):
        self.rules = rules

    def validate(self, document) -> None:
        errors = validation.validate(document.text, self.rules)
        if errors:
            raise ValidationError(message=errors[0], cursor_position=len(document.text))


def prompt_rules(key: str) -> List[validation.ValidationRule]:
    checks = [validation.Rules.required(f"{key} is required")]
    if key == "name":
        checks.append(validation.Rules.plugin_name())
    elif key == "version":
        checks.append(validation.Rules.semver())
    return checks

def cmd_create(args, toolkit: PluginToolkit) -> int:
    """Scaffold a new plugin from a template."""
    variables = parse_vars(args.var)
    for key in ("author", "description", "version"):
        value = getattr(args, key)
        if value:
            variables[key] = value

    while True:
        try:
            result = toolkit.create_plugin(args.name, args.template, Path(args.output), **variables)
            break
        except TemplateVariableError as e:
            if not sys.stdin.isatty():
                raise
            for key in e.missing:
                variables[key] = prompt(f"{key}: ", validator=RuleValidator(prompt_rules(key)))

    console.print(f"[green]✓[/green] Created plugin [bold]{args.name}[/bold] at {result.path}")
    for path in result.files:
        console.print(f"  {path.relative_to(result.path).as_posix()}", style="dim")
    if result.instructions:
        console.print(Panel(escape(result.instructions), title="Next steps", border_style="cyan"))
    return 0


def cmd_templates(args, toolkit: PluginToolkit) -> int:
    """List available templates."""
    table = Table(title="Plugin templates")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Variables", style="dim")
    for template in toolkit.catalog.all():
        variables = ", ".join(
            f"{v.name}*" if v.required else v.name for v in template.variables
        )
        table.add_row(template.name, template.description, variables)
    console.print(table)
    return 0


def cmd_validate(args, toolkit: PluginToolkit) -> int:
    """Run the structural validation checks."""
    results = asyncio.run(toolkit.tester(Path(args.path)).run_validation())
    print_results(results)
    return 0 if results.success else 1


def cmd_info(args, toolkit: PluginToolkit) -> int:
    """Show the plugin manifest."""
    manifest = load_manifest(Path(args.path))
    granted = [flag for flag in PERMISSION_FLAGS if getattr(manifest.permissions, flag)]
    lines = [
        f"[bold]Name:[/bold]        {manifest.name}",
        f"[bold]Version:[/bold]     {manifest.version}",
        f"[bold]Author:[/bold]      {escape(manifest.author)}",
        f"[bold]Description:[/bold] {escape(manifest.description)}",
        f"[bold]Permissions:[/bold] {', '.join(granted) or 'none'}",
    ]
    console.print(Panel("\n".join(lines), title=f"Plugin: {manifest.name}", border_style="cyan"))

    if manifest.apis:
        table = Table(title="Routes")
        table.add_column("Method", style="cyan")
        table.add_column("Path")
        table.add_column("Handler")
        table.add_column("Auth")
        for api in manifest.apis:
            table.add_row(api.method, api.path, api.handler, "yes" if api.auth else "no")
        console.print(table)
    if manifest.hooks:
        table = Table(title="Hooks")
        table.add_column("Name", style="cyan")
        table.add_column("Type")
        table.add_column("Target")
        table.add_column("Priority")
        for hook in manifest.hooks:
            table.add_row(hook.name, hook.type, hook.target, str(hook.priority))
        console.print(table)
    return 0


def cmd_test(args, toolkit: PluginToolkit) -> int:
    """Run the plugin's tests."""
    options = TestOptions(coverage=args.coverage, verbose=args.verbose, test_pattern=args.pattern)
    tester = toolkit.tester(Path(args.path), options)
    if args.setup:
        for path in tester.setup_test_environment():
            console.print(f"[green]✓[/green] Created {path}")
    results = asyncio.run(tester.run_tests())
    print_results(results)
    return 0 if results.success else 1


def cmd_build(args, toolkit: PluginToolkit) -> int:
    """Build (and with --production, package) the plugin."""
    options = BuildOptions(
        output=Path(args.output) if args.output else None,
        production=args.production,
        minify=args.minify or args.production,
        source_maps=args.source_maps,
        bundle_analyzer=args.analyze,
    )
    builder = toolkit.builder(Path(args.path), options)
    if args.clean:
        builder.clean()

    if args.watch:
        console.print(f"[cyan]Watching {builder.plugin_dir} (Ctrl+C to stop)[/cyan]")
        asyncio.run(builder.watch())
        return 0

    result = asyncio.run(builder.build())
    console.print(f"[green]✓[/green] Built {len(result.manifest['files'])} files into {result.output_dir}")
    console.print(f"  checksum: {result.checksum}", style="dim")
    if result.package:
        console.print(f"[green]✓[/green] Package: {result.package}")
    return 0


def cmd_clean(args, toolkit: PluginToolkit) -> int:
    """Remove the build output."""
    builder = toolkit.builder(Path(args.path), BuildOptions(output=Path(args.output) if args.output else None))
    if builder.clean():
        console.print(f"[green]✓[/green] Removed {builder.output_dir}")
    else:
        console.print(f"Nothing to clean at {builder.output_dir}")
    return 0


def cmd_dev(args, toolkit: PluginToolkit) -> int:
    """Start the development server."""
    options = DevServerOptions(
        port=args.port,
        host=args.host,
        watch=not args.no_watch,
        hot_reload=not args.no_hot_reload,
        cors=not args.no_cors,
    )
    server = toolkit.dev_server(Path(args.path), options)
    console.print(Panel(
        f"URL:        {server.get_url()}\n"
        f"WebSocket:  {server.get_websocket_url()}\n"
        f"Plugin:     {server.plugin_name}\n"
        f"Hot reload: {'on' if options.hot_reload else 'off'}\n"
        f"Watching:   {'on' if options.watch else 'off'}",
        title="Plugin development server",
        border_style="green",
    ))
    asyncio.run(server.serve_forever())
    return 0


def cmd_bump(args, toolkit: PluginToolkit) -> int:
    """Increment the manifest version."""
    new_version = toolkit.bump_version(Path(args.path), args.part)
    console.print(f"[green]✓[/green] Version bumped to {new_version}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plugin-devkit",
        description="Plugin development toolkit for the game server panel",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose-logs", action="store_true", help="Show debug logs on the console")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # create
    create_parser = subparsers.add_parser("create", help="Create a plugin from a template")
    create_parser.add_argument("name", help="Plugin name (lowercase, digits, - and _)")
    create_parser.add_argument("-t", "--template", default="basic", help="Template name (default: basic)")
    create_parser.add_argument("--author", help="Plugin author")
    create_parser.add_argument("--description", help="Plugin description")
    create_parser.add_argument("--version", dest="version", help="Initial version")
    create_parser.add_argument("-o", "--output", default=".", help="Parent directory (default: .)")
    create_parser.add_argument("--var", action="append", metavar="KEY=VALUE", help="Extra template variable")

    # templates
    subparsers.add_parser("templates", help="List available templates")

    # validate
    validate_parser = subparsers.add_parser("validate", help="Validate plugin structure and manifest")
    validate_parser.add_argument("path", nargs="?", default=".", help="Plugin directory")

    # info
    info_parser = subparsers.add_parser("info", help="Show plugin details")
    info_parser.add_argument("path", nargs="?", default=".", help="Plugin directory")

    # test
    test_parser = subparsers.add_parser("test", help="Run plugin tests")
    test_parser.add_argument("path", nargs="?", default=".", help="Plugin directory")
    test_parser.add_argument("--coverage", action="store_true", help="Collect coverage")
    test_parser.add_argument("--verbose", action="store_true", help="Verbose test output")
    test_parser.add_argument("-k", dest="pattern", help="Only run tests matching this expression")
    test_parser.add_argument("--setup", action="store_true", help="Scaffold a test environment first")

    # build
    build_parser_ = subparsers.add_parser("build", help="Build the plugin")
    build_parser_.add_argument("path", nargs="?", default=".", help="Plugin directory")
    build_parser_.add_argument("-o", "--output", help="Output directory (default: <plugin>/build)")
    build_parser_.add_argument("--production", action="store_true", help="Production build and package")
    build_parser_.add_argument("--minify", action="store_true", help="Minify bundled assets")
    build_parser_.add_argument("--source-maps", action="store_true", help="Emit source maps")
    build_parser_.add_argument("--analyze", action="store_true", help="Run the bundle analyzer")
    build_parser_.add_argument("--clean", action="store_true", help="Remove previous output first")
    build_parser_.add_argument("--watch", action="store_true", help="Rebuild on changes")

    # clean
    clean_parser = subparsers.add_parser("clean", help="Remove build output")
    clean_parser.add_argument("path", nargs="?", default=".", help="Plugin directory")
    clean_parser.add_argument("-o", "--output", help="Output directory (default: <plugin>/build)")

    # dev
    dev_parser = subparsers.add_parser("dev", help="Start the development server")
    dev_parser.add_argument("path", nargs="?", default=".", help="Plugin directory")
    dev_parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Port (default: {DEFAULT_PORT})")
    dev_parser.add_argument("--host", default=DEFAULT_HOST, help=f"Host (default: {DEFAULT_HOST})")
    dev_parser.add_argument("--no-watch", action="store_true", help="Disable file watching")
    dev_parser.add_argument("--no-hot-reload", action="store_true", help="Disable hot reload")
    dev_parser.add_argument("--no-cors", action="store_true", help="Disable CORS headers")

    # bump
    bump_parser = subparsers.add_parser("bump", help="Increment the plugin version")
    bump_parser.add_argument("path", nargs="?", default=".", help="Plugin directory")
    bump_parser.add_argument("part", nargs="?", default="patch", choices=["major", "minor", "patch"])

    return parser


COMMANDS = {
    "create": cmd_create,
    "templates": cmd_templates,
    "validate": cmd_validate,
    "info": cmd_info,
    "test": cmd_test,
    "build": cmd_build,
    "clean": cmd_clean,
    "dev": cmd_dev,
    "bump": cmd_bump,
}


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv(".env")

    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose_logs)

    if not args.command:
        parser.print_help()
        return 1

    toolkit = PluginToolkit()
    try:
        return COMMANDS[args.command](args, toolkit)
    except DevkitError as e:
        logger.debug(f"{args.command} failed: {e}")
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        return 1
    except argparse.ArgumentTypeError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        return 2
    except KeyboardInterrupt:
        console.print("\n[yellow]interrupted[/yellow]")
        return 0


if __name__ == "__main__":
    sys.exit(main())
