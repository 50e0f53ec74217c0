"""Command line interface for aead-stream."""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Callable

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from aead_stream import __version__
from aead_stream.api import DEFAULT_SUFFIX, decrypt_file, encrypt_file, inspect_stream
from aead_stream.crypto.keyfile import derive_key_from_keyfile, generate_keyfile
from aead_stream.errors import AuthenticationError, FramingError, StreamStateError, UnsupportedFeatureError

EXIT_SUCCESS = 0
EXIT_USAGE = 1
EXIT_AUTH = 2
EXIT_FS = 3
EXIT_CORRUPT = 4

KEYFILE_ENVVAR = "AEAD_STREAM_KEYFILE"

console = Console()


def _package_version() -> str:
    try:
        return version("aead-stream")
    except PackageNotFoundError:
        return __version__


def _human_size(num: float) -> str:
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if num < 1024 or unit == "TB":
            return f"{num:.1f} {unit}" if unit != "B" else f"{int(num)} {unit}"
        num /= 1024
    return f"{num:.1f} TB"


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _handle_action(action: Callable[[], None]) -> int:
    try:
        action()
    except AuthenticationError:
        console.print("[red]Error: stream failed authentication; output discarded[/red]")
        return EXIT_AUTH
    except FramingError as exc:
        console.print(f"[red]Error: stream is truncated or malformed:[/red] {exc}")
        return EXIT_CORRUPT
    except (UnsupportedFeatureError, StreamStateError) as exc:
        console.print(f"[red]Unsupported operation:[/red] {exc}")
        return EXIT_USAGE
    except FileExistsError as exc:
        console.print(f"[red]{exc}. Use --overwrite to replace.[/red]")
        return EXIT_FS
    except FileNotFoundError as exc:
        console.print(f"[red]File not found:[/red] {exc}")
        return EXIT_FS
    except PermissionError as exc:
        console.print(f"[red]Permission denied:[/red] {exc}")
        return EXIT_FS
    except OSError as exc:
        console.print(f"[red]Filesystem error:[/red] {exc}")
        return EXIT_FS
    except ValueError as exc:
        console.print(f"[red]Invalid input:[/red] {exc}")
        return EXIT_USAGE
    return EXIT_SUCCESS


keyfile_option = click.option(
    "--keyfile",
    "-k",
    required=True,
    envvar=KEYFILE_ENVVAR,
    show_envvar=True,
    type=click.Path(path_type=Path, dir_okay=False),
    help="File the AES-256 key is derived from.",
)


@click.group(
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=False,
)
@click.version_option(version=_package_version(), prog_name="aead-stream")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log stream events while running.")
def cli(verbose: bool) -> None:
    """Stream-encrypt files with AES-GCM: nonce | ciphertext | tag."""
    _configure_logging(verbose)


@cli.command(
    help="Encrypt a file into an authenticated stream.",
    epilog="Examples:\n  aeadstream encrypt -k key.bin report.pdf\n  aeadstream encrypt -k key.bin report.pdf report.enc --overwrite",
)
@click.argument("input_path", type=click.Path(path_type=Path))
@click.argument("output_path", required=False, type=click.Path(path_type=Path))
@keyfile_option
@click.option("--overwrite/--no-overwrite", default=False, help="Overwrite output if it already exists.")
@click.pass_context
def encrypt(ctx: click.Context, input_path: Path, output_path: Path | None, keyfile: Path, overwrite: bool) -> None:
    target = output_path or input_path.with_suffix(f"{input_path.suffix}{DEFAULT_SUFFIX}")
    result: dict[str, int] = {}

    def _run() -> None:
        key = derive_key_from_keyfile(keyfile)
        result["size"] = encrypt_file(input_path, target, key, overwrite=overwrite)

    code = _handle_action(_run)
    if code == EXIT_SUCCESS:
        console.print(f"[green]Encrypted to[/green] {target} (~{_human_size(result['size'])}).")
    ctx.exit(code)


@cli.command(
    help="Decrypt and verify a stream. Output is only written if verification succeeds.",
    epilog="Examples:\n  aeadstream decrypt -k key.bin report.pdf.aead\n  aeadstream decrypt -k key.bin report.enc restored.pdf",
)
@click.argument("input_path", type=click.Path(path_type=Path))
@click.argument("output_path", required=False, type=click.Path(path_type=Path))
@keyfile_option
@click.option("--overwrite/--no-overwrite", default=False, help="Overwrite output if it already exists.")
@click.pass_context
def decrypt(ctx: click.Context, input_path: Path, output_path: Path | None, keyfile: Path, overwrite: bool) -> None:
    if output_path is None:
        if input_path.suffix == DEFAULT_SUFFIX:
            output_path = input_path.with_suffix("")
        else:
            output_path = input_path.with_suffix(input_path.suffix + ".out")
    result: dict[str, int] = {}

    def _run() -> None:
        key = derive_key_from_keyfile(keyfile)
        result["size"] = decrypt_file(input_path, output_path, key, overwrite=overwrite)

    code = _handle_action(_run)
    if code == EXIT_SUCCESS:
        console.print(f"[green]Decrypted and verified[/green] {output_path} (~{_human_size(result['size'])}).")
    ctx.exit(code)


@cli.command(help="Show the nonce and sizes of a stream without decrypting it.")
@click.argument("input_path", type=click.Path(path_type=Path))
@click.pass_context
def info(ctx: click.Context, input_path: Path) -> None:
    try:
        overview = inspect_stream(input_path)
    except FramingError as exc:
        console.print(f"[red]Error: stream is truncated or malformed:[/red] {exc}")
        ctx.exit(EXIT_CORRUPT)
        return
    except FileNotFoundError as exc:
        console.print(f"[red]File not found:[/red] {exc}")
        ctx.exit(EXIT_FS)
        return

    table = Table(show_header=False, box=None)
    table.add_row("Nonce", overview.nonce.hex())
    table.add_row("Nonce size", f"{len(overview.nonce)} B")
    table.add_row("Payload size", f"{overview.ciphertext_length} B (~{_human_size(overview.ciphertext_length)})")
    table.add_row("Tag size", f"{overview.tag_length} B")
    table.add_row("Total size", f"{overview.total_length} B")
    console.print("[bold]AEAD stream[/bold]")
    console.print(table)
    console.print("[yellow]Authenticity not checked (no key supplied).[/yellow]")
    ctx.exit(EXIT_SUCCESS)


@cli.command(help="Generate a random keyfile.")
@click.argument("keyfile_path", type=click.Path(path_type=Path, dir_okay=False))
@click.option("--overwrite/--no-overwrite", default=False, help="Overwrite the keyfile if it exists.")
@click.pass_context
def keygen(ctx: click.Context, keyfile_path: Path, overwrite: bool) -> None:
    code = _handle_action(lambda: generate_keyfile(keyfile_path, overwrite=overwrite))
    if code == EXIT_SUCCESS:
        console.print(f"[green]Keyfile written to[/green] {keyfile_path}. Keep it secret.")
    ctx.exit(code)


@cli.command(name="version", help="Print the package version.")
def version_command() -> None:
    console.print(f"aead-stream {_package_version()}")


def main(argv: list[str] | None = None) -> int:
    try:
        result = cli.main(args=argv, prog_name="aeadstream", standalone_mode=False)
    except SystemExit as exc:
        code = exc.code if isinstance(exc.code, int) else EXIT_USAGE
        return code
    except click.ClickException as exc:
        exc.show()
        return EXIT_USAGE
    return result if isinstance(result, int) else EXIT_SUCCESS


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
