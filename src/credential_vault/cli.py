"""CLI for Credential Vault."""

from __future__ import annotations

import asyncio
import os
import sys
from typing import NoReturn

import click

from credential_vault.config import get_settings
from credential_vault.security.envelope import EnvelopeCodec, is_well_formed_envelope
from credential_vault.security.errors import CredentialVaultError
from credential_vault.security.keys import KEY_SIZE
from credential_vault.security.masking import mask_secret
from credential_vault.security.migration import (
    DEFAULT_COLUMNS,
    DEFAULT_ID_COLUMN,
    DEFAULT_TABLE,
    TokenUpgrader,
    UpgradeReport,
)


def _codec() -> EnvelopeCodec:
    return EnvelopeCodec.from_settings(get_settings())


def _fail(error: Exception) -> NoReturn:
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


@click.group()
def main() -> None:
    """Credential Vault: encryption at rest for stored credentials."""


@main.command("generate-key")
def generate_key() -> None:
    """Print a fresh key for STORE_ENCRYPTION_KEY."""
    click.echo(os.urandom(KEY_SIZE).hex())


@main.command()
@click.argument("value")
def encrypt(value: str) -> None:
    """Encrypt VALUE and print the envelope."""
    try:
        sealed = _codec().encrypt(value)
    except CredentialVaultError as e:
        _fail(e)
    click.echo(sealed or "")


@main.command()
@click.argument("value")
def decrypt(value: str) -> None:
    """Decrypt VALUE (legacy plaintext is printed unchanged)."""
    try:
        plaintext = _codec().decrypt(value)
    except CredentialVaultError as e:
        _fail(e)
    click.echo(plaintext or "")


@main.command()
@click.argument("value")
def mask(value: str) -> None:
    """Print a display-safe mask of VALUE."""
    click.echo(mask_secret(value))


@main.command()
@click.argument("value")
def inspect(value: str) -> None:
    """Report whether VALUE is an envelope without decrypting it."""
    kind = "envelope" if is_well_formed_envelope(value) else "legacy plaintext"
    click.echo(f"Format: {kind}")
    click.echo(f"Masked: {mask_secret(value)}")


@main.command("upgrade-tokens")
@click.option("--table", default=DEFAULT_TABLE, show_default=True, help="Table to scan")
@click.option("--id-column", default=DEFAULT_ID_COLUMN, show_default=True, help="Row id column")
@click.option(
    "--column",
    "columns",
    multiple=True,
    default=DEFAULT_COLUMNS,
    show_default=True,
    help="Secret column to encrypt (can specify multiple)",
)
@click.option("--dry-run", is_flag=True, help="Count rows without writing")
def upgrade_tokens(table: str, id_column: str, columns: tuple[str, ...], dry_run: bool) -> None:
    """Encrypt legacy plaintext secrets stored in PostgreSQL."""
    from credential_vault.logging import setup_logging

    settings = get_settings()
    setup_logging(settings)
    try:
        upgrader = TokenUpgrader(
            EnvelopeCodec.from_settings(settings),
            table=table,
            columns=columns,
            id_column=id_column,
        )
        report = asyncio.run(_upgrade(upgrader, settings.postgres_dsn, dry_run))
    except (CredentialVaultError, ValueError) as e:
        _fail(e)

    prefix = "Would encrypt" if dry_run else "Encrypted"
    click.echo(
        f"{prefix} {report.upgraded} row(s); "
        f"{report.skipped} already encrypted or empty ({report.scanned} scanned)."
    )


async def _upgrade(upgrader: TokenUpgrader, dsn: str, dry_run: bool) -> UpgradeReport:
    import asyncpg  # type: ignore[import-not-found,import-untyped]

    pool = await asyncpg.create_pool(dsn, min_size=1, max_size=2)
    try:
        return await upgrader.run(pool, dry_run=dry_run)
    finally:
        await pool.close()
