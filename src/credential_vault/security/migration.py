"""Opportunistic encryption of legacy plaintext tokens in PostgreSQL.

Scans a table for rows holding secrets, seals every non-null value that is
not already an envelope, and writes the row back in a transaction. There is
no downgrade: :meth:`EnvelopeCodec.decrypt` reads both forms.

Typical use::

    codec = EnvelopeCodec.from_settings(settings)
    upgrader = TokenUpgrader(codec, table="stores",
                             columns=("access_token", "refresh_token"))
    report = await upgrader.run(pool)
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from credential_vault.logging import get_logger
from credential_vault.security.envelope import EnvelopeCodec, is_well_formed_envelope

if TYPE_CHECKING:
    import asyncpg  # type: ignore[import-not-found,import-untyped]

log = get_logger("credential_vault.security.migration")

DEFAULT_TABLE = "stores"
DEFAULT_ID_COLUMN = "id"
DEFAULT_COLUMNS = ("access_token", "refresh_token")

_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def _quote_identifier(name: str) -> str:
    if not _IDENTIFIER_RE.fullmatch(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


@dataclass
class UpgradeReport:
    """Counts from one upgrade run."""

    scanned: int = 0
    upgraded: int = 0
    skipped: int = 0


class TokenUpgrader:
    """Encrypts legacy plaintext secrets in one table."""

    def __init__(
        self,
        codec: EnvelopeCodec,
        table: str = DEFAULT_TABLE,
        columns: Sequence[str] = DEFAULT_COLUMNS,
        id_column: str = DEFAULT_ID_COLUMN,
    ) -> None:
        if not columns:
            raise ValueError("At least one secret column is required")
        # A derived development key must never seal real rows.
        codec.require_explicit_key()
        self._codec = codec
        self._table = _quote_identifier(table)
        self._id_column = _quote_identifier(id_column)
        self._columns = list(columns)
        self._quoted_columns = [_quote_identifier(c) for c in self._columns]

    def _select_sql(self) -> str:
        cols = ", ".join(self._quoted_columns)
        where = " OR ".join(f"{c} IS NOT NULL" for c in self._quoted_columns)
        return f"SELECT {self._id_column}, {cols} FROM {self._table} WHERE {where}"  # nosec B608

    def _update_sql(self) -> str:
        assignments = ", ".join(
            f"{c} = ${i}" for i, c in enumerate(self._quoted_columns, start=1)
        )
        id_param = len(self._quoted_columns) + 1
        return (
            f"UPDATE {self._table} SET {assignments} "  # nosec B608
            f"WHERE {self._id_column} = ${id_param}"
        )

    def seal_row(self, row: Any) -> list[str | None] | None:
        """Return the sealed column values for *row*, or None if nothing changes."""
        values: list[str | None] = [row[c] for c in self._columns]
        changed = False
        for i, value in enumerate(values):
            if value and not is_well_formed_envelope(value):
                values[i] = self._codec.encrypt(value)
                changed = True
        return values if changed else None

    async def run(self, pool: asyncpg.Pool, dry_run: bool = False) -> UpgradeReport:
        """Upgrade every legacy row in the table.

        Args:
            pool: An asyncpg.Pool already connected to the database.
            dry_run: Count rows that would change without writing.

        Returns:
            Scanned, upgraded and skipped row counts.
        """
        report = UpgradeReport()
        id_key = self._id_column.strip('"')
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(self._select_sql())
                report.scanned = len(rows)
                update_sql = self._update_sql()

                for row in rows:
                    sealed = self.seal_row(row)
                    if sealed is None:
                        report.skipped += 1
                        continue
                    if not dry_run:
                        async with conn.transaction():
                            await conn.execute(update_sql, *sealed, row[id_key])
                    report.upgraded += 1
        except Exception:
            log.exception("token_upgrade_failed", table=self._table)
            raise

        log.info(
            "token_upgrade_complete",
            table=self._table,
            scanned=report.scanned,
            upgraded=report.upgraded,
            skipped=report.skipped,
            dry_run=dry_run,
        )
        return report
