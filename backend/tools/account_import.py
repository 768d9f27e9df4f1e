"""Bulk account provisioning from a CSV file.

Provisions a login for each student/faculty row listed in the CSV through the
same Account Provisioner the web endpoint uses, so re-running a file is safe:
existing identities and roles are reused and only missing links are written.

Usage example:

    python -m backend.tools.account_import accounts.csv
    python -m backend.tools.account_import accounts.csv --dry-run

CSV columns (header required): email, password, full_name, role, record_id

Environment variables (SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY, optional
DATABASE_URL) select the Supabase project, as for the web service.
"""

from __future__ import annotations

import argparse
import csv
import logging
from dataclasses import dataclass
from typing import Iterable, Sequence, TextIO

from backend.identity_access.domain import MalformedRequestError, PROVISIONABLE_ROLES, mask_email
from backend.identity_access.provisioning import CREATED_NEW, AccountProvisioner, ProvisioningError


logger = logging.getLogger("campus.tools.account_import")

REQUIRED_COLUMNS = ("email", "password", "full_name", "role", "record_id")


@dataclass(frozen=True)
class AccountRow:
    """One provisioning request read from the CSV."""

    line: int
    email: str
    password: str
    full_name: str
    role: str
    record_id: str


@dataclass
class ImportReport:
    created: int = 0
    linked: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.created + self.linked + self.failed


def read_rows(fh: TextIO) -> list[AccountRow]:
    """Parse and validate CSV rows.

    Raises MalformedRequestError on a missing column or a row with an empty
    required value or an unsupported role; the message names the CSV line.
    """
    reader = csv.DictReader(fh)
    missing = [c for c in REQUIRED_COLUMNS if c not in (reader.fieldnames or [])]
    if missing:
        raise MalformedRequestError(f"CSV is missing columns: {', '.join(missing)}")
    rows: list[AccountRow] = []
    # Line 1 is the header
    for line, raw in enumerate(reader, start=2):
        values = {c: (raw.get(c) or "").strip() for c in REQUIRED_COLUMNS}
        if not all(values.values()):
            raise MalformedRequestError(f"line {line}: Missing required fields")
        if values["role"] not in PROVISIONABLE_ROLES:
            raise MalformedRequestError(f"line {line}: Invalid role: {values['role']}")
        rows.append(AccountRow(line=line, **values))
    return rows


def import_accounts(rows: Iterable[AccountRow], *, provisioner: AccountProvisioner) -> ImportReport:
    """Provision every row; a failing row is logged and does not stop the import."""
    report = ImportReport()
    for row in rows:
        try:
            result = provisioner.provision(
                email=row.email,
                password=row.password,
                display_name=row.full_name,
                role=row.role,
                domain_record_id=row.record_id,
            )
        except ProvisioningError as exc:
            report.failed += 1
            logger.error(
                "line %d: %s (%s) failed after %s: %s",
                row.line,
                mask_email(row.email),
                row.role,
                exc.failed_at.value,
                exc,
            )
            continue
        if result.status == CREATED_NEW:
            report.created += 1
        else:
            report.linked += 1
        logger.info("line %d: %s -> %s (%s)", row.line, mask_email(row.email), result.identity_id, result.status)
    return report


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Provision student/faculty logins from a CSV file")
    parser.add_argument("csv_path", help="CSV with columns email,password,full_name,role,record_id")
    parser.add_argument("--dry-run", action="store_true", help="Validate rows but do not touch Supabase")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")
    args = _parse_args(argv)

    with open(args.csv_path, newline="", encoding="utf-8") as fh:
        try:
            rows = read_rows(fh)
        except MalformedRequestError as exc:
            raise SystemExit(str(exc))
    logger.info("Found %d account rows", len(rows))

    if args.dry_run:
        for row in rows:
            logger.info("[dry-run] Would provision %s (%s) -> %s", mask_email(row.email), row.role, row.record_id)
        return 0

    from backend.identity_access.config import load_provisioning_config
    from backend.web.provisioning_wiring import build_provisioner

    try:
        cfg = load_provisioning_config()
    except ValueError as exc:
        raise SystemExit(str(exc))
    report = import_accounts(rows, provisioner=build_provisioner(cfg))
    logger.info(
        "Import completed: %d created, %d linked, %d failed", report.created, report.linked, report.failed
    )
    return 1 if report.failed else 0


if __name__ == "__main__":  # pragma: no cover - manual entry point
    raise SystemExit(main())
