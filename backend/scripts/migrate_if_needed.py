"""Aplica las migraciones del cotizador solo cuando la base no esta en la ultima revision."""

from __future__ import annotations

import re
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv


BACKEND_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_INI = BACKEND_ROOT / "alembic.ini"
REVISION_PATTERN = re.compile(r"^(\d{8}_\d{4})\b")


def run_alembic(args: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["alembic", "-c", str(ALEMBIC_INI), *args],
        cwd=BACKEND_ROOT,
        capture_output=True,
        text=True,
        check=False,
    )


def parse_revisions(output: str) -> set[str]:
    """Extrae ids de revision (p. ej. 20250101_0001) de la salida de `alembic current/heads`."""
    revisions = set()
    for line in output.splitlines():
        match = REVISION_PATTERN.match(line.strip())
        if match:
            revisions.add(match.group(1))
    return revisions


def main() -> int:
    load_dotenv()
    results = {}
    for command in ("current", "heads"):
        proc = run_alembic([command])
        if proc.returncode != 0:
            sys.stderr.write(proc.stderr)
            return proc.returncode
        results[command] = parse_revisions(proc.stdout)

    if results["current"] == results["heads"]:
        print("Cotizador: la base ya esta en la ultima revision, no se aplica upgrade.")
        return 0

    print(f"Cotizador: aplicando migraciones hasta {', '.join(sorted(results['heads']))}.")
    upgrade_proc = run_alembic(["upgrade", "head"])
    sys.stdout.write(upgrade_proc.stdout)
    sys.stderr.write(upgrade_proc.stderr)
    return upgrade_proc.returncode


if __name__ == "__main__":
    sys.exit(main())
