"""Roster import: CSV text → list of students.

Columns are found by header aliases (case-insensitive). A two-column file with
unrecognised headers is read positionally as ``name, program`` with no header
row. Rosters can also be pulled from a URL (e.g. a Google Sheets CSV export)
and cached locally.
"""

from __future__ import annotations

import csv
import io
import ssl
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import certifi

from group_config import DEFAULT_CONFIG
from grouping import ConfigurationError, Student, trim


# ---------------------------- I/O ------------------------------------

def export_csv_url(doc_id: str, gid: str) -> str:
    base = f"https://docs.google.com/spreadsheets/d/{doc_id}/export"
    q = urllib.parse.urlencode({"format": "csv", "gid": gid})
    return f"{base}?{q}"


def download_if_needed(url: str, dest: Path, force: bool = False, user_agent: str = DEFAULT_CONFIG["USER_AGENT"]) -> Path:
    if dest.exists() and not force:
        return dest
    ctx = ssl.create_default_context(cafile=certifi.where())
    req = urllib.request.Request(url, headers={"User-Agent": user_agent})
    with urllib.request.urlopen(req, context=ctx) as resp:
        data = resp.read()
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(data)
    return dest


def decode_bytes(raw: bytes) -> str:
    return raw.decode("utf-8-sig", errors="replace")


def read_csv_matrix(text: str) -> List[List[str]]:
    rdr = csv.reader(io.StringIO(text))
    return [list(row) for row in rdr if any(trim(c) for c in row)]


# ---------------------------- Parse ----------------------------------

def _find_column(header: List[str], aliases: Iterable[str]) -> Optional[int]:
    wanted = {a.strip().lower() for a in aliases}
    for idx, cell in enumerate(header):
        if trim(cell).lower() in wanted:
            return idx
    return None


def resolve_columns(
    header: List[str],
    name_aliases: Iterable[str] = DEFAULT_CONFIG["NAME_ALIASES"],
    program_aliases: Iterable[str] = DEFAULT_CONFIG["PROGRAM_ALIASES"],
) -> Tuple[int, int, bool]:
    """Return (name_col, program_col, has_header)."""
    name_idx = _find_column(header, name_aliases)
    prog_idx = _find_column(header, program_aliases)
    if name_idx is not None and prog_idx is not None:
        return name_idx, prog_idx, True
    if len(header) == 2:
        return 0, 1, False
    raise ConfigurationError("Missing 'name' or 'program' column in roster")


def parse_roster(
    text: str,
    name_aliases: Iterable[str] = DEFAULT_CONFIG["NAME_ALIASES"],
    program_aliases: Iterable[str] = DEFAULT_CONFIG["PROGRAM_ALIASES"],
) -> List[Student]:
    matrix = read_csv_matrix(text)
    if not matrix:
        raise ConfigurationError("Roster is empty")
    name_idx, prog_idx, has_header = resolve_columns(matrix[0], name_aliases, program_aliases)
    rows = matrix[1:] if has_header else matrix

    students: List[Student] = []
    for row in rows:
        name = trim(row[name_idx]) if name_idx < len(row) else ""
        program = trim(row[prog_idx]) if prog_idx < len(row) else ""
        if not name or not program:
            continue
        students.append(Student(name, program))
    if not students:
        raise ConfigurationError("No students found in roster")
    return students


def load_roster(path: Path, cfg: dict = DEFAULT_CONFIG) -> Tuple[str, List[Student]]:
    """Read a roster file; returns the raw text (for snapshots) and the students."""
    if not path.exists():
        raise SystemExit(f"Missing file: {path}")
    text = decode_bytes(path.read_bytes())
    return text, parse_roster(text, cfg["NAME_ALIASES"], cfg["PROGRAM_ALIASES"])


def fetch_roster(url: str, cfg: dict = DEFAULT_CONFIG) -> Tuple[str, List[Student]]:
    dest = download_if_needed(url, Path(cfg["ROSTER_CACHE"]), force=cfg["FORCE_REFRESH"], user_agent=cfg["USER_AGENT"])
    return load_roster(dest, cfg)
