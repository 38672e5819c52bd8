"""Fail the suite if ``datetime.fromisoformat(`` creeps into the ledger packages.

Due dates and export timestamps go through ``common.datetime`` so that epoch
seconds and ``Z`` suffixes are handled the same way everywhere.
"""
from __future__ import annotations

import pathlib

PACKAGES = ("common", "trust_ledger", "trust_observability")


def _project_files():
    root = pathlib.Path(__file__).resolve().parent.parent
    for package in PACKAGES:
        yield from (root / package).rglob("*.py")


def test_no_fromisoformat():
    root = pathlib.Path(__file__).resolve().parent.parent
    offenders: list[str] = []
    for file in _project_files():
        if "fromisoformat(" in file.read_text(encoding="utf-8"):
            offenders.append(str(file.relative_to(root)))
    assert not offenders, (
        "datetime.fromisoformat() is forbidden; use common.datetime.parse_timestamp instead. "
        f"Found in: {', '.join(offenders)}"
    )
