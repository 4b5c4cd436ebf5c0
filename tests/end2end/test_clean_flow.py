from __future__ import annotations

import sys
from subprocess import run as subprocess_run  # noqa: S404
from typing import TYPE_CHECKING

import fitz

if TYPE_CHECKING:
    from pathlib import Path


def test_cli_clean_writes_processed_pdf(tmp_path: Path) -> None:
    doc = fitz.open()
    page = doc.new_page(width=100, height=100)
    page.draw_circle(fitz.Point(50, 50), 20, color=(1, 0, 0), width=4)
    doc.save(tmp_path / "quiz.pdf")
    doc.close()

    result = subprocess_run(  # noqa: S603
        [
            sys.executable,
            "-m",
            "inkstrip.cli",
            "clean",
            str(tmp_path / "quiz.pdf"),
            "--no-tuning",
            "--output-dir",
            str(tmp_path / "out"),
            "--state-dir",
            str(tmp_path / "state"),
        ],
        capture_output=True,
        text=True,
        check=False,
        cwd=tmp_path,
    )

    assert result.returncode == 0, result.stderr
    assert (tmp_path / "out" / "processed_quiz.pdf").exists()
    assert "quiz.pdf: done (1/1 pages)" in result.stdout
