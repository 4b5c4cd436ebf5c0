from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from inkstrip import cli
from inkstrip.exceptions import DependencyError
from inkstrip.settings import Settings
from inkstrip.state_store import FileKeyValueStore
from inkstrip.typing.enums import JobStatus
from inkstrip.typing.models import BatchRun, DocumentJob

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    settings = Settings()
    settings.state_dir = str(tmp_path / "state")
    settings.output_dir = str(tmp_path / "out")
    settings.openai_base_url = None
    return settings


@pytest.fixture
def wired(mocker, settings: Settings, fake_codec, make_buffer):
    red_page = make_buffer(3, 3)
    pixels = red_page.pixels.copy()
    pixels[1, 1] = (255, 0, 0, 255)
    fake_codec.documents[b"pdf-a"] = [red_page.model_copy(update={"pixels": pixels}), make_buffer(3, 3)]
    fake_codec.documents[b"pdf-b"] = [make_buffer(2, 2)]
    mocker.patch("inkstrip.cli.get_settings", return_value=settings)
    mocker.patch("inkstrip.cli.configure_logging")
    mocker.patch("inkstrip.cli.ensure_cli_dependencies_for_clean")
    mocker.patch("inkstrip.cli.ensure_cli_dependencies_for_preview")
    mocker.patch("inkstrip.cli._build_codec", return_value=fake_codec)
    return fake_codec


def test_build_parser_supports_version_flag(capsys) -> None:
    parser = cli.build_parser()

    with pytest.raises(SystemExit) as exc_info:
        parser.parse_args(["--version"])
    assert exc_info.value.code == 0

    captured = capsys.readouterr()
    assert "0.1.0" in captured.out


def test_build_parser_clean_options(tmp_path: Path) -> None:
    args = cli.build_parser().parse_args(
        [
            "clean",
            "a.pdf",
            "b.pdf",
            "--archive",
            "--scale",
            "2",
            "--no-tuning",
            "--output-dir",
            str(tmp_path),
        ],
    )

    assert [path.name for path in args.inputs] == ["a.pdf", "b.pdf"]
    assert args.archive
    assert args.scale == 2.0
    assert args.no_tuning
    assert args.output_dir == tmp_path
    assert not args.aggressive_prompt


def test_build_parser_rejects_non_positive_scale() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["clean", "a.pdf", "--scale", "0"])


def test_main_without_command_prints_help(mocker, settings: Settings, capsys) -> None:
    mocker.patch("inkstrip.cli.get_settings", return_value=settings)
    mocker.patch("inkstrip.cli.configure_logging")

    assert cli.main([]) == 0
    assert "usage" in capsys.readouterr().out.lower()


def test_main_clean_writes_one_pdf_per_document(wired, tmp_path: Path, capsys) -> None:
    (tmp_path / "a.pdf").write_bytes(b"pdf-a")
    (tmp_path / "b.pdf").write_bytes(b"pdf-b")

    result = cli.main(["clean", str(tmp_path / "a.pdf"), str(tmp_path / "b.pdf"), "--no-tuning"])

    assert result == 0
    written = sorted(path.name for path in (tmp_path / "out").iterdir())
    assert written == ["processed_a_multi.pdf", "processed_b.pdf"]
    summary = capsys.readouterr().out
    assert "a.pdf: done (2/2 pages)" in summary
    assert wired.render_calls[0][2] == 1.75


def test_main_clean_archive_and_scale(wired, tmp_path: Path) -> None:
    (tmp_path / "a.pdf").write_bytes(b"pdf-a")

    result = cli.main(["clean", str(tmp_path / "a.pdf"), "--archive", "--scale", "2.5", "--no-tuning"])

    assert result == 0
    assert [path.name for path in (tmp_path / "out").iterdir()] == ["processed_pdfs.zip"]
    assert {call[2] for call in wired.render_calls} == {2.5}


def test_main_clean_returns_one_when_a_document_fails(wired, tmp_path: Path) -> None:
    wired.failing_pages.add((b"pdf-a", 1))
    (tmp_path / "a.pdf").write_bytes(b"pdf-a")
    (tmp_path / "b.pdf").write_bytes(b"pdf-b")

    result = cli.main(["clean", str(tmp_path / "a.pdf"), str(tmp_path / "b.pdf"), "--no-tuning"])

    assert result == 1
    written = sorted(path.name for path in (tmp_path / "out").iterdir())
    assert written == ["processed_a.pdf", "processed_b.pdf"]


def test_main_clean_without_pdf_inputs_fails(wired, tmp_path: Path) -> None:
    _ = wired
    (tmp_path / "notes.txt").write_bytes(b"text")

    assert cli.main(["clean", str(tmp_path / "notes.txt"), str(tmp_path / "missing.pdf")]) == 1


def test_main_resume_continues_persisted_session(wired, tmp_path: Path) -> None:
    wired.failing_pages.add((b"pdf-a", 1))
    (tmp_path / "a.pdf").write_bytes(b"pdf-a")
    assert cli.main(["clean", str(tmp_path / "a.pdf"), "--no-tuning"]) == 1

    wired.failing_pages.clear()
    wired.render_calls.clear()
    result = cli.main(["resume", "--no-tuning", "--output-dir", str(tmp_path / "resumed")])

    assert result == 0
    assert [call[1] for call in wired.render_calls] == [1]
    assert [path.name for path in (tmp_path / "resumed").iterdir()] == ["processed_a_multi.pdf"]


def test_main_resume_without_session_fails(wired) -> None:
    _ = wired
    assert cli.main(["resume"]) == 1


def test_main_reset_clears_state(mocker, settings: Settings) -> None:
    mocker.patch("inkstrip.cli.get_settings", return_value=settings)
    mocker.patch("inkstrip.cli.configure_logging")
    store = FileKeyValueStore(root=settings.state_dir)
    store.set("file-x", b"data")

    assert cli.main(["reset"]) == 0
    assert store.keys() == []


def test_main_maps_package_errors_to_exit_code_one(mocker, settings: Settings, tmp_path: Path) -> None:
    mocker.patch("inkstrip.cli.get_settings", return_value=settings)
    mocker.patch("inkstrip.cli.configure_logging")
    mocker.patch(
        "inkstrip.cli.ensure_cli_dependencies_for_clean",
        side_effect=DependencyError(missing_package=["pymupdf"], message="clean"),
    )
    assert cli.main(["clean", str(tmp_path / "a.pdf")]) == 1
    assert settings.httpx_clients == {}


def test_main_maps_keyboard_interrupt(mocker, settings: Settings, tmp_path: Path) -> None:
    mocker.patch("inkstrip.cli.get_settings", return_value=settings)
    mocker.patch("inkstrip.cli.configure_logging")
    mocker.patch("inkstrip.cli._run_batch", side_effect=KeyboardInterrupt)

    assert cli.main(["clean", str(tmp_path / "a.pdf")]) == 130


def test_write_outputs_skips_jobs_without_pages(fake_codec, tmp_path: Path) -> None:
    run = BatchRun(jobs=[DocumentJob(document_id="x", name="x.pdf", status=JobStatus.FAILED)])

    assert cli.write_outputs(run, fake_codec, tmp_path, archive=False) == []


def test_write_outputs_keeps_documents_with_the_same_name(fake_codec, make_buffer, tmp_path: Path) -> None:
    jobs = []
    for document_id in ("first", "second"):
        job = DocumentJob(document_id=document_id, name="scan.pdf")
        job.start(1)
        job.pages[0].mark_done(make_buffer(1, 1))
        job.status = JobStatus.DONE
        jobs.append(job)

    written = cli.write_outputs(BatchRun(jobs=jobs), fake_codec, tmp_path, archive=False)

    assert [path.name for path in written] == ["processed_scan.pdf", "processed_scan_2.pdf"]
    assert sorted(path.name for path in tmp_path.iterdir()) == ["processed_scan.pdf", "processed_scan_2.pdf"]


def test_main_preview_writes_page_png_at_preview_scale(
    wired,
    settings: Settings,
    tmp_path: Path,
    capsys,
) -> None:
    (tmp_path / "a.pdf").write_bytes(b"pdf-a")
    target = tmp_path / "previews" / "page.png"

    result = cli.main(["preview", str(tmp_path / "a.pdf"), "--page", "2", "--output", str(target)])

    assert result == 0
    assert wired.render_calls == [("a.pdf", 1, settings.preview_scale)]
    assert wired.decode_image(target.read_bytes()).width == 3
    assert wired.closed == ["a.pdf"]
    assert str(target) in capsys.readouterr().out


def test_main_preview_defaults_output_name(wired, tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "a.pdf").write_bytes(b"pdf-a")
    monkeypatch.chdir(tmp_path)

    assert cli.main(["preview", str(tmp_path / "a.pdf"), "--scale", "0.5"]) == 0
    assert (tmp_path / "a_page1.png").exists()
    assert wired.render_calls[0][2] == 0.5


def test_main_preview_out_of_range_page_fails(wired, tmp_path: Path) -> None:
    (tmp_path / "a.pdf").write_bytes(b"pdf-a")

    assert cli.main(["preview", str(tmp_path / "a.pdf"), "--page", "9"]) == 1
    assert wired.render_calls == []


def test_build_parser_rejects_page_zero() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["preview", "a.pdf", "--page", "0"])
