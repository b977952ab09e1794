"""测试运行编排：计数汇总、演练模式、备份保证与并发执行。"""

from __future__ import annotations

import threading
from pathlib import Path

import pytest
from PIL import Image

from image_zapper.core import backup as backup_module
from image_zapper.core.config import RunConfig
from image_zapper.core.exceptions import SetupError
from image_zapper.core.models import FileOutcome, OutcomeKind
from image_zapper.core.progress import ProgressUpdate
from image_zapper.processing.pipeline import process_run


def make_config(source: Path, **overrides) -> RunConfig:
    overrides.setdefault("max_workers", 1)
    return RunConfig(input_dir=source, **overrides)


def snapshot(root: Path) -> dict[str, bytes]:
    return {str(path.relative_to(root)): path.read_bytes() for path in sorted(root.rglob("*")) if path.is_file()}


def save_with_exif(path: Path, color: str = "green") -> None:
    exif = Image.Exif()
    exif[0x010F] = "ACME Camera"
    Image.new("RGB", (24, 16), color).save(path, exif=exif.tobytes())


def test_scenario_a_in_place_non_recursive(tmp_path: Path) -> None:
    source = tmp_path / "input"
    (source / "nested").mkdir(parents=True)
    Image.new("RGB", (16, 16), "blue").save(source / "a.png")
    (source / "b.txt").write_text("hello")
    Image.new("RGB", (16, 16), "red").save(source / "c.JPG", format="JPEG")
    Image.new("RGB", (16, 16), "red").save(source / "nested" / "d.png")

    result = process_run(make_config(source, recursive=False))

    # a.png 与 c.JPG 均为候选（扩展名不区分大小写），b.txt 不是候选，子目录不扫描。
    processed = {outcome.source_path.name for outcome in result.outcomes}
    assert processed == {"a.png", "c.JPG"}
    assert result.summary.processed == 2
    assert result.summary.errored == 0
    assert all(outcome.output_path == outcome.source_path for outcome in result.outcomes)
    assert (source / "b.txt").read_text() == "hello"


def test_every_candidate_counted_exactly_once(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    for idx in range(4):
        Image.new("RGB", (8, 8), "white").save(source / f"ok_{idx}.png")
    (source / "bad.jpg").write_text("corrupt")

    result = process_run(make_config(source, output_dir=tmp_path / "out"))

    summary = result.summary
    assert summary.total == len(result.outcomes) == 5
    assert (summary.processed, summary.skipped, summary.errored) == (4, 0, 1)
    assert summary.exit_code == 1
    assert result.errored()[0].status == "error-decode"


def test_dry_run_mirrors_real_run_and_mutates_nothing(tmp_path: Path) -> None:
    source = tmp_path / "input"
    (source / "sub").mkdir(parents=True)
    save_with_exif(source / "img.jpg")
    Image.new("RGB", (8, 8), "blue").save(source / "sub" / "pic.png")
    before = snapshot(tmp_path)

    preview = process_run(make_config(source, backup=True, dry_run=True))

    assert snapshot(tmp_path) == before
    assert all(outcome.status == "processed-dry-run" for outcome in preview.outcomes)
    assert preview.summary.processed == 2

    real = process_run(make_config(source, backup=True))

    def paths(outcomes: list[FileOutcome]) -> set[tuple[Path, Path | None, Path | None]]:
        return {(item.source_path, item.output_path, item.backup_path) for item in outcomes}

    assert paths(preview.outcomes) == paths(real.outcomes)
    assert real.summary.processed == preview.summary.processed


def test_dry_run_does_not_create_output_dir(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    Image.new("RGB", (8, 8), "blue").save(source / "a.png")
    output = tmp_path / "out"

    result = process_run(make_config(source, output_dir=output, dry_run=True))

    assert not output.exists()
    assert result.outcomes[0].output_path == output / "a.png"


def test_backup_failure_prevents_transcode(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = tmp_path / "input"
    source.mkdir()
    target = source / "img.jpg"
    save_with_exif(target)
    original = target.read_bytes()

    def failing_copy(src, dst):
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr(backup_module.shutil, "copyfile", failing_copy)

    result = process_run(make_config(source, backup=True))

    assert result.summary.errored == 1
    assert result.summary.processed == 0
    assert result.outcomes[0].status == "error-io"
    assert target.read_bytes() == original
    assert not (source / "img.bak.jpg").exists()


def test_scenario_b_flattened_collision_last_writer_wins(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    source = tmp_path / "input"
    for name, color in (("first", "red"), ("second", "blue")):
        (source / name).mkdir(parents=True)
        Image.new("RGB", (8, 8), color).save(source / name / "photo.png")
    output = tmp_path / "out"

    with caplog.at_level("WARNING"):
        result = process_run(make_config(source, output_dir=output))

    assert result.summary.processed == 2
    assert {outcome.output_path for outcome in result.outcomes} == {output / "photo.png"}
    assert [path.name for path in output.iterdir()] == ["photo.png"]
    assert "冲突" in caplog.text

    last_source = result.outcomes[-1].source_path
    with Image.open(output / "photo.png") as survivor, Image.open(last_source) as expected:
        assert survivor.tobytes() == expected.tobytes()


def test_scenario_c_backup_in_place(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    target = source / "img.jpg"
    save_with_exif(target)
    original = target.read_bytes()

    result = process_run(make_config(source, backup=True))

    assert result.summary.processed == 1
    backup = source / "img.bak.jpg"
    assert result.outcomes[0].backup_path == backup
    assert backup.read_bytes() == original
    assert target.read_bytes() != original
    with Image.open(target) as cleaned:
        assert len(cleaned.getexif()) == 0
        assert cleaned.size == (24, 16)


def test_scenario_d_one_corrupt_among_nine_valid_in_parallel(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    for idx in range(9):
        Image.new("RGB", (12, 12), (idx * 20, 0, 0)).save(source / f"valid_{idx}.png")
    (source / "corrupt.png").write_bytes(b"\x89PNG garbage")

    result = process_run(make_config(source, output_dir=tmp_path / "out", max_workers=2))

    assert result.summary.processed == 9
    assert result.summary.errored == 1
    assert result.summary.exit_code == 1
    assert len(list((tmp_path / "out").iterdir())) == 9


def test_parallel_and_sequential_counts_match(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    for idx in range(6):
        Image.new("RGB", (8, 8), "white").save(source / f"img_{idx}.png")
    (source / "broken.jpeg").write_text("nope")

    sequential = process_run(make_config(source, output_dir=tmp_path / "seq", max_workers=1))
    parallel = process_run(make_config(source, output_dir=tmp_path / "par", max_workers=3))

    assert sequential.summary.summary_line() == parallel.summary.summary_line()
    assert sequential.summary.summary_line() == "processed=6 skipped=0 errored=1"


def test_files_inside_output_dir_are_skipped(tmp_path: Path) -> None:
    source = tmp_path / "input"
    output = source / "cleaned"
    output.mkdir(parents=True)
    Image.new("RGB", (8, 8), "white").save(source / "new.png")
    Image.new("RGB", (8, 8), "white").save(output / "old.png")

    result = process_run(make_config(source, output_dir=output))

    # 只有运行前已在输出目录中的文件计为跳过，本次写出的 cleaned/new.png 不计入。
    statuses = sorted(
        (outcome.source_path.parent.name, outcome.source_path.name, outcome.status) for outcome in result.outcomes
    )
    assert statuses == [
        ("cleaned", "old.png", "skip-output-dir"),
        ("input", "new.png", "processed"),
    ]
    assert result.summary.summary_line() == "processed=1 skipped=1 errored=0"
    assert (output / "new.png").exists()


def test_nested_output_dir_counts_match_across_worker_counts(tmp_path: Path) -> None:
    source = tmp_path / "input"
    output = source / "cleaned"
    output.mkdir(parents=True)
    for idx in range(6):
        Image.new("RGB", (8, 8), (idx * 30, 0, 0)).save(source / f"img_{idx}.png")

    summaries = [
        process_run(make_config(source, output_dir=output, max_workers=workers)).summary.summary_line()
        for workers in (1, 2, 1, 2)
    ]

    # 第一次运行后输出目录已有 6 个文件，之后每次都按运行前的快照计为跳过。
    assert summaries[0] == "processed=6 skipped=0 errored=0"
    assert summaries[1:] == ["processed=6 skipped=6 errored=0"] * 3


def test_failed_in_place_encode_leaves_source_untouched(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    target = source / "wide.jpg"
    # PNG 数据但扩展名为 .jpg；宽度超出 JPEG 上限，编码必然失败。
    Image.new("L", (70000, 1), 128).save(target, format="PNG")
    original = target.read_bytes()

    result = process_run(make_config(source))

    assert result.outcomes[0].status == "error-encode"
    assert target.read_bytes() == original
    assert sorted(path.name for path in source.iterdir()) == ["wide.jpg"]


def test_optimize_flag_reports_png_recompression(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    Image.new("RGB", (32, 32), "white").save(source / "flat.png", compress_level=0)
    Image.new("RGB", (32, 32), "white").save(source / "photo.jpg")

    result = process_run(make_config(source, output_dir=tmp_path / "out", optimize=True))

    messages = {outcome.source_path.name: outcome.message for outcome in result.outcomes}
    assert messages == {"flat.png": "optimized", "photo.jpg": None}


def test_cancel_event_stops_dispatch(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    for idx in range(3):
        Image.new("RGB", (8, 8), "white").save(source / f"img_{idx}.png")
    cancel = threading.Event()

    result = process_run(
        make_config(source, output_dir=tmp_path / "out"),
        outcome_callback=lambda outcome: cancel.set(),
        cancel_event=cancel,
    )

    assert result.aborted is True
    assert result.summary.total == len(result.outcomes) == 1


def test_callbacks_receive_every_outcome(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    for idx in range(2):
        Image.new("RGB", (8, 8), "white").save(source / f"img_{idx}.png")
    seen: list[FileOutcome] = []
    updates: list[ProgressUpdate] = []

    result = process_run(
        make_config(source, dry_run=True),
        progress_callback=updates.append,
        outcome_callback=seen.append,
    )

    assert seen == result.outcomes
    assert all(outcome.kind == OutcomeKind.PROCESSED for outcome in seen)
    assert updates[-1].status == "done"
    assert updates[-1].completed == 2


def test_missing_input_dir_is_setup_error(tmp_path: Path) -> None:
    with pytest.raises(SetupError):
        process_run(make_config(tmp_path / "nope"))


def test_uncreatable_output_dir_is_setup_error(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")

    with pytest.raises(SetupError):
        process_run(make_config(source, output_dir=blocker / "out"))
