#!/usr/bin/env python3
"""
回归测试运行器、配置和命令行测试

Run: pytest test_runner.py -v
"""

import json
import shlex
import sys
from pathlib import Path

import pytest

from derivative_regression.baseline import LocalTransport, SnapshotStore
from derivative_regression.cli import EXIT_DIFFERENT, EXIT_ERROR, EXIT_OK, main
from derivative_regression.config import Config
from derivative_regression.errors import ComparisonError, TransportError
from derivative_regression.extractor import ExtractionResult, ExtractionStatus, Extractor
from derivative_regression.runner import RegressionRunner, find_dirs_containing

from test_comparators import create_test_property_db
from test_images import create_test_image
from test_svf_reader import create_test_fragment, create_test_geometry, create_test_viewable


def create_test_snapshot(root: Path, material: str = "oak1", black_pixels: int = 0) -> Path:
    """创建一个完整的衍生产物快照"""
    urn = root / "dXJuOmFkc2s"
    urn.mkdir(parents=True, exist_ok=True)
    (urn / "manifest.json").write_text('{"status": "success"}', encoding="utf-8")

    create_test_property_db(urn / "properties")

    viewable = create_test_viewable(
        urn / "guid-1",
        fragments=[create_test_fragment(1, 0, 0), create_test_fragment(2, 1, 0)],
        geometries=[create_test_geometry(0, 12, 0, 0), create_test_geometry(0, 6, 0, 1)],
        materials={"0": {"tag": material}},
        images=["wood.bmp"]
    )
    create_test_image(viewable / "wood.bmp", black_pixels=black_pixels)
    return root


class FakeExtractor:
    """把预设的快照写入输出目录的提取器"""

    def __init__(self, **snapshot_options):
        self.snapshot_options = snapshot_options
        self.calls = []
        self.fail = False

    def extract(self, bucket_key, object_key, output_dir, timeout=None, verbose=False):
        self.calls.append((bucket_key, object_key, Path(output_dir)))
        if self.fail:
            return ExtractionResult(
                status=ExtractionStatus.FAILED,
                success=False,
                duration_ms=0,
                output_dir=str(output_dir),
                error_message="转换失败"
            )
        create_test_snapshot(Path(output_dir), **self.snapshot_options)
        return ExtractionResult(
            status=ExtractionStatus.SUCCESS,
            success=True,
            duration_ms=1,
            output_dir=str(output_dir)
        )


def create_test_config(tmp_path: Path) -> Config:
    config = Config(environ={"BASELINE_STORE_DIR": str(tmp_path / "store")})
    config.load()
    config.work_dir = tmp_path / "work"
    return config


@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return create_test_config(tmp_path)


@pytest.fixture
def store(tmp_path):
    return SnapshotStore(LocalTransport(tmp_path / "store"))


class TestRegressionRunner:
    """回归测试运行器"""

    def test_update_then_compare(self, config, store):
        runner = RegressionRunner(config, store, FakeExtractor())

        updated = runner.run("bucket", "house.rvt", update_baseline=True)
        assert updated.baseline_updated
        assert updated.test_name == "model-derivative/basic/bucket/house.rvt"
        assert (store.transport.root / "baselines/model-derivative/basic/bucket/house.rvt.tar.gz").is_file()

        result = runner.run("bucket", "house.rvt")
        assert not result.baseline_updated
        assert result.baseline_dir == config.work_dir / result.test_name / "baseline"

    def test_update_does_not_download(self, config, store):
        runner = RegressionRunner(config, store, FakeExtractor())
        # 基线不存在时更新模式也能成功
        runner.run("bucket", "new.rvt", update_baseline=True)

    def test_material_change_is_detected(self, config, store):
        RegressionRunner(config, store, FakeExtractor()).run("bucket", "m.rvt", update_baseline=True)

        runner = RegressionRunner(config, store, FakeExtractor(material="oak2"))
        with pytest.raises(ComparisonError) as excinfo:
            runner.run("bucket", "m.rvt")
        assert "Material 0" in str(excinfo.value)

    def test_texture_change_is_detected(self, config, store):
        RegressionRunner(config, store, FakeExtractor()).run("bucket", "t.rvt", update_baseline=True)

        runner = RegressionRunner(config, store, FakeExtractor(black_pixels=3))
        with pytest.raises(ComparisonError) as excinfo:
            runner.run("bucket", "t.rvt")
        assert "Found 3 mismatched pixels" in str(excinfo.value)

    def test_missing_baseline(self, config, store):
        extractor = FakeExtractor()
        runner = RegressionRunner(config, store, extractor)
        with pytest.raises(TransportError):
            runner.run("bucket", "missing.rvt")
        assert extractor.calls == []

    def test_extraction_failure(self, config, store):
        extractor = FakeExtractor()
        extractor.fail = True
        runner = RegressionRunner(config, store, extractor)
        with pytest.raises(TransportError) as excinfo:
            runner.run("bucket", "broken.rvt", update_baseline=True)
        assert "转换失败" in str(excinfo.value)

    def test_scratch_dirs_are_reset(self, config, store):
        runner = RegressionRunner(config, store, FakeExtractor())
        runner.run("bucket", "r.rvt", update_baseline=True)

        _, current_dir = runner.scratch_dirs("model-derivative/basic/bucket/r.rvt")
        (current_dir / "stale.txt").write_text("old", encoding="utf-8")

        runner.run("bucket", "r.rvt")
        assert not (current_dir / "stale.txt").exists()

    def test_compare_snapshots_directly(self, tmp_path, config):
        a = create_test_snapshot(tmp_path / "a")
        b = create_test_snapshot(tmp_path / "b")
        runner = RegressionRunner(config, store=None, extractor=None)
        runner.compare_snapshots(a, b)

    def test_structure_checked_before_contents(self, tmp_path, config):
        a = create_test_snapshot(tmp_path / "a")
        b = create_test_snapshot(tmp_path / "b", material="oak2")
        (b / "extra.txt").write_text("x", encoding="utf-8")

        runner = RegressionRunner(config, store=None, extractor=None)
        with pytest.raises(ComparisonError) as excinfo:
            runner.compare_snapshots(a, b)
        assert "Compared folder structures not equal" in str(excinfo.value)

    def test_find_dirs_containing(self, tmp_path):
        create_test_snapshot(tmp_path / "snap")
        assert find_dirs_containing(tmp_path / "snap", "output.svf") == [Path("dXJuOmFkc2s/guid-1")]


class TestExtractor:
    """外部提取命令"""

    def test_arguments_are_passed(self, tmp_path):
        script = tmp_path / "extract.py"
        script.write_text(
            "import sys, pathlib\n"
            "out = pathlib.Path(sys.argv[3])\n"
            "(out / 'args.txt').write_text(sys.argv[1] + ' ' + sys.argv[2])\n",
            encoding="utf-8"
        )
        extractor = Extractor([sys.executable, str(script)])
        result = extractor.extract("bucket", "model.rvt", tmp_path / "out")

        assert result.success
        assert result.status == ExtractionStatus.SUCCESS
        assert (tmp_path / "out" / "args.txt").read_text() == "bucket model.rvt"

    def test_nonzero_exit(self, tmp_path):
        extractor = Extractor([sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"])
        result = extractor.extract("b", "o", tmp_path / "out")

        assert not result.success
        assert result.status == ExtractionStatus.FAILED
        assert "boom" in result.error_message

    def test_missing_command(self, tmp_path):
        result = Extractor([str(tmp_path / "no-such-extractor")]).extract("b", "o", tmp_path / "out")
        assert result.status == ExtractionStatus.FAILED

    def test_empty_command(self):
        with pytest.raises(ValueError):
            Extractor([])


class TestConfig:
    """配置解析"""

    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = Config(environ={}).load()
        assert config.test_prefix == "model-derivative/basic"
        assert config.image_threshold == 0.1
        assert config.package_name == "output.svf"
        assert config.local_store_dir is None

    def test_file_and_environment(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "test_prefix": "/custom/suite/",
            "image_threshold": 0.05,
            "extractor": "node extract.js --region US",
            "work_dir": str(tmp_path / "work")
        }), encoding="utf-8")

        config = Config(config_file, environ={"DERIVATIVE_EXTRACTOR": "other-extractor"}).load()
        assert config.test_prefix == "custom/suite"
        assert config.image_threshold == 0.05
        assert config.extractor == ["other-extractor"]
        assert config.work_dir == tmp_path / "work"

        config = Config(config_file, environ={}).load()
        assert config.extractor == ["node", "extract.js", "--region", "US"]

    def test_invalid_threshold(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text('{"image_threshold": 2}', encoding="utf-8")
        with pytest.raises(ValueError):
            Config(config_file, environ={}).load()

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config(tmp_path / "missing.json", environ={}).load()

    def test_missing_settings(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = Config(environ={"FORGE_CLIENT_ID": "id", "AWS_S3_BUCKET": "b"}).load()
        missing = config.missing_settings()
        assert "FORGE_CLIENT_SECRET" in missing
        assert "DERIVATIVE_EXTRACTOR" in missing
        assert "AWS_ACCESS_KEY_ID" in missing
        assert "FORGE_CLIENT_ID" not in missing
        assert "AWS_S3_BUCKET" not in missing

        assert config.missing_settings(storage=False, extraction=False) == []

    def test_local_store_replaces_aws(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = Config(environ={"BASELINE_STORE_DIR": str(tmp_path)}).load()
        assert config.missing_settings(extraction=False) == []

    def test_extractor_env_carries_only_credentials(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = Config(environ={
            "PATH": "/usr/bin",
            "FORGE_CLIENT_ID": "id",
            "FORGE_CLIENT_SECRET": "secret",
            "AWS_SECRET_ACCESS_KEY": "aws-secret",
        }).load()
        assert config.extractor_env() == {
            "PATH": "/usr/bin",
            "FORGE_CLIENT_ID": "id",
            "FORGE_CLIENT_SECRET": "secret",
        }


class TestCommandLine:
    """命令行退出码"""

    @pytest.fixture(autouse=True)
    def clean_environment(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        for name in ("FORGE_CLIENT_ID", "FORGE_CLIENT_SECRET", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY",
                     "AWS_DEFAULT_REGION", "AWS_S3_BUCKET", "BASELINE_STORE_DIR", "DERIVATIVE_EXTRACTOR"):
            monkeypatch.delenv(name, raising=False)

    def test_no_command(self):
        assert main([]) == EXIT_ERROR

    def test_compare_equal(self, tmp_path):
        a = create_test_snapshot(tmp_path / "a")
        b = create_test_snapshot(tmp_path / "b")
        assert main(["compare", str(a), str(b)]) == EXIT_OK

    def test_compare_different(self, tmp_path, capsys):
        a = create_test_snapshot(tmp_path / "a")
        b = create_test_snapshot(tmp_path / "b", black_pixels=10)
        assert main(["compare", str(a), str(b)]) == EXIT_DIFFERENT
        assert "[FAILED]" in capsys.readouterr().out

    def test_compare_unreadable_directory(self, tmp_path, capsys):
        snapshot = create_test_snapshot(tmp_path / "snapshot")
        regular_file = tmp_path / "not-a-dir.txt"
        regular_file.write_text("x", encoding="utf-8")

        assert main(["compare", str(regular_file), str(snapshot)]) == EXIT_ERROR
        assert main(["compare", str(snapshot), str(tmp_path / "missing")]) == EXIT_ERROR
        assert "[ERROR]" in capsys.readouterr().err

    def test_compare_with_loose_threshold(self, tmp_path):
        a = create_test_snapshot(tmp_path / "a")
        b = create_test_snapshot(tmp_path / "b", black_pixels=10)
        assert main(["compare", str(a), str(b), "--threshold", "1"]) == EXIT_OK

    def test_compare_images(self, tmp_path):
        a = create_test_image(tmp_path / "a.png")
        b = create_test_image(tmp_path / "b.png", black_pixels=1)
        assert main(["compare-images", str(a), str(a)]) == EXIT_OK
        assert main(["compare-images", str(a), str(b)]) == EXIT_DIFFERENT
        assert main(["compare-images", str(a), str(b), "--threshold", "3"]) == EXIT_ERROR

    def test_run_without_credentials(self, capsys):
        assert main(["run", "bucket", "model.rvt"]) == EXIT_ERROR
        assert "FORGE_CLIENT_ID" in capsys.readouterr().err

    def test_run_update_then_compare(self, tmp_path, monkeypatch):
        script = tmp_path / "extract.py"
        script.write_text(
            "import sys, pathlib\n"
            "out = pathlib.Path(sys.argv[3]) / 'urn'\n"
            "out.mkdir(parents=True, exist_ok=True)\n"
            "(out / 'manifest.json').write_text('{}')\n",
            encoding="utf-8"
        )
        monkeypatch.setenv("FORGE_CLIENT_ID", "id")
        monkeypatch.setenv("FORGE_CLIENT_SECRET", "secret")
        monkeypatch.setenv("BASELINE_STORE_DIR", str(tmp_path / "store"))
        monkeypatch.setenv("DERIVATIVE_EXTRACTOR", f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}")

        assert main(["run", "bucket", "model.rvt"]) == EXIT_ERROR
        assert main(["run", "bucket", "model.rvt", "--update-baseline"]) == EXIT_OK
        assert main(["run", "bucket", "model.rvt", "--verbose"]) == EXIT_OK

    def test_download_and_upload(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BASELINE_STORE_DIR", str(tmp_path / "store"))
        snapshot = create_test_snapshot(tmp_path / "snapshot")

        assert main(["upload", "suite/model", str(snapshot)]) == EXIT_OK
        assert main(["download", "suite/model", str(tmp_path / "restored")]) == EXIT_OK
        assert main(["compare", str(snapshot), str(tmp_path / "restored")]) == EXIT_OK
        assert main(["download", "suite/other", str(tmp_path / "other")]) == EXIT_ERROR
