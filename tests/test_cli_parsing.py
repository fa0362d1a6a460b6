"""Tests for CLI argument parsing and command handlers."""

import json

import cv2
import numpy as np
import pytest

from conftest import SCENE_CORNERS
from docrectify.cli import _parse_corners, build_parser, main


class TestParseCorners:
    def test_valid(self):
        corners = _parse_corners("0.1,0.2; 0.9,0.2; 0.9,0.8; 0.1,0.8")
        assert corners == [(0.1, 0.2), (0.9, 0.2), (0.9, 0.8), (0.1, 0.8)]

    def test_trailing_separator(self):
        assert len(_parse_corners("0,0;1,0;1,1;0,1;")) == 4

    def test_wrong_count(self):
        with pytest.raises(ValueError, match="Expected 4 corners, got 3"):
            _parse_corners("0,0;1,0;1,1")

    def test_malformed_pair(self):
        with pytest.raises(ValueError, match="Invalid corner"):
            _parse_corners("0,0;1;1,1;0,1")


class TestBuildParser:
    """Subcommands and their defaults."""

    def test_rectify_defaults(self):
        args = build_parser().parse_args(["rectify", "in.jpg", "-o", "out.png"])
        assert args.command == "rectify"
        assert args.mode is None
        assert args.corners is None
        assert str(args.output) == "out.png"

    def test_rectify_requires_output(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["rectify", "in.jpg"])

    def test_invalid_mode(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["rectify", "in.jpg", "-o", "x.png", "--mode", "sepia"])

    def test_global_flags(self):
        args = build_parser().parse_args(["-v", "--config", "s.json", "detect", "in.jpg", "--max-side", "300"])
        assert args.verbose
        assert str(args.config) == "s.json"
        assert args.max_side == 300

    def test_serve_ready(self):
        assert build_parser().parse_args(["serve", "--ready"]).ready


@pytest.fixture
def workspace(tmp_path, scene):
    """A scene image and an empty settings file path."""
    image = tmp_path / "scene.png"
    cv2.imwrite(str(image), scene)
    return tmp_path, image, tmp_path / "settings.json"


class TestCommands:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out

    def test_missing_input(self, tmp_path, capsys):
        assert main(["detect", str(tmp_path / "missing.png")]) == 1
        assert "not found" in capsys.readouterr().err

    def test_detect_prints_json(self, workspace, capsys):
        _, image, settings = workspace
        assert main(["--config", str(settings), "detect", str(image)]) == 0
        corners = json.loads(capsys.readouterr().out)
        assert set(corners) == {"tl", "tr", "br", "bl"}
        assert corners["tl"]["x"] == pytest.approx(SCENE_CORNERS[0, 0], abs=0.02)

    def test_rectify_with_corners(self, workspace):
        tmp, image, settings = workspace
        out = tmp / "out" / "scan.png"
        code = main(
            ["--config", str(settings), "rectify", str(image), "-o", str(out), "--corners", "0.2,0.2;0.8,0.2;0.8,0.8;0.2,0.8"]
        )
        assert code == 0
        assert cv2.imread(str(out)).shape == (360, 480, 3)

    def test_rectify_mode_from_settings(self, workspace):
        tmp, image, settings = workspace
        settings.write_text(json.dumps({"output": {"default_mode": "gray"}}))
        out = tmp / "scan.png"
        assert main(["--config", str(settings), "rectify", str(image), "-o", str(out), "--corners", "0,0;1,0;1,1;0,1"]) == 0
        pixels = cv2.imread(str(out))
        assert pixels.shape == (600, 800, 3)
        assert np.array_equal(pixels[:, :, 0], pixels[:, :, 1])

    def test_previews(self, workspace):
        tmp, image, settings = workspace
        out = tmp / "previews"
        assert main(["--config", str(settings), "previews", str(image), "-o", str(out)]) == 0
        assert sorted(p.name for p in out.iterdir()) == ["bw.jpg", "color.jpg", "gray.jpg"]

    def test_previews_without_output_dir(self, workspace):
        _, image, settings = workspace
        assert main(["--config", str(settings), "previews", str(image)]) == 1

    def test_collinear_corners_fail(self, workspace):
        tmp, image, settings = workspace
        code = main(
            ["--config", str(settings), "rectify", str(image), "-o", str(tmp / "x.png"), "--corners", "0,0;0.5,0;1,0;0.5,1"]
        )
        assert code == 1

    def test_invalid_settings_fail(self, workspace):
        _, image, settings = workspace
        settings.write_text(json.dumps({"scanner": {"detect_max_side": -5}}))
        assert main(["--config", str(settings), "detect", str(image)]) == 1

    def test_serve(self, workspace, monkeypatch, capsys):
        import io

        _, _, settings = workspace
        monkeypatch.setattr("sys.stdin", io.StringIO('{"type": "bogus"}\n'))
        assert main(["--config", str(settings), "serve", "--ready"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert json.loads(lines[0]) == {"type": "ready"}
        assert json.loads(lines[1])["type"] == "error"
