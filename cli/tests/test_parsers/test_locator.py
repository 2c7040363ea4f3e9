"""Tests for include path discovery and main header lookup."""

import pytest
from unittest.mock import patch
from ffiscout.config import FFIScoutConfig
from ffiscout.errors import HeaderNotFoundError, ToolUnavailableError
from ffiscout.parsers.locator import HeaderLocator, query_include_paths


@pytest.fixture
def locator():
    return HeaderLocator(FFIScoutConfig())


class TestQueryIncludePaths:
    """Test the build-config tool query."""

    @patch("ffiscout.parsers.locator.run_tool")
    def test_include_flags_parsed(self, mock_run):
        mock_run.return_value = "-I/opt/raylib/include -I/usr/include/GL -DPLATFORM_DESKTOP -lraylib\n"
        paths = query_include_paths("raylib", FFIScoutConfig())
        assert paths == ["/opt/raylib/include", "/usr/include/GL"]
        args, _ = mock_run.call_args
        assert args[0] == ["pkg-config", "--cflags", "raylib"]

    @patch("ffiscout.parsers.locator.run_tool")
    def test_package_variants_tried_in_order(self, mock_run):
        mock_run.side_effect = [
            ToolUnavailableError("pkg-config", "exit status 1: Package sdl3 was not found"),
            "-I/opt/sdl3/include -D_REENTRANT\n",
        ]
        assert query_include_paths("sdl3", FFIScoutConfig()) == ["/opt/sdl3/include"]
        assert [call.args[0][2] for call in mock_run.call_args_list] == ["sdl3", "SDL3"]

    @patch("ffiscout.parsers.locator.run_tool")
    def test_tool_unavailable(self, mock_run):
        mock_run.side_effect = ToolUnavailableError("pkg-config", "not installed")
        assert query_include_paths("raylib", FFIScoutConfig()) == []
        assert mock_run.call_count == 3

    @patch("ffiscout.parsers.locator.run_tool")
    def test_known_package_without_includes(self, mock_run):
        mock_run.return_value = "\n"
        assert query_include_paths("m", FFIScoutConfig()) == []
        assert mock_run.call_count == 1


class TestHeaderLocator:
    """Test HeaderLocator."""

    def test_search_path_order(self):
        config = FFIScoutConfig(extra_include_dirs=["/cfg"], system_include_dirs=["/sys", "/extra"])
        with patch("ffiscout.parsers.locator.query_include_paths", return_value=["/pc", "/extra"]):
            paths = HeaderLocator(config).search_paths("foo", ["/extra"])
        assert paths == ["/extra", "/cfg", "/pc", "/sys"]

    def test_plain_header(self, locator, tmp_path):
        (tmp_path / "raylib.h").write_text("")
        assert locator.find_main_header("raylib", ["/nonexistent", str(tmp_path)]) == tmp_path / "raylib.h"

    def test_directory_with_upper_case_header(self, locator, tmp_path):
        (tmp_path / "foo").mkdir()
        (tmp_path / "foo" / "FOO.h").write_text("")
        assert locator.find_main_header("foo", [str(tmp_path)]) == tmp_path / "foo" / "FOO.h"

    def test_alias(self, locator, tmp_path):
        (tmp_path / "SDL3").mkdir()
        (tmp_path / "SDL3" / "SDL.h").write_text("")
        assert locator.find_main_header("sdl3", [str(tmp_path)]) == tmp_path / "SDL3" / "SDL.h"

    def test_lib_prefix_stripped(self, locator, tmp_path):
        (tmp_path / "z.h").write_text("")
        assert locator.find_main_header("libz", [str(tmp_path)]) == tmp_path / "z.h"

    def test_earlier_search_path_wins(self, locator, tmp_path):
        for directory in ("first", "second"):
            (tmp_path / directory).mkdir()
            (tmp_path / directory / "png.h").write_text("")
        found = locator.find_main_header("png", [str(tmp_path / "first"), str(tmp_path / "second")])
        assert found == tmp_path / "first" / "png.h"

    def test_not_found(self, locator, tmp_path):
        with pytest.raises(HeaderNotFoundError):
            locator.find_main_header("nothing_here", [str(tmp_path)])

    def test_multi_header_alias(self, locator, tmp_path):
        (tmp_path / "math.h").write_text("")
        (tmp_path / "stdio.h").write_text("")
        assert locator.find_headers("c", [str(tmp_path)]) == [tmp_path / "math.h", tmp_path / "stdio.h"]

    def test_single_header_library(self, locator, tmp_path):
        (tmp_path / "math.h").write_text("")
        assert locator.find_headers("m", [str(tmp_path)]) == [tmp_path / "math.h"]
        with pytest.raises(HeaderNotFoundError):
            locator.find_headers("c", [str(tmp_path / "empty")])
