"""Tests for the discovery orchestrator."""

import dataclasses

import pytest
from unittest.mock import Mock, patch
from ffiscout.binary import BinarySignatureExtractor
from ffiscout.config import FFIScoutConfig
from ffiscout.discovery import SignatureDiscovery
from ffiscout.errors import BinaryExtractionError, ToolUnavailableError
from ffiscout.models import FunctionParam, FunctionSignature, Provenance

HEADER = """
#ifndef MYLIB_H
#define MYLIB_H
#include "mylib_types.h"

#define MYLIB_VERSION 3
#define MYLIB_FLAG (MYLIB_VERSION << 2)

int mylib_add(int a, int b);
const char *mylib_name(void);

#endif
"""

TYPES_HEADER = "#define MYLIB_BASE 1\ntypedef unsigned int mylib_u32;\n"


@pytest.fixture(autouse=True)
def no_build_config_tool():
    with patch("ffiscout.parsers.locator.query_include_paths", return_value=[]):
        yield


@pytest.fixture
def include_dir(tmp_path):
    (tmp_path / "mylib.h").write_text(HEADER)
    (tmp_path / "mylib_types.h").write_text(TYPES_HEADER)
    return tmp_path


@pytest.fixture
def config():
    return FFIScoutConfig(system_include_dirs=[], verbose=True)


@pytest.fixture
def extractor():
    mock = Mock(spec=BinarySignatureExtractor)
    mock.extract_debug_signatures.return_value = {
        "mylib_add": FunctionSignature("int", (FunctionParam("int", "x"), FunctionParam("int", "y"))),
        "mylib_internal": FunctionSignature("void"),
    }
    mock.extract_symbol_names.return_value = ["mylib_add", "mylib_hidden", "mylib_internal"]
    return mock


class TestHeadersOnly:
    """Test discovery without a shared object."""

    def test_constants_and_functions(self, config, include_dir):
        result = SignatureDiscovery(config).discover("mylib", extra_include_paths=[str(include_dir)])
        assert result.constants["MYLIB_VERSION"] == 3
        assert result.constants["MYLIB_BASE"] == 1
        assert result.constants["MYLIB_FLAG"] == 12
        assert result.signatures["mylib_add"].param_types == ["int", "int"]
        assert result.signatures["mylib_name"].return_type == "const char*"
        assert result.provenance_of("mylib_add") is Provenance.HEADER
        assert result.header_paths == (str(include_dir / "mylib.h"),)
        assert result.errors == ()

    def test_missing_header_gives_empty_result(self, config, tmp_path):
        result = SignatureDiscovery(config).discover("nosuchlib", extra_include_paths=[str(tmp_path)])
        assert len(result.constants) == 0
        assert len(result.functions) == 0
        assert result.header_paths == ()
        assert result.errors == ()

    def test_include_paths_reported(self, config, include_dir):
        result = SignatureDiscovery(config).discover("mylib", extra_include_paths=[str(include_dir)])
        assert result.include_paths == (str(include_dir),)


class TestBinaryMerge:
    """Test merging debug info and dynamic symbols into header results."""

    def test_header_wins_by_default(self, config, include_dir, extractor):
        discovery = SignatureDiscovery(config, extractor=extractor)
        result = discovery.discover("mylib", shared_object="libmylib.so", extra_include_paths=[str(include_dir)])

        assert result.provenance_of("mylib_add") is Provenance.HEADER
        assert result.signatures["mylib_add"].params[0].name == "a"
        assert result.provenance_of("mylib_internal") is Provenance.DEBUG_INFO
        assert result.signatures["mylib_internal"] == FunctionSignature("void")
        extractor.extract_debug_signatures.assert_called_once_with("libmylib.so")

    def test_debug_info_precedence(self, include_dir, extractor):
        config = FFIScoutConfig(system_include_dirs=[], precedence="debug_info")
        discovery = SignatureDiscovery(config, extractor=extractor)
        result = discovery.discover("mylib", shared_object="libmylib.so", extra_include_paths=[str(include_dir)])

        assert result.provenance_of("mylib_add") is Provenance.DEBUG_INFO
        assert result.signatures["mylib_add"].params[0].name == "x"
        assert result.provenance_of("mylib_name") is Provenance.HEADER

    def test_symbol_only_entries(self, config, include_dir, extractor):
        discovery = SignatureDiscovery(config, extractor=extractor)
        result = discovery.discover("mylib", shared_object="libmylib.so", extra_include_paths=[str(include_dir)])

        assert result.symbol_only == ["mylib_hidden"]
        assert result.functions["mylib_hidden"].signature is None
        assert "mylib_hidden" not in result.signatures
        assert any("mylib_hidden" in message for message in result.diagnostics)

    def test_corrupt_object_keeps_header_results(self, config, include_dir, tmp_path):
        bogus = tmp_path / "libmylib.so"
        bogus.write_bytes(b"garbage, not an ELF file")
        result = SignatureDiscovery(config).discover(
            "mylib", shared_object=str(bogus), extra_include_paths=[str(include_dir)]
        )
        assert [error.stage for error in result.errors] == ["debug_info", "symbols"]
        assert result.constants["MYLIB_VERSION"] == 3
        assert result.provenance_of("mylib_add") is Provenance.HEADER

    def test_one_stage_failing(self, config, include_dir, extractor):
        extractor.extract_debug_signatures.side_effect = BinaryExtractionError("libmylib.so", "corrupt debug info")
        discovery = SignatureDiscovery(config, extractor=extractor)
        result = discovery.discover("mylib", shared_object="libmylib.so", extra_include_paths=[str(include_dir)])

        assert len(result.errors) == 1
        assert result.errors[0].stage == "debug_info"
        assert "corrupt debug info" in result.errors[0].message
        assert result.symbol_only == ["mylib_hidden", "mylib_internal"]


class TestResultShape:
    """Test the returned DiscoveryResult."""

    def test_result_is_immutable(self, config, include_dir):
        result = SignatureDiscovery(config).discover("mylib", extra_include_paths=[str(include_dir)])
        with pytest.raises(TypeError):
            result.constants["NEW"] = 1
        with pytest.raises(TypeError):
            result.functions["new_fn"] = None
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.library = "other"

    def test_to_dict(self, config, include_dir, extractor):
        discovery = SignatureDiscovery(config, extractor=extractor)
        data = discovery.discover("mylib", shared_object="libmylib.so", extra_include_paths=[str(include_dir)]).to_dict()

        assert data["library"] == "mylib"
        assert data["constants"]["MYLIB_FLAG"] == 12
        assert data["functions"]["mylib_add"] == {
            "returnType": "int",
            "params": [{"type": "int", "name": "a"}, {"type": "int", "name": "b"}],
            "provenance": "header",
        }
        assert data["symbolOnly"] == ["mylib_hidden"]
        assert data["errors"] == []


class TestPreprocessorStrategy:
    """Test the optional external preprocessing pass."""

    @patch("ffiscout.discovery.preprocess_header")
    def test_adds_missing_entries_only(self, mock_preprocess, include_dir):
        mock_preprocess.return_value = (
            "#define MYLIB_VERSION 99\n"
            "#define MYLIB_EXPANDED 9\n"
            "int mylib_from_macro(int value);\n"
        )
        config = FFIScoutConfig(system_include_dirs=[], use_preprocessor=True)
        result = SignatureDiscovery(config).discover("mylib", extra_include_paths=[str(include_dir)])

        assert result.constants["MYLIB_VERSION"] == 3
        assert result.constants["MYLIB_EXPANDED"] == 9
        assert result.provenance_of("mylib_from_macro") is Provenance.HEADER
        mock_preprocess.assert_called_once()

    @patch("ffiscout.discovery.preprocess_header")
    def test_preprocessor_unavailable(self, mock_preprocess, include_dir):
        mock_preprocess.side_effect = ToolUnavailableError("cc", "not installed")
        config = FFIScoutConfig(system_include_dirs=[], use_preprocessor=True)
        result = SignatureDiscovery(config).discover("mylib", extra_include_paths=[str(include_dir)])

        assert result.constants["MYLIB_VERSION"] == 3
        assert result.errors == ()

    @patch("ffiscout.discovery.preprocess_header")
    def test_not_run_by_default(self, mock_preprocess, config, include_dir):
        SignatureDiscovery(config).discover("mylib", extra_include_paths=[str(include_dir)])
        mock_preprocess.assert_not_called()
