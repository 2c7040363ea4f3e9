"""Tests for the tree-sitter declaration parser."""

import pytest
from unittest.mock import patch
from ffiscout.config import FFIScoutConfig
from ffiscout.errors import HeaderParseError
from ffiscout.models import FunctionParam
from ffiscout.parsers.base import HeaderParseResult
from ffiscout.parsers.declarations import DeclarationParser
from ffiscout.session import DiscoverySession


@pytest.fixture
def parser():
    """Create a declaration parser instance."""
    return DeclarationParser()


@pytest.fixture
def session():
    return DiscoverySession(FFIScoutConfig(verbose=True))


class TestDefines:
    """Test #define handling."""

    def test_constants(self, parser, session):
        parser.parse_text(
            "#define FOO 0x10\n"
            "#define BAR (FOO | 0x01)\n"
            "#define SDL_INIT_VIDEO 0x00000020u\n"
            "#define lower_case 5\n",
            session,
        )
        assert session.constants["FOO"] == 16
        assert session.constants["BAR"] == 17
        assert session.constants["SDL_INIT_VIDEO"] == 32
        assert "lower_case" not in session.constants

    def test_comments_in_value(self, parser, session):
        parser.parse_text(
            "#define WITH_LINE 3 // three\n"
            "#define WITH_BLOCK 4 /* four */\n",
            session,
        )
        assert session.constants["WITH_LINE"] == 3
        assert session.constants["WITH_BLOCK"] == 4

    def test_forward_reference_dropped(self, parser, session):
        """A constant referring to a later definition is dropped, not guessed."""
        result = parser.parse_text("#define A (B | 1)\n#define B 2\n", session)
        assert "A" not in session.constants
        assert session.constants["B"] == 2
        assert "A" in result.dropped
        assert any("A" in message for message in session.diagnostics)

    def test_redefinition_last_wins(self, parser, session):
        parser.parse_text("#define X 1\n#define X 2\n", session)
        assert session.constants["X"] == 2

    def test_non_integer_values_dropped(self, parser, session):
        parser.parse_text(
            '#define NAME "sdl"\n'
            "#define PI 3.14159\n"
            "#define EMPTY\n",
            session,
        )
        assert session.constants == {}

    def test_function_like_macro(self, parser, session):
        result = parser.parse_text(
            "#define SDL_UINT64_C(c) c##ULL\n"
            "#define BIG SDL_UINT64_C(0x2)\n",
            session,
        )
        assert session.macros["SDL_UINT64_C"] == "c##ULL"
        assert session.macro_params["SDL_UINT64_C"] == ["c"]
        assert session.constants["BIG"] == 2
        assert result.macros == ["SDL_UINT64_C"]

    def test_defines_inside_conditionals(self, parser, session):
        parser.parse_text(
            "#ifndef GUARD_H\n"
            "#define GUARD_H\n"
            "#define INSIDE 7\n"
            "#endif\n",
            session,
        )
        assert session.constants["INSIDE"] == 7


class TestFunctionDeclarations:
    """Test prototype extraction."""

    def test_simple_prototype(self, parser, session):
        parser.parse_text("int add(int a, int b);\n", session)
        signature = session.functions["add"]
        assert signature.return_type == "int"
        assert signature.params == (FunctionParam("int", "a"), FunctionParam("int", "b"))

    def test_annotated_prototypes(self, parser, session):
        parser.parse_text(
            "extern SDL_DECLSPEC int SDLCALL SDL_Init(Uint32 flags);\n"
            "extern SDL_DECLSPEC const char * SDLCALL SDL_GetError(void);\n"
            "extern SDL_DECLSPEC void SDLCALL SDL_Quit(void);\n",
            session,
        )
        assert session.functions["SDL_Init"].return_type == "int"
        assert session.functions["SDL_Init"].params == (FunctionParam("Uint32", "flags"),)
        assert session.functions["SDL_GetError"].return_type == "const char*"
        assert session.functions["SDL_GetError"].params == ()
        assert session.functions["SDL_Quit"].return_type == "void"

    def test_raylib_style(self, parser, session):
        parser.parse_text("RLAPI void InitWindow(int width, int height, const char *title);\n", session)
        signature = session.functions["InitWindow"]
        assert signature.return_type == "void"
        assert signature.param_types == ["int", "int", "const char*"]
        assert signature.params[2].name == "title"

    def test_pointer_return(self, parser, session):
        parser.parse_text("void *SDL_malloc(size_t size);\n", session)
        assert session.functions["SDL_malloc"].return_type == "void*"

    def test_variadic(self, parser, session):
        parser.parse_text("int SDL_Log(const char *fmt, ...);\n", session)
        assert session.functions["SDL_Log"].params[-1] == FunctionParam("...")

    def test_array_parameter_decays(self, parser, session):
        parser.parse_text("void fill(char buf[64], int n);\n", session)
        assert session.functions["fill"].params[0] == FunctionParam("char*", "buf")

    def test_function_pointer_parameter(self, parser, session):
        parser.parse_text("void set_cb(void (*cb)(int, void *), void *userdata);\n", session)
        params = session.functions["set_cb"].params
        assert params[0] == FunctionParam("void(*)(int, void*)", "cb")
        assert params[1] == FunctionParam("void*", "userdata")

    def test_struct_parameters(self, parser, session):
        parser.parse_text("void take(struct point p, struct point);\n", session)
        params = session.functions["take"].params
        assert params[0] == FunctionParam("struct point", "p")
        assert params[1] == FunctionParam("struct point", None)

    def test_unnamed_parameters(self, parser, session):
        parser.parse_text("double mix(double, unsigned int);\n", session)
        assert session.functions["mix"].params == (FunctionParam("double"), FunctionParam("unsigned int"))

    def test_attribute_groups_are_noise(self, parser, session):
        parser.parse_text("__attribute__((visibility(\"default\"))) int visible(int x) __attribute__((pure));\n", session)
        assert session.functions["visible"].return_type == "int"

    def test_not_declarations(self, parser, session):
        parser.parse_text(
            "typedef int (*handler_t)(int);\n"
            "typedef struct { int x; int y; } Point;\n"
            "extern int counter;\n"
            "int (*fp)(int);\n"
            "static inline int twice(int x) { return x * 2; }\n"
            "int after(void);\n",
            session,
        )
        assert list(session.functions) == ["after"]

    def test_extern_c_block(self, parser, session):
        parser.parse_text(
            "#ifdef __cplusplus\n"
            "extern \"C\" {\n"
            "#endif\n"
            "int inside(int x);\n"
            "#ifdef __cplusplus\n"
            "}\n"
            "#endif\n",
            session,
        )
        assert "inside" in session.functions

    def test_both_conditional_branches(self, parser, session):
        parser.parse_text(
            "#if defined(USE_FAST)\n"
            "int fast_path(void);\n"
            "#else\n"
            "int slow_path(void);\n"
            "#endif\n",
            session,
        )
        assert "fast_path" in session.functions
        assert "slow_path" in session.functions


class TestEnums:
    """Test enum members becoming constants."""

    def test_implicit_and_explicit_values(self, parser, session):
        parser.parse_text(
            "typedef enum {\n"
            "    MODE_A,\n"
            "    MODE_B = 5,\n"
            "    MODE_C,\n"
            "    MODE_F = 1 << 4\n"
            "} Mode;\n",
            session,
        )
        assert session.constants["MODE_A"] == 0
        assert session.constants["MODE_B"] == 5
        assert session.constants["MODE_C"] == 6
        assert session.constants["MODE_F"] == 16

    def test_unresolvable_member_poisons_implicit_followers(self, parser, session):
        parser.parse_text(
            "enum Flags {\n"
            "    F_ONE = 1,\n"
            "    F_BAD = UNKNOWN_THING,\n"
            "    F_AFTER,\n"
            "    F_GOOD = 8,\n"
            "    F_NEXT\n"
            "};\n",
            session,
        )
        assert session.constants["F_ONE"] == 1
        assert "F_BAD" not in session.constants
        assert "F_AFTER" not in session.constants
        assert session.constants["F_GOOD"] == 8
        assert session.constants["F_NEXT"] == 9

    def test_enum_uses_earlier_define(self, parser, session):
        parser.parse_text(
            "#define BASE 0x100\n"
            "enum { FIRST = BASE, SECOND };\n",
            session,
        )
        assert session.constants["FIRST"] == 256
        assert session.constants["SECOND"] == 257

    def test_directive_in_body_sees_members_above_it(self, parser, session):
        """A #define between members is applied after the members before it."""
        directive = object()

        def define_after_low(node, source, session, result, evaluator):
            assert node is directive
            session.define_constant("LEVEL_AFTER_LOW", evaluator.resolve("LEVEL_LOW + 1"))

        body = ["LEVEL_LOW", "=", "1", ",", directive, "LEVEL_HIGH", "=", "LEVEL_AFTER_LOW", ",", "LEVEL_TOP"]
        result = HeaderParseResult(file_path="<memory>", parser=parser.name)
        with patch.object(parser, "_directive", side_effect=define_after_low):
            parser._enum(body, b"", session, result, parser.evaluator(session))
        assert session.constants["LEVEL_AFTER_LOW"] == 2
        assert session.constants["LEVEL_HIGH"] == 2
        assert session.constants["LEVEL_TOP"] == 3
        assert result.constants == ["LEVEL_LOW", "LEVEL_HIGH", "LEVEL_TOP"]


class TestIncludesAndErrors:
    """Test include reporting and failure modes."""

    def test_includes_reported(self, parser, session):
        result = parser.parse_text('#include <stdio.h>\n#include "local.h"\n', session)
        assert [(inc.name, inc.is_system) for inc in result.includes] == [
            ("stdio.h", True),
            ("local.h", False),
        ]

    def test_parse_file(self, parser, session, tmp_path):
        header = tmp_path / "lib.h"
        header.write_text("#define LIB_VERSION 3\nint lib_init(void);\n")
        result = parser.parse_file(header, session)
        assert result.file_path == str(header)
        assert session.constants["LIB_VERSION"] == 3
        assert "lib_init" in session.functions

    def test_nul_bytes_rejected(self, parser, session, tmp_path):
        header = tmp_path / "binary.h"
        header.write_bytes(b"#define A 1\n\x00\x01\x02\n")
        with pytest.raises(HeaderParseError):
            parser.parse_file(header, session)

    def test_invalid_utf8_rejected(self, parser, session, tmp_path):
        header = tmp_path / "latin1.h"
        header.write_bytes(b"/* caf\xe9 */\n#define A 1\n")
        with pytest.raises(HeaderParseError):
            parser.parse_file(header, session)

    def test_missing_file_rejected(self, parser, session, tmp_path):
        with pytest.raises(HeaderParseError):
            parser.parse_file(tmp_path / "missing.h", session)

    def test_token_limit(self, session):
        parser = DeclarationParser(FFIScoutConfig(max_tokens_per_file=5))
        with pytest.raises(HeaderParseError):
            parser.parse_text("int a(int x);\nint b(int y);\n", session)
