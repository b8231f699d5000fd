import pytest

from bytecode import MAX_PROGRAM_SIZE, Instruction, Opcode
from compiler import Compiler, CompileError, compile_source
from lexer import Lexer


def opcodes(program):
    return [ins.opcode for ins in program]


def test_lexer_skips_comments_and_tracks_position():
    toks = list(Lexer("ab+\n  [x]").tokens())
    assert [t.type for t in toks] == ["PLUS", "LOOP_START", "LOOP_END"]
    assert (toks[0].line, toks[0].column) == (1, 3)
    assert (toks[1].line, toks[1].column) == (2, 3)
    assert (toks[2].line, toks[2].column) == (2, 5)


def test_lexer_empty_source():
    assert Lexer("").get_next_token().type == "EOF"
    assert list(Lexer("no commands here").tokens()) == []


def test_one_instruction_per_command():
    program = compile_source("+-><.,")
    assert opcodes(program) == [
        Opcode.INC_V,
        Opcode.DEC_V,
        Opcode.INC_P,
        Opcode.DEC_P,
        Opcode.OUT,
        Opcode.IN,
        Opcode.HALT,
    ]


def test_loops_get_absolute_targets():
    program = compile_source("[-]")
    assert program.snapshot() == [
        Instruction(Opcode.BRANCH_Z, 3),
        Instruction(Opcode.DEC_V),
        Instruction(Opcode.BRANCH_NZ, 1),
        Instruction(Opcode.HALT),
    ]


def test_nested_loops():
    program = compile_source("[[]+]")
    assert program.snapshot() == [
        Instruction(Opcode.BRANCH_Z, 5),
        Instruction(Opcode.BRANCH_Z, 3),
        Instruction(Opcode.BRANCH_NZ, 2),
        Instruction(Opcode.INC_V),
        Instruction(Opcode.BRANCH_NZ, 1),
        Instruction(Opcode.HALT),
    ]


def test_debug_info_is_aligned_with_instructions():
    compiler = Compiler(source_path="prog.b")
    program = compiler.compile("a+\n-")
    assert len(compiler.debug) == len(program)
    assert compiler.debug[0] == {"line": 1, "column": 2, "file": "prog.b"}
    assert compiler.debug[1] == {"line": 2, "column": 1, "file": "prog.b"}
    assert compiler.debug[2] is None  # HALT


def test_unmatched_close_bracket():
    with pytest.raises(CompileError) as exc:
        compile_source("+]")
    assert "unmatched ']'" in str(exc.value)
    assert (exc.value.line, exc.value.column) == (1, 2)


def test_unmatched_open_bracket():
    with pytest.raises(CompileError) as exc:
        compile_source("+\n[[]")
    assert "unmatched '['" in str(exc.value)
    assert (exc.value.line, exc.value.column) == (2, 1)


def test_program_too_large():
    with pytest.raises(CompileError) as exc:
        compile_source("+" * MAX_PROGRAM_SIZE)
    assert "program too large" in str(exc.value)
