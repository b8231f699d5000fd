from bytecode import Program, Instruction, Opcode, CapacityExceeded, MAX_PROGRAM_SIZE
from lexer import Lexer


class CompileError(Exception):
    def __init__(self, message: str, line: int | None = None, column: int | None = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column

    def __str__(self) -> str:
        if self.line is None:
            return f"Compile error: {self.message}"
        return f"Compile error: {self.message} at line {self.line}, col {self.column}"


# one naive instruction per command token
SIMPLE_OPCODES = {
    "PLUS": Opcode.INC_V,
    "MINUS": Opcode.DEC_V,
    "RIGHT": Opcode.INC_P,
    "LEFT": Opcode.DEC_P,
    "OUTPUT": Opcode.OUT,
    "INPUT": Opcode.IN,
}


class Compiler:
    def __init__(self, source_path: str | None = None):
        self.program = Program()
        self.loop_stack = []
        self.source_path = source_path
        self.debug = []  # debug dicts ({"file": str, "line": int, "column": int}) aligned with instructions

    def _debug_for(self, tok):
        if tok is None:
            return None
        dbg = {"line": tok.line, "column": tok.column}
        if self.source_path is not None:
            dbg["file"] = self.source_path
        return dbg

    def emit(self, opcode, arg=0, tok=None):
        try:
            index = self.program.append(Instruction(opcode, arg))
        except CapacityExceeded:
            line = tok.line if tok is not None else None
            column = tok.column if tok is not None else None
            raise CompileError(f"program too large (more than {MAX_PROGRAM_SIZE} instructions)", line, column)
        self.debug.append(self._debug_for(tok))
        return index

    def compile(self, source: str) -> Program:
        lexer = Lexer(source)

        for tok in lexer.tokens():
            if tok.type in SIMPLE_OPCODES:
                self.emit(SIMPLE_OPCODES[tok.type], tok=tok)
            elif tok.type == "LOOP_START":
                self.compile_loop_start(tok)
            elif tok.type == "LOOP_END":
                self.compile_loop_end(tok)
            else:
                raise CompileError(f"Unknown token: {tok.type}", tok.line, tok.column)

        if self.loop_stack:
            _, tok = self.loop_stack[-1]
            raise CompileError("unmatched '['", tok.line, tok.column)

        self.emit(Opcode.HALT)
        return self.program

    def compile_loop_start(self, tok):
        # target patched once the matching ']' is seen
        branch_i = self.emit(Opcode.BRANCH_Z, 0, tok)
        self.loop_stack.append((branch_i, tok))

    def compile_loop_end(self, tok):
        if not self.loop_stack:
            raise CompileError("unmatched ']'", tok.line, tok.column)
        start_i, _ = self.loop_stack.pop()

        # ']' jumps back to the first body instruction while the cell is non-zero,
        # '[' skips past the ']' when it is zero.
        end_i = self.emit(Opcode.BRANCH_NZ, start_i + 1, tok)
        self.program.patch(start_i, end_i + 1)


def compile_source(source: str, source_path: str | None = None) -> Program:
    return Compiler(source_path=source_path).compile(source)
