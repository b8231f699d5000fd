from bytecode import Opcode, BRANCH_OPCODES, mnemonic
from vm import MEMORY_SIZE


class TranspileError(Exception):
    pass


class Transpiler:
    def __init__(self, program, memory_size: int = MEMORY_SIZE):
        self.instructions = program.snapshot()
        self.memory_size = memory_size
        self.output = []

    def emit(self, line: str, indent: int = 1):
        self.output.append("    " * indent + line)

    def branch_targets(self) -> set:
        targets = set()
        for i, ins in enumerate(self.instructions):
            if ins.opcode not in BRANCH_OPCODES:
                continue
            if ins.argument < 0 or ins.argument > len(self.instructions):
                raise TranspileError(f"Invalid jump target for {mnemonic(ins.opcode)} at {i}: {ins.argument}")
            targets.add(ins.argument)
        return targets

    def transpile(self) -> str:
        targets = self.branch_targets()
        self.output = []

        self.emit("#include <stdio.h>", 0)
        self.emit("", 0)
        self.emit(f"static unsigned char m[{self.memory_size}];", 0)
        self.emit("", 0)
        self.emit("int main(void)", 0)
        self.emit("{", 0)
        self.emit("unsigned char *p = m;")
        self.emit("int c;")
        self.emit("(void)c;")

        for i, ins in enumerate(self.instructions):
            if i in targets:
                self.emit(f"L{i}:;", 0)
            self.emit_instruction(ins)

        if len(self.instructions) in targets:
            self.emit(f"L{len(self.instructions)}:;", 0)
        self.emit("return 0;")
        self.emit("}", 0)
        return "\n".join(self.output) + "\n"

    def emit_instruction(self, ins):
        op = ins.opcode
        arg = ins.argument
        off = ins.offset

        if op == Opcode.NOP:
            return
        if op == Opcode.INC_V:
            self.emit("++*p;")
        elif op == Opcode.DEC_V:
            self.emit("--*p;")
        elif op == Opcode.ADD_V:
            self.emit(f"*p += {arg};")
        elif op == Opcode.SUB_V:
            self.emit(f"*p -= {arg};")
        elif op == Opcode.INC_P:
            self.emit("++p;")
        elif op == Opcode.DEC_P:
            self.emit("--p;")
        elif op == Opcode.ADD_P:
            self.emit(f"p += {arg};")
        elif op == Opcode.SUB_P:
            self.emit(f"p -= {arg};")
        elif op == Opcode.OUT:
            self.emit("putchar(*p);")
        elif op == Opcode.IN:
            # EOF leaves the cell unchanged
            self.emit("if ((c = getchar()) != EOF) *p = (unsigned char)c;")
        elif op == Opcode.BRANCH_Z:
            self.emit(f"if (!*p) goto L{arg};")
        elif op == Opcode.BRANCH_NZ:
            self.emit(f"if (*p) goto L{arg};")
        elif op == Opcode.JMP:
            self.emit(f"goto L{arg};")
        elif op == Opcode.HALT:
            self.emit("return 0;")
        elif op == Opcode.CLEAR:
            self.emit(f"p[{off}] = 0;")
        elif op == Opcode.COPY:
            self.emit(f"if (*p) p[{off}] += *p;")
        elif op == Opcode.MUL:
            self.emit(f"if (*p) p[{off}] += *p * {arg};")
        else:
            raise TranspileError(f"Unknown opcode: {op}")


def transpile(program, memory_size: int = MEMORY_SIZE) -> str:
    return Transpiler(program, memory_size).transpile()
