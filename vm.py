import os
import sys

from bytecode import Opcode, mnemonic


MEMORY_SIZE = 30000
CELL_MASK = 0xFF


class VMError(Exception):
    pass


class VMRuntimeError(VMError):
    def __init__(self, message: str, ip: int | None = None, location=None):
        super().__init__(message)
        self.message = message
        self.ip = ip
        self.location = location or {}

    def format(self, indent: str = "") -> str:
        lines = [f"{indent}Runtime error: {self.message}"]
        if self.ip is not None:
            lines.append(f"{indent}  ip={self.ip:04d}")
        line = self.location.get("line")
        if line is not None:
            file_path = self.location.get("file") or "<source>"
            lines.append(f"{indent}  at {os.path.basename(file_path)}:{line}:{self.location.get('column', '?')}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format()


class VM:
    def __init__(self, program, memory_size: int = MEMORY_SIZE, stdin=None, stdout=None, debug=None):
        # backends only read the populated prefix of the buffer
        self.instructions = program.snapshot()
        self.length = len(self.instructions)
        self.debug = debug or [None] * self.length

        self.memory = bytearray(memory_size)
        self.pointer = 0
        self.ip = 0

        # None means the process streams, used in binary mode so cells stay bytes
        self.stdin = stdin
        self.stdout = stdout

        self.max_steps = None  # set to an int to guard against infinite loops
        self.steps = 0
        self.trace_enabled = False

    def _debug_at_ip(self, ip: int):
        if ip < 0 or ip >= len(self.debug):
            return None
        return self.debug[ip]

    def check_ip(self, target: int, context: str):
        # the slot right after the last instruction is a valid target (it halts)
        if not isinstance(target, int):
            raise Exception(f"Invalid jump target for {context}: {target}")
        if target < 0 or target > self.length:
            raise Exception(f"Invalid jump target for {context}: {target}")

    def cell_index(self, offset: int = 0) -> int:
        index = self.pointer + offset
        if index < 0 or index >= len(self.memory):
            raise Exception(f"Memory access out of bounds: cell {index}")
        return index

    def move(self, delta: int):
        target = self.pointer + delta
        if target < 0 or target >= len(self.memory):
            raise Exception(f"Pointer moved out of bounds: {target}")
        self.pointer = target

    def input_stream(self):
        return self.stdin if self.stdin is not None else sys.stdin.buffer

    def output_stream(self):
        return self.stdout if self.stdout is not None else sys.stdout.buffer

    def read_byte(self):
        ch = self.input_stream().read(1)
        if not ch:
            return None
        if isinstance(ch, bytes):
            return ch[0]
        return ord(ch) & CELL_MASK

    def write_byte(self, value: int):
        out = self.output_stream()
        if self.stdout is None:
            out.write(bytes([value]))
        else:
            out.write(chr(value))

    def step(self) -> bool:
        if self.ip >= self.length:
            return True

        ins = self.instructions[self.ip]
        opcode = ins.opcode

        if self.trace_enabled:
            print(f"TRACE ip={self.ip:04d} {mnemonic(opcode)} {ins.argument} ptr={self.pointer} cell={self.memory[self.pointer]}", flush=True)

        if opcode == Opcode.NOP:
            self.ip += 1
            return False

        if opcode in (Opcode.INC_V, Opcode.DEC_V, Opcode.ADD_V, Opcode.SUB_V):
            if opcode == Opcode.INC_V:
                amount = 1
            elif opcode == Opcode.DEC_V:
                amount = -1
            elif opcode == Opcode.ADD_V:
                amount = ins.argument
            else:
                amount = -ins.argument
            self.memory[self.pointer] = (self.memory[self.pointer] + amount) & CELL_MASK
            self.ip += 1
            return False

        if opcode in (Opcode.INC_P, Opcode.DEC_P, Opcode.ADD_P, Opcode.SUB_P):
            if opcode == Opcode.INC_P:
                self.move(1)
            elif opcode == Opcode.DEC_P:
                self.move(-1)
            elif opcode == Opcode.ADD_P:
                self.move(ins.argument)
            else:
                self.move(-ins.argument)
            self.ip += 1
            return False

        if opcode == Opcode.OUT:
            self.write_byte(self.memory[self.pointer])
            self.ip += 1
            return False

        if opcode == Opcode.IN:
            # EOF leaves the cell unchanged
            value = self.read_byte()
            if value is not None:
                self.memory[self.pointer] = value
            self.ip += 1
            return False

        if opcode in (Opcode.BRANCH_Z, Opcode.BRANCH_NZ, Opcode.JMP):
            cell = self.memory[self.pointer]
            if opcode == Opcode.JMP:
                taken = True
            elif opcode == Opcode.BRANCH_Z:
                taken = cell == 0
            else:
                taken = cell != 0
            if taken:
                self.check_ip(ins.argument, mnemonic(opcode))
                self.ip = ins.argument
            else:
                self.ip += 1
            return False

        if opcode == Opcode.CLEAR:
            self.memory[self.cell_index(ins.offset)] = 0
            self.ip += 1
            return False

        if opcode in (Opcode.COPY, Opcode.MUL):
            # a zero source adds nothing, and the target is never touched
            if self.memory[self.pointer] == 0:
                self.ip += 1
                return False
            factor = 1 if opcode == Opcode.COPY else ins.argument
            target = self.cell_index(ins.offset)
            self.memory[target] = (self.memory[target] + self.memory[self.pointer] * factor) & CELL_MASK
            self.ip += 1
            return False

        if opcode == Opcode.HALT:
            return True

        raise Exception(f"Unknown opcode: {opcode}")

    def run(self):
        try:
            while True:
                if self.max_steps is not None:
                    self.steps += 1
                    if self.steps > self.max_steps:
                        raise Exception("Step limit exceeded (possible infinite loop)")

                halted = self.step()
                if halted:
                    break
        except VMError:
            raise
        except Exception as e:
            raise VMRuntimeError(str(e), ip=self.ip, location=self._debug_at_ip(self.ip))
        finally:
            flush = getattr(self.output_stream(), "flush", None)
            if flush is not None:
                flush()
