import sys
from dataclasses import dataclass
from enum import IntEnum, IntFlag


# Branch targets are absolute instruction indices stored in ADDRESS_BITS bits,
# so the program may never hold more instructions than that width can address.
ADDRESS_BITS = 16
MAX_PROGRAM_SIZE = 1 << ADDRESS_BITS

# Slots added per allocation (initial buffer and every grow).
INSTRUCTION_ALLOC_COUNT = 1024

INT32_MIN = -(1 << 31)
INT32_MAX = (1 << 31) - 1


class BytecodeError(Exception):
    pass


class AllocationError(BytecodeError):
    pass


class CapacityExceeded(BytecodeError):
    pass


class OutOfRange(BytecodeError):
    pass


class Opcode(IntEnum):
    NOP = 0
    IN = 1
    OUT = 2
    INC_V = 3
    DEC_V = 4
    ADD_V = 5
    SUB_V = 6
    INC_P = 7
    DEC_P = 8
    ADD_P = 9
    SUB_P = 10
    BRANCH_Z = 11
    BRANCH_NZ = 12
    JMP = 13
    HALT = 14
    CLEAR = 15
    COPY = 16
    MUL = 17


BRANCH_OPCODES = (Opcode.BRANCH_Z, Opcode.BRANCH_NZ, Opcode.JMP)


class PatternFlag(IntFlag):
    LOOSE = 0
    STRICT = 1


STRICT = PatternFlag.STRICT
LOOSE = PatternFlag.LOOSE


@dataclass(frozen=True)
class Instruction:
    opcode: Opcode
    argument: int = 0
    offset: int = 0

    def __post_init__(self):
        for name in ("argument", "offset"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < INT32_MIN or value > INT32_MAX:
                raise ValueError(f"{name} must be a signed 32-bit integer, got {value!r}")

    def is_nop(self) -> bool:
        return self.opcode == Opcode.NOP


NOP = Instruction(Opcode.NOP)


@dataclass(frozen=True)
class PatternRule:
    instruction: Instruction
    flags: PatternFlag = PatternFlag.LOOSE

    def is_strict(self) -> bool:
        return bool(self.flags & PatternFlag.STRICT)


def rule(opcode, argument=0, flags=PatternFlag.LOOSE) -> PatternRule:
    # shorthand for building rule lists: rule(Opcode.ADD_V, 3, STRICT)
    return PatternRule(Instruction(opcode, argument), flags)


def pad_nops(replacement, size: int) -> list:
    replacement = list(replacement)
    if len(replacement) > size:
        raise OutOfRange(f"replacement of {len(replacement)} instructions does not fit in {size} slots")
    return replacement + [NOP] * (size - len(replacement))


def mnemonic(opcode) -> str:
    # Diagnostic only: any value that is not a catalog tag maps to "?".
    if not isinstance(opcode, int) or isinstance(opcode, bool):
        return "?"
    try:
        return Opcode(opcode).name
    except (ValueError, TypeError):
        return "?"


class Program:
    def __init__(self):
        try:
            self.ir = [NOP] * INSTRUCTION_ALLOC_COUNT
        except MemoryError as e:
            raise AllocationError("cannot allocate instruction buffer") from e
        self.size = 0                              # logical length
        self.capacity = INSTRUCTION_ALLOC_COUNT    # allocated slots
        self.destroyed = False

    def _check_alive(self):
        if self.destroyed:
            raise BytecodeError("program has been destroyed")

    def __len__(self):
        return self.size

    def __getitem__(self, index: int) -> Instruction:
        if not isinstance(index, int) or index < 0 or index >= self.size:
            raise OutOfRange(f"instruction index out of range: {index}")
        return self.ir[index]

    def __iter__(self):
        for i in range(self.size):
            yield self.ir[i]

    def snapshot(self) -> list:
        return self.ir[: self.size]

    def grow(self):
        self._check_alive()
        new_capacity = self.capacity + INSTRUCTION_ALLOC_COUNT

        # Clamp to the addressable ceiling; once there, growing is an error.
        if new_capacity > MAX_PROGRAM_SIZE:
            if self.capacity < MAX_PROGRAM_SIZE:
                new_capacity = MAX_PROGRAM_SIZE
            else:
                raise CapacityExceeded(f"program exceeds maximum size of {MAX_PROGRAM_SIZE} instructions")

        try:
            extra = [NOP] * (new_capacity - self.capacity)
        except MemoryError as e:
            raise AllocationError("cannot grow instruction buffer") from e

        self.ir.extend(extra)
        self.capacity = new_capacity

    def append(self, instruction: Instruction) -> int:
        # returns the index the instruction landed at (useful for back-patching)
        self._check_alive()
        if self.size >= self.capacity:
            self.grow()

        self.ir[self.size] = instruction
        self.size += 1
        return self.size - 1

    def patch(self, index: int, argument: int):
        ins = self[index]
        self.ir[index] = Instruction(ins.opcode, argument, ins.offset)

    def substitute(self, replacement, pos: int, size: int):
        self._check_alive()
        replacement = list(replacement)

        # The span must end strictly before the last valid instruction.
        if pos < 0 or size < 0 or pos + size >= self.size:
            raise OutOfRange(f"substitution [{pos}, {pos + size}) is outside program of length {self.size}")
        if len(replacement) < size:
            raise OutOfRange(f"replacement has {len(replacement)} instructions, span needs {size}")

        for i in range(size):
            self.ir[pos + i] = replacement[i]

    def match_sequence(self, rules, pos: int, size: int | None = None) -> int:
        """Match ``rules`` against the real instructions starting at ``pos``.

        NOPs between (or before) the matched instructions are skipped but still
        counted, so the return value is the physical span to hand to
        ``substitute``. Returns 0 when nothing matches.
        """
        self._check_alive()
        rules = list(rules)
        if size is None:
            size = len(rules)

        if size <= 0 or size > len(rules) or pos < 0 or pos + size > self.size:
            return 0

        satisfied = 0
        span = size
        i = 0
        # May end on the last slot, which substitute() still refuses (it needs pos + size < length).
        while i < span and pos + span <= self.size:
            instr = self.ir[pos + i]
            i += 1

            if instr.opcode == Opcode.NOP:
                span += 1
                continue

            expected = rules[satisfied]

            # Opcodes always have to agree, arguments only under STRICT.
            if instr.opcode != expected.instruction.opcode:
                return 0
            if expected.is_strict() and instr.argument != expected.instruction.argument:
                return 0

            satisfied += 1

        # A run of trailing NOPs must not count as a match.
        if satisfied == size:
            return span
        return 0

    def dump_lines(self) -> list:
        lines = []
        for i in range(self.size):
            ins = self.ir[i]
            lines.append(
                f"(0x{i:08x}) {mnemonic(ins.opcode):<9} -> {ins.argument} "
                f"(0x{ins.argument & 0xFFFFFFFF:08x}), Offset: {ins.offset}"
            )
        return lines

    def dump(self, file=None):
        out = file or sys.stdout
        for line in self.dump_lines():
            print(line, file=out)

    def destroy(self):
        if self.destroyed:
            raise BytecodeError("program already destroyed")
        self.ir = []
        self.size = 0
        self.capacity = 0
        self.destroyed = True
