from dataclasses import dataclass

from bytecode import Instruction, Opcode, OutOfRange, pad_nops, rule


# single-step opcode -> fused opcode carrying the run length
RUN_FUSIONS = {
    Opcode.INC_V: Opcode.ADD_V,
    Opcode.DEC_V: Opcode.SUB_V,
    Opcode.INC_P: Opcode.ADD_P,
    Opcode.DEC_P: Opcode.SUB_P,
}

# [-] [+] and their fused forms; tried in order at every BRANCH_Z
CLEAR_PATTERNS = [
    [rule(Opcode.BRANCH_Z), rule(Opcode.DEC_V), rule(Opcode.BRANCH_NZ)],
    [rule(Opcode.BRANCH_Z), rule(Opcode.INC_V), rule(Opcode.BRANCH_NZ)],
    [rule(Opcode.BRANCH_Z), rule(Opcode.SUB_V), rule(Opcode.BRANCH_NZ)],
    [rule(Opcode.BRANCH_Z), rule(Opcode.ADD_V), rule(Opcode.BRANCH_NZ)],
]

VALUE_DELTAS = {
    Opcode.INC_V: lambda ins: 1,
    Opcode.DEC_V: lambda ins: -1,
    Opcode.ADD_V: lambda ins: ins.argument,
    Opcode.SUB_V: lambda ins: -ins.argument,
}

POINTER_DELTAS = {
    Opcode.INC_P: lambda ins: 1,
    Opcode.DEC_P: lambda ins: -1,
    Opcode.ADD_P: lambda ins: ins.argument,
    Opcode.SUB_P: lambda ins: -ins.argument,
}


@dataclass
class OptimizerStats:
    runs_fused: int = 0
    clears: int = 0
    multiplies: int = 0

    @property
    def total(self) -> int:
        return self.runs_fused + self.clears + self.multiplies


class Optimizer:
    def __init__(self, program):
        self.program = program
        self.stats = OptimizerStats()

    def optimize(self) -> OptimizerStats:
        # Passes are sequenced; each one leaves length and indices untouched.
        self.fuse_runs()
        self.fold_clear_loops()
        self.fold_multiply_loops()
        return self.stats

    def _replace(self, replacement, pos: int, span: int) -> bool:
        try:
            self.program.substitute(pad_nops(replacement, span), pos, span)
        except OutOfRange:
            return False
        return True

    def fuse_runs(self) -> int:
        program = self.program
        fused = 0
        pos = 0
        while pos < len(program):
            opcode = program[pos].opcode
            target = RUN_FUSIONS.get(opcode)
            if target is None:
                pos += 1
                continue

            single = [rule(opcode)]
            count = 0
            end = pos
            while True:
                span = program.match_sequence(single, end)
                if span == 0:
                    break
                count += 1
                end += span

            if count > 1 and self._replace([Instruction(target, count)], pos, end - pos):
                fused += 1
            pos = max(end, pos + 1)

        self.stats.runs_fused += fused
        return fused

    def fold_clear_loops(self) -> int:
        program = self.program
        folded = 0
        for pos in range(len(program)):
            if program[pos].opcode != Opcode.BRANCH_Z:
                continue

            for rules in CLEAR_PATTERNS:
                span = program.match_sequence(rules, pos)
                if span == 0:
                    continue

                # an even step never reaches zero from an odd start
                body = self._real_instructions(pos, span)[1]
                if body.opcode in (Opcode.ADD_V, Opcode.SUB_V) and body.argument % 2 == 0:
                    break

                if self._replace([Instruction(Opcode.CLEAR)], pos, span):
                    folded += 1
                break

        self.stats.clears += folded
        return folded

    def fold_multiply_loops(self) -> int:
        program = self.program
        folded = 0
        for pos in range(len(program)):
            if program[pos].opcode != Opcode.BRANCH_Z:
                continue

            factors = self.linear_loop_factors(pos)
            if factors is None:
                continue

            replacement = []
            for offset in sorted(factors):
                factor = factors[offset]
                if factor == 1:
                    replacement.append(Instruction(Opcode.COPY, 0, offset))
                else:
                    replacement.append(Instruction(Opcode.MUL, factor, offset))
            replacement.append(Instruction(Opcode.CLEAR))

            span = program[pos].argument - pos
            if len(replacement) > span:
                continue
            if self._replace(replacement, pos, span):
                folded += 1

        self.stats.multiplies += folded
        return folded

    def linear_loop_factors(self, pos: int):
        """Return ``{offset: factor}`` if the loop at ``pos`` is a multiply loop.

        The body may only add to cells and move the pointer, must come back to
        where it started and must take exactly one off the current cell per
        iteration. Anything else returns None.
        """
        program = self.program
        end = program[pos].argument
        if end <= pos + 1 or end > len(program):
            return None
        if program[end - 1].opcode != Opcode.BRANCH_NZ or program[end - 1].argument != pos + 1:
            return None

        deltas = {}
        pointer = 0
        for i in range(pos + 1, end - 1):
            ins = program[i]
            if ins.opcode == Opcode.NOP:
                continue
            if ins.opcode in VALUE_DELTAS:
                deltas[pointer] = deltas.get(pointer, 0) + VALUE_DELTAS[ins.opcode](ins)
            elif ins.opcode in POINTER_DELTAS:
                pointer += POINTER_DELTAS[ins.opcode](ins)
            else:
                return None

        if pointer != 0 or deltas.get(0, 0) % 256 != 255:
            return None

        factors = {}
        for offset, delta in deltas.items():
            if offset == 0:
                continue
            # cells wrap, so keep the factor in signed 8-bit range
            delta %= 256
            if delta > 127:
                delta -= 256
            if delta != 0:
                factors[offset] = delta
        return factors

    def _real_instructions(self, pos: int, span: int) -> list:
        return [self.program[i] for i in range(pos, pos + span) if self.program[i].opcode != Opcode.NOP]


def optimize(program) -> OptimizerStats:
    return Optimizer(program).optimize()
