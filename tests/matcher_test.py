from bytecode import LOOSE, NOP, STRICT, Instruction, Opcode, Program, pad_nops, rule


def build(*instructions):
    program = Program()
    for ins in instructions:
        program.append(ins)
    return program


def test_nops_between_matches_count_toward_span():
    program = build(Instruction(Opcode.ADD_V, 1), NOP, NOP, Instruction(Opcode.JMP, 5))
    rules = [rule(Opcode.ADD_V), rule(Opcode.JMP)]
    assert program.match_sequence(rules, 0, 2) == 4


def test_leading_nops_count_toward_span():
    program = build(NOP, NOP, Instruction(Opcode.OUT), Instruction(Opcode.HALT))
    assert program.match_sequence([rule(Opcode.OUT)], 0) == 3


def test_trailing_nops_do_not_satisfy_rules():
    program = build(Instruction(Opcode.ADD_V, 1), NOP, NOP)
    assert program.match_sequence([rule(Opcode.ADD_V), rule(Opcode.JMP)], 0) == 0

    program = build(Instruction(Opcode.ADD_V, 1), NOP, NOP, NOP, NOP)
    assert program.match_sequence([rule(Opcode.ADD_V), rule(Opcode.JMP)], 0) == 0


def test_opcode_mismatch_aborts():
    program = build(Instruction(Opcode.ADD_V, 1), NOP, Instruction(Opcode.SUB_V, 1), Instruction(Opcode.JMP, 0))
    assert program.match_sequence([rule(Opcode.ADD_V), rule(Opcode.JMP)], 0) == 0
    assert program.match_sequence([rule(Opcode.SUB_V)], 0) == 0


def test_strict_rule_requires_equal_argument():
    program = build(Instruction(Opcode.ADD_V, 3), Instruction(Opcode.HALT))
    assert program.match_sequence([rule(Opcode.ADD_V, 3, STRICT)], 0) == 1
    assert program.match_sequence([rule(Opcode.ADD_V, 4, STRICT)], 0) == 0

    program = build(Instruction(Opcode.ADD_V, 7), Instruction(Opcode.HALT))
    assert program.match_sequence([rule(Opcode.ADD_V, 3, STRICT)], 0) == 0
    assert program.match_sequence([rule(Opcode.ADD_V, 3, LOOSE)], 0) == 1
    assert program.match_sequence([rule(Opcode.ADD_V, 3)], 0) == 1


def test_strict_and_loose_rules_mix():
    program = build(
        Instruction(Opcode.BRANCH_Z, 4),
        Instruction(Opcode.SUB_V, 1),
        NOP,
        Instruction(Opcode.BRANCH_NZ, 1),
        Instruction(Opcode.HALT),
    )
    rules = [rule(Opcode.BRANCH_Z), rule(Opcode.SUB_V, 1, STRICT), rule(Opcode.BRANCH_NZ)]
    assert program.match_sequence(rules, 0) == 4

    rules[1] = rule(Opcode.SUB_V, 2, STRICT)
    assert program.match_sequence(rules, 0) == 0


def test_non_positive_size_never_matches():
    program = build(Instruction(Opcode.HALT), Instruction(Opcode.HALT))
    assert program.match_sequence([rule(Opcode.HALT)], 0, 0) == 0
    assert program.match_sequence([rule(Opcode.HALT)], 0, -1) == 0
    assert program.match_sequence([], 0) == 0


def test_size_limits_rules_checked():
    program = build(Instruction(Opcode.ADD_V, 1), Instruction(Opcode.HALT))
    assert program.match_sequence([rule(Opcode.ADD_V), rule(Opcode.JMP)], 0, 1) == 1


def test_match_past_end_is_rejected():
    program = build(Instruction(Opcode.ADD_V, 1), Instruction(Opcode.HALT))
    assert program.match_sequence([rule(Opcode.HALT), rule(Opcode.HALT)], 1) == 0
    assert program.match_sequence([rule(Opcode.HALT)], 2) == 0
    assert program.match_sequence([rule(Opcode.HALT)], -1) == 0


def test_match_on_last_instruction():
    program = build(Instruction(Opcode.ADD_V, 1), Instruction(Opcode.HALT))
    assert program.match_sequence([rule(Opcode.HALT)], 1) == 1


def test_match_then_substitute():
    program = build(Instruction(Opcode.INC_V), Instruction(Opcode.INC_V), Instruction(Opcode.INC_V))

    span = program.match_sequence([rule(Opcode.INC_V)], 0)
    assert span == 1

    program.substitute(pad_nops([Instruction(Opcode.CLEAR)], 2), 0, 2)

    assert len(program) == 3
    assert program[0] == Instruction(Opcode.CLEAR)
    assert program[1] == NOP
    assert program[2] == Instruction(Opcode.INC_V)


def test_second_pass_sees_through_tombstones():
    program = build(
        Instruction(Opcode.BRANCH_Z, 5),
        Instruction(Opcode.INC_V),
        Instruction(Opcode.INC_V),
        Instruction(Opcode.INC_V),
        Instruction(Opcode.BRANCH_NZ, 1),
        Instruction(Opcode.HALT),
    )
    program.substitute(pad_nops([Instruction(Opcode.ADD_V, 3)], 3), 1, 3)

    rules = [rule(Opcode.BRANCH_Z), rule(Opcode.ADD_V, 3, STRICT), rule(Opcode.BRANCH_NZ)]
    span = program.match_sequence(rules, 0)
    assert span == 5

    program.substitute(pad_nops([Instruction(Opcode.CLEAR)], span), 0, span)
    assert [ins.opcode for ins in program] == [Opcode.CLEAR, Opcode.NOP, Opcode.NOP, Opcode.NOP, Opcode.NOP, Opcode.HALT]
