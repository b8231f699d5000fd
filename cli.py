import os
import sys
import traceback

import colorama
from colorama import Fore, Style

from bytecode import mnemonic
from compiler import Compiler
from optimizer import Optimizer
from transpiler import Transpiler
from vm import VM


USE_COLOR = True


def paint(text: str, color: str) -> str:
    if not USE_COLOR:
        return text
    return f"{color}{text}{Style.RESET_ALL}"


def error(message: str):
    print(paint(message, Fore.RED), file=sys.stderr)


def usage():
    print("Usage:")
    print("  python cli.py build <file.b>")
    print("  python cli.py run <file.b>")
    print("  python cli.py transpile <file.b> [out.c]")
    print("  (optional) --debug to show Python traceback")
    print("  (optional) --no-opt to skip the optimizer")
    print("  (optional) --trace to print every executed instruction (run)")
    print("  (optional) --max-steps N to stop runaway programs (run)")
    print("  (optional) --no-color to disable colored output")
    sys.exit(1)


def load(path, optimize=True):
    with open(path, "r", encoding="utf-8") as f:
        code = f.read()

    compiler = Compiler(source_path=os.path.abspath(path))
    program = compiler.compile(code)

    stats = None
    if optimize:
        stats = Optimizer(program).optimize()
    return program, compiler.debug, stats


def cmd_build(path, debug: bool = False, optimize: bool = True):
    try:
        program, _dbg, stats = load(path, optimize)
    except Exception as e:
        if debug:
            traceback.print_exc()
        else:
            error(str(e))
        sys.exit(1)

    if stats is not None:
        print("OPTIMIZER:")
        print(f"  runs fused: {stats.runs_fused}")
        print(f"  clear loops: {stats.clears}")
        print(f"  multiply loops: {stats.multiplies}")
        print()

    print(f"INSTRUCTIONS ({len(program)}):")
    for i, line in enumerate(program.dump_lines()):
        name = mnemonic(program[i].opcode)
        color = Style.DIM if name == "NOP" else Fore.CYAN
        print("  " + line.replace(name, paint(name, color), 1))

    program.destroy()


def cmd_run(path, debug: bool = False, optimize: bool = True, trace: bool = False, max_steps=None):
    try:
        program, dbg, _stats = load(path, optimize)
        vm = VM(program, debug=dbg)
        vm.trace_enabled = trace
        vm.max_steps = max_steps
        vm.run()
        program.destroy()
    except Exception as e:
        if debug:
            traceback.print_exc()
        else:
            error(str(e))
        sys.exit(1)


def cmd_transpile(path, out_path=None, debug: bool = False, optimize: bool = True):
    try:
        program, _dbg, _stats = load(path, optimize)
        source = Transpiler(program).transpile()
        program.destroy()
        if out_path is None:
            sys.stdout.write(source)
        else:
            with open(out_path, "w", encoding="utf-8") as f:
                f.write(source)
    except Exception as e:
        if debug:
            traceback.print_exc()
        else:
            error(str(e))
        sys.exit(1)


def pop_flag(argv, flag: str) -> bool:
    if flag in argv:
        argv.remove(flag)
        return True
    return False


def pop_option(argv, option: str):
    if option not in argv:
        return None
    i = argv.index(option)
    if i + 1 >= len(argv):
        error(f"{option} expects a value")
        sys.exit(1)
    value = argv[i + 1]
    del argv[i : i + 2]
    try:
        return int(value)
    except ValueError:
        error(f"{option} expects an integer, got {value}")
        sys.exit(1)


def main(argv=None):
    global USE_COLOR

    argv = list(sys.argv[1:] if argv is None else argv)
    debug = pop_flag(argv, "--debug")
    optimize = not pop_flag(argv, "--no-opt")
    trace = pop_flag(argv, "--trace")
    USE_COLOR = not pop_flag(argv, "--no-color")
    max_steps = pop_option(argv, "--max-steps")

    if USE_COLOR:
        colorama.just_fix_windows_console()

    if len(argv) < 2:
        usage()

    cmd = argv[0]
    path = argv[1]
    extra = argv[2:]

    if cmd == "build":
        if extra:
            print("Build does not accept extra arguments.")
            sys.exit(1)
        cmd_build(path, debug=debug, optimize=optimize)
    elif cmd == "run":
        if extra:
            print("Run does not accept extra arguments.")
            sys.exit(1)
        cmd_run(path, debug=debug, optimize=optimize, trace=trace, max_steps=max_steps)
    elif cmd == "transpile":
        if len(extra) > 1:
            print("Transpile accepts at most one output path.")
            sys.exit(1)
        out_path = extra[0] if extra else None
        cmd_transpile(path, out_path, debug=debug, optimize=optimize)
    else:
        print(f"Unknown command: {cmd}")
        sys.exit(1)


if __name__ == "__main__":
    main()
