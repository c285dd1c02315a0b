import argparse
import enum
import io
import pathlib
import sys


VALID_TOKENS = "<>[].,+-"
MAX_NESTING = 200
RECURSION_HEADROOM = 100
EOF = -1

EOF_SENTINEL = "-1"
EOF_ZERO = "0"
EOF_UNCHANGED = "unchanged"
EOF_POLICIES = (EOF_SENTINEL, EOF_ZERO, EOF_UNCHANGED)


class InterpreterError(Exception):
    def __init__(self, message: str):
        super().__init__(message)


class UnmatchedLoopEnd(InterpreterError):
    def __init__(self, index: int):
        super().__init__("unmatched loop end at instruction %d" % index)
        self.index = index


class NestingTooDeep(InterpreterError):
    def __init__(self, limit: int):
        super().__init__("loop nesting exceeds %d" % limit)
        self.limit = limit


class Op(enum.Enum):
    INC_VAL = "+"
    DEC_VAL = "-"
    INC_PTR = ">"
    DEC_PTR = "<"
    PRINT = "."
    READ = ","
    LOOP_START = "["
    LOOP_END = "]"


OPERATIONS = {char: Op(char) for char in VALID_TOKENS}


def classify(char: str) -> Op | None:
    return OPERATIONS.get(char)


class Tape:
    """
    Sparse bi-infinite byte tape. Positions never written read as zero and
    reading does not create an entry.
    """

    def __init__(self):
        self._cells: dict[int, int] = {}

    def get(self, position: int) -> int:
        return self._cells.get(position, 0)

    def set(self, position: int, value: int):
        self._cells[position] = value & 0xFF

    def increment(self, position: int):
        self.set(position, self.get(position) + 1)

    def decrement(self, position: int):
        self.set(position, self.get(position) - 1)

    def cells(self):
        return sorted(self._cells.items())


class InstructionHistory:
    """
    Append-only record of every character that classified as an operation.
    """

    def __init__(self):
        self._chars: list[str] = []

    @property
    def current(self) -> int:
        return len(self._chars) - 1

    def record(self, char: str) -> int:
        self._chars.append(char)
        return self.current

    def slice(self, start: int, stop: int) -> tuple[str, ...]:
        return tuple(self._chars[start:stop])

    def __getitem__(self, index: int) -> str:
        return self._chars[index]

    def __len__(self):
        return len(self._chars)

    def __iter__(self):
        return iter(self._chars)


class ByteSource:
    def __init__(self, stream):
        self.stream = stream

    def read_byte(self) -> int:
        raw = self.stream.read(1)
        if not raw:
            return EOF
        return raw[0]


class Interpreter:
    """
    Executes operations as they arrive, one character at a time.

    Nothing is parsed ahead. A loop whose condition holds is bookmarked at its
    start and its body runs on the ordinary forward pass; when the matching
    ']' arrives, the recorded body is replayed through dispatch until the
    current cell is zero. A loop entered with a zero cell is skipped by
    counting brackets until the matching ']' has been seen.
    """

    def __init__(self, source=None, sink=None, eof: str = EOF_SENTINEL,
                 max_nesting: int = MAX_NESTING):
        if eof not in EOF_POLICIES:
            raise ValueError("unknown eof policy %r" % eof)
        if max_nesting < 1:
            raise ValueError("max_nesting must be positive")

        if sink is None:
            sink = sys.stdout.buffer

        self.source = source
        self.sink = sink
        self.eof = eof
        self.max_nesting = max_nesting
        self.interactive = hasattr(sink, "isatty") and sink.isatty()

        # each replay level holds three frames: loop end, replay and dispatch
        needed = max_nesting * 3 + RECURSION_HEADROOM
        if sys.getrecursionlimit() < needed:
            sys.setrecursionlimit(needed)

        self.tape = Tape()
        self.cursor = 0
        self.history = InstructionHistory()
        self.bookmarks: list[int] = []
        self.skip_depth = 0

        self.executed = 0
        self.replays = 0
        self._nesting = 0

    @property
    def state(self):
        return {
            "cursor": self.cursor,
            "skip_depth": self.skip_depth,
            "open_loops": len(self.bookmarks),
            "history": len(self.history),
        }

    def feed(self, char: str) -> Op | None:
        op = classify(char)
        if op is not None:
            index = self.history.record(char)
            self._dispatch(op, index)

        return op

    def _replay(self, start: int, stop: int):
        for index, char in enumerate(self.history.slice(start, stop), start):
            self._dispatch(classify(char), index)

    def _dispatch(self, op: Op, index: int):
        match op:
            case Op.LOOP_START:
                self._loop_start(index)
            case Op.LOOP_END:
                self._loop_end(index)
            case _ if self.skip_depth > 0:
                pass
            case Op.INC_VAL:
                self.tape.increment(self.cursor)
            case Op.DEC_VAL:
                self.tape.decrement(self.cursor)
            case Op.INC_PTR:
                self.cursor += 1
            case Op.DEC_PTR:
                self.cursor -= 1
            case Op.PRINT:
                self.sink.write(bytes((self.tape.get(self.cursor),)))
                if self.interactive:
                    self.sink.flush()
            case Op.READ:
                self._read()

        if self.skip_depth == 0 and op not in (Op.LOOP_START, Op.LOOP_END):
            self.executed += 1

    def _read(self):
        value = self.source.read_byte() if self.source is not None else EOF
        if value == EOF:
            if self.eof == EOF_UNCHANGED:
                return
            if self.eof == EOF_ZERO:
                value = 0

        self.tape.set(self.cursor, value)

    def _loop_start(self, index: int):
        if self.skip_depth > 0:
            self.skip_depth += 1
        elif self.tape.get(self.cursor) != 0:
            self.bookmarks.append(index)
        else:
            self.skip_depth = 1

    def _loop_end(self, index: int):
        if self.skip_depth > 0:
            self.skip_depth -= 1
            return

        if not self.bookmarks:
            raise UnmatchedLoopEnd(index)

        start = self.bookmarks[-1]
        if self.tape.get(self.cursor) != 0:
            if self._nesting == self.max_nesting:
                raise NestingTooDeep(self.max_nesting)

            self._nesting += 1
            try:
                while self.tape.get(self.cursor) != 0:
                    self.replays += 1
                    self._replay(start + 1, index)
            finally:
                self._nesting -= 1

        self.bookmarks.pop()


def run(stream, interpreter: Interpreter):
    """
    Feed the interpreter one byte at a time until the stream is exhausted.
    """
    while True:
        raw = stream.read(1)
        if not raw:
            break
        interpreter.feed(chr(raw[0]))

    return interpreter


def interpret(source: str | bytes, stdin: bytes = b"", **options) -> bytes:
    """
    Run a complete program held in memory against a separate input buffer and
    return everything it printed.
    """
    if isinstance(source, str):
        source = source.encode("latin-1")

    sink = io.BytesIO()
    interpreter = Interpreter(ByteSource(io.BytesIO(stdin)), sink, **options)
    run(io.BytesIO(source), interpreter)
    return sink.getvalue()


# entry point
def dump_state(interpreter: Interpreter):
    state = interpreter.state
    sys.stderr.write("cursor: %d\n" % state["cursor"])
    sys.stderr.write("skip depth: %d\n" % state["skip_depth"])
    sys.stderr.write("open loops: %d\n" % state["open_loops"])
    sys.stderr.write("instructions: %d\n" % state["history"])
    for position, value in interpreter.tape.cells():
        if value != 0:
            sys.stderr.write("cell %d: %d\n" % (position, value))


def read_options(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument("source", type=pathlib.Path, nargs="?",
                        help="The file to interpret. Without it, the program and its input share stdin.")
    parser.add_argument("--eof", choices=EOF_POLICIES, default=EOF_SENTINEL,
                        help="Value stored by ',' at end of input.")
    parser.add_argument("--max-nesting", type=int, default=MAX_NESTING,
                        help="Maximum depth of nested loop replays.")
    parser.add_argument("--dump-state", action="store_true",
                        help="Write the final machine state to stderr.")

    options = parser.parse_args(argv)
    if options.max_nesting < 1:
        parser.error("--max-nesting must be positive")

    return options


def main(argv=None):
    options = read_options(argv)

    stdin = sys.stdin.buffer
    stdout = sys.stdout.buffer

    interpreter = Interpreter(ByteSource(stdin), stdout, options.eof, options.max_nesting)
    try:
        if options.source is None:
            run(stdin, interpreter)
        else:
            try:
                fp = open(options.source, "rb")
            except OSError:
                sys.stderr.write("fatal: could not read source %s\n" % options.source)
                sys.exit(1)

            with fp:
                run(fp, interpreter)
    except InterpreterError as err:
        sys.stderr.write("fatal: %s\n" % str(err))
        sys.exit(1)
    finally:
        stdout.flush()

    if options.dump_state:
        dump_state(interpreter)


if __name__ == '__main__':
    main()
