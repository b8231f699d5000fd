COMMANDS = {
    "+": "PLUS",
    "-": "MINUS",
    ">": "RIGHT",
    "<": "LEFT",
    ".": "OUTPUT",
    ",": "INPUT",
    "[": "LOOP_START",
    "]": "LOOP_END",
}


class Token:
    def __init__(self, type, value=None, line=1, column=1):
        self.type = type
        self.value = value
        self.line = line
        self.column = column

    def __repr__(self):
        if self.value is not None:
            return f"{self.type}({self.value})"
        return f"{self.type}"


class Lexer:
    def __init__(self, text):
        self.text = text
        self.pos = 0
        self.current_char = text[0] if text else None
        self.line = 1
        self.column = 1

    def advance(self):
        # track line/column based on current_char before moving
        if self.current_char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.pos += 1
        if self.pos >= len(self.text):
            self.current_char = None
        else:
            self.current_char = self.text[self.pos]

    # anything that is not a command is a comment
    def skip_comment(self):
        while self.current_char is not None and self.current_char not in COMMANDS:
            self.advance()

    def get_next_token(self):
        self.skip_comment()
        if self.current_char is None:
            return Token("EOF", line=self.line, column=self.column)

        tok = Token(COMMANDS[self.current_char], self.current_char, line=self.line, column=self.column)
        self.advance()
        return tok

    def tokens(self):
        while True:
            tok = self.get_next_token()
            if tok.type == "EOF":
                return
            yield tok
