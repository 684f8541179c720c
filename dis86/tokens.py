# based on https://github.com/whitequark/binja-avnera/blob/main/mc/tokens.py
import enum
from typing import List


class TokenKind(enum.Enum):
    INSTRUCTION = "instruction"
    SEPARATOR = "separator"
    TEXT = "text"
    INTEGER = "integer"
    REGISTER = "register"
    KEYWORD = "keyword"
    BEGIN_MEMORY = "begin_memory"
    END_MEMORY = "end_memory"
    ADDRESS = "address"
    COMMENT = "comment"


class Token:
    kind: TokenKind

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return False
        return self.__dict__ == getattr(other, "__dict__", {})


def asm_str(parts: List[Token]) -> str:
    return "".join(str(part) for part in parts)


class TInstr(Token):
    kind = TokenKind.INSTRUCTION

    def __init__(self, instr: str) -> None:
        self.instr = instr

    def __repr__(self) -> str:
        return f"TInstr({self.instr})"

    def __str__(self) -> str:
        return self.instr


class TSep(Token):
    kind = TokenKind.SEPARATOR

    def __init__(self, sep: str) -> None:
        self.sep = sep

    def __repr__(self) -> str:
        return f"TSep({self.sep})"

    def __str__(self) -> str:
        return self.sep


class TText(Token):
    kind = TokenKind.TEXT

    def __init__(self, text: str) -> None:
        self.text = text

    def __repr__(self) -> str:
        return f"TText({self.text})"

    def __str__(self) -> str:
        return self.text


class TInt(Token):
    """Integer literal: decimal below ten, `0x` hex otherwise."""

    kind = TokenKind.INTEGER

    def __init__(self, value: int) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"TInt({self.value})"

    def __str__(self) -> str:
        if -10 < self.value < 10:
            return str(self.value)
        sign = "-" if self.value < 0 else ""
        return f"{sign}0x{abs(self.value):x}"


class TKeyword(Token):
    """Size, strictness, branch-distance or prefix keyword."""

    kind = TokenKind.KEYWORD

    def __init__(self, keyword: str) -> None:
        self.keyword = keyword

    def __repr__(self) -> str:
        return f"TKeyword({self.keyword})"

    def __str__(self) -> str:
        return self.keyword


class TBegMem(Token):
    kind = TokenKind.BEGIN_MEMORY

    def __repr__(self) -> str:
        return "TBegMem()"

    def __str__(self) -> str:
        return "["


class TEndMem(Token):
    kind = TokenKind.END_MEMORY

    def __repr__(self) -> str:
        return "TEndMem()"

    def __str__(self) -> str:
        return "]"


class TAddr(Token):
    kind = TokenKind.ADDRESS

    def __init__(self, value: int) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"TAddr({self.value})"

    def __str__(self) -> str:
        sign = "-" if self.value < 0 else ""
        return f"{sign}0x{abs(self.value):04x}"


class TReg(Token):
    kind = TokenKind.REGISTER

    def __init__(self, reg: str) -> None:
        self.reg = reg

    def __repr__(self) -> str:
        return f"TReg({self.reg})"

    def __str__(self) -> str:
        return self.reg


class TComment(Token):
    kind = TokenKind.COMMENT

    def __init__(self, text: str) -> None:
        self.text = text

    def __repr__(self) -> str:
        return f"TComment({self.text})"

    def __str__(self) -> str:
        return f" ; {self.text}"
