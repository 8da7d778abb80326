"""
公式计算器

以当日涨跌幅 N（%）为唯一变量的四则运算公式，用于动态计算买卖金额/股数/比例。

语法：
    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("+" | "-") unary | primary
    primary := NUMBER | "N" | "abs" "(" expr ")" | "(" expr ")"

示例：
    "10000 * N + 2000"  N=5  → 52000
    "abs(N) * 0.5"      N=-8 → 4
    "(N + 5) * 100"     N=3  → 800
"""

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

from strategylab.errors import FormulaError

_TOKEN_RE = re.compile(r"\s*(?:(\d+\.\d*|\.\d+|\d+)|(abs|N)|(\S))")

# 括号、abs 与正负号的最大嵌套层数
MAX_DEPTH = 100
# 单个公式的最大记号数
MAX_TOKENS = 500


@dataclass
class FormulaResult:
    """公式计算结果"""
    value: float = 0.0
    is_valid: bool = False
    error: Optional[str] = None


class Expression(ABC):
    """表达式语法树节点"""

    @abstractmethod
    def evaluate(self, n: float) -> float:
        raise NotImplementedError

    def uses_variable(self) -> bool:
        return False


@dataclass(frozen=True)
class Number(Expression):
    value: float

    def evaluate(self, n: float) -> float:
        return self.value


@dataclass(frozen=True)
class Variable(Expression):
    def evaluate(self, n: float) -> float:
        return n

    def uses_variable(self) -> bool:
        return True


@dataclass(frozen=True)
class Negate(Expression):
    operand: Expression

    def evaluate(self, n: float) -> float:
        return -self.operand.evaluate(n)

    def uses_variable(self) -> bool:
        return self.operand.uses_variable()


@dataclass(frozen=True)
class Abs(Expression):
    operand: Expression

    def evaluate(self, n: float) -> float:
        return abs(self.operand.evaluate(n))

    def uses_variable(self) -> bool:
        return self.operand.uses_variable()


@dataclass(frozen=True)
class BinaryOp(Expression):
    op: str
    left: Expression
    right: Expression

    def evaluate(self, n: float) -> float:
        left = self.left.evaluate(n)
        right = self.right.evaluate(n)
        if self.op == "+":
            return left + right
        if self.op == "-":
            return left - right
        if self.op == "*":
            return left * right
        if right == 0:
            raise FormulaError("Division by zero")
        return left / right

    def uses_variable(self) -> bool:
        return self.left.uses_variable() or self.right.uses_variable()


def _tokenize(formula: str) -> List[Tuple[str, str, int]]:
    """切分为 (类型, 文本, 位置) 列表"""
    tokens = []
    pos = 0
    length = len(formula)
    while pos < length:
        match = _TOKEN_RE.match(formula, pos)
        if match is None:
            # 只剩空白
            break
        number, name, other = match.groups()
        start = match.start(match.lastindex)
        if number is not None:
            tokens.append(("number", number, start))
        elif name is not None:
            tokens.append(("name", name, start))
        elif other in "+-*/()":
            tokens.append(("op", other, start))
        else:
            raise FormulaError(f"Unexpected character {other!r}", position=start)
        pos = match.end()
        if len(tokens) > MAX_TOKENS:
            raise FormulaError(f"Formula too long (more than {MAX_TOKENS} tokens)", position=start)
    return tokens


class _Parser:
    """递归下降解析器"""

    def __init__(self, formula: str):
        self.tokens = _tokenize(formula)
        self.index = 0
        self.length = len(formula)
        self.depth = 0

    def _peek(self) -> Optional[Tuple[str, str, int]]:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def _take(self) -> Tuple[str, str, int]:
        token = self._peek()
        if token is None:
            raise FormulaError("Unexpected end of formula", position=self.length)
        self.index += 1
        return token

    def _expect(self, text: str):
        kind, value, pos = self._take()
        if value != text:
            raise FormulaError(f"Expected {text!r}, got {value!r}", position=pos)

    def _enter(self, pos: int):
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise FormulaError("Formula nested too deeply", position=pos)

    def parse(self) -> Expression:
        if not self.tokens:
            raise FormulaError("Empty formula", position=0)
        expr = self._expr()
        token = self._peek()
        if token is not None:
            raise FormulaError(f"Unexpected token {token[1]!r}", position=token[2])
        return expr

    def _expr(self) -> Expression:
        node = self._term()
        while True:
            token = self._peek()
            if token is None or token[1] not in ("+", "-"):
                return node
            self.index += 1
            node = BinaryOp(token[1], node, self._term())

    def _term(self) -> Expression:
        node = self._unary()
        while True:
            token = self._peek()
            if token is None or token[1] not in ("*", "/"):
                return node
            self.index += 1
            node = BinaryOp(token[1], node, self._unary())

    def _unary(self) -> Expression:
        token = self._peek()
        if token is not None and token[0] == "op" and token[1] in ("+", "-"):
            self.index += 1
            self._enter(token[2])
            operand = self._unary()
            self.depth -= 1
            return Negate(operand) if token[1] == "-" else operand
        return self._primary()

    def _primary(self) -> Expression:
        kind, value, pos = self._take()
        if kind == "number":
            return Number(float(value))
        if kind == "name" and value == "N":
            return Variable()
        if kind == "name" and value == "abs":
            self._expect("(")
            self._enter(pos)
            inner = self._expr()
            self._expect(")")
            self.depth -= 1
            return Abs(inner)
        if value == "(":
            self._enter(pos)
            inner = self._expr()
            self._expect(")")
            self.depth -= 1
            return inner
        raise FormulaError(f"Unexpected token {value!r}", position=pos)


@lru_cache(maxsize=256)
def parse_formula(formula: str) -> Expression:
    """解析公式为语法树（结果缓存）"""
    if formula is None or not formula.strip():
        raise FormulaError("Empty formula", position=0)
    return _Parser(formula).parse()


def evaluate_formula(formula: str, n: float) -> float:
    """
    计算公式

    Args:
        formula: 公式字符串，如 "10000 * N + 2000"
        n: 当日涨跌幅（%），5 表示上涨 5%

    Returns:
        计算结果

    Raises:
        FormulaError: 语法错误、嵌套过深、除以零或结果非有限数
    """
    value = parse_formula(formula).evaluate(n)
    if not math.isfinite(value):
        raise FormulaError(f"Non-finite result: {value}")
    return value


def calculate_formula(formula: str, n: float) -> FormulaResult:
    """计算公式，出错时返回 is_valid=False 而不是抛异常"""
    try:
        return FormulaResult(value=evaluate_formula(formula, n), is_valid=True)
    except FormulaError as e:
        return FormulaResult(error=str(e))


def validate_formula(formula: str) -> FormulaResult:
    """语法检查，并要求公式引用变量 N"""
    try:
        expr = parse_formula(formula)
    except FormulaError as e:
        return FormulaResult(error=str(e))
    if not expr.uses_variable():
        return FormulaResult(error="Formula must reference N")
    return FormulaResult(is_valid=True)


FORMULA_EXAMPLES = [
    {"formula": "10000 * N + 2000", "description": "基础金额 2000 + 每涨 1% 加 10000", "example": "N=5 → 52000"},
    {"formula": "2 * N", "description": "每涨 1% 买 2 股", "example": "N=3 → 6"},
    {"formula": "N", "description": "与涨跌幅相同的比例", "example": "N=10 → 10%"},
    {"formula": "abs(N) * 0.5", "description": "取绝对值（涨跌均适用）", "example": "N=-8 → 4"},
    {"formula": "N / 2 + 1000", "description": "涨幅的一半 + 1000", "example": "N=20 → 1010"},
    {"formula": "(N + 5) * 100", "description": "括号", "example": "N=3 → 800"},
]
