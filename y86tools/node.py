"""Parse trees of HCL expressions and generation of C, Verilog or UCLID code."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import IO, Iterator

from y86tools.outgen import OutputGenerator

SYM_LIM = 100
MAXERRLEN = 80


class NodeType(IntEnum):
    QUOTE = 0
    VAR = 1
    NUM = 2
    AND = 3
    OR = 4
    NOT = 5
    COMP = 6
    ELE = 7
    CASE = 8


class Target(Enum):
    C = "c"
    VERILOG = "verilog"
    UCLID = "uclid"


class HCLError(Exception):
    """An HCL description is inconsistent."""


@dataclass(eq=False)
class Node:
    """One node of an expression tree; ``next`` links list elements."""

    type: NodeType
    isbool: bool
    sval: str
    arg1: "Node | None" = None
    arg2: "Node | None" = None
    ref: int = 0
    next: "Node | None" = None


def _chain(node: Node | None) -> Iterator[Node]:
    while node is not None:
        yield node
        node = node.next


def _atoi(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def concat(n1: Node | None, n2: Node | None) -> Node | None:
    """Append list ``n2`` to the end of list ``n1`` and return the head."""
    if n1 is None:
        return n2
    tail = n1
    while tail.next is not None:
        tail = tail.next
    tail.next = n2
    return n1


class _ExprText:
    def __init__(self):
        self.parts: list[str] = []
        self.length = 0

    def add(self, text: str) -> None:
        self.parts.append(text)
        self.length += len(text)

    @property
    def room(self) -> bool:
        return self.length < MAXERRLEN


class CodeGenerator:
    """Builds expression trees and writes a function for each definition."""

    def __init__(
        self,
        out: IO[str] | None = None,
        target: Target = Target.C,
        simname: str = "",
    ):
        self.target = target
        self.simname = simname
        self.annotate = False
        self._symbols: list[tuple[Node, Node]] = []
        self._arg_names: list[str] = []
        self._gen = OutputGenerator(out, 75, 4, 2)
        if target is Target.C:
            title = "Y86 Processor" if not simname else f"Y86 Processor: {simname}"
            self._gen.out.write(f'char simname[] = "{title}";\n')

    # Symbol table

    def _add_symbol(self, name: Node, val: Node) -> None:
        if len(self._symbols) >= SYM_LIM:
            raise HCLError("Symbol table limit exceeded")
        self._symbols.append((name, val))

    def _find_symbol(self, name: str) -> Node:
        for key, val in self._symbols:
            if key.sval == name:
                key.ref += 1
                return val
        raise HCLError(f"Symbol {name} not found")

    def finish(self, check_ref: bool = True) -> list[str]:
        """Warn about, and return, arguments that were never referenced."""
        if not check_ref:
            return []
        unused = [key.sval for key, _ in self._symbols if not key.ref]
        for name in unused:
            print(f"Warning, argument '{name}' not referenced", file=sys.stderr)
        return unused

    # Node construction

    def make_quote(self, qstring: str) -> Node:
        """Node for a quoted string; the surrounding quotes are dropped."""
        return Node(NodeType.QUOTE, False, qstring[1:-1])

    def make_var(self, name: str) -> Node:
        return Node(NodeType.VAR, False, name)

    def make_num(self, name: str) -> Node:
        return Node(NodeType.NUM, False, name)

    def set_bool(self, node: Node | None) -> None:
        if node is None:
            raise HCLError("Null node encountered")
        node.isbool = True

    def _check_arg(self, arg: Node | None, wantbool: bool) -> None:
        if arg is None:
            raise HCLError("Null node encountered")
        if arg.type is NodeType.VAR:
            qval = self._find_symbol(arg.sval)
            if wantbool != qval.isbool:
                kind = "Boolean" if wantbool else "integer"
                raise HCLError(f"Variable '{arg.sval}' not {kind}")
            return
        if arg.type is NodeType.NUM:
            if wantbool and arg.sval not in ("0", "1"):
                raise HCLError(f"Value '{arg.sval}' not Boolean")
            return
        if wantbool and not arg.isbool:
            raise HCLError(f"Non Boolean argument '{self.show_expr(arg)}'")
        if not wantbool and arg.isbool:
            raise HCLError(f"Non integer argument '{self.show_expr(arg)}'")

    def make_not(self, arg: Node) -> Node:
        self._check_arg(arg, True)
        return Node(NodeType.NOT, True, "!", arg)

    def make_and(self, arg1: Node, arg2: Node) -> Node:
        self._check_arg(arg1, True)
        self._check_arg(arg2, True)
        return Node(NodeType.AND, True, "&", arg1, arg2)

    def make_or(self, arg1: Node, arg2: Node) -> Node:
        self._check_arg(arg1, True)
        self._check_arg(arg2, True)
        return Node(NodeType.OR, True, "|", arg1, arg2)

    def make_comp(self, op: Node, arg1: Node, arg2: Node) -> Node:
        self._check_arg(arg1, False)
        self._check_arg(arg2, False)
        return Node(NodeType.COMP, True, op.sval, arg1, arg2)

    def make_ele(self, arg1: Node, arg2: Node) -> Node:
        """Set membership test of ``arg1`` in the list ``arg2``."""
        self._check_arg(arg1, False)
        for ele in _chain(arg1):
            self._check_arg(ele, False)
        return Node(NodeType.ELE, True, "in", arg1, arg2)

    def make_case(self, arg1: Node, arg2: Node) -> Node:
        self._check_arg(arg1, True)
        self._check_arg(arg2, False)
        return Node(NodeType.CASE, False, ":", arg1, arg2)

    def insert_code(self, qstring: Node | None) -> None:
        """Copy quoted code straight into C output."""
        if qstring is None:
            raise HCLError("Null node")
        if self.target is Target.C:
            self._gen.out.write(qstring.sval + "\n")

    def add_arg(self, var: Node | None, qstring: Node | None, isbool: bool) -> None:
        """Bind a variable to the quoted expression that computes it."""
        if var is None or qstring is None:
            raise HCLError("Null node")
        self._add_symbol(var, qstring)
        if isbool:
            self.set_bool(var)
            self.set_bool(qstring)

    # Error display

    def show_expr(self, expr: Node) -> str:
        """Render an expression for error messages, cut short past 80 characters."""
        text = _ExprText()
        self._show(expr, text)
        if text.length >= MAXERRLEN:
            text.add("...")
        return "".join(text.parts)

    def _show(self, expr: Node, text: _ExprText) -> None:
        kind = expr.type
        if kind in (NodeType.QUOTE, NodeType.VAR, NodeType.NUM):
            item = f"'{expr.sval}'" if kind is NodeType.QUOTE else expr.sval
            if len(item) + text.length < MAXERRLEN:
                text.add(item)
        elif kind in (NodeType.AND, NodeType.OR, NodeType.COMP):
            if text.room:
                text.add("(")
                self._show(expr.arg1, text)
                text.add(f" {expr.sval} ")
            if text.room:
                self._show(expr.arg2, text)
                text.add(")")
        elif kind is NodeType.NOT:
            if text.room:
                text.add("!")
                self._show(expr.arg1, text)
        elif kind is NodeType.ELE:
            if text.room:
                text.add("(")
                self._show(expr.arg1, text)
                text.add(" in {")
            for ele in _chain(expr.arg2):
                if text.room:
                    self._show(ele, text)
                    if ele.next is not None:
                        text.add(", ")
            if text.room:
                text.add("})")
        elif kind is NodeType.CASE:
            if text.room:
                text.add("[ ")
            for ele in _chain(expr):
                if not text.room:
                    break
                self._show(ele.arg1, text)
                text.add(" : ")
                self._show(ele.arg2, text)
            if text.room:
                text.add(" ]")
        elif text.room:
            text.add("??")

    # Code generation

    def _check_for_arg(self, name: str) -> None:
        if all(c.isupper() for c in name):
            return
        if name not in self._arg_names:
            self._arg_names.append(name)

    def _gen_num(self, expr: Node) -> None:
        if self.target is not Target.UCLID:
            self._gen.out.write(expr.sval)
            return
        val = _atoi(expr.sval)
        if val < -1:
            self._gen.emit(f"pred^{-val}(CZERO)")
        elif val == -1:
            self._gen.emit("pred(CZERO)")
        elif val == 0:
            self._gen.emit("CZERO")
        elif val == 1:
            self._gen.emit("succ(CZERO)")
        else:
            self._gen.emit(f"succ^{val}(CZERO)")

    def _gen_expr(self, expr: Node) -> None:
        gen = self._gen
        hdl = self.target is not Target.C
        kind = expr.type
        if kind is NodeType.QUOTE:
            raise HCLError("Unexpected quoted string")
        if kind is NodeType.VAR:
            qstring = self._find_symbol(expr.sval)
            gen.emit(expr.sval if hdl else f"({qstring.sval})")
            if self.target is Target.UCLID:
                self._check_for_arg(expr.sval)
        elif kind is NodeType.NUM:
            self._gen_num(expr)
        elif kind in (NodeType.AND, NodeType.OR):
            gen.emit("(")
            gen.upindent()
            self._gen_expr(expr.arg1)
            gen.emit(" & " if kind is NodeType.AND else " | ")
            self._gen_expr(expr.arg2)
            gen.emit(")")
            gen.downindent()
        elif kind is NodeType.NOT:
            gen.emit("~" if hdl else "!")
            self._gen_expr(expr.arg1)
        elif kind is NodeType.COMP:
            gen.emit("(")
            gen.upindent()
            self._gen_expr(expr.arg1)
            op = expr.sval
            if self.target is Target.UCLID and op == "==":
                op = "="
            gen.emit(f" {op} ")
            self._gen_expr(expr.arg2)
            gen.emit(")")
            gen.downindent()
        elif kind is NodeType.ELE:
            gen.emit("(")
            gen.upindent()
            for ele in _chain(expr.arg2):
                self._gen_expr(expr.arg1)
                gen.emit(" = " if self.target is Target.UCLID else " == ")
                self._gen_expr(ele)
                if ele.next is not None:
                    gen.emit(" | " if hdl else " || ")
            gen.emit(")")
            gen.downindent()
        elif kind is NodeType.CASE:
            if self.target is Target.UCLID:
                self._gen_uclid_case(expr)
            else:
                self._gen_case(expr)
        else:
            raise HCLError("Unknown node type")

    @staticmethod
    def _is_default(ele: Node) -> bool:
        return ele.arg1.type is NodeType.NUM and _atoi(ele.arg1.sval) == 1

    def _gen_case(self, expr: Node) -> None:
        gen = self._gen
        gen.emit("(")
        gen.upindent()
        done = False
        for ele in _chain(expr):
            if self._is_default(ele):
                self._gen_expr(ele.arg2)
                done = True
                break
            self._gen_expr(ele.arg1)
            gen.emit(" ? ")
            self._gen_expr(ele.arg2)
            gen.emit(" : ")
        if not done:
            gen.emit("0")
        gen.emit(")")
        gen.downindent()

    def _gen_uclid_case(self, expr: Node) -> None:
        gen = self._gen
        gen.emit("case")
        gen.terminate()
        last_arg2 = None
        for ele in _chain(expr):
            gen.emit("      ")
            if self._is_default(ele):
                gen.emit("default")
                last_arg2 = None
            else:
                self._gen_expr(ele.arg1)
                last_arg2 = ele.arg2
            gen.emit(" : ")
            self._gen_expr(ele.arg2)
            gen.emit(";")
            gen.terminate()
        if last_arg2 is not None:
            gen.emit("      default : ")
            self._gen_expr(last_arg2)
            gen.emit(";")
            gen.terminate()
        gen.emit("    esac")

    def gen_funct(self, var: Node | None, expr: Node | None, isbool: bool) -> None:
        """Write the definition of ``var`` as computed by ``expr``."""
        if var is None or expr is None:
            raise HCLError("Null node")
        self._check_arg(expr, isbool)
        gen = self._gen
        if self.target is Target.VERILOG:
            gen.emit(f"assign {var.sval} = ")
            gen.terminate()
            gen.emit("    ")
            self._gen_expr(expr)
            gen.emit(";")
            gen.terminate()
            gen.terminate()
        elif self.target is Target.UCLID:
            if self.annotate:
                gen.emit(f"(* $define {var.sval} *)")
                gen.terminate()
            gen.emit(f"{var.sval} := ")
            gen.terminate()
            gen.emit("    ")
            if isbool and expr.type is NodeType.NUM:
                gen.emit(str(_atoi(var.sval)))
            else:
                self._gen_expr(expr)
            gen.emit(";")
            gen.terminate()
            if self.annotate:
                gen.emit("(* $args")
                for i, name in enumerate(self._arg_names):
                    gen.emit(f"{' ' if i == 0 else ':'}{name}")
                gen.emit(" *)")
                gen.terminate()
                self._arg_names = []
            gen.terminate()
        else:
            gen.emit(f"int gen_{var.sval}()")
            gen.terminate()
            gen.emit("{")
            gen.terminate()
            gen.emit("    return ")
            self._gen_expr(expr)
            gen.emit(";")
            gen.terminate()
            gen.emit("}")
            gen.terminate()
            gen.terminate()