"""Generation of LLVM IR text from the B+ syntax tree."""

from __future__ import annotations

import math
import re
import struct
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from .ast import (
    BinaryExpr,
    Block,
    CallExpr,
    Expr,
    Extern,
    Function,
    NumberExpr,
    PositionalParamExpr,
    ReturnExpr,
    StringLiteralExpr,
    VarDeclExpr,
    VariableExpr,
)

DEFAULT_MODULE_NAME = "B+ Compiler"

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619

_SCALARS = {
    "i32": "i32",
    "i64": "i64",
    "f32": "float",
    "f64": "double",
    "void": "void",
    "ptr": "ptr",
}
_ALIGN = {"i32": 4, "i64": 8, "float": 4, "double": 8, "ptr": 8}
_INTS = {"i32", "i64"}
_FLOATS = {"float", "double"}
_INT_OPS = {"+": ("add", "addtmp"), "-": ("sub", "subtmp"),
            "*": ("mul", "multmp"), "/": ("sdiv", "divtmp")}
_FLOAT_OPS = {"+": ("fadd", "addtmp"), "-": ("fsub", "subtmp"),
              "*": ("fmul", "multmp"), "/": ("fdiv", "divtmp")}
_IDENT = re.compile(r"[-a-zA-Z$._][-a-zA-Z$._0-9]*")


class CodegenError(RuntimeError):
    """Raised when the syntax tree cannot be turned into IR."""


def fnv1a(text: Union[str, bytes]) -> int:
    """32-bit FNV-1a hash of the UTF-8 bytes of ``text``."""
    data = text.encode("utf-8") if isinstance(text, str) else text
    value = _FNV_OFFSET
    for byte in data:
        value = ((value ^ byte) * _FNV_PRIME) & 0xFFFFFFFF
    return value


def llvm_type_for(type_str: str) -> str:
    """Map a B+ type name to its LLVM IR type."""
    if type_str in _SCALARS:
        return _SCALARS[type_str]
    if len(type_str) > 1 and type_str.endswith("*"):
        llvm_type_for(type_str[:-1])
        return "ptr"
    raise CodegenError(f"Unsupported type: {type_str}")


def _escape_bytes(data: bytes) -> str:
    return "".join(
        chr(b) if 0x20 <= b < 0x7F and b not in (0x22, 0x5C) else f"\\{b:02X}"
        for b in data
    )


def _ident(sigil: str, name: str) -> str:
    if _IDENT.fullmatch(name):
        return sigil + name
    return f'{sigil}"{_escape_bytes(name.encode("utf-8"))}"'


def _format_double(value: float) -> str:
    if math.isfinite(value):
        text = f"{value:.6e}"
        if float(text) == value:
            return text
    (bits,) = struct.unpack(">Q", struct.pack(">d", value))
    return f"0x{bits:016X}"


def _wrap32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value >= (1 << 31) else value


def _fold_int(opcode: str, a: int, b: int) -> Optional[int]:
    if opcode == "add":
        return _wrap32(a + b)
    if opcode == "sub":
        return _wrap32(a - b)
    if opcode == "mul":
        return _wrap32(a * b)
    if b == 0 or (a == -(1 << 31) and b == -1):
        return None
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


def _fold_float(opcode: str, a: float, b: float) -> float:
    if opcode == "fadd":
        return a + b
    if opcode == "fsub":
        return a - b
    if opcode == "fmul":
        return a * b
    if b == 0.0:
        if a == 0.0 or math.isnan(a) or math.isnan(b):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


@dataclass
class _Symbols:
    """A symbol table that makes clashing names unique the way LLVM does."""

    dotted: bool = False
    names: set[str] = field(default_factory=set)
    last: int = 0

    def claim(self, base: str) -> str:
        if base not in self.names:
            self.names.add(base)
            return base
        while True:
            self.last += 1
            candidate = f"{base}.{self.last}" if self.dotted else f"{base}{self.last}"
            if candidate not in self.names:
                self.names.add(candidate)
                return candidate


@dataclass(frozen=True)
class _Value:
    type: str
    ref: str
    allocated: Optional[str] = None
    const: Union[int, float, None] = None


@dataclass(frozen=True)
class _Instr:
    text: str
    terminator: bool = False


@dataclass
class _IRFunction:
    name: str
    ret: str
    params: tuple[str, ...]
    vararg: bool
    defined: bool = False
    args: list[_Value] = field(default_factory=list)
    body: list[_Instr] = field(default_factory=list)
    symbols: _Symbols = field(default_factory=_Symbols)

    @property
    def signature(self) -> str:
        params = list(self.params) + (["..."] if self.vararg else [])
        return f"{self.ret} ({', '.join(params)})"

    @property
    def terminated(self) -> bool:
        return bool(self.body) and self.body[-1].terminator

    def render(self) -> str:
        symbol = _ident("@", self.name)
        if not self.defined:
            params = list(self.params) + (["..."] if self.vararg else [])
            return f"declare {self.ret} {symbol}({', '.join(params)})"
        params = [f"{arg.type} {arg.ref}" for arg in self.args]
        if self.vararg:
            params.append("...")
        lines = [f"define {self.ret} {symbol}({', '.join(params)}) {{", "entry:"]
        lines.extend(f"  {instr.text}" for instr in self.body)
        lines.append("}")
        return "\n".join(lines)


class CodeGenerator:
    """Builds one IR module from externs and function definitions."""

    def __init__(self, module_name: str = DEFAULT_MODULE_NAME) -> None:
        self.module_name = module_name
        self._module_symbols = _Symbols(dotted=True)
        self._globals: list[str] = []
        self._functions: dict[str, _IRFunction] = {}
        self._protos: dict[str, _IRFunction] = {}
        self._named: dict[str, _Value] = {}
        self._current: Optional[Function] = None
        self._fn: Optional[_IRFunction] = None

    # -- module level -------------------------------------------------

    def _add_function(self, name: str, ret: str, params: list[str],
                      vararg: bool) -> _IRFunction:
        fn = _IRFunction(self._module_symbols.claim(name), ret, tuple(params), vararg)
        self._functions[name] = fn
        return fn

    def declare_extern(self, extern: Extern) -> None:
        """Declare an external function so that it can be called."""
        ret = llvm_type_for(extern.ret_type)
        params: list[str] = []
        vararg = False
        for arg in extern.arg_types:
            if arg == "...":
                vararg = True
            else:
                params.append(llvm_type_for(arg))
        fn = self._functions.get(extern.name)
        if fn is None:
            fn = self._add_function(extern.name, ret, params, vararg)
        self._protos[extern.name] = fn

    def define_function(self, function: Function) -> None:
        """Emit the body of a function definition."""
        self._current = function
        ret = llvm_type_for(function.ret_type)
        params = [llvm_type_for(t) for t in function.arg_types]

        fn = self._functions.get(function.name)
        if fn is not None:
            if fn.defined:
                raise CodegenError(f"Function redefinition: {function.name}")
        else:
            fn = self._add_function(function.name, ret, params, False)
        self._protos[function.name] = fn

        fn.defined = True
        fn.symbols.claim("entry")
        self._fn = fn
        self._named.clear()
        fn.args = []
        for position, param_type in enumerate(fn.params, start=1):
            arg = _Value(param_type, _ident("%", fn.symbols.claim(f"arg{position}")))
            fn.args.append(arg)
            self._named[f"%{position}"] = arg

        self._emit(function.body)
        self._current = None

        if fn.terminated:
            if ret == "void":
                raise CodegenError(f"Void function calls return: {function.name}")
        elif ret == "void":
            self._append("ret void", terminator=True)
        else:
            raise CodegenError(
                f"Non-void function missing return statement: {function.name}"
            )

    def generate(self, externs: Iterable[Extern],
                 functions: Iterable[Function]) -> str:
        """Declare all externs, define all functions and return the IR text."""
        for extern in externs:
            self.declare_extern(extern)
        for function in functions:
            self.define_function(function)
        return self.render()

    def has_function(self, name: str) -> bool:
        """Whether a function of this name has been declared or defined."""
        return name in self._protos

    def render(self) -> str:
        """The module as LLVM IR text."""
        parts = [
            f"; ModuleID = '{self.module_name}'\n"
            f'source_filename = "{self.module_name}"'
        ]
        if self._globals:
            parts.append("\n".join(self._globals))
        parts.extend(fn.render() for fn in self._functions.values())
        return "\n\n".join(parts) + "\n"

    # -- instruction level --------------------------------------------

    def _append(self, text: str, terminator: bool = False) -> None:
        assert self._fn is not None
        self._fn.body.append(_Instr(text, terminator))

    def _local(self, base: str) -> str:
        assert self._fn is not None
        return _ident("%", self._fn.symbols.claim(base))

    def _emit(self, expr: Expr) -> Optional[_Value]:
        match expr:
            case NumberExpr(value=value):
                return self._number(value)
            case VariableExpr(name=name):
                return self._variable(name)
            case BinaryExpr():
                return self._binary(expr)
            case StringLiteralExpr(value=value):
                return self._string(value)
            case Block():
                for statement in expr:
                    self._emit(statement)
                return None
            case CallExpr():
                return self._call(expr)
            case ReturnExpr(expr=inner):
                self._return(inner)
                return None
            case PositionalParamExpr(index=index):
                return self._positional(index)
            case VarDeclExpr():
                return self._var_decl(expr)
        raise CodegenError(f"Cannot generate code for {type(expr).__name__}")

    def _value(self, expr: Expr) -> _Value:
        value = self._emit(expr)
        if value is None:
            raise CodegenError(f"{type(expr).__name__} does not produce a value")
        return value

    @staticmethod
    def _number(value: float) -> _Value:
        value = float(value)
        if math.isfinite(value) and value.is_integer() and -(2**63) <= value < 2**63:
            number = _wrap32(int(value))
            return _Value("i32", str(number), const=number)
        return _Value("double", _format_double(value), const=value)

    def _variable(self, name: str) -> _Value:
        value = self._named.get(name)
        if value is None:
            raise CodegenError(f"Unknown variable name: {name}")
        if value.type != "ptr":
            return value
        if value.allocated is None:
            raise CodegenError(f"Cannot determine load type for: {name}")
        loaded = self._local(f"{name}_val")
        self._append(
            f"{loaded} = load {value.allocated}, ptr {value.ref}, "
            f"align {_ALIGN[value.allocated]}"
        )
        return _Value(value.allocated, loaded)

    def _to_double(self, value: _Value) -> _Value:
        if value.type not in _INTS:
            return value
        if value.const is not None:
            number = float(value.const)
            return _Value("double", _format_double(number), const=number)
        name = self._local("int_to_double")
        self._append(f"{name} = sitofp {value.type} {value.ref} to double")
        return _Value("double", name)

    def _binary(self, expr: BinaryExpr) -> _Value:
        lhs = self._value(expr.lhs)
        rhs = self._value(expr.rhs)

        if lhs.type in _FLOATS or rhs.type in _FLOATS:
            lhs, rhs = self._to_double(lhs), self._to_double(rhs)
            if lhs.type != rhs.type or lhs.type not in _FLOATS:
                raise CodegenError("Unsupported operand types for binary operator")
            if expr.op not in _FLOAT_OPS:
                raise CodegenError("invalid binary operator")
            opcode, base = _FLOAT_OPS[expr.op]
            if lhs.type == "double" and lhs.const is not None and rhs.const is not None:
                result = _fold_float(opcode, float(lhs.const), float(rhs.const))
                return _Value("double", _format_double(result), const=result)
        elif lhs.type == "i32" and rhs.type == "i32":
            if expr.op not in _INT_OPS:
                raise CodegenError("invalid binary operator")
            opcode, base = _INT_OPS[expr.op]
            if lhs.const is not None and rhs.const is not None:
                folded = _fold_int(opcode, int(lhs.const), int(rhs.const))
                if folded is None:
                    return _Value("i32", "poison")
                return _Value("i32", str(folded), const=folded)
        else:
            raise CodegenError("Unsupported operand types for binary operator")

        name = self._local(base)
        self._append(f"{name} = {opcode} {lhs.type} {lhs.ref}, {rhs.ref}")
        return _Value(lhs.type, name)

    def _string(self, value: str) -> _Value:
        data = value.encode("utf-8") + b"\0"
        name = _ident("@", self._module_symbols.claim(f"str.{fnv1a(value)}"))
        self._globals.append(
            f"{name} = private unnamed_addr constant [{len(data)} x i8] "
            f'c"{_escape_bytes(data)}", align 1'
        )
        return _Value("ptr", name)

    def _call(self, expr: CallExpr) -> _Value:
        fn = self._protos.get(expr.callee)
        if fn is None:
            raise CodegenError(
                f"Implicit declaration of function not allowed: {expr.callee}"
            )
        args = [self._value(arg) for arg in expr.args]
        if len(args) < len(fn.params) or (not fn.vararg and len(args) != len(fn.params)):
            raise CodegenError(f"Incorrect number of arguments passed to {expr.callee}")
        if any(arg.type != param for arg, param in zip(args, fn.params)):
            raise CodegenError(f"Argument type mismatch in call to {expr.callee}")

        callee_type = fn.signature if fn.vararg else fn.ret
        arg_text = ", ".join(f"{arg.type} {arg.ref}" for arg in args)
        call = f"call {callee_type} {_ident('@', fn.name)}({arg_text})"
        if fn.ret == "void":
            self._append(call)
            return _Value("void", "")
        name = self._local("calltmp")
        self._append(f"{name} = {call}")
        return _Value(fn.ret, name)

    def _return(self, inner: Optional[Expr]) -> None:
        if inner is None:
            self._append("ret void", terminator=True)
            return
        value = self._value(inner)
        if value.type == "void":
            self._append("ret void", terminator=True)
        else:
            self._append(f"ret {value.type} {value.ref}", terminator=True)

    def _positional(self, index: int) -> _Value:
        if self._current is None:
            raise CodegenError("Positional param used outside function")
        fn = self._protos[self._current.name]
        if index <= 0 or index > len(fn.args):
            raise CodegenError("Invalid positional param index")
        return fn.args[index - 1]

    def _var_decl(self, expr: VarDeclExpr) -> _Value:
        assert self._fn is not None
        llvm_type = llvm_type_for(expr.type_name)
        if llvm_type == "void":
            raise CodegenError(f"Unsupported type: {expr.type_name}")
        name = self._local(expr.name)
        self._fn.body.insert(
            0, _Instr(f"{name} = alloca {llvm_type}, align {_ALIGN[llvm_type]}")
        )
        slot = _Value("ptr", name, allocated=llvm_type)
        if expr.init is not None:
            initial = self._value(expr.init)
            if initial.type != llvm_type:
                raise CodegenError(f"Initializer type mismatch for {expr.name}")
            self._append(
                f"store {initial.type} {initial.ref}, ptr {name}, "
                f"align {_ALIGN[llvm_type]}"
            )
        self._named[expr.name] = slot
        return slot