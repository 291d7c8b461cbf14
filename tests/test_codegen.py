import pytest

from bplus.ast import (
    BinaryExpr,
    Block,
    CallExpr,
    Extern,
    Function,
    NumberExpr,
    PositionalParamExpr,
    ReturnExpr,
    StringLiteralExpr,
    VarDeclExpr,
    VariableExpr,
)
from bplus.codegen import CodeGenerator, CodegenError, fnv1a, llvm_type_for

P1 = PositionalParamExpr(1)
P2 = PositionalParamExpr(2)


def fn(name, ret, args, *statements):
    return Function(name, ret, args, Block(statements))


def gen(*functions, externs=()):
    return CodeGenerator().generate(externs, functions)


def test_fnv1a_offset_basis_for_empty_input():
    assert fnv1a("") == 2166136261


def test_fnv1a_standard_vector():
    assert fnv1a("a") == 0xE40C292C


def test_fnv1a_is_32_bit_and_bytes_match_text():
    for text in ["hello", "B+ Compiler", "\u00e9t\u00e9"]:
        assert 0 <= fnv1a(text) < 2**32
        assert fnv1a(text) == fnv1a(text.encode("utf-8"))


@pytest.mark.parametrize(
    "name, expected",
    [("i32", "i32"), ("i64", "i64"), ("f32", "float"), ("f64", "double"),
     ("void", "void"), ("ptr", "ptr"), ("i32*", "ptr"), ("f64**", "ptr")],
)
def test_llvm_type_for(name, expected):
    assert llvm_type_for(name) == expected


@pytest.mark.parametrize("name", ["bool", "*", "", "x*"])
def test_llvm_type_for_rejects_unknown(name):
    with pytest.raises(CodegenError, match="Unsupported type"):
        llvm_type_for(name)


def test_module_header_and_constant_return():
    ir = gen(fn("main", "i32", (), ReturnExpr(NumberExpr(42))))
    assert ir.startswith("; ModuleID = 'B+ Compiler'\n")
    assert 'source_filename = "B+ Compiler"' in ir
    assert "define i32 @main() {" in ir
    assert "ret i32 42" in ir


def test_integer_constants_are_folded():
    ir = gen(fn("main", "i32", (), ReturnExpr(BinaryExpr("+", NumberExpr(2), NumberExpr(3)))))
    assert "ret i32 5" in ir
    assert "add" not in ir


def test_float_constants_are_folded():
    ir = gen(fn("f", "f64", (), ReturnExpr(BinaryExpr("+", NumberExpr(1.5), NumberExpr(2)))))
    assert "ret double" in ir
    assert "fadd" not in ir


def test_positional_params_and_add():
    ir = gen(fn("add", "i32", ("i32", "i32"), ReturnExpr(BinaryExpr("+", P1, P2))))
    assert "define i32 @add(i32 %arg1, i32 %arg2) {" in ir
    assert "%addtmp = add i32 %arg1, %arg2" in ir
    assert "ret i32 %addtmp" in ir


def test_clashing_names_are_made_unique():
    body = ReturnExpr(BinaryExpr("+", BinaryExpr("+", P1, P2), P1))
    ir = gen(fn("f", "i32", ("i32", "i32"), body))
    assert "%addtmp1 = add i32 %addtmp, %arg1" in ir


def test_integer_promoted_when_mixed_with_float():
    ir = gen(fn("half", "f64", ("i32",), ReturnExpr(BinaryExpr("*", P1, NumberExpr(0.5)))))
    assert "%int_to_double = sitofp i32 %arg1 to double" in ir
    assert "%multmp = fmul double %int_to_double," in ir


def test_variable_declaration_store_and_load():
    ir = gen(fn("main", "i32", (), VarDeclExpr("x", "i32", NumberExpr(7)),
                ReturnExpr(VariableExpr("x"))))
    alloca = ir.index("%x = alloca i32")
    store = ir.index("store i32 7, ptr %x")
    load = ir.index("%x_val = load i32, ptr %x")
    assert alloca < store < load
    assert "ret i32 %x_val" in ir


def test_allocas_are_placed_at_block_start_newest_first():
    ir = gen(fn("main", "i32", (), VarDeclExpr("x", "i32"), VarDeclExpr("y", "i32"),
                ReturnExpr(NumberExpr(0))))
    assert ir.index("%y = alloca") < ir.index("%x = alloca") < ir.index("ret i32")


def test_string_literal_and_vararg_call():
    text = "hi\n"
    ir = gen(
        fn("main", "i32", (), CallExpr("printf", [StringLiteralExpr(text)]),
           ReturnExpr(NumberExpr(0))),
        externs=[Extern("printf", "i32", ("ptr", "..."))],
    )
    name = f"@str.{fnv1a(text)}"
    assert "declare i32 @printf(ptr, ...)" in ir
    assert f'{name} = private unnamed_addr constant [4 x i8] c"hi\\0A\\00", align 1' in ir
    assert f"%calltmp = call i32 (ptr, ...) @printf(ptr {name})" in ir


def test_repeated_string_literal_gets_distinct_globals():
    ir = gen(fn("main", "i32", (), CallExpr("puts", [StringLiteralExpr("x")]),
                CallExpr("puts", [StringLiteralExpr("x")]), ReturnExpr(NumberExpr(0))),
             externs=[Extern("puts", "i32", ("ptr",))])
    name = f"@str.{fnv1a('x')}"
    assert f"{name} = private" in ir
    assert f"{name}.1 = private" in ir


def test_void_function_gets_implicit_return_and_call():
    ir = gen(fn("noop", "void", ()), fn("main", "i32", (), CallExpr("noop"),
                                        ReturnExpr(NumberExpr(0))))
    assert "define void @noop() {\nentry:\n  ret void\n}" in ir
    assert "  call void @noop()" in ir


def test_declared_function_defined_later_is_not_duplicated():
    ir = gen(fn("f", "i32", ("i32",), ReturnExpr(P1)),
             externs=[Extern("f", "i32", ("i32",))])
    assert ir.count("@f(") == 1
    assert "declare" not in ir


def test_has_function():
    generator = CodeGenerator()
    assert not generator.has_function("main")
    generator.declare_extern(Extern("puts", "i32", ("ptr",)))
    generator.define_function(fn("main", "i32", (), ReturnExpr(NumberExpr(0))))
    assert generator.has_function("puts")
    assert generator.has_function("main")
    assert not generator.has_function("printf")


@pytest.mark.parametrize(
    "functions, message",
    [
        ([fn("main", "i32", ())], "missing return"),
        ([fn("f", "void", (), ReturnExpr())], "Void function calls return"),
        ([fn("f", "i32", (), ReturnExpr(NumberExpr(1))),
          fn("f", "i32", (), ReturnExpr(NumberExpr(1)))], "Function redefinition"),
        ([fn("f", "i32", (), ReturnExpr(VariableExpr("y")))], "Unknown variable name"),
        ([fn("f", "i32", (), ReturnExpr(CallExpr("g")))], "Implicit declaration"),
        ([fn("f", "i32", ("i32",), ReturnExpr(PositionalParamExpr(0)))], "positional param"),
        ([fn("f", "i32", ("i32",), ReturnExpr(PositionalParamExpr(2)))], "positional param"),
        ([fn("f", "i32", (), VarDeclExpr("x", "f64", NumberExpr(1)),
             ReturnExpr(NumberExpr(0)))], "Initializer type mismatch"),
        ([fn("f", "i64", ("i64", "i64"), ReturnExpr(BinaryExpr("+", P1, P2)))],
         "Unsupported operand types"),
        ([fn("f", "i32", ("i32",), ReturnExpr(BinaryExpr("%", P1, P1)))],
         "invalid binary operator"),
        ([fn("f", "i32", ("ptr",), ReturnExpr(VariableExpr("%1")))],
         "Cannot determine load type"),
    ],
)
def test_codegen_errors(functions, message):
    with pytest.raises(CodegenError, match=message):
        gen(*functions)


def test_render_is_stable():
    generator = CodeGenerator("demo")
    generator.define_function(fn("main", "i32", (), ReturnExpr(NumberExpr(1))))
    assert generator.render() == generator.render()
    assert generator.render().startswith("; ModuleID = 'demo'")