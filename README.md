# bplus

`bplus` is the back end of a small compiler for the B+ language. You give it
a B+ syntax tree made of external declarations and function definitions. It
produces textual LLVM IR. It can then hand that IR to `clang` to build an
object file or a linked executable, and it can run the result.

## Modules

- `bplus.ast` holds the syntax tree node classes. All of them are frozen
  dataclasses:
  - `NumberExpr`, `VariableExpr`, `BinaryExpr`, `StringLiteralExpr`,
    `CallExpr`, `ReturnExpr`, `PositionalParamExpr`, `VarDeclExpr` and
    `Block`, which all derive from `Expr`.
  - `Function` and `Extern`, the two top-level definitions.
- `bplus.codegen` has:
  - `CodeGenerator`, which builds the IR.
  - `CodegenError`, raised for any semantic problem.
  - `fnv1a`, the 32-bit FNV-1a hash of a string's UTF-8 bytes.
  - `llvm_type_for`, which maps a B+ type name to an LLVM type.
- `bplus.driver` handles command-line options and the build steps.
- `bplus.escapes` provides `unescape_string`. It resolves `\n`, `\t`, `\\`
  and `\"` in a string literal's body. Any other escaped character stands
  for itself.

## The language as generated

- **Number literals.** A whole value becomes an `i32` constant and is
  wrapped to 32 bits. Any other value becomes a `double`.
- **String literals.** Each becomes a private global constant named
  `str.<fnv1a hash>`.
- **Binary operators.** `+`, `-`, `*` and `/` are supported.
  - If either operand is floating point, integer operands are promoted to
    `double` and floating-point arithmetic is used.
  - Two `i32` operands use integer arithmetic, with `sdiv` for division.
  - Operations on two constants are folded.
- **Types.** `i32`, `i64`, `f32`, `f64`, `void` and `ptr` are available.
  Any of these followed by `*` is a pointer.
- **Variadic externs.** An extern's argument list may end in `...`.
- **Local variables (`VarDeclExpr`).** Each is allocated at the top of the
  function. An initialiser must have exactly the declared type.
- **Parameters.** They are referred to by position, starting at 1, with
  `PositionalParamExpr`, or by the names `%1`, `%2` and so on with
  `VariableExpr`.
- **Calls.** A call must name a function that was declared or defined
  earlier. The argument count and the argument types are checked against
  the prototype.
- **Returns.** A non-void function must end in a `return`. A void function
  may not contain one. A void function without a `return` gets an implicit
  `ret void`.

## Building IR

```python
from bplus.ast import Block, CallExpr, Extern, Function, NumberExpr, ReturnExpr, StringLiteralExpr
from bplus.codegen import CodeGenerator

externs = [Extern("printf", "i32", ["ptr", "..."])]
functions = [
    Function(
        "main",
        "i32",
        [],
        Block([
            CallExpr("printf", [StringLiteralExpr("hello, world\n")]),
            ReturnExpr(NumberExpr(0)),
        ]),
    )
]

generator = CodeGenerator()
print(generator.generate(externs, functions))
```

`generate` declares every extern and then defines every function, in the
order given, and returns the module text. `render()` returns the module text
at any time. `has_function(name)` tells whether a name has been declared or
defined. You can also call `declare_extern` and `define_function` one at a
time.

## Building executables

`bplus.driver` offers these functions:

- **`parse_args(argv)`** reads the options into an `Options` value.
  - The input file must end in `.bc`. If no input file is given, it raises
    `UsageError`. The message is the text that `usage()` returns.
  - `--emit-only-ir` / `-ir` writes the IR only.
  - `--run` runs the built program.
  - `--out` / `-o <name>` sets the output name.
  - `--no-cleanup` keeps the `.ll` file.
  - `--compile-only` / `-C` stops before linking.
- **`default_output_name(input_file)`** derives the output name from the
  input file. It is the file's stem, or on Windows the path with an `.exe`
  extension.
- **`write_ir(ir_text, out_file)`** writes `<out_file>.ll` and returns its
  path.
- **`build(generator, options)`** does one of two things:
  - With `emit_only_ir`, it only writes the IR.
  - Otherwise:
    1. It requires a `main` function and raises `CodegenError` without one.
    2. It compiles the IR to an object file with `clang -c -x ir`.
    3. Unless `compile_only` is set, it links the object file with `clang`.
    4. With `run`, it runs the program and returns its exit status.

  A failed compile or link raises `RuntimeError`.

`clang` must be on your `PATH` for compiling and linking.

## What this package does not do

The package has no lexer or parser for B+ source text. You must build syntax
trees in Python with the `bplus.ast` classes. The package also installs no
command. `parse_args` and `build` are there for your own entry point to
call.