"""B+ syntax tree, LLVM IR generation and a clang-based build driver."""

__version__ = "0.1.0"
__all__ = ["ast", "codegen", "driver", "escapes"]