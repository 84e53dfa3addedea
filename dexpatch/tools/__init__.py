"""
Tools for reading and writing Dalvik bytecode.

Key submodules:
- dex: Dalvik instruction set, methods, classes, and the ``smali`` decoder and assembler
"""

__all__ = ()
