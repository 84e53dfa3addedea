"""
dexpatch: locate and patch Dalvik bytecode by structure rather than by position.

dexpatch provides tools and utilities for:
- Reading and writing methods and classes as ``smali``
- Matching instructions by opcode, referenced symbol and operands
- Locating methods among classes with fingerprints
- Inserting instructions into method bodies and changing access flags
- Defining patches and applying them in dependency order

Key modules:
- dexpatch.tools: Dalvik bytecode model, ``smali`` decoder and assembler
- dexpatch.patch: matchers, fingerprints, applier and patch runner
- dexpatch.patches: patches for specific applications
- dexpatch.utils: utility functions
"""

__version__ = "0.1.0"

__all__ = (
    '__version__',
)
