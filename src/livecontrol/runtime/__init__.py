"""
Expression runtime - tree-walking interpreter and builtin table.

This module provides:
- Interpreter: Evaluates expressions and context programs
- Value: Runtime value wrappers with a kind tag
- BuiltinRegistry: Built-in function and constant implementations
- noise: seeded Perlin noise and counter-based random draws
"""

from .values import (
    Value,
    ValueKind,
    EMPTY,
    int_val,
    float_val,
    bool_val,
    tuple_val,
    wrap_value,
)

from .builtins import (
    BuiltinFunction,
    BuiltinRegistry,
    get_builtin_registry,
    call_builtin,
    lerp,
    clamp,
    map_range,
    fract,
    ease,
    smoothstep,
)

from .noise import (
    random_draws,
    rn,
    perlin,
)

from .interpreter import (
    Interpreter,
    get_interpreter,
)

__all__ = [
    # Values
    'Value',
    'ValueKind',
    'EMPTY',
    'int_val',
    'float_val',
    'bool_val',
    'tuple_val',
    'wrap_value',

    # Builtins
    'BuiltinFunction',
    'BuiltinRegistry',
    'get_builtin_registry',
    'call_builtin',
    'lerp',
    'clamp',
    'map_range',
    'fract',
    'ease',
    'smoothstep',

    # Noise
    'random_draws',
    'rn',
    'perlin',

    # Interpreter
    'Interpreter',
    'get_interpreter',
]
