"""Sowflow - Declarative project lifecycle engine.

This package drives a software-development project (a unit of work bound to
a git branch) through its phases using a guarded finite-state machine. Each
project type supplies its own state graph, guards and phase metadata schemas
while sharing one execution engine, one validation layer and one persistence
pipeline.
"""

__version__ = "0.1.0"
