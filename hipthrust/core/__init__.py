"""Core pipeline primitives.

Modules in this package define the handler configuration, the stage
factories and the executor that runs them. They stay framework-agnostic;
the FastAPI binding lives in :mod:`hipthrust.handler`.
"""
