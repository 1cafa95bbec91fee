"""Evaluation harness for multi-agent software-development meshes."""

__version__ = "0.1.0"
