"""
Domain models and the .SRCINFO parser.

This package is responsible for:
* Pydantic models for package records, sync tasks and RPC payloads.
* Turning a .SRCINFO blob into structured package records.
* Helpers for building AUR RPC responses.
"""
