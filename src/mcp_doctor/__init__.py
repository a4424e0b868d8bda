"""MCP Doctor: diagnose and repair the MCP servers of desktop AI clients.

Quick start::

    from mcp_doctor import DoctorEngine

    engine = DoctorEngine.create_default()
    print(engine.status().status.overall)
    result = engine.repair(dry_run=True)
"""

__version__ = "0.1.0"

from mcp_doctor.services.engine import DoctorEngine

__all__ = ["DoctorEngine", "__version__"]
