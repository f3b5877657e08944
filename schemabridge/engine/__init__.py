"""
Engine package - translator, cache, retrieval, fallback prediction and the
request orchestrator. Import submodules directly; this package does not
re-export them so that capability modules can depend on engine.units.
"""
