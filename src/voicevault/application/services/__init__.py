"""Application services.

Import from the submodules directly; the player session and the service facade
import each other's modules, so this package stays free of re-exports.
"""
